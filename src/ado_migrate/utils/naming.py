"""Naming rules for entities created in the target GitHub organization."""

import re
from typing import NamedTuple

# GitHub repository and team names only allow these characters
INVALID_CHARACTERS = re.compile(r'[^A-Za-z0-9._-]+')
SUBSTITUTE = '-'

MAINTAINERS_SUFFIX = 'Maintainers'
ADMINS_SUFFIX = 'Admins'


class MigrationKey(NamedTuple):
    """Correlates a queued migration with its later wait step."""

    org: str
    target_name: str

    def __str__(self) -> str:
        return f'{self.org}/{self.target_name}'


def replace_invalid_characters(value: str) -> str:
    """Replace every run of characters not allowed by GitHub with a dash."""
    if not value:
        return value
    return INVALID_CHARACTERS.sub(SUBSTITUTE, value)


def target_repo_name(team_project: str, repo: str) -> str:
    """Derive the GitHub repository name for an Azure DevOps repository.

    Args:
        team_project: Azure DevOps team project name
        repo: Azure DevOps repository name

    Returns:
        Sanitized ``<team project>-<repo>`` name
    """
    return replace_invalid_characters(f'{team_project}-{repo}')


def maintainers_team_name(team_project: str) -> str:
    return f'{replace_invalid_characters(team_project)}-{MAINTAINERS_SUFFIX}'


def admins_team_name(team_project: str) -> str:
    return f'{replace_invalid_characters(team_project)}-{ADMINS_SUFFIX}'


def migration_key(org: str, target_name: str) -> MigrationKey:
    return MigrationKey(org=org, target_name=target_name)


def migration_log_file_name(github_org: str, github_repo: str) -> str:
    return f'migration-log-{github_org}-{github_repo}.log'
