"""Planning of the steps that migrate a team project and its repositories.

Planning is pure: the functions here only decide which steps apply and in
what order. Executing a step is the job of ``StepExecutor``.
"""

from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, Field

from ..models import Organization, Repository, TeamProject
from ..utils.naming import admins_team_name, maintainers_team_name

MAINTAIN_ROLE = 'maintain'
ADMIN_ROLE = 'admin'


class StepKind(str, Enum):
    """Kinds of planned steps, in execution order."""

    CREATE_MAINTAINERS_TEAM = 'create_maintainers_team'
    CREATE_ADMINS_TEAM = 'create_admins_team'
    SHARE_INTEGRATION_CREDENTIAL = 'share_integration_credential'
    LOCK_SOURCE_REPO = 'lock_source_repo'
    MIGRATE_REPO = 'migrate_repo'
    DISABLE_SOURCE_REPO = 'disable_source_repo'
    ATTACH_MAINTAINERS_TEAM = 'attach_maintainers_team'
    ATTACH_ADMINS_TEAM = 'attach_admins_team'
    DOWNLOAD_MIGRATION_LOG = 'download_migration_log'
    REWIRE_PIPELINE = 'rewire_pipeline'


POST_MIGRATION_KINDS = frozenset(
    {
        StepKind.DISABLE_SOURCE_REPO,
        StepKind.ATTACH_MAINTAINERS_TEAM,
        StepKind.ATTACH_ADMINS_TEAM,
        StepKind.DOWNLOAD_MIGRATION_LOG,
        StepKind.REWIRE_PIPELINE,
    }
)


class PlanFlags(BaseModel):
    """Optional parts of a migration."""

    create_teams: bool = Field(default=False)
    link_idp_groups: bool = Field(default=False)
    lock_source_repos: bool = Field(default=False)
    disable_source_repos: bool = Field(default=False)
    rewire_pipelines: bool = Field(default=False)
    download_migration_logs: bool = Field(default=False)

    class Config:
        """Pydantic configuration."""

        frozen = True

    @classmethod
    def from_options(cls, all_: bool = False, **options: bool) -> 'PlanFlags':
        """Build flags, with ``all_`` switching every option on."""
        if all_:
            return cls(**{name: True for name in cls.__fields__})
        return cls(**{k: bool(v) for k, v in options.items() if v is not None})

    @property
    def teams_enabled(self) -> bool:
        return self.create_teams or self.link_idp_groups


class Step(BaseModel):
    """A single planned operation and everything needed to run it."""

    kind: StepKind
    org: str
    team_project: str
    repo: Optional[str] = None
    target_repo: Optional[str] = None
    team_name: Optional[str] = None
    role: Optional[str] = None
    idp_group: Optional[str] = None
    pipeline: Optional[str] = None
    credential_id: Optional[str] = None

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def is_post_migration(self) -> bool:
        return self.kind in POST_MIGRATION_KINDS

    def describe(self) -> str:
        """Human readable summary with the entity coordinates."""
        location = f'{self.org}/{self.team_project}'
        if self.repo:
            location = f'{location}/{self.repo}'

        label = self.kind.value.replace('_', ' ').capitalize()
        if self.team_name:
            label = f'{label} {self.team_name}'
        if self.pipeline:
            label = f'{label} {self.pipeline}'
        return f'{label} [{location}]'


class RepoPlan(NamedTuple):
    """Steps of one repository split around the migration itself."""

    pre_migration: List[Step]
    migrate: Step
    post_migration: List[Step]


def _team_step(
    kind: StepKind, org: str, team_project: str, team_name: str, flags: PlanFlags
) -> Step:
    return Step(
        kind=kind,
        org=org,
        team_project=team_project,
        team_name=team_name,
        idp_group=team_name if flags.link_idp_groups else None,
    )


def plan_team_project_steps(
    org: Organization, team_project: TeamProject, flags: PlanFlags
) -> List[Step]:
    """Plan the steps run once per team project.

    Args:
        org: Owning organization
        team_project: Team project to plan for
        flags: Enabled options

    Returns:
        Ordered steps, empty for a team project without repositories
    """
    if not team_project.has_repositories:
        return []

    steps = []

    if flags.teams_enabled:
        steps.append(
            _team_step(
                StepKind.CREATE_MAINTAINERS_TEAM,
                org.name,
                team_project.name,
                maintainers_team_name(team_project.name),
                flags,
            )
        )
        steps.append(
            _team_step(
                StepKind.CREATE_ADMINS_TEAM,
                org.name,
                team_project.name,
                admins_team_name(team_project.name),
                flags,
            )
        )

    if flags.rewire_pipelines and org.has_integration_credential:
        steps.append(
            Step(
                kind=StepKind.SHARE_INTEGRATION_CREDENTIAL,
                org=org.name,
                team_project=team_project.name,
                credential_id=org.integration_credential_id,
            )
        )

    return steps


def plan_repo_steps(
    org: Organization, team_project: TeamProject, repo: Repository, flags: PlanFlags
) -> List[Step]:
    """Plan the steps of one repository, in dependency order."""

    def repo_step(kind: StepKind, **params) -> Step:
        return Step(
            kind=kind,
            org=org.name,
            team_project=team_project.name,
            repo=repo.name,
            target_repo=repo.target_name,
            **params,
        )

    steps = []

    if flags.lock_source_repos:
        steps.append(repo_step(StepKind.LOCK_SOURCE_REPO))

    steps.append(repo_step(StepKind.MIGRATE_REPO))

    if flags.disable_source_repos:
        steps.append(repo_step(StepKind.DISABLE_SOURCE_REPO))

    if flags.teams_enabled:
        steps.append(
            repo_step(
                StepKind.ATTACH_MAINTAINERS_TEAM,
                team_name=maintainers_team_name(team_project.name),
                role=MAINTAIN_ROLE,
            )
        )
        steps.append(
            repo_step(
                StepKind.ATTACH_ADMINS_TEAM,
                team_name=admins_team_name(team_project.name),
                role=ADMIN_ROLE,
            )
        )

    if flags.download_migration_logs:
        steps.append(repo_step(StepKind.DOWNLOAD_MIGRATION_LOG))

    if flags.rewire_pipelines and org.has_integration_credential:
        for pipeline in repo.pipelines:
            steps.append(
                repo_step(
                    StepKind.REWIRE_PIPELINE,
                    pipeline=pipeline.name,
                    credential_id=org.integration_credential_id,
                )
            )

    return steps


def split_repo_steps(steps: List[Step]) -> RepoPlan:
    """Separate a repository plan around its ``MIGRATE_REPO`` step.

    Raises:
        ValueError: If the plan has no migrate step
    """
    for index, step in enumerate(steps):
        if step.kind == StepKind.MIGRATE_REPO:
            return RepoPlan(
                pre_migration=steps[:index],
                migrate=step,
                post_migration=steps[index + 1:],
            )
    raise ValueError('Repository plan has no migrate step')
