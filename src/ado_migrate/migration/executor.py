"""Execution of planned steps against Azure DevOps and GitHub."""

from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import quote

from loguru import logger

from ..api.ado import PROJECT_VALID_USERS, AdoApi
from ..api.exceptions import MigrationLogUnavailableError, NotFoundError
from ..api.github import GithubApi
from ..api.retry import RetryPolicy
from ..models import MigrationJob
from ..utils.naming import migration_log_file_name
from .steps import Step, StepKind


class StepExecutor:
    """Runs individual steps; knows nothing about scheduling or failure policy."""

    def __init__(
        self,
        ado_api: AdoApi,
        github_api: GithubApi,
        retry_policy: RetryPolicy,
        github_org: str,
        ado_pat: str,
        github_token: str,
        ado_server_url: str = 'https://dev.azure.com',
        target_repo_visibility: str = 'private',
        log_dir: str = '.',
    ):
        """Initialize step executor.

        Args:
            ado_api: Azure DevOps API
            github_api: GitHub API
            retry_policy: Polling and retry policy used for every wait
            github_org: Target GitHub organization
            ado_pat: Azure DevOps token handed to GitHub for the import
            github_token: GitHub token handed to GitHub for the import
            ado_server_url: Azure DevOps server URL
            target_repo_visibility: Visibility of migrated repositories
            log_dir: Directory migration logs are written to
        """
        self.ado_api = ado_api
        self.github_api = github_api
        self.retry_policy = retry_policy
        self.github_org = github_org
        self.ado_pat = ado_pat
        self.github_token = github_token
        self.ado_server_url = ado_server_url.rstrip('/')
        self.target_repo_visibility = target_repo_visibility
        self.log_dir = Path(log_dir)
        self.logger = logger.bind(component='StepExecutor')

        self._github_org_id: Optional[str] = None
        self._migration_source_id: Optional[str] = None

        self._handlers: Dict[StepKind, Callable[[Step], Awaitable[None]]] = {
            StepKind.CREATE_MAINTAINERS_TEAM: self.create_team,
            StepKind.CREATE_ADMINS_TEAM: self.create_team,
            StepKind.SHARE_INTEGRATION_CREDENTIAL: self.share_integration_credential,
            StepKind.LOCK_SOURCE_REPO: self.lock_source_repo,
            StepKind.DISABLE_SOURCE_REPO: self.disable_source_repo,
            StepKind.ATTACH_MAINTAINERS_TEAM: self.attach_team,
            StepKind.ATTACH_ADMINS_TEAM: self.attach_team,
            StepKind.DOWNLOAD_MIGRATION_LOG: self.download_migration_log,
            StepKind.REWIRE_PIPELINE: self.rewire_pipeline,
        }

    async def run(self, step: Step) -> None:
        """Run a step that completes in a single call.

        ``MIGRATE_REPO`` is started and awaited separately through
        ``start_migration`` and ``wait_for_migration``.
        """
        handler = self._handlers.get(step.kind)
        if handler is None:
            raise ValueError(f'{step.kind.value} cannot be run directly')

        self.logger.info(step.describe())
        await handler(step)

    def source_repo_url(self, step: Step) -> str:
        return (
            f'{self.ado_server_url}/{quote(step.org)}/'
            f'{quote(step.team_project)}/_git/{quote(step.repo)}'
        )

    async def _ensure_migration_source(self) -> str:
        if self._github_org_id is None:
            self._github_org_id = await self.github_api.get_organization_id(
                self.github_org
            )
        if self._migration_source_id is None:
            self._migration_source_id = await self.github_api.create_ado_migration_source(
                self._github_org_id, self.ado_server_url
            )
        return self._migration_source_id

    async def start_migration(self, step: Step) -> str:
        """Queue the migration of a repository without waiting for it.

        Returns:
            The migration ID

        Raises:
            DuplicateTargetError: If the target repository already exists
        """
        self.logger.info(f'Migrating Repo... {step.describe()}')
        migration_source_id = await self._ensure_migration_source()

        migration_id = await self.github_api.start_migration(
            migration_source_id,
            self.source_repo_url(step),
            self._github_org_id,
            self.github_org,
            step.target_repo,
            self.ado_pat,
            self.github_token,
            target_repo_visibility=self.target_repo_visibility,
        )
        self.logger.info(
            f'Migration queued for {self.github_org}/{step.target_repo} (ID: {migration_id})'
        )
        return migration_id

    async def wait_for_migration(self, migration_id: str) -> MigrationJob:
        """Block until a migration reaches a terminal state."""
        job = await self.retry_policy.poll_until_terminal(
            lambda: self.github_api.get_migration(migration_id)
        )

        if job.state.is_succeeded:
            self.logger.info(
                f'Migration completed (ID: {migration_id})! State: {job.state.value}'
            )
        else:
            self.logger.error(
                f'Migration {migration_id} failed for {job.repository_name}. '
                f'Failure reason: {job.failure_reason}'
            )

        if job.warnings_count:
            self.logger.warning(
                f'{job.warnings_count} warnings encountered during migration {migration_id}'
            )

        return job

    async def create_team(self, step: Step) -> None:
        """Create a team unless it exists, then optionally link its IdP group."""
        teams = await self.github_api.get_teams(self.github_org)

        if any(team.name.upper() == step.team_name.upper() for team in teams):
            self.logger.info(f'Team "{step.team_name}" already exists. New team will not be created')
        else:
            await self.github_api.create_team(self.github_org, step.team_name)
            self.logger.info(f'Successfully created team "{step.team_name}"')

        if step.idp_group:
            team_slug = await self.github_api.get_team_slug(self.github_org, step.team_name)
            group_id = await self.github_api.get_idp_group_id(
                self.github_org, step.idp_group
            )
            await self.github_api.add_emu_group_to_team(
                self.github_org, team_slug, group_id
            )
            self.logger.info(
                f'Successfully linked team "{step.team_name}" to IdP group "{step.idp_group}"'
            )

    async def share_integration_credential(self, step: Step) -> None:
        team_project_id = await self.ado_api.get_team_project_id(
            step.org, step.team_project
        )

        if await self.ado_api.contains_service_connection(
            step.org, step.team_project, step.credential_id
        ):
            self.logger.info('Service connection already shared with team project')
            return

        await self.ado_api.share_service_connection(
            step.org, step.team_project, team_project_id, step.credential_id
        )
        self.logger.info('Successfully shared service connection')

    async def lock_source_repo(self, step: Step) -> None:
        team_project_id = await self.ado_api.get_team_project_id(
            step.org, step.team_project
        )
        repo_id = await self.ado_api.get_repo_id(step.org, step.team_project, step.repo)
        identity_descriptor = await self.ado_api.get_identity_descriptor(
            step.org, team_project_id, PROJECT_VALID_USERS
        )
        await self.ado_api.lock_repo(step.org, team_project_id, repo_id, identity_descriptor)
        self.logger.info(f'Repo {step.repo} successfully locked')

    async def disable_source_repo(self, step: Step) -> None:
        """Disable the source repository; an already disabled one is left alone.

        Raises:
            NotFoundError: If the repository no longer exists
        """
        repos = await self.ado_api.get_repos(step.org, step.team_project)
        repo = next((r for r in repos if r.name == step.repo), None)

        if repo is None:
            raise NotFoundError(
                f'Repo {step.repo} not found in {step.org}/{step.team_project}'
            )

        if repo.is_disabled:
            self.logger.info(f'Repo {step.repo} is already disabled - No action will be performed')
            return

        await self.ado_api.disable_repo(step.org, step.team_project, repo.id)
        self.logger.info(f'Repo {step.repo} successfully disabled')

    async def attach_team(self, step: Step) -> None:
        team_slug = await self.github_api.get_team_slug(self.github_org, step.team_name)
        await self.github_api.add_team_to_repo(
            self.github_org, step.target_repo, team_slug, step.role
        )
        self.logger.info(
            f'Successfully added team {step.team_name} to {step.target_repo} as {step.role}'
        )

    async def download_migration_log(self, step: Step) -> Path:
        """Download the log of a repository's latest migration.

        Returns:
            Path the log was written to

        Raises:
            NotFoundError: If the repository was never migrated
            MigrationLogUnavailableError: If the log URL never populated
        """
        outcome = await self.retry_policy.retry_on_result(
            lambda: self.github_api.get_migration_log_url(self.github_org, step.target_repo),
            lambda reference: reference is not None and not reference.is_available,
            wait_message='Waiting for migration log to populate...',
        )

        reference = outcome.result
        if reference is None:
            raise NotFoundError(f'Migration for repository {step.target_repo} not found!')

        if not outcome.succeeded:
            raise MigrationLogUnavailableError(
                f'Migration log for repository {step.target_repo} unavailable! '
                f'Last seen migration: {reference.migration_id}',
                last_result=reference,
            )

        log_file = self.log_dir / migration_log_file_name(self.github_org, step.target_repo)
        if log_file.exists():
            self.logger.warning(f'Overwriting {log_file} because it already exists')

        self.logger.info(f'Downloading log for repository {step.target_repo} to {log_file}...')
        await self.github_api.download_file(reference.migration_log_url, log_file)
        self.logger.info(f'Downloaded {step.target_repo} log to {log_file}')
        return log_file

    async def rewire_pipeline(self, step: Step) -> None:
        pipeline_id = await self.ado_api.get_pipeline_id(
            step.org, step.team_project, step.pipeline
        )
        definition = await self.ado_api.get_pipeline(step.org, step.team_project, pipeline_id)
        await self.ado_api.change_pipeline_repo(
            step.org,
            step.team_project,
            pipeline_id,
            definition,
            self.github_org,
            step.target_repo,
            step.credential_id,
        )
        self.logger.info(f'Successfully rewired pipeline {step.pipeline}')
