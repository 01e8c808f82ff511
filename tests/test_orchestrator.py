"""End-to-end tests for discovery, planning and scheduling."""

import pytest
from loguru import logger
from unittest.mock import AsyncMock, Mock

from ado_migrate.api.exceptions import NoMigratableReposError, RateLimitError
from ado_migrate.api.retry import RetryPolicy
from ado_migrate.inventory import InventoryService
from ado_migrate.migration.executor import StepExecutor
from ado_migrate.migration.orchestrator import MigrationOrchestrator
from ado_migrate.migration.scheduler import ParallelScheduler, SequentialScheduler
from ado_migrate.migration.steps import PlanFlags, StepKind
from ado_migrate.models import AdoRepository, MigrationJob, MigrationState


def _ado_api(team_projects, repos_by_team_project, credential_id=None):
    ado_api = Mock()
    ado_api.get_team_projects = AsyncMock(return_value=team_projects)
    ado_api.get_enabled_repos = AsyncMock(
        side_effect=lambda org, tp: [
            AdoRepository(id=f'{tp}-{name}', name=name)
            for name in repos_by_team_project.get(tp, [])
        ]
    )
    ado_api.get_github_app_id = AsyncMock(return_value=credential_id)
    ado_api.get_pipelines = AsyncMock(return_value=[])
    ado_api.get_team_project_id = AsyncMock(return_value='tp-id')
    ado_api.get_repo_id = AsyncMock(return_value='repo-id')
    ado_api.get_identity_descriptor = AsyncMock(return_value='descriptor')
    ado_api.lock_repo = AsyncMock()
    return ado_api


def _github_api():
    github_api = Mock()
    github_api.get_organization_id = AsyncMock(return_value='O_1')
    github_api.create_ado_migration_source = AsyncMock(return_value='MS_1')
    github_api.start_migration = AsyncMock(
        side_effect=lambda source_id, url, org_id, org, repo, *args, **kwargs: f'RM_{repo}'
    )
    github_api.get_migration = AsyncMock(
        side_effect=lambda migration_id: MigrationJob(
            migration_id=migration_id, state=MigrationState.SUCCEEDED
        )
    )
    github_api.get_teams = AsyncMock(return_value=[])
    github_api.create_team = AsyncMock()
    github_api.get_team_slug = AsyncMock(side_effect=lambda org, name: name.lower())
    github_api.add_team_to_repo = AsyncMock()
    return github_api


class TestMigrationOrchestrator:
    """Test complete runs against mocked platforms."""

    def setup_method(self):
        """Set up test fixtures."""
        self.warnings = []
        self.sink_id = logger.add(self.warnings.append, format='{message}', level='WARNING')

    def teardown_method(self):
        logger.remove(self.sink_id)

    def _orchestrator(self, ado_api, github_api, flags, sequential=False):
        inventory_service = InventoryService(ado_api, 'gh-org', org_filter='O')
        executor = StepExecutor(
            ado_api,
            github_api,
            RetryPolicy(retry_interval=0, poll_interval=0),
            github_org='gh-org',
            ado_pat='ado-pat',
            github_token='gh-pat',
        )
        return MigrationOrchestrator(inventory_service, executor, flags, sequential=sequential)

    def test_create_scheduler(self):
        flags = PlanFlags()
        ado_api, github_api = _ado_api([], {}), _github_api()

        assert isinstance(
            self._orchestrator(ado_api, github_api, flags).create_scheduler(),
            ParallelScheduler,
        )
        assert isinstance(
            self._orchestrator(ado_api, github_api, flags, sequential=True).create_scheduler(),
            SequentialScheduler,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize('sequential', [False, True])
    async def test_missing_credential_with_teams_and_locks(self, sequential):
        ado_api = _ado_api(['P'], {'P': ['r1', 'r2']})
        github_api = _github_api()
        flags = PlanFlags(create_teams=True, lock_source_repos=True)
        orchestrator = self._orchestrator(ado_api, github_api, flags, sequential)

        inventory = await orchestrator.discover()
        steps = orchestrator.plan(inventory)
        report = await orchestrator.execute_migration(inventory)

        credential_warnings = [m for m in self.warnings if 'No GitHub service connection' in m]
        assert len(credential_warnings) == 1
        assert 'O' in credential_warnings[0]

        for repo in ('r1', 'r2'):
            pre_migration = [
                s.kind for s in steps if s.repo == repo and not s.is_post_migration
            ]
            assert pre_migration == [StepKind.LOCK_SOURCE_REPO, StepKind.MIGRATE_REPO]
        assert not any(s.kind == StepKind.REWIRE_PIPELINE for s in steps)

        assert github_api.create_team.await_count == 2
        created = [c.args[1] for c in github_api.create_team.call_args_list]
        assert created == ['P-Maintainers', 'P-Admins']
        assert ado_api.lock_repo.await_count == 2

        assert report.success
        assert report.succeeded == 2
        assert report.orgs_missing_credential == ['O']

    @pytest.mark.asyncio
    async def test_target_name_collision(self):
        ado_api = _ado_api(['P 1', 'P-1'], {'P 1': ['repoA'], 'P-1': ['repoA']})
        github_api = _github_api()
        orchestrator = self._orchestrator(ado_api, github_api, PlanFlags())

        report = await orchestrator.execute_migration()

        duplicate_warnings = [m for m in self.warnings if 'DUPLICATE REPO NAME' in m]
        assert len(duplicate_warnings) == 1
        assert 'O/P 1/repoA' in duplicate_warnings[0]
        assert 'O/P-1/repoA' in duplicate_warnings[0]

        assert len(report.duplicate_target_names) == 1
        assert report.succeeded == 1
        assert report.skipped == 1
        assert report.success
        assert report.completed_at is not None

    @pytest.mark.asyncio
    async def test_no_repositories(self):
        ado_api = _ado_api(['P'], {})
        orchestrator = self._orchestrator(ado_api, _github_api(), PlanFlags())

        with pytest.raises(NoMigratableReposError):
            await orchestrator.execute_migration()

        ado_api.get_github_app_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_migration_reported(self):
        ado_api = _ado_api(['P'], {'P': ['r1', 'r2']})
        github_api = _github_api()
        github_api.get_migration.side_effect = lambda migration_id: MigrationJob(
            migration_id=migration_id,
            state=MigrationState.FAILED if migration_id == 'RM_P-r1' else MigrationState.SUCCEEDED,
            failure_reason='bad source',
        )
        orchestrator = self._orchestrator(ado_api, github_api, PlanFlags())

        report = await orchestrator.execute_migration()

        assert not report.success
        assert report.failed == 1
        assert report.succeeded == 1
        assert report.outcomes[0].repo == 'r1'
        assert 'bad source' in report.outcomes[0].error

    @pytest.mark.asyncio
    async def test_rate_limited_status_poll_recovers(self):
        ado_api = _ado_api(['P'], {'P': ['r1']})
        github_api = _github_api()
        github_api.get_migration.side_effect = [
            MigrationJob(migration_id='RM_P-r1', state=MigrationState.IN_PROGRESS),
            RateLimitError('Rate limit exceeded', retry_after=0, status_code=429),
            MigrationJob(migration_id='RM_P-r1', state=MigrationState.SUCCEEDED),
        ]
        orchestrator = self._orchestrator(ado_api, github_api, PlanFlags())

        report = await orchestrator.execute_migration()

        assert report.success
        assert report.succeeded == 1
        assert report.failed == 0
        assert github_api.get_migration.await_count == 3
        assert any('Rate limited' in m for m in self.warnings)
