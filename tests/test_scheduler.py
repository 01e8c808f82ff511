"""Tests for sequential and parallel scheduling."""

import pytest
from loguru import logger

from ado_migrate.api.exceptions import ApiError, DuplicateTargetError
from ado_migrate.migration.scheduler import (
    ParallelScheduler,
    RepositoryStatus,
    SequentialScheduler,
)
from ado_migrate.migration.steps import PlanFlags, StepKind
from ado_migrate.models import (
    Inventory,
    MigrationJob,
    MigrationState,
    Organization,
    Repository,
    TeamProject,
)


def _inventory(*names, team_project='tp', org='org'):
    repos = [Repository(org=org, team_project=team_project, name=name) for name in names]
    return Inventory(
        organizations=[
            Organization(
                name=org,
                team_projects=[TeamProject(org=org, name=team_project, repositories=repos)],
            )
        ]
    )


def _job(migration_id, state=MigrationState.SUCCEEDED):
    return MigrationJob(
        migration_id=migration_id,
        state=state,
        repository_name=migration_id,
        failure_reason='boom' if state == MigrationState.FAILED else None,
    )


class FakeExecutor:
    """Records calls and fails the steps it is told to."""

    def __init__(self, fail_steps=(), fail_starts=(), failed_migrations=(), duplicates=()):
        self.github_org = 'gh-org'
        self.fail_steps = set(fail_steps)
        self.fail_starts = set(fail_starts)
        self.failed_migrations = set(failed_migrations)
        self.duplicates = set(duplicates)
        self.calls = []

    async def run(self, step):
        self.calls.append((step.kind, step.repo))
        if (step.kind, step.repo) in self.fail_steps:
            raise ApiError(f'{step.kind.value} exploded')

    async def start_migration(self, step):
        self.calls.append((StepKind.MIGRATE_REPO, step.repo))
        if step.repo in self.duplicates:
            raise DuplicateTargetError(self.github_org, step.target_repo)
        if step.repo in self.fail_starts:
            raise ApiError('start exploded')
        return f'RM_{step.repo}'

    async def wait_for_migration(self, migration_id):
        self.calls.append(('wait', migration_id))
        if migration_id in self.failed_migrations:
            return _job(migration_id, MigrationState.FAILED)
        return _job(migration_id)


class TestSequentialScheduler:
    """Test one-at-a-time scheduling."""

    def setup_method(self):
        self.flags = PlanFlags(lock_source_repos=True, disable_source_repos=True)

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        executor = FakeExecutor()
        scheduler = SequentialScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.succeeded == 2
        assert result.failed == 0
        assert not result.has_failures
        assert executor.calls == [
            (StepKind.LOCK_SOURCE_REPO, 'a'),
            (StepKind.MIGRATE_REPO, 'a'),
            ('wait', 'RM_a'),
            (StepKind.DISABLE_SOURCE_REPO, 'a'),
            (StepKind.LOCK_SOURCE_REPO, 'b'),
            (StepKind.MIGRATE_REPO, 'b'),
            ('wait', 'RM_b'),
            (StepKind.DISABLE_SOURCE_REPO, 'b'),
        ]

    @pytest.mark.asyncio
    async def test_first_failure_aborts_run(self):
        executor = FakeExecutor(fail_steps={(StepKind.LOCK_SOURCE_REPO, 'a')})
        scheduler = SequentialScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.aborted
        assert result.failed == 1
        assert result.succeeded == 0
        assert result.has_failures
        assert (StepKind.MIGRATE_REPO, 'a') not in executor.calls
        assert all(repo != 'b' for _, repo in executor.calls)

    @pytest.mark.asyncio
    async def test_failed_migration_aborts_run(self):
        executor = FakeExecutor(failed_migrations={'RM_a'})
        scheduler = SequentialScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.aborted
        assert result.outcomes[0].status == RepositoryStatus.FAILED
        assert 'boom' in result.outcomes[0].error
        assert (StepKind.DISABLE_SOURCE_REPO, 'a') not in executor.calls

    @pytest.mark.asyncio
    async def test_team_project_failure_aborts_run(self):
        executor = FakeExecutor(fail_steps={(StepKind.CREATE_MAINTAINERS_TEAM, None)})
        scheduler = SequentialScheduler(executor, PlanFlags(create_teams=True))

        result = await scheduler.run(_inventory('a'))

        assert result.aborted
        assert result.failed == 1
        assert result.outcomes == []

    @pytest.mark.asyncio
    async def test_duplicate_target_is_skipped(self):
        executor = FakeExecutor(duplicates={'a'})
        scheduler = SequentialScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.skipped == 1
        assert result.succeeded == 1
        assert not result.has_failures
        assert (StepKind.DISABLE_SOURCE_REPO, 'a') not in executor.calls


class TestParallelScheduler:
    """Test queue-then-wait scheduling."""

    def setup_method(self):
        self.flags = PlanFlags(lock_source_repos=True, disable_source_repos=True)
        self.warnings = []
        self.sink_id = logger.add(self.warnings.append, format='{message}', level='WARNING')

    def teardown_method(self):
        logger.remove(self.sink_id)

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            ParallelScheduler(FakeExecutor(), self.flags, max_concurrent_waits=0)

    @pytest.mark.asyncio
    async def test_queues_before_waiting(self):
        executor = FakeExecutor()
        scheduler = ParallelScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.succeeded == 2
        first_wait = executor.calls.index(('wait', 'RM_a'))
        assert executor.calls[:first_wait] == [
            (StepKind.LOCK_SOURCE_REPO, 'a'),
            (StepKind.MIGRATE_REPO, 'a'),
            (StepKind.LOCK_SOURCE_REPO, 'b'),
            (StepKind.MIGRATE_REPO, 'b'),
        ]

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self):
        executor = FakeExecutor(fail_starts={'a'})
        scheduler = ParallelScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.failed == 1
        assert result.succeeded == 1
        assert not result.aborted
        assert [o.status for o in result.outcomes] == [
            RepositoryStatus.FAILED,
            RepositoryStatus.SUCCEEDED,
        ]
        assert ('wait', 'RM_b') in executor.calls
        assert ('wait', 'RM_a') not in executor.calls

    @pytest.mark.asyncio
    async def test_failed_migration_skips_post_steps(self):
        executor = FakeExecutor(failed_migrations={'RM_a'})
        scheduler = ParallelScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.failed == 1
        assert result.succeeded == 1
        assert (StepKind.DISABLE_SOURCE_REPO, 'a') not in executor.calls
        assert (StepKind.DISABLE_SOURCE_REPO, 'b') in executor.calls

    @pytest.mark.asyncio
    async def test_failed_migration_logs_repository(self):
        executor = FakeExecutor(failed_migrations={'RM_a'})
        scheduler = ParallelScheduler(executor, self.flags)

        await scheduler.run(_inventory('a', 'b'))

        failures = [m for m in self.warnings if 'org/tp/a' in m]
        assert len(failures) == 1
        assert 'RM_a' in failures[0]
        assert 'boom' in failures[0]

    @pytest.mark.asyncio
    async def test_post_step_failures_are_tallied(self):
        flags = PlanFlags(disable_source_repos=True, create_teams=True)
        executor = FakeExecutor(
            fail_steps={
                (StepKind.DISABLE_SOURCE_REPO, 'a'),
                (StepKind.ATTACH_ADMINS_TEAM, 'a'),
            }
        )
        scheduler = ParallelScheduler(executor, flags)

        result = await scheduler.run(_inventory('a'))

        outcome = result.outcomes[0]
        assert outcome.status == RepositoryStatus.FAILED
        assert outcome.failed_steps == 2
        assert (StepKind.ATTACH_MAINTAINERS_TEAM, 'a') in executor.calls

    @pytest.mark.asyncio
    async def test_team_project_failure_fails_its_repos(self):
        executor = FakeExecutor(fail_steps={(StepKind.CREATE_MAINTAINERS_TEAM, None)})
        scheduler = ParallelScheduler(executor, PlanFlags(create_teams=True))

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.failed == 2
        assert not any(kind == StepKind.MIGRATE_REPO for kind, _ in executor.calls)

    @pytest.mark.asyncio
    async def test_duplicate_target_is_skipped(self):
        executor = FakeExecutor(duplicates={'a'})
        scheduler = ParallelScheduler(executor, self.flags)

        result = await scheduler.run(_inventory('a', 'b'))

        assert result.skipped == 1
        assert result.succeeded == 1
        assert any('already contains a repository' in m for m in self.warnings)

    @pytest.mark.asyncio
    async def test_colliding_target_name_queued_once(self):
        inventory = Inventory(
            organizations=[
                Organization(
                    name='org',
                    team_projects=[
                        TeamProject(
                            org='org',
                            name='A B',
                            repositories=[Repository(org='org', team_project='A B', name='c')],
                        ),
                        TeamProject(
                            org='org',
                            name='A',
                            repositories=[Repository(org='org', team_project='A', name='B c')],
                        ),
                    ],
                )
            ]
        )
        executor = FakeExecutor()
        scheduler = ParallelScheduler(executor, PlanFlags())

        result = await scheduler.run(inventory)

        assert result.succeeded == 1
        assert result.skipped == 1
        assert [c for c in executor.calls if c[0] == StepKind.MIGRATE_REPO] == [
            (StepKind.MIGRATE_REPO, 'c')
        ]

    @pytest.mark.asyncio
    async def test_outcomes_keep_discovery_order(self):
        executor = FakeExecutor(failed_migrations={'RM_b'})
        scheduler = ParallelScheduler(executor, PlanFlags(), max_concurrent_waits=1)

        result = await scheduler.run(_inventory('a', 'b', 'c'))

        assert [o.repo for o in result.outcomes] == ['a', 'b', 'c']
        assert [o.status for o in result.outcomes] == [
            RepositoryStatus.SUCCEEDED,
            RepositoryStatus.FAILED,
            RepositoryStatus.SUCCEEDED,
        ]
