"""Sequential and parallel scheduling of planned migration steps."""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.exceptions import (
    DuplicateTargetError,
    MigrationFailedError,
    StepFailedError,
)
from ..models import Inventory, Organization, Repository, TeamProject
from ..utils.naming import MigrationKey, migration_key
from .executor import StepExecutor
from .steps import (
    PlanFlags,
    RepoPlan,
    Step,
    plan_repo_steps,
    plan_team_project_steps,
    split_repo_steps,
)


class RepositoryStatus(str, Enum):
    """Final status of one repository in a run."""

    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class RepositoryOutcome(BaseModel):
    """What happened to one repository."""

    org: str
    team_project: str
    repo: str
    target_name: str
    status: RepositoryStatus
    migration_id: Optional[str] = None
    failed_steps: int = 0
    error: Optional[str] = None

    @property
    def location(self) -> str:
        return f'{self.org}/{self.team_project}/{self.repo}'


class RunResult(BaseModel):
    """Counters accumulated over a run."""

    succeeded: int = Field(default=0)
    failed: int = Field(default=0)
    skipped: int = Field(default=0)
    aborted: bool = Field(default=False)
    outcomes: List[RepositoryOutcome] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or self.aborted

    def record(self, outcome: RepositoryOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status == RepositoryStatus.SUCCEEDED:
            self.succeeded += 1
        elif outcome.status == RepositoryStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


def _outcome(
    repo: Repository, status: RepositoryStatus, **details
) -> RepositoryOutcome:
    return RepositoryOutcome(
        org=repo.org,
        team_project=repo.team_project,
        repo=repo.name,
        target_name=repo.target_name,
        status=status,
        **details,
    )


class Scheduler(ABC):
    """Runs the planned steps of an inventory under a failure policy."""

    def __init__(self, executor: StepExecutor, flags: PlanFlags):
        """Initialize scheduler.

        Args:
            executor: Runs individual steps
            flags: Enabled options used to plan steps
        """
        self.executor = executor
        self.flags = flags
        self.logger = logger.bind(component=self.__class__.__name__)

    @abstractmethod
    async def run(self, inventory: Inventory) -> RunResult:
        """Run every planned step of the inventory.

        Args:
            inventory: Repositories selected for the run

        Returns:
            Counters and per-repository outcomes
        """
        pass

    def plan_repo(
        self, org: Organization, team_project: TeamProject, repo: Repository
    ) -> RepoPlan:
        return split_repo_steps(plan_repo_steps(org, team_project, repo, self.flags))

    async def run_step(self, step: Step) -> None:
        """Run a step, wrapping any failure with the step for context.

        Raises:
            StepFailedError: If the step fails
        """
        try:
            await self.executor.run(step)
        except Exception as e:
            raise StepFailedError(step, e) from e

    async def run_team_project_steps(
        self, org: Organization, team_project: TeamProject
    ) -> None:
        for step in plan_team_project_steps(org, team_project, self.flags):
            await self.run_step(step)

    async def start_migration(self, step: Step) -> str:
        """Queue a migration.

        Raises:
            DuplicateTargetError: If the target repository already exists
            StepFailedError: If the migration could not be started
        """
        try:
            return await self.executor.start_migration(step)
        except DuplicateTargetError:
            raise
        except Exception as e:
            raise StepFailedError(step, e) from e

    def log_duplicate(self, error: DuplicateTargetError, repo: Repository) -> None:
        self.logger.warning(
            f'{error} ({repo.org}/{repo.team_project}/{repo.name}). '
            f'Skipping migration of this repository'
        )


class SequentialScheduler(Scheduler):
    """Migrates one repository at a time and stops at the first failure."""

    async def run(self, inventory: Inventory) -> RunResult:
        result = RunResult()

        try:
            for org in inventory.organizations:
                for team_project in org.team_projects:
                    await self.run_team_project_steps(org, team_project)

                    for repo in team_project.repositories:
                        result.record(await self._migrate(org, team_project, repo))
        except StepFailedError as e:
            self.logger.error(f'{e}. Aborting run')
            step = e.step
            if step.repo:
                result.record(
                    RepositoryOutcome(
                        org=step.org,
                        team_project=step.team_project,
                        repo=step.repo,
                        target_name=step.target_repo,
                        status=RepositoryStatus.FAILED,
                        error=str(e),
                    )
                )
            else:
                result.failed += 1
            result.aborted = True

        return result

    async def _migrate(
        self, org: Organization, team_project: TeamProject, repo: Repository
    ) -> RepositoryOutcome:
        plan = self.plan_repo(org, team_project, repo)

        for step in plan.pre_migration:
            await self.run_step(step)

        try:
            migration_id = await self.start_migration(plan.migrate)
        except DuplicateTargetError as e:
            self.log_duplicate(e, repo)
            return _outcome(repo, RepositoryStatus.SKIPPED, error=str(e))

        try:
            job = await self.executor.wait_for_migration(migration_id)
        except Exception as e:
            raise StepFailedError(plan.migrate, e) from e

        if not job.state.is_succeeded:
            raise StepFailedError(
                plan.migrate,
                MigrationFailedError(migration_id, job.repository_name, job.failure_reason),
            )

        for step in plan.post_migration:
            await self.run_step(step)

        return _outcome(repo, RepositoryStatus.SUCCEEDED, migration_id=migration_id)


class _QueuedMigration(NamedTuple):
    index: int
    repo: Repository
    plan: RepoPlan
    key: MigrationKey


class ParallelScheduler(Scheduler):
    """Queues every migration first, then waits for them concurrently.

    A failure only affects the repository (or team project) it belongs to.
    """

    def __init__(
        self, executor: StepExecutor, flags: PlanFlags, max_concurrent_waits: int = 20
    ):
        super().__init__(executor, flags)
        if max_concurrent_waits <= 0:
            raise ValueError('max_concurrent_waits must be positive')
        self.max_concurrent_waits = max_concurrent_waits

    async def run(self, inventory: Inventory) -> RunResult:
        slots: List[Optional[RepositoryOutcome]] = []
        queued: List[_QueuedMigration] = []
        migration_ids: Dict[MigrationKey, str] = {}

        # Phase 1: team project steps, locks and migration starts
        for org in inventory.organizations:
            for team_project in org.team_projects:
                team_project_error = None
                try:
                    await self.run_team_project_steps(org, team_project)
                except StepFailedError as e:
                    self.logger.error(str(e))
                    team_project_error = str(e)

                for repo in team_project.repositories:
                    index = len(slots)
                    slots.append(None)

                    if team_project_error:
                        slots[index] = _outcome(
                            repo, RepositoryStatus.FAILED, error=team_project_error
                        )
                        continue

                    key = migration_key(org.name, repo.target_name)
                    if key in migration_ids:
                        self.log_duplicate(
                            DuplicateTargetError(self.executor.github_org, repo.target_name),
                            repo,
                        )
                        slots[index] = _outcome(
                            repo, RepositoryStatus.SKIPPED, error='Duplicate target name'
                        )
                        continue

                    plan = self.plan_repo(org, team_project, repo)
                    try:
                        for step in plan.pre_migration:
                            await self.run_step(step)
                        migration_ids[key] = await self.start_migration(plan.migrate)
                    except DuplicateTargetError as e:
                        self.log_duplicate(e, repo)
                        slots[index] = _outcome(
                            repo, RepositoryStatus.SKIPPED, error=str(e)
                        )
                        continue
                    except StepFailedError as e:
                        self.logger.error(str(e))
                        slots[index] = _outcome(
                            repo, RepositoryStatus.FAILED, error=str(e)
                        )
                        continue

                    queued.append(_QueuedMigration(index, repo, plan, key))

        # Phase 2: wait for every queued migration and finish it
        semaphore = asyncio.Semaphore(self.max_concurrent_waits)
        finished = await asyncio.gather(
            *[self._finish(entry, migration_ids[entry.key], semaphore) for entry in queued]
        )
        for entry, outcome in zip(queued, finished):
            slots[entry.index] = outcome

        result = RunResult()
        for outcome in slots:
            result.record(outcome)
        return result

    async def _finish(
        self, entry: _QueuedMigration, migration_id: str, semaphore: asyncio.Semaphore
    ) -> RepositoryOutcome:
        repo = entry.repo

        async with semaphore:
            try:
                job = await self.executor.wait_for_migration(migration_id)
            except Exception as e:
                error = StepFailedError(entry.plan.migrate, e)
                self.logger.error(f'{error} (migration {migration_id})')
                return _outcome(
                    repo, RepositoryStatus.FAILED, migration_id=migration_id, error=str(error)
                )

        if not job.state.is_succeeded:
            error = MigrationFailedError(migration_id, job.repository_name, job.failure_reason)
            self.logger.error(f'{error} ({repo.org}/{repo.team_project}/{repo.name})')
            return _outcome(
                repo, RepositoryStatus.FAILED, migration_id=migration_id, error=str(error)
            )

        failed_steps = 0
        errors = []
        for step in entry.plan.post_migration:
            try:
                await self.run_step(step)
            except StepFailedError as e:
                self.logger.error(f'{e} (migration {migration_id})')
                failed_steps += 1
                errors.append(str(e))

        if failed_steps:
            return _outcome(
                repo,
                RepositoryStatus.FAILED,
                migration_id=migration_id,
                failed_steps=failed_steps,
                error='; '.join(errors),
            )

        return _outcome(repo, RepositoryStatus.SUCCEEDED, migration_id=migration_id)
