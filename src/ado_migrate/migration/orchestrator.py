"""Migration orchestrator: discovery, pre-run checks, scheduling and reporting."""

from datetime import datetime
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.exceptions import NoMigratableReposError
from ..inventory.inspector import InventoryService
from ..models import DuplicateTargetName, Inventory
from .executor import StepExecutor
from .scheduler import (
    ParallelScheduler,
    RepositoryOutcome,
    RunResult,
    Scheduler,
    SequentialScheduler,
)
from .steps import (
    PlanFlags,
    Step,
    plan_repo_steps,
    plan_team_project_steps,
)


class RunReport(BaseModel):
    """Summary of a migration run."""

    mode: str = Field(..., description='sequential or parallel')
    total_repositories: int = Field(..., description='Repositories considered')
    succeeded: int = Field(default=0, description='Repositories fully migrated')
    failed: int = Field(default=0, description='Repositories with a failed step')
    skipped: int = Field(default=0, description='Repositories whose target existed')
    aborted: bool = Field(default=False, description='Run stopped at a failure')

    duplicate_target_names: List[DuplicateTargetName] = Field(default_factory=list)
    orgs_missing_credential: List[str] = Field(default_factory=list)
    outcomes: List[RepositoryOutcome] = Field(default_factory=list)

    # Timing
    started_at: datetime = Field(..., description='Run start time')
    completed_at: Optional[datetime] = Field(default=None, description='Run end time')

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    @property
    def success(self) -> bool:
        return not self.aborted and self.failed == 0

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class MigrationOrchestrator:
    """Coordinates discovery and the scheduling of every planned step."""

    def __init__(
        self,
        inventory_service: InventoryService,
        executor: StepExecutor,
        flags: PlanFlags,
        sequential: bool = False,
        max_concurrent_waits: int = 20,
        repo_list: Optional[str] = None,
    ):
        """Initialize migration orchestrator.

        Args:
            inventory_service: Source discovery
            executor: Runs individual steps
            flags: Enabled options
            sequential: Migrate one repository at a time, stopping at the first failure
            max_concurrent_waits: Migrations waited on concurrently in parallel mode
            repo_list: Optional CSV restricting the repositories to migrate
        """
        self.inventory_service = inventory_service
        self.executor = executor
        self.flags = flags
        self.sequential = sequential
        self.max_concurrent_waits = max_concurrent_waits
        self.repo_list = repo_list
        self.logger = logger.bind(component='MigrationOrchestrator')

    def create_scheduler(self) -> Scheduler:
        if self.sequential:
            return SequentialScheduler(self.executor, self.flags)
        return ParallelScheduler(
            self.executor, self.flags, max_concurrent_waits=self.max_concurrent_waits
        )

    async def discover(self) -> Inventory:
        """Discover the repositories to migrate.

        Returns:
            Inventory snapshot

        Raises:
            NoMigratableReposError: If nothing is selected for migration
        """
        if self.repo_list:
            self.inventory_service.load_repo_list(self.repo_list)

        self.logger.info('Discovering repositories to migrate...')
        repo_count = await self.inventory_service.get_repo_count()
        if repo_count == 0:
            raise NoMigratableReposError(
                'A migration for this configuration would not migrate any repositories'
            )
        self.logger.info(f'Found {repo_count} repositories')

        inventory = await self.inventory_service.build_inventory(
            include_pipelines=self.flags.rewire_pipelines
        )
        self.inventory_service.output_repo_list_to_log(inventory)
        return inventory

    def warn_duplicate_target_names(
        self, inventory: Inventory
    ) -> List[DuplicateTargetName]:
        duplicates = self.inventory_service.detect_duplicate_target_names(inventory)
        for duplicate in duplicates:
            self.logger.warning(duplicate.describe())
        return duplicates

    def plan(self, inventory: Inventory) -> List[Step]:
        """Every step of the run, in sequential execution order."""
        steps = []
        for org in inventory.organizations:
            for team_project in org.team_projects:
                steps.extend(plan_team_project_steps(org, team_project, self.flags))
                for repo in team_project.repositories:
                    steps.extend(plan_repo_steps(org, team_project, repo, self.flags))
        return steps

    async def execute_migration(self, inventory: Optional[Inventory] = None) -> RunReport:
        """Run the migration.

        Args:
            inventory: Previously discovered inventory, discovered when omitted

        Returns:
            Run report
        """
        started_at = datetime.now()

        if inventory is None:
            inventory = await self.discover()

        duplicates = self.warn_duplicate_target_names(inventory)

        scheduler = self.create_scheduler()
        mode = 'sequential' if self.sequential else 'parallel'
        self.logger.info(
            f'Starting {mode} migration of {inventory.repo_count} repositories'
        )

        result: RunResult = await scheduler.run(inventory)

        report = RunReport(
            mode=mode,
            total_repositories=inventory.repo_count,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped=result.skipped,
            aborted=result.aborted,
            duplicate_target_names=duplicates,
            orgs_missing_credential=inventory.orgs_missing_credential(),
            outcomes=result.outcomes,
            started_at=started_at,
            completed_at=datetime.now(),
        )

        self.logger.info(
            f'Migration completed: {report.succeeded} succeeded, '
            f'{report.failed} failed, {report.skipped} skipped'
        )
        if report.aborted:
            self.logger.error('Migration aborted at the first failure')

        return report
