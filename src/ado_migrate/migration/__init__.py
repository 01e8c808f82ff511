"""Migration planning, scheduling and orchestration."""

from .engine import MigrationEngine
from .executor import StepExecutor
from .orchestrator import MigrationOrchestrator, RunReport
from .scheduler import (
    ParallelScheduler,
    RepositoryOutcome,
    RepositoryStatus,
    RunResult,
    Scheduler,
    SequentialScheduler,
)
from .steps import PlanFlags, Step, StepKind

__all__ = [
    'MigrationEngine',
    'StepExecutor',
    'MigrationOrchestrator',
    'RunReport',
    'ParallelScheduler',
    'RepositoryOutcome',
    'RepositoryStatus',
    'RunResult',
    'Scheduler',
    'SequentialScheduler',
    'PlanFlags',
    'Step',
    'StepKind',
]
