"""Repository migration lifecycle models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..api.exceptions import UnknownMigrationStateError


class MigrationState(str, Enum):
    """States reported by GitHub for a repository migration."""

    QUEUED = 'QUEUED'
    PENDING_VALIDATION = 'PENDING_VALIDATION'
    IN_PROGRESS = 'IN_PROGRESS'
    SUCCEEDED = 'SUCCEEDED'
    FAILED = 'FAILED'
    FAILED_VALIDATION = 'FAILED_VALIDATION'

    @classmethod
    def classify(cls, raw_state: Optional[str]) -> 'MigrationState':
        """Map a raw status string onto a lifecycle state.

        Args:
            raw_state: State name as returned by the API

        Returns:
            Matching migration state

        Raises:
            UnknownMigrationStateError: If the state name is not recognised
        """
        if raw_state is None:
            raise UnknownMigrationStateError(raw_state)

        try:
            return cls(raw_state.strip().upper())
        except ValueError:
            raise UnknownMigrationStateError(raw_state)

    @property
    def is_pending(self) -> bool:
        return self in (
            MigrationState.QUEUED,
            MigrationState.PENDING_VALIDATION,
            MigrationState.IN_PROGRESS,
        )

    @property
    def is_succeeded(self) -> bool:
        return self is MigrationState.SUCCEEDED

    @property
    def is_failed(self) -> bool:
        return self in (MigrationState.FAILED, MigrationState.FAILED_VALIDATION)

    @property
    def is_terminal(self) -> bool:
        return not self.is_pending


class MigrationJob(BaseModel):
    """Snapshot of a repository migration as last polled."""

    migration_id: str = Field(..., description='Migration ID (RM_...)')
    state: MigrationState = Field(..., description='Lifecycle state')
    repository_name: Optional[str] = Field(
        default=None, description='Target repository name'
    )
    failure_reason: Optional[str] = Field(
        default=None, description='Failure reason once failed'
    )
    migration_log_url: Optional[str] = Field(
        default=None, description='Log URL, populated after completion'
    )
    warnings_count: int = Field(default=0, description='Migration warnings')


class MigrationLogReference(BaseModel):
    """Latest migration of a repository and its (possibly empty) log URL."""

    migration_id: str = Field(..., description='Migration ID')
    migration_log_url: Optional[str] = Field(
        default=None, description='Empty until the log is available'
    )

    @property
    def is_available(self) -> bool:
        return bool(self.migration_log_url)
