"""Exceptions raised by the migration tool and its API clients."""

from typing import Any, Optional


class MigrationToolError(Exception):
    """Base exception for all migration tool errors."""

    pass


class ApiError(MigrationToolError):
    """Base exception for remote API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class AuthenticationError(ApiError):
    """Authentication error with a remote API."""

    pass


class RateLimitError(ApiError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class NotFoundError(ApiError):
    """Resource not found error."""

    pass


class ApiPermissionError(ApiError):
    """Permission denied error."""

    pass


class ApiValidationError(ApiError):
    """Validation error for API requests."""

    pass


class DuplicateTargetError(MigrationToolError):
    """The target repository already exists in the GitHub organization."""

    def __init__(self, github_org: str, github_repo: str):
        super().__init__(
            f"The Org '{github_org}' already contains a repository "
            f"with the name '{github_repo}'"
        )
        self.github_org = github_org
        self.github_repo = github_repo


class UnknownMigrationStateError(MigrationToolError):
    """A migration reported a state name that is not recognised."""

    def __init__(self, raw_state: Optional[str]):
        super().__init__(f'Unrecognised migration state: {raw_state!r}')
        self.raw_state = raw_state


class MigrationFailedError(MigrationToolError):
    """A repository migration reached a failure-terminal state."""

    def __init__(
        self,
        migration_id: str,
        repository_name: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ):
        super().__init__(
            f'Migration {migration_id} failed for {repository_name}. '
            f'Failure reason: {failure_reason}'
        )
        self.migration_id = migration_id
        self.repository_name = repository_name
        self.failure_reason = failure_reason


class MigrationLogUnavailableError(MigrationToolError):
    """The migration log URL never populated."""

    def __init__(self, message: str, last_result: Any = None):
        super().__init__(message)
        self.last_result = last_result


class PollCancelledError(MigrationToolError):
    """A wait was interrupted by an abort request."""

    pass


class NoMigratableReposError(MigrationToolError):
    """Discovery produced no repositories to migrate."""

    pass


class StepFailedError(MigrationToolError):
    """A planned step failed; carries the step for context."""

    def __init__(self, step: Any, cause: BaseException):
        super().__init__(f'{step.describe()} failed: {cause}')
        self.step = step
        self.cause = cause
