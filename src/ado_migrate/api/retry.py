"""Retry and polling primitives for waiting on remote state."""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..models.migration import MigrationJob
from .exceptions import (
    ApiError,
    ApiPermissionError,
    ApiValidationError,
    AuthenticationError,
    NotFoundError,
    PollCancelledError,
    RateLimitError,
)

DEFAULT_RETRY_INTERVAL = 4.0
DEFAULT_MAX_ATTEMPTS = 6
DEFAULT_POLL_INTERVAL = 10.0


class OutcomeType(str, Enum):
    """Outcome of a bounded retry."""

    SUCCESS = 'success'
    FAILURE = 'failure'


class PolicyResult(BaseModel):
    """Result of ``RetryPolicy.retry_on_result``."""

    outcome: OutcomeType = Field(..., description='Whether the predicate cleared')
    result: Any = Field(default=None, description='Last value returned by the action')
    attempts: int = Field(..., description='Number of times the action ran')

    @property
    def succeeded(self) -> bool:
        return self.outcome == OutcomeType.SUCCESS


class RetryPolicy:
    """Waits for remote values to populate and remote jobs to finish.

    Two waits with different failure semantics are offered:

    * ``retry_on_result`` is bounded. Running out of attempts is a real error
      (e.g. a migration log that never appeared) and is reported as a
      ``FAILURE`` outcome carrying the last value seen.
    * ``poll_until_terminal`` is unbounded. A migration may legitimately run
      for hours, so it only ever stops on a terminal state (or an abort).
    """

    def __init__(
        self,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize retry policy.

        Args:
            retry_interval: Seconds between bounded retries
            max_attempts: Total calls allowed by a bounded retry
            poll_interval: Seconds between migration status polls
            cancel_event: Set to abort any in-flight wait
        """
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')

        self.retry_interval = retry_interval
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval
        self.cancel_event = cancel_event
        self.logger = logger.bind(component='RetryPolicy')

    async def retry_on_result(
        self,
        action: Callable[[], Awaitable[Any]],
        fail_predicate: Callable[[Any], bool],
        wait_message: str = 'Retrying...',
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> PolicyResult:
        """Call ``action`` until ``fail_predicate`` no longer holds.

        Args:
            action: Coroutine function producing the value to check
            fail_predicate: Returns True while the value is not ready yet
            wait_message: Logged before every wait
            max_attempts: Override for the total number of calls
            interval: Override for the wait between calls

        Returns:
            SUCCESS with the first acceptable value, or FAILURE with the last
            value seen once the attempts are exhausted
        """
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        interval = self.retry_interval if interval is None else interval

        attempts = 0
        while True:
            result = await action()
            attempts += 1

            if not fail_predicate(result):
                return PolicyResult(
                    outcome=OutcomeType.SUCCESS, result=result, attempts=attempts
                )

            if attempts >= max_attempts:
                self.logger.debug(f'Giving up after {attempts} attempts')
                return PolicyResult(
                    outcome=OutcomeType.FAILURE, result=result, attempts=attempts
                )

            await self._wait(interval)
            self.logger.debug(wait_message)

    async def poll_until_terminal(
        self,
        fetch: Callable[[], Awaitable[MigrationJob]],
        interval: Optional[float] = None,
    ) -> MigrationJob:
        """Poll a migration until it reaches a terminal state.

        Args:
            fetch: Coroutine function returning the current migration snapshot
            interval: Override for the wait between polls

        Returns:
            The first terminal snapshot
        """
        interval = self.poll_interval if interval is None else interval

        job = await self._fetch(fetch, interval)
        while not job.state.is_terminal:
            self.logger.info(
                f'Migration {job.migration_id} for {job.repository_name} '
                f'is {job.state.value}. Waiting {interval:g} seconds...'
            )
            await self._wait(interval)
            job = await self._fetch(fetch, interval)

        return job

    async def _fetch(
        self,
        fetch: Callable[[], Awaitable[MigrationJob]],
        interval: float,
    ) -> MigrationJob:
        """Fetch a snapshot, waiting out rate limits and transient failures.

        Client errors (bad credentials, unknown migration, rejected request)
        and unrecognised states still propagate.
        """
        while True:
            try:
                return await fetch()
            except RateLimitError as e:
                self.logger.warning(
                    f'Rate limited while polling migration status. '
                    f'Waiting {e.retry_after:g} seconds...'
                )
                await self._wait(e.retry_after)
            except (
                AuthenticationError,
                NotFoundError,
                ApiPermissionError,
                ApiValidationError,
            ):
                raise
            except ApiError as e:
                if e.status_code is not None and e.status_code < 500:
                    raise
                self.logger.warning(
                    f'Polling migration status failed: {e}. '
                    f'Waiting {interval:g} seconds...'
                )
                await self._wait(interval)

    async def _wait(self, interval: float) -> None:
        """Sleep for ``interval`` seconds unless an abort is requested."""
        if self.cancel_event is None:
            await asyncio.sleep(interval)
            return

        if self.cancel_event.is_set():
            raise PollCancelledError('Wait aborted')

        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return

        raise PollCancelledError('Wait aborted')
