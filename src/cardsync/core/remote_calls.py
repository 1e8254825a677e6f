"""Resilient execution of remote storage calls.

Two policies are provided:

- call_with_refresh: run once; on an expired session refresh the
  credentials and retry exactly once. Used for every call made during a sync.
- call_with_retry: bounded retries with rate-limit and exponential backoff
  delays. Used for connectivity checks at start-up.

Failures are first classified into a FailureKind, and RetryPolicy.delay_after
maps (kind, attempt) to the next action, so each transition can be tested
without network calls.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from cardsync.core.exceptions import (
    AuthError,
    CardsyncError,
    ExpiredCredentialError,
    RateLimitError,
    StorageAccessError,
    TransientStorageError,
)
from cardsync.core.models import FailureKind


if TYPE_CHECKING:
    from collections.abc import Callable

    from cardsync.core.ports import ExecutorPort, RemoteStoragePort, TokenProviderPort


logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify_failure(exc: BaseException, *, can_refresh: bool) -> FailureKind:
    """Classify a failed remote call.

    Args:
        exc: The exception raised by the call.
        can_refresh: Whether a refresh credential is available.

    Returns:
        The FailureKind driving the retry decision.
    """
    if isinstance(exc, ExpiredCredentialError):
        return FailureKind.EXPIRED_CREDENTIAL if can_refresh else FailureKind.AUTH_FAILED
    if isinstance(exc, (StorageAccessError, AuthError)):
        return FailureKind.AUTH_FAILED
    if isinstance(exc, RateLimitError):
        return FailureKind.RATE_LIMITED
    return FailureKind.TRANSIENT


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry settings.

    Attributes:
        max_attempts: Total attempts, including the first one.
        rate_limit_delay: Seconds to wait after a throttled call.
        backoff_base: Base of the exponential delay after other failures.
        timeout: Seconds to wait for a single call, None to wait forever.
    """

    max_attempts: int = 3
    rate_limit_delay: float = 5.0
    backoff_base: float = 2.0
    timeout: float | None = 10.0

    def delay_after(self, kind: FailureKind, attempt: int) -> float | None:
        """Seconds to wait before the next attempt, or None to abort.

        Args:
            kind: Classification of the failure.
            attempt: Number of attempts consumed so far (1 after the first).
        """
        if kind is FailureKind.AUTH_FAILED:
            return None
        if kind is FailureKind.EXPIRED_CREDENTIAL:
            return 0.0
        if kind is FailureKind.RATE_LIMITED:
            return self.rate_limit_delay
        return float(self.backoff_base**attempt)


def _can_refresh(token_provider: TokenProviderPort | None) -> bool:
    return token_provider is not None and token_provider.has_refresh_credential()


def run_with_timeout(
    fn: Callable[[], T],
    timeout: float,
    executor: ExecutorPort,
    description: str = "remote call",
) -> T:
    """Run fn on the executor and wait at most timeout seconds.

    A timeout abandons the wait, it does not cancel the call: an upload that
    times out here may still complete remotely.

    Raises:
        TransientStorageError: If the call did not finish in time.
    """
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)  # type: ignore[return-value]
    except FutureTimeoutError as e:
        raise TransientStorageError(
            f"{description} timed out after {timeout}s",
            source=description,
            cause=e,
        ) from e


def call_with_refresh(
    operation: Callable[[], T],
    token_provider: TokenProviderPort | None,
) -> T:
    """Run operation, refreshing expired credentials and retrying once.

    Any failure other than an expired session, and an expired session that
    cannot be refreshed, propagates unchanged. After a successful refresh the
    retry's own outcome (result or exception) is returned as-is.
    """
    try:
        return operation()
    except ExpiredCredentialError:
        if token_provider is None or not token_provider.has_refresh_credential():
            raise
        logger.info("Session expired; refreshing credentials")
        if not token_provider.refresh():
            logger.error("Credential refresh failed")
            raise
    return operation()


def call_with_retry(
    operation: Callable[[], T],
    token_provider: TokenProviderPort | None,
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    executor: ExecutorPort | None = None,
    description: str = "remote call",
) -> T:
    """Run operation with bounded retries.

    An expired session that refreshes successfully is retried without
    consuming an attempt, at most once per call. Non-refreshable
    authentication failures abort immediately.

    Raises:
        CardsyncError: The last failure once attempts are exhausted, or the
            authentication failure that aborted the loop.
    """
    if policy is None:
        policy = RetryPolicy()

    attempt = 0
    refreshed = False
    while True:
        try:
            if executor is not None and policy.timeout is not None:
                return run_with_timeout(operation, policy.timeout, executor, description)
            return operation()
        except CardsyncError as exc:
            kind = classify_failure(
                exc, can_refresh=not refreshed and _can_refresh(token_provider)
            )

            if kind is FailureKind.EXPIRED_CREDENTIAL:
                assert token_provider is not None
                refreshed = True
                if token_provider.refresh():
                    logger.info("%s: credentials refreshed, retrying", description)
                    continue
                logger.error("%s: credential refresh failed", description)
                raise

            attempt += 1
            delay = policy.delay_after(kind, attempt)
            if delay is None:
                logger.error("%s: authentication failed: %s", description, exc)
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "%s: giving up after %d attempts: %s", description, attempt, exc
                )
                raise

            logger.warning(
                "%s failed (attempt %d/%d, %s); retrying in %.0fs",
                description,
                attempt,
                policy.max_attempts,
                kind.value,
                delay,
            )
            sleep(delay)


class RemoteCaller:
    """Runs remote operations for the orchestrator.

    Each call is raced against the timeout (when an executor is configured)
    and wrapped in call_with_refresh.
    """

    def __init__(
        self,
        token_provider: TokenProviderPort | None,
        executor: ExecutorPort | None = None,
        timeout: float | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._executor = executor
        self._timeout = timeout

    def call(self, operation: Callable[[], T], description: str = "remote call") -> T:
        """Execute operation with timeout and refresh-and-retry semantics."""
        executor = self._executor
        timeout = self._timeout

        def attempt() -> T:
            if executor is None or timeout is None:
                return operation()
            return run_with_timeout(operation, timeout, executor, description)

        return call_with_refresh(attempt, self._token_provider)


def check_connectivity(
    storage: RemoteStoragePort,
    token_provider: TokenProviderPort | None,
    policy: RetryPolicy | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    executor: ExecutorPort | None = None,
) -> bool:
    """Probe the root of the remote store with bounded retries.

    The sync folder itself is not required to exist; reconcile creates it.

    Returns:
        True if the root answered within the retry budget.
    """
    try:
        call_with_retry(
            lambda: storage.get_metadata(""),
            token_provider,
            policy,
            sleep=sleep,
            executor=executor,
            description="connectivity check",
        )
    except CardsyncError as e:
        logger.error("Remote store unreachable: %s", e)
        return False
    logger.info("Remote store reachable")
    return True
