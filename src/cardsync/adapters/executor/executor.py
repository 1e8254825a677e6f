"""Executor adapters implementing ExecutorPort.

Remote calls are submitted to an executor so the caller can stop waiting
after a timeout. Waiting stops; the call itself keeps running.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Callable


class SynchronousExecutor:
    """Runs each call inline in the calling thread.

    The returned future is already resolved, so a timeout can never fire.
    Used in tests and when no call timeout is wanted.
    """

    def submit(
        self,
        fn: Callable[..., object],
        *args: object,
        **kwargs: object,
    ) -> Future[object]:
        """Run fn now and return a resolved future."""
        future: Future[object] = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:  # noqa: ARG002
        """Nothing to release."""

    def __enter__(self) -> SynchronousExecutor:
        return self

    def __exit__(
        self, exc_type: object, exc_val: object, exc_tb: object
    ) -> object | None:
        return None


class ThreadPoolExecutorAdapter:
    """Runs remote calls on worker threads so they can be timed out.

    Sync passes are sequential, so one worker normally suffices; a spare
    worker lets the next call start while an abandoned one is still stuck.
    """

    def __init__(self, max_workers: int = 2) -> None:
        """Initialize the pool.

        Args:
            max_workers: Worker threads, including ones held by abandoned calls.
        """
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="cardsync-call"
        )

    def submit(
        self,
        fn: Callable[..., object],
        *args: object,
        **kwargs: object,
    ) -> Future[object]:
        """Submit fn to the pool."""
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting calls and drop queued ones.

        Args:
            wait: Block until running calls finish. Pass False when a call
                may be stuck after a timeout.
        """
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> ThreadPoolExecutorAdapter:
        return self

    def __exit__(
        self, exc_type: object, exc_val: object, exc_tb: object
    ) -> object | None:
        self.shutdown(wait=False)
        return None
