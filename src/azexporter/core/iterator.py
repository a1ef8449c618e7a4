# src/azexporter/core/iterator.py
"""
Fans a unit of work out across scopes with bounded concurrency.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Tuple

from ..models.azure import Scope
from .exceptions import ScopeIterationError

logger = logging.getLogger(__name__)

Worker = Callable[[Scope], Awaitable[None]]
ScopeFailure = Tuple[Scope, BaseException]


class FailurePolicy(str, Enum):
    # Any scope failure aborts the whole iteration.
    FAIL_FAST = "fail_fast"
    # Scope failures are collected; the iteration fails only if every scope failed.
    ISOLATE = "isolate"


class ScopeIterator:
    """
    Runs `worker(scope)` for every scope with at most `concurrency`
    invocations in flight. Order of invocation and completion is unspecified.
    """

    def __init__(self, concurrency: int = 5, policy: FailurePolicy = FailurePolicy.FAIL_FAST):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.policy = FailurePolicy(policy)

    async def for_each(self, scopes: Iterable[Scope], worker: Worker) -> List[ScopeFailure]:
        """
        Invokes the worker once per scope.

        With FAIL_FAST the first failure cancels every outstanding worker and
        is raised unchanged; a worker that ended cancelled on its own is
        reported as ScopeIterationError. With ISOLATE the failures are returned, unless all
        scopes failed, in which case ScopeIterationError is raised. Cancelling
        the caller cancels all in-flight workers.
        """
        scopes = list(scopes)
        if not scopes:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(scope: Scope):
            async with semaphore:
                await worker(scope)

        tasks = {asyncio.create_task(run(scope), name=f"scope:{scope}"): scope for scope in scopes}
        failures: List[ScopeFailure] = []
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                new_failures = []
                for task in done:
                    if task.cancelled():
                        new_failures.append((tasks[task], asyncio.CancelledError()))
                        continue
                    exc = task.exception()
                    if exc is not None:
                        new_failures.append((tasks[task], exc))

                if not new_failures:
                    continue

                if self.policy is FailurePolicy.FAIL_FAST:
                    scope, exc = next(
                        ((s, e) for s, e in new_failures if not isinstance(e, asyncio.CancelledError)), new_failures[0]
                    )
                    logger.error(
                        "Scope %s failed, aborting iteration over %d scope(s): %s", scope, len(scopes), exc
                    )
                    await self._cancel(pending)
                    if isinstance(exc, asyncio.CancelledError):
                        # Only the caller's own cancellation may leave as CancelledError.
                        raise ScopeIterationError([(scope, exc)], f"Worker for scope {scope} was cancelled")
                    raise exc

                for scope, exc in new_failures:
                    logger.warning("Scope %s failed, continuing with remaining scopes: %s", scope, exc)
                failures.extend(new_failures)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        if failures and len(failures) == len(scopes):
            raise ScopeIterationError(failures)
        return failures

    @staticmethod
    async def _cancel(tasks):
        tasks = [task for task in tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
