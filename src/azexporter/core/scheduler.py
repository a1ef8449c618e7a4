import asyncio
import logging
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..metrics.metric_set import MetricSet
from ..metrics.publisher import MetricPublisher, Registry
from ..models.azure import Scope
from .config import parse_interval
from .exceptions import AzExporterError, ProviderError, TickFailedError
from .iterator import ScopeIterator
from .telemetry import tracer

logger = logging.getLogger(__name__)

# Marks the end of a tick's completion queue.
_END_OF_TICK = object()


class TickState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Scheduler:
    """
    Drives collection ticks and the periodic loop around them.

    A tick refreshes the scopes, runs every collector across its scopes via
    the ScopeIterator and stages each emitted MetricSet through a single
    consumer draining the tick's completion queue. Only when the tick
    completes are the staged sets committed, one atomic replace per
    publisher. A failed or cancelled tick commits nothing, so publishers
    keep serving the last successful tick.
    """

    def __init__(
        self,
        registry: Registry,
        directory,
        collectors: Sequence,
        iterator: Optional[ScopeIterator] = None,
        tick_timeout: Optional[float] = None,
        failure_policy: str = "skip",
    ):
        if failure_policy not in ("skip", "exit"):
            raise ValueError(f"Invalid tick failure policy: '{failure_policy}'. Use 'skip' or 'exit'.")
        self.registry = registry
        self.directory = directory
        self.collectors = list(collectors)
        self.iterator = iterator or ScopeIterator()
        self.tick_timeout = tick_timeout
        self.failure_policy = failure_policy
        self.tasks: List[asyncio.Task] = []

        self.state = TickState.IDLE
        self.last_outcome: Optional[TickState] = None
        self.last_error: Optional[BaseException] = None
        self.last_duration: Optional[float] = None
        self.last_success: Optional[float] = None
        logger.info("Scheduler initialized with %d collector(s).", len(self.collectors))

    def setup(self) -> None:
        """Registers every collector's publishers. Conflicting names raise RegistrationError."""
        for collector in self.collectors:
            collector.setup(self.registry)
            logger.debug("Collector '%s' registered %d metric(s)", collector.name, len(collector.publishers()))

    def _transition(self, state: TickState) -> None:
        logger.debug("Tick state %s -> %s", self.state.value, state.value)
        self.state = state

    async def run_tick(self) -> None:
        """
        Runs one full tick. Raises TickFailedError when the tick is abandoned;
        cancellation propagates as CancelledError. In both cases nothing from
        this tick reaches the publishers.
        """
        if self.state is TickState.RUNNING:
            raise TickFailedError("A tick is already running")

        self._transition(TickState.RUNNING)
        started = time.monotonic()
        logger.info("--- Starting collection tick ---")
        try:
            with tracer.start_as_current_span("tick"):
                if self.tick_timeout:
                    await asyncio.wait_for(self._collect(), timeout=self.tick_timeout)
                else:
                    await self._collect()
        except asyncio.CancelledError:
            self._finish(TickState.FAILED, started, asyncio.CancelledError("tick cancelled"))
            logger.warning("Collection tick cancelled; publishers keep their previous state.")
            raise
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError) and self._deadline_passed(started):
                self._finish(TickState.FAILED, started, e)
                logger.error(
                    "Collection tick timed out after %ss; publishers keep their previous state.", self.tick_timeout
                )
                raise TickFailedError(f"Tick timed out after {self.tick_timeout}s", cause=e) from e
            self._finish(TickState.FAILED, started, e)
            logger.error("Collection tick failed after %.2fs: %s", self.last_duration, e)
            raise TickFailedError(f"Tick failed: {e}", cause=e) from e

        self._finish(TickState.SUCCEEDED, started)
        self.last_success = time.time()
        logger.info("--- Finished collection tick in %.2fs ---", self.last_duration)

    def _deadline_passed(self, started: float) -> bool:
        # A TimeoutError raised by a collector is an ordinary failure, not a tick timeout.
        return bool(self.tick_timeout) and time.monotonic() - started >= self.tick_timeout

    def _finish(self, outcome: TickState, started: float, error: BaseException = None) -> None:
        self.last_duration = time.monotonic() - started
        self.last_outcome = outcome
        self.last_error = error
        self._transition(outcome)
        self._transition(TickState.IDLE)

    async def _collect(self) -> None:
        scopes = await self.directory.list_scopes()
        logger.info("Collecting %d collector(s) across %d scope(s)", len(self.collectors), len(scopes))

        queue: asyncio.Queue = asyncio.Queue()
        staged: Dict[MetricPublisher, List[MetricSet]] = {}
        consumer = asyncio.create_task(self._drain(queue, staged), name="tick-consumer")
        try:
            await self._run_collectors(scopes, queue)
            await queue.put(_END_OF_TICK)
            await consumer
        finally:
            if not consumer.done():
                consumer.cancel()
                await asyncio.gather(consumer, return_exceptions=True)

        self._commit(staged)

    async def _run_collectors(self, scopes: Sequence[Scope], queue: asyncio.Queue) -> None:
        """
        Runs every collector concurrently. The first failure cancels the other
        collectors and is raised; nothing is committed before all of them finish.
        """
        tasks = [
            asyncio.create_task(self._run_collector(collector, scopes, queue), name=f"collector:{collector.name}")
            for collector in self.collectors
        ]
        if not tasks:
            return
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        for task in tasks:
            if task.cancelled():
                raise AzExporterError(f"Collector task '{task.get_name()}' was cancelled")

    async def _drain(self, queue: asyncio.Queue, staged: Dict[MetricPublisher, List[MetricSet]]) -> None:
        """Single consumer: folds completions per publisher in channel order."""
        while True:
            item = await queue.get()
            if item is _END_OF_TICK:
                return
            metric_set, publisher = item
            staged.setdefault(publisher, []).append(metric_set)

    async def _run_collector(self, collector, scopes: Sequence[Scope], queue: asyncio.Queue) -> None:
        selected = collector.select_scopes(scopes)

        async def worker(scope: Scope):
            # Emissions stay local until the invocation for this scope has fully succeeded.
            emitted = []

            def emit(metric_set: MetricSet, publisher: MetricPublisher) -> None:
                emitted.append((metric_set, publisher))

            with tracer.start_as_current_span(f"collect.{collector.name}") as span:
                span.set_attribute("azexporter.scope", str(scope))
                try:
                    await collector.collect(scope, emit)
                except ProviderError as e:
                    logger.error(
                        "Collector '%s' failed for scope %s with %s provider error: %s",
                        collector.name,
                        scope,
                        e.kind,
                        e,
                    )
                    raise
                except AzExporterError as e:
                    logger.error("Collector '%s' failed for scope %s: %s", collector.name, scope, e)
                    raise

            for item in emitted:
                queue.put_nowait(item)
            logger.debug("Collector '%s' finished scope %s with %d set(s)", collector.name, scope, len(emitted))

        failures = await self.iterator.for_each(selected, worker)
        for scope, error in failures:
            logger.error("Collector '%s' skipped scope %s for this tick: %s", collector.name, scope, error)

    def _commit(self, staged: Dict[MetricPublisher, List[MetricSet]]) -> None:
        """
        Validates every staged publisher before swapping any of them, so a
        schema mismatch discards the tick instead of publishing half of it.
        Owned publishers without emissions are replaced with an empty set.
        """
        publishers: List[MetricPublisher] = []
        for collector in self.collectors:
            for publisher in collector.publishers():
                if publisher not in publishers:
                    publishers.append(publisher)
        for publisher in staged:
            if publisher not in publishers:
                publishers.append(publisher)

        prepared = [publisher.stage(*staged.get(publisher, [])) for publisher in publishers]
        for staged_series in prepared:
            staged_series.publisher.commit(staged_series)
        logger.debug("Committed %d publisher(s)", len(prepared))

    async def _run_periodically(self, interval_seconds: int):
        """Internal loop running a tick every interval."""
        try:
            while True:
                try:
                    await self.run_tick()
                except TickFailedError as e:
                    if self.failure_policy == "exit":
                        logger.critical("Collection tick failed and TICK_FAILURE_POLICY is 'exit': %s", e)
                        raise
                    logger.error("Skipping failed tick, serving metrics from the last successful tick: %s", e)

                await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("Collection loop cancelled.")
            raise

    def start(self, interval_str: str) -> asyncio.Task:
        """
        Starts the periodic loop using a Prometheus-style duration string like '5m' or '1h'.
        The first tick runs immediately.
        """
        interval_seconds = parse_interval(interval_str)
        task = asyncio.create_task(self._run_periodically(interval_seconds), name="collection-loop")
        self.tasks.append(task)
        logger.info(f"Scheduled collection to run every {interval_str}.")
        return task

    async def stop(self):
        """Cancels all scheduled tasks and closes the collectors."""
        logger.info("Stopping scheduler...")
        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks.clear()
        for collector in self.collectors:
            await collector.close()
