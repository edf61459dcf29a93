"""Test queue orchestrator: runs queued combinations one at a time."""

import asyncio
import itertools
import logging
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field, replace

from wheels_test_queue.errors import SpecBundleMismatchError
from wheels_test_queue.executors.base import TestExecutor, utcnow
from wheels_test_queue.models.queue import QueueItem, QueueSnapshot
from wheels_test_queue.models.result import TestRun, TestStatus, TestSummary
from wheels_test_queue.registry import Registry, default_registry

log = logging.getLogger(__name__)

FAILING_STATUSES = frozenset({TestStatus.FAILED, TestStatus.ERROR})


@dataclass(kw_only=True)
class TestQueue:
    """Owns the queue of test requests and the history of their runs.

    Items execute strictly in insertion order, never concurrently. The queue
    and history are only changed through the methods below; consumers read
    them through ``snapshot``, ``results`` and ``summary``.
    """

    __test__ = False

    executor: TestExecutor
    registry: Registry = field(default_factory=default_registry)
    fail_fast: bool = False

    _items: list[QueueItem] = field(default_factory=list, init=False, repr=False)
    _results: list[TestRun] = field(default_factory=list, init=False, repr=False)
    _running: bool = field(default=False, init=False)
    _current_index: int = field(default=-1, init=False)
    _sequence: Iterator[int] = field(
        default_factory=lambda: itertools.count(1), init=False, repr=False
    )
    _generation: int = field(default=0, init=False, repr=False)
    _task: asyncio.Task[TestRun] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        """Whether the queue is being drained."""
        return self._running

    @property
    def current_index(self) -> int:
        """Index of the executing item, or -1 when idle."""
        return self._current_index

    @property
    def items(self) -> Sequence[QueueItem]:
        """Queued items in insertion order."""
        return tuple(self._items)

    @property
    def results(self) -> Sequence[TestRun]:
        """History of runs, oldest first."""
        return tuple(self._results)

    @property
    def snapshot(self) -> QueueSnapshot:
        """Consistent read-only view of the queue."""
        return QueueSnapshot(
            items=tuple(self._items),
            running=self._running,
            current_index=self._current_index,
        )

    @property
    def current_run(self) -> TestRun | None:
        """Run of the executing item, if any."""
        item = self.snapshot.current_item
        if item is None:
            return None
        return self._find_run(item.id)

    @property
    def summary(self) -> TestSummary:
        """Aggregate counts over the whole history."""
        return sum((run.summary for run in self._results), TestSummary())

    def enqueue(
        self,
        engine_id: str,
        database_id: str,
        bundle_id: str,
        spec_id: str | None = None,
    ) -> str:
        """Append a combination to the queue and return its item id.

        Raises:
            RegistryLookupError: If any id is unknown or the spec is not part of
                the bundle; the queue is unchanged

        """
        engine = self.registry.get_engine(engine_id)
        database = self.registry.get_database(database_id)
        bundle = self.registry.get_bundle(bundle_id)
        spec = self.registry.get_spec(spec_id) if spec_id is not None else None
        if spec is not None and bundle.id not in ("all", spec.bundle_id):
            raise SpecBundleMismatchError(spec.id, spec.bundle_id, bundle.id)

        timestamp = int(time.time() * 1000)
        item_id = (
            f"{engine.id}_{database.id}_{bundle.id}_{timestamp}_{next(self._sequence)}"
        )
        self._items.append(
            QueueItem(
                id=item_id,
                engine=engine,
                database=database,
                bundle=bundle,
                spec=spec,
            )
        )
        log.info("Queued %s", item_id)
        return item_id

    def clear(self) -> bool:
        """Empty the queue. Returns False, changing nothing, while running."""
        if self._running:
            log.warning("Cannot clear the queue while tests are running")
            return False
        self._items.clear()
        self._current_index = -1
        return True

    def remove_at(self, index: int) -> bool:
        """Remove one item. Returns False, changing nothing, while running.

        Raises:
            IndexError: If ``index`` is out of range

        """
        if self._running:
            log.warning("Cannot remove queue items while tests are running")
            return False
        if not 0 <= index < len(self._items):
            raise IndexError(
                f"Queue index {index} out of range for {len(self._items)} item(s)"
            )
        removed = self._items.pop(index)
        log.info("Removed %s from queue", removed.id)
        return True

    def clear_results(self) -> bool:
        """Empty the run history. Returns False, changing nothing, while running."""
        if self._running:
            log.warning("Cannot clear results while tests are running")
            return False
        self._results.clear()
        return True

    async def start(self) -> Sequence[TestRun]:
        """Drain the queue, one item at a time.

        Returns:
            Runs completed by this drain, in execution order. Empty when the
            queue was already running or had nothing pending.

        """
        if self._running:
            log.info("Queue is already running")
            return []
        if not any(item.status is TestStatus.PENDING for item in self._items):
            log.info("No pending items in queue")
            return []

        self._generation += 1
        generation = self._generation
        self._running = True
        self._current_index = 0
        completed: list[TestRun] = []

        log.info("Starting queue with %d item(s)", len(self._items))
        try:
            while self._is_current(generation) and self._current_index < len(
                self._items
            ):
                run = await self._advance(generation)
                if run is not None:
                    completed.append(run)
                    if self.fail_fast and run.status in FAILING_STATUSES:
                        self._skip_pending(f"fail-fast after {run.id}")
                        break
                if self._is_current(generation):
                    self._current_index += 1
        finally:
            if self._is_current(generation):
                self._running = False
                self._current_index = -1
                self._task = None

        log.info("Queue drained: %d run(s) completed", len(completed))
        return completed

    def stop(self) -> bool:
        """Stop the drain, marking the executing item and its run Skipped.

        The in-flight executor call is cancelled. Returns False when idle.
        """
        if not self._running:
            return False

        item = self.snapshot.current_item
        if item is not None and item.status is TestStatus.RUNNING:
            self._items[self._current_index] = replace(
                item, status=TestStatus.SKIPPED
            )
            if (run := self._find_run(item.id)) is not None and (
                run.status is TestStatus.RUNNING
            ):
                end_time = utcnow()
                self._replace_run(
                    replace(
                        run,
                        status=TestStatus.SKIPPED,
                        end_time=end_time,
                        duration=(end_time - run.start_time).total_seconds(),
                    )
                )
            log.info("Stopped queue, skipped %s", item.id)

        if self._task is not None and not self._task.done():
            self._task.cancel()

        self._generation += 1
        self._running = False
        self._current_index = -1
        self._task = None
        return True

    async def _advance(self, generation: int) -> TestRun | None:
        """Execute the item at the cursor; None if skipped or stopped."""
        index = self._current_index
        item = self._items[index]
        if item.status is not TestStatus.PENDING:
            return None

        self._items[index] = replace(item, status=TestStatus.RUNNING)
        placeholder = self.executor.start_run(
            item.id, item.engine, item.database, item.bundle, item.spec
        )
        self._results.append(placeholder)

        task = asyncio.create_task(
            self.executor.run_tests(
                item.id, item.engine, item.database, item.bundle, item.spec
            )
        )
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            if self._is_current(generation):
                self.stop()
            raise

        if not self._is_current(generation):
            return None

        run = self._completed_run(placeholder, task)
        self._replace_run(run)
        self._items[index] = replace(item, status=run.status)
        return run

    def _completed_run(
        self, placeholder: TestRun, task: asyncio.Task[TestRun]
    ) -> TestRun:
        try:
            run = task.result()
        except Exception as e:
            log.error("Executor failed for %s: %s", placeholder.id, e, exc_info=e)
            return self.executor.error_run(placeholder, e)

        if not run.is_terminal:
            return self.executor.error_run(
                placeholder,
                RuntimeError(f"Executor returned a non-terminal run ({run.status})"),
            )
        if run.id != placeholder.id:
            run = replace(run, id=placeholder.id)
        return run

    def _skip_pending(self, reason: str) -> None:
        for index, item in enumerate(self._items):
            if item.status is TestStatus.PENDING:
                self._items[index] = replace(item, status=TestStatus.SKIPPED)
                log.info("Skipped %s (%s)", item.id, reason)

    def _is_current(self, generation: int) -> bool:
        return self._running and self._generation == generation

    def _find_run(self, run_id: str) -> TestRun | None:
        for run in reversed(self._results):
            if run.id == run_id:
                return run
        return None

    def _replace_run(self, run: TestRun) -> None:
        for index in range(len(self._results) - 1, -1, -1):
            if self._results[index].id == run.id:
                self._results[index] = run
                return
