"""Models for the test queue."""

from collections.abc import Sequence
from dataclasses import dataclass

from wheels_test_queue.models.registry import Bundle, Database, Engine, Spec
from wheels_test_queue.models.result import TestStatus


@dataclass(frozen=True, kw_only=True)
class QueueItem:
    """One (engine, database, bundle) test request."""

    id: str
    engine: Engine
    database: Database
    bundle: Bundle
    spec: Spec | None = None
    status: TestStatus = TestStatus.PENDING


@dataclass(frozen=True, kw_only=True)
class QueueSnapshot:
    """Read-only view of the queue state."""

    items: Sequence[QueueItem]
    running: bool
    current_index: int

    @property
    def current_item(self) -> QueueItem | None:
        """Item being executed, if any."""
        if 0 <= self.current_index < len(self.items):
            return self.items[self.current_index]
        return None
