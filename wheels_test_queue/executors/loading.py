"""Discovery of executors registered as entry points."""

from collections.abc import Sequence
from importlib.metadata import entry_points
from typing import Any

from wheels_test_queue.errors import ExecutorNotFoundError
from wheels_test_queue.executors.manifest import ExecutorManifest

ENTRY_POINT_GROUP = "wheels_test_queue.executors"


def available_executors() -> Sequence[str]:
    """Return the keys of all installed executors, sorted."""
    return sorted(entry.name for entry in entry_points(group=ENTRY_POINT_GROUP))


def load_executor_manifest(key: str) -> ExecutorManifest[Any]:
    """Load an executor manifest by key.

    Args:
        key: Entry point name in the ``wheels_test_queue.executors`` group
             (e.g., "testbox", "simulated")

    Returns:
        The executor manifest instance

    Raises:
        ExecutorNotFoundError: If no executor with the given key is installed

    """
    for entry in entry_points(group=ENTRY_POINT_GROUP, name=key):
        manifest: ExecutorManifest[Any] = entry.load()
        return manifest

    raise ExecutorNotFoundError(
        f"Executor '{key}' not found. Available executors: {available_executors()}"
    )
