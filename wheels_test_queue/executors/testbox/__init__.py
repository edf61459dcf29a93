"""TestBox executor module."""

from wheels_test_queue.executors.testbox.config import TestBoxConfig
from wheels_test_queue.executors.testbox.executor import TestBoxExecutor
from wheels_test_queue.executors.testbox.manifest import testbox_manifest

__all__ = ["TestBoxConfig", "TestBoxExecutor", "testbox_manifest"]
