"""TestBox executor manifest."""

from wheels_test_queue.executors.manifest import ExecutorManifest
from wheels_test_queue.executors.testbox.config import TestBoxConfig
from wheels_test_queue.executors.testbox.executor import TestBoxExecutor

testbox_manifest = ExecutorManifest(
    description="Run bundles through each engine's TestBox HTTP runner",
    config_cls=TestBoxConfig,
    executor_factory=TestBoxExecutor.from_config,
)
