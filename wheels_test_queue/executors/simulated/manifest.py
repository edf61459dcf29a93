"""Simulated executor manifest."""

from wheels_test_queue.executors.manifest import ExecutorManifest
from wheels_test_queue.executors.simulated.config import SimulatedConfig
from wheels_test_queue.executors.simulated.executor import SimulatedExecutor

simulated_manifest = ExecutorManifest(
    description="Fabricate plausible results without contacting an engine",
    config_cls=SimulatedConfig,
    executor_factory=SimulatedExecutor.from_config,
)
