"""Simulated executor module."""

from wheels_test_queue.executors.simulated.config import SimulatedConfig
from wheels_test_queue.executors.simulated.executor import SimulatedExecutor
from wheels_test_queue.executors.simulated.manifest import simulated_manifest

__all__ = ["SimulatedConfig", "SimulatedExecutor", "simulated_manifest"]
