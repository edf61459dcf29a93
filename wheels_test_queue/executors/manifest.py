"""Executor manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from wheels_test_queue.executors.base import TestExecutor

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass(frozen=True, kw_only=True)
class ExecutorManifest(Generic[ConfigT]):
    """Registration of an executor under an entry point key.

    Pairs the executor's config model with the factory that opens it, so
    the CLI can build any executor from a JSON config string.
    """

    description: str
    config_cls: type[ConfigT]
    executor_factory: Callable[[ConfigT], AbstractAsyncContextManager[TestExecutor]]

    def load_config(self, raw: str) -> ConfigT:
        """Validate a JSON config document; an empty string means defaults.

        Raises:
            pydantic.ValidationError: If the document is not valid JSON or
                does not match ``config_cls``

        """
        return self.config_cls.model_validate_json(raw.strip() or "{}")
