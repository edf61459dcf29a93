"""Read-only registries of engines, databases, bundles and specs."""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeVar

import yaml
from pydantic import Field, SecretStr, ValidationError

from wheels_test_queue.errors import (
    BundleNotFoundError,
    DatabaseNotFoundError,
    EngineNotFoundError,
    SpecNotFoundError,
)
from wheels_test_queue.models.base import Model
from wheels_test_queue.models.registry import (
    Bundle,
    ConnectionInfo,
    Database,
    Engine,
    Spec,
)

log = logging.getLogger(__name__)

T = TypeVar("T", Engine, Database, Bundle, Spec)


def _index(
    entries: Iterable[T],
) -> Mapping[str, T]:
    indexed: dict[str, T] = {}
    for entry in entries:
        if entry.id in indexed:
            raise ValueError(f"Duplicate registry id '{entry.id}'")
        indexed[entry.id] = entry
    return MappingProxyType(indexed)


@dataclass(frozen=True, init=False)
class Registry:
    """Lookup tables keyed by id, in declaration order."""

    engines: Mapping[str, Engine]
    databases: Mapping[str, Database]
    bundles: Mapping[str, Bundle]
    specs: Mapping[str, Spec]

    def __init__(
        self,
        *,
        engines: Iterable[Engine] = (),
        databases: Iterable[Database] = (),
        bundles: Iterable[Bundle] = (),
        specs: Iterable[Spec] = (),
    ) -> None:
        object.__setattr__(self, "engines", _index(engines))
        object.__setattr__(self, "databases", _index(databases))
        object.__setattr__(self, "bundles", _index(bundles))
        object.__setattr__(self, "specs", _index(specs))

    def get_engine(self, engine_id: str) -> Engine:
        """Return the engine registered under ``engine_id``.

        Raises:
            EngineNotFoundError: If no such engine is registered

        """
        try:
            return self.engines[engine_id]
        except KeyError:
            raise EngineNotFoundError(engine_id) from None

    def get_database(self, database_id: str) -> Database:
        """Return the database registered under ``database_id``.

        Raises:
            DatabaseNotFoundError: If no such database is registered

        """
        try:
            return self.databases[database_id]
        except KeyError:
            raise DatabaseNotFoundError(database_id) from None

    def get_bundle(self, bundle_id: str) -> Bundle:
        """Return the bundle registered under ``bundle_id``.

        Raises:
            BundleNotFoundError: If no such bundle is registered

        """
        try:
            return self.bundles[bundle_id]
        except KeyError:
            raise BundleNotFoundError(bundle_id) from None

    def get_spec(self, spec_id: str) -> Spec:
        """Return the spec registered under ``spec_id``.

        Raises:
            SpecNotFoundError: If no such spec is registered

        """
        try:
            return self.specs[spec_id]
        except KeyError:
            raise SpecNotFoundError(spec_id) from None

    def specs_for(self, bundle_id: str) -> Sequence[Spec]:
        """Return the specs that belong to a bundle."""
        return [spec for spec in self.specs.values() if spec.bundle_id == bundle_id]


DEFAULT_ENGINES: Sequence[Engine] = (
    Engine(
        id="lucee5",
        name="Lucee",
        version="5",
        port=60005,
        admin_path="/lucee/admin/",
    ),
    Engine(
        id="lucee6",
        name="Lucee",
        version="6",
        port=60006,
        admin_path="/lucee/admin/",
    ),
    Engine(
        id="adobe2018",
        name="Adobe",
        version="2018",
        port=62018,
        admin_path="/CFIDE/administrator/",
    ),
    Engine(
        id="adobe2021",
        name="Adobe",
        version="2021",
        port=62021,
        admin_path="/CFIDE/administrator/",
    ),
    Engine(
        id="adobe2023",
        name="Adobe",
        version="2023",
        port=62023,
        admin_path="/CFIDE/administrator/",
    ),
)

DEFAULT_DATABASES: Sequence[Database] = (
    Database(
        id="mysql",
        name="MySQL",
        version="8.0",
        connection=ConnectionInfo(
            host="mysql",
            port=3306,
            database="wheelstestdb",
            username="wheelstestdb",
            password=SecretStr("wheelstestdb"),
        ),
    ),
    Database(
        id="postgresql",
        name="PostgreSQL",
        version="13",
        connection=ConnectionInfo(
            host="postgres",
            port=5432,
            database="wheelstestdb",
            username="wheelstestdb",
            password=SecretStr("wheelstestdb"),
        ),
    ),
    Database(
        id="sqlserver",
        name="SQL Server",
        version="2019",
        connection=ConnectionInfo(
            host="sqlserver",
            port=1433,
            database="wheelstestdb",
            username="sa",
            password=SecretStr("x!bsT8t60yo0cTVTPq"),
        ),
    ),
    Database(
        id="h2",
        name="H2",
        version="Embedded",
        connection=ConnectionInfo(
            host="localhost", port=0, database="wheelstestdb", username="sa"
        ),
    ),
    Database(
        id="oracle",
        name="Oracle",
        version="19.3.0",
        connection=ConnectionInfo(
            host="oracle",
            port=1521,
            database="wheelstestdb",
            username="system",
            password=SecretStr("oracle"),
        ),
    ),
)

DEFAULT_BUNDLES: Sequence[Bundle] = (
    Bundle(id="all", name="All Tests", description="Run all available tests", path="/"),
    Bundle(
        id="core",
        name="Core Tests",
        description="Tests for Wheels core functionality",
        path="/core",
    ),
    Bundle(
        id="model",
        name="Model Tests",
        description="Tests for model-related functionality",
        path="/models",
    ),
    Bundle(
        id="controller",
        name="Controller Tests",
        description="Tests for controller-related functionality",
        path="/controllers",
    ),
    Bundle(
        id="view",
        name="View Tests",
        description="Tests for view-related functionality",
        path="/views",
    ),
    Bundle(
        id="plugin",
        name="Plugin Tests",
        description="Tests for plugins",
        path="/plugins",
    ),
)


def default_registry() -> Registry:
    """Return the built-in CFWheels engine/database/bundle matrix."""
    return Registry(
        engines=DEFAULT_ENGINES,
        databases=DEFAULT_DATABASES,
        bundles=DEFAULT_BUNDLES,
    )


class RegistryFile(Model):
    """Schema of a registry YAML file."""

    engines: Sequence[Engine] = Field(default_factory=list)
    databases: Sequence[Database] = Field(default_factory=list)
    bundles: Sequence[Bundle] = Field(default_factory=list)
    specs: Sequence[Spec] = Field(default_factory=list)


async def load_registry(path: Path) -> Registry:
    """Load a registry from a YAML file.

    Args:
        path: Path to the registry file

    Returns:
        Registry built from the file

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is empty, not valid YAML, or fails validation

    """
    if not path.exists():
        raise FileNotFoundError(f"Registry file not found: {path}")

    content = await asyncio.to_thread(path.read_text)

    try:
        data: Any = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty registry file: {path}")

    try:
        registry_file = RegistryFile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid registry schema in {path}: {e}") from e

    registry = Registry(
        engines=registry_file.engines,
        databases=registry_file.databases,
        bundles=registry_file.bundles,
        specs=registry_file.specs,
    )
    log.info(
        "Loaded registry from %s: %d engine(s), %d database(s), %d bundle(s)",
        path,
        len(registry.engines),
        len(registry.databases),
        len(registry.bundles),
    )
    return registry
