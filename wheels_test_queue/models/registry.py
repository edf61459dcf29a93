"""Models for the engines, databases and bundles a test run combines."""

from pydantic import Field, SecretStr

from wheels_test_queue.models.base import Model


class Engine(Model):
    """A CFML engine reachable over HTTP."""

    id: str = Field(..., description="Registry key (e.g., 'lucee5')")
    name: str = Field(..., description="Engine family (e.g., 'Lucee')")
    version: str = Field(..., description="Engine version (e.g., '5')")
    host: str = Field(default="localhost", description="Host the engine listens on")
    port: int = Field(..., description="Published HTTP port of the engine")
    admin_path: str | None = Field(
        default=None, description="Path of the engine administrator"
    )

    @property
    def url(self) -> str:
        """Base URL of the engine."""
        return f"http://{self.host}:{self.port}"

    @property
    def label(self) -> str:
        """Human-readable engine label."""
        return f"{self.name} {self.version}"


class ConnectionInfo(Model):
    """Connection parameters of a database."""

    host: str
    port: int
    database: str
    username: str
    password: SecretStr = Field(default=SecretStr(""), repr=False)


class Database(Model):
    """A database the engines can run the test suite against."""

    id: str = Field(..., description="Registry key (e.g., 'mysql')")
    name: str = Field(..., description="Display name (e.g., 'SQL Server')")
    version: str = Field(default="", description="Database server version")
    connection: ConnectionInfo

    @property
    def runner_name(self) -> str:
        """Name the test runner expects in its ``db`` parameter."""
        return self.name.lower()


class Bundle(Model):
    """A named group of tests."""

    id: str
    name: str
    description: str = ""
    path: str


class Spec(Model):
    """A subset of tests within a bundle."""

    id: str
    name: str
    bundle_id: str
    path: str
