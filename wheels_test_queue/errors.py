"""Exceptions raised by the test queue and its collaborators."""


class WheelsTestQueueError(Exception):
    """Base class for all package errors."""


class RegistryLookupError(WheelsTestQueueError, LookupError):
    """Raised when an id is not present in the registry."""

    kind = "entry"

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"Unknown {self.kind} '{key}'")
        self.key = key


class EngineNotFoundError(RegistryLookupError):
    """Raised when an engine id is not registered."""

    kind = "engine"


class DatabaseNotFoundError(RegistryLookupError):
    """Raised when a database id is not registered."""

    kind = "database"


class BundleNotFoundError(RegistryLookupError):
    """Raised when a bundle id is not registered."""

    kind = "bundle"


class SpecNotFoundError(RegistryLookupError):
    """Raised when a spec id is not registered."""

    kind = "spec"


class SpecBundleMismatchError(RegistryLookupError):
    """Raised when a spec is requested with a bundle it does not belong to."""

    kind = "spec"

    def __init__(self, key: str, spec_bundle_id: str, bundle_id: str) -> None:
        super().__init__(
            key,
            f"Spec '{key}' belongs to bundle '{spec_bundle_id}', not '{bundle_id}'",
        )
        self.spec_bundle_id = spec_bundle_id
        self.bundle_id = bundle_id


class RunnerError(WheelsTestQueueError):
    """Base class for failures talking to a test runner."""


class RunnerNetworkError(RunnerError):
    """Raised when the test runner cannot be reached or times out."""


class RunnerSchemaError(RunnerError):
    """Raised when a runner response matches no known result shape."""


class ContainerApiError(WheelsTestQueueError):
    """Raised when the Docker API cannot be queried."""


class ExecutorNotFoundError(WheelsTestQueueError):
    """Raised when an executor is not found."""
