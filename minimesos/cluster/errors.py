"""Error taxonomy.

Construction-time and pre-flight errors (`ConfigurationError`, `AlreadyRunningError`,
`ReattachError`) are raised before any container is touched.
Start failures (`ContainerStartError`, `ClusterTimeoutError`) leave already started containers
running, teardown is the recovery path.
"""


class MinimesosError(Exception):
    """Base class for all minimesos exceptions."""


class ConfigurationError(MinimesosError):
    """Raised when the cluster configuration is malformed or contradictory."""


class AlreadyRunningError(MinimesosError):
    """Raised when starting a cluster that is already running."""


class ReattachError(MinimesosError):
    """Raised when no containers were found for the given cluster ID."""


class ContainerStartError(MinimesosError):
    """Raised when a container failed to be created or started."""


class ClusterTimeoutError(MinimesosError, TimeoutError):
    """Raised when a service didn't get ready in time."""


class TeardownError(MinimesosError):
    """Raised when cleanup of the cluster failed.

    When multiple independent removals failed, `errors` holds message for each of them.
    """

    def __init__(self, msg: str, errors: list[str] | None = None) -> None:
        super().__init__(msg)
        self.errors = errors or []


class ServiceNotFoundError(MinimesosError):
    """Raised when an operation requires an optional service that is not present."""


class ManifestNotFoundError(MinimesosError):
    """Raised when content of an app definition cannot be found."""


class LocationError(MinimesosError, OSError):
    """Raised when an existing location (URI or file) cannot be read."""


class ServiceRequestError(MinimesosError):
    """Raised when a REST request to a cluster service failed."""
