class KubeUsageError(Exception):
    """Base exception for kubeusage."""

    pass


class ConfigurationError(KubeUsageError):
    """Raised when the configuration is invalid. Fatal at startup."""

    pass


class TelemetryError(KubeUsageError):
    """Raised when a telemetry query cannot be issued."""

    pass


class ClusterResolutionError(KubeUsageError):
    """Raised when a cluster descriptor or API handle cannot be created."""

    pass


class ResourceLookupError(KubeUsageError):
    """Raised when a pod or node cannot be read from a cluster."""

    pass


class AttributionError(KubeUsageError):
    """Base exception for errors that make a single group unattributable."""

    pass


class MalformedLabelsError(AttributionError):
    """Raised when a time series does not carry the expected label values."""

    pass


class EmptyWindowError(AttributionError):
    """Raised when aggregating a sample window without samples."""

    pass


class ZeroCapacityError(AttributionError):
    """Raised when a node reports no capacity for a resource."""

    pass


class DatabaseError(KubeUsageError):
    """Base exception for database related errors."""

    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    pass


class QueryError(DatabaseError):
    """Raised when a database query fails."""

    pass


class NodeNotFoundError(DatabaseError):
    """Raised when a node is missing from the capacity cache or is stale."""

    pass
