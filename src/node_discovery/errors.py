"""
Discovery errors.

Every failure raised by the backend derives from DiscoveryError so a host
can catch the whole family at once. Driver exceptions are chained as the
``__cause__`` of the error that wraps them.
"""


class DiscoveryError(Exception):
    """Base class for all node-discovery errors."""


# =============================================================================
# Initialization
# =============================================================================

class InvalidBackendAddress(DiscoveryError, ValueError):
    """Backend address string (or heartbeat) cannot be resolved."""


class MissingDatabaseName(InvalidBackendAddress):
    """Backend address has no database segment."""

    def __init__(self, address: str):
        super().__init__(f"The database name must be provided: {address!r}")
        self.address = address


class ConnectionFailed(DiscoveryError):
    """MongoDB is unreachable at initialization."""


class ConstraintCreationFailed(DiscoveryError):
    """Unique index on the comparison field could not be created."""


class BackendNotInitialized(DiscoveryError):
    """Operation called before a successful initialize()."""


class UnknownBackend(DiscoveryError):
    """No backend is known under the requested name."""


# =============================================================================
# Records
# =============================================================================

class RecordDecodeError(DiscoveryError):
    """A stored record cannot be turned into a Node."""

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class FieldMissing(RecordDecodeError):
    """Stored record lacks the comparison field."""

    def __init__(self, field: str):
        super().__init__(f"The {field!r} field does not exist in the record", field)


class InvalidFieldType(RecordDecodeError):
    """Comparison field holds something other than a string."""

    def __init__(self, field: str, value_type: str):
        super().__init__(
            f"The value of the {field!r} field must be a string, got {value_type}",
            field,
        )
        self.value_type = value_type


class NodeNotFound(DiscoveryError, LookupError):
    """No stored record matches the address to deregister."""

    def __init__(self, address: str):
        super().__init__(f"Node not found: {address}")
        self.address = address
