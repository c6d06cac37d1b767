"""
Node discovery backed by MongoDB.

Keeps a registry of live service endpoints in a MongoDB collection and
exposes initialize / fetch / watch / register / deregister to a host
orchestrator.
"""

from .backend import (
    BACKENDS,
    DiscoveryBackend,
    MongoDiscoveryBackend,
    create_backend,
    split_discovery_uri,
)
from .config import DiscoverySettings, load_settings
from .errors import (
    BackendNotInitialized,
    ConnectionFailed,
    ConstraintCreationFailed,
    DiscoveryError,
    FieldMissing,
    InvalidBackendAddress,
    InvalidFieldType,
    MissingDatabaseName,
    NodeNotFound,
    RecordDecodeError,
    UnknownBackend,
)
from .logging_setup import setup_logging
from .models import BackendConfig, EndpointRecord, Node
from .watcher import Watcher

__all__ = [
    # Backends
    "BACKENDS",
    "DiscoveryBackend",
    "MongoDiscoveryBackend",
    "create_backend",
    "split_discovery_uri",
    "Watcher",
    # Models
    "BackendConfig",
    "EndpointRecord",
    "Node",
    # Settings
    "DiscoverySettings",
    "load_settings",
    "setup_logging",
    # Errors
    "DiscoveryError",
    "InvalidBackendAddress",
    "MissingDatabaseName",
    "ConnectionFailed",
    "ConstraintCreationFailed",
    "BackendNotInitialized",
    "UnknownBackend",
    "RecordDecodeError",
    "FieldMissing",
    "InvalidFieldType",
    "NodeNotFound",
]
