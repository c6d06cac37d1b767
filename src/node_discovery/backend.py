"""
Discovery backends.

DiscoveryBackend is the contract a host orchestrator drives:

    initialize(address, heartbeat)
    fetch() -> List[Node]
    watch(callback) -> Watcher
    register(address)
    deregister(address)

Backends are selected explicitly with create_backend("mongo"); nothing is
registered globally at import time.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from .address import normalize_address, parse_backend_address
from .config import DiscoverySettings, load_settings
from .connection import ConnectionManager
from .errors import BackendNotInitialized, DiscoveryError, UnknownBackend
from .models import BackendConfig, EndpointRecord, Node
from .store import MembershipStore
from .watcher import WatchCallback, Watcher


logger = logging.getLogger(__name__)


class DiscoveryBackend(ABC):
    """Uniform discovery contract."""

    @abstractmethod
    def initialize(self, address: str, heartbeat: int) -> None:
        """Resolve the backend address and connect."""

    @abstractmethod
    def fetch(self) -> List[Node]:
        """Return the current membership snapshot."""

    @abstractmethod
    def watch(
        self,
        callback: WatchCallback,
        stop_event: Optional[threading.Event] = None,
    ) -> Watcher:
        """Start delivering snapshots to callback every heartbeat."""

    @abstractmethod
    def register(self, address: str) -> None:
        """Add an endpoint. Registering twice is not an error."""

    @abstractmethod
    def deregister(self, address: str) -> None:
        """Remove an endpoint."""

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class MongoDiscoveryBackend(DiscoveryBackend):
    """
    Discovery backend storing endpoints in a MongoDB collection.

    Usage:
        backend = MongoDiscoveryBackend()
        backend.initialize("localhost:27017/swarm", 5)
        backend.register("10.0.0.1:2375")      # stored as http://10.0.0.1:2375
        backend.fetch()                        # [Node(url='http://10.0.0.1:2375')]
        watcher = backend.watch(print)
        ...
        watcher.stop()
        backend.close()
    """

    def __init__(
        self,
        settings: Optional[DiscoverySettings] = None,
        client_factory: Optional[Callable] = None,
    ):
        self.settings = settings or load_settings()
        self._client_factory = client_factory
        self._config: Optional[BackendConfig] = None
        self._connection: Optional[ConnectionManager] = None
        self._store: Optional[MembershipStore] = None

    @property
    def config(self) -> BackendConfig:
        if self._config is None:
            raise BackendNotInitialized("initialize() has not succeeded")
        return self._config

    @property
    def initialized(self) -> bool:
        return self._store is not None

    def initialize(self, address: str, heartbeat: int) -> None:
        """
        Parse the backend address, connect and ensure the unique index.

        Args:
            address: host[:port]/database[/collection[/field]]
            heartbeat: Polling interval in seconds.

        Raises:
            MissingDatabaseName, InvalidBackendAddress, ConnectionFailed,
            ConstraintCreationFailed. On failure the backend stays unusable.
        """
        config = parse_backend_address(
            address,
            heartbeat,
            defaults=self.settings.defaults,
            scheme=self.settings.mongo.scheme,
        )

        if self._connection is not None:
            self.close()

        connection_options = {}
        if self._client_factory is not None:
            connection_options["client_factory"] = self._client_factory
        connection = ConnectionManager(
            config.uri,
            config.database,
            server_selection_timeout_ms=self.settings.mongo.server_selection_timeout_ms,
            use_sessions=self.settings.mongo.use_sessions,
            **connection_options,
        )
        connection.connect()

        store = MembershipStore(connection, config)
        try:
            store.ensure_unique()
        except DiscoveryError:
            connection.close()
            raise

        self._config = config
        self._connection = connection
        self._store = store

        logger.info(
            f"Mongo discovery initialized: {config.host}/{config.database}, "
            f"collection={config.collection}, field={config.field}, "
            f"heartbeat={config.heartbeat}s"
        )

    def _require_store(self) -> MembershipStore:
        if self._store is None:
            raise BackendNotInitialized("initialize() has not succeeded")
        return self._store

    def fetch(self) -> List[Node]:
        """
        Return every registered node.

        Raises:
            FieldMissing, InvalidFieldType: A stored record is malformed.
        """
        return self._require_store().list_nodes()

    def watch(
        self,
        callback: WatchCallback,
        stop_event: Optional[threading.Event] = None,
    ) -> Watcher:
        """
        Poll fetch() every heartbeat in a background thread.

        Returns immediately with the running Watcher; stop it with
        watcher.stop() or by setting stop_event.
        """
        self._require_store()
        return Watcher(
            self.fetch,
            callback,
            interval=self.config.heartbeat,
            stop_event=stop_event,
        ).start()

    def register(self, address: str) -> None:
        """
        Store address, prefixing the default scheme if it has none.

        Already-registered addresses are accepted silently. Other driver
        errors propagate unchanged.
        """
        store = self._require_store()
        registration = self.settings.registration
        record = EndpointRecord(
            address=normalize_address(
                address,
                default_scheme=registration.default_scheme,
                recognized_schemes=registration.recognized_schemes,
            ),
            comment=registration.comment,
        )
        if store.insert_if_absent(record):
            logger.info(f"Node registered: {record.address}")

    def deregister(self, address: str) -> None:
        """
        Remove the record stored under address (no normalization).

        Raises:
            NodeNotFound: Nothing is stored under address.
        """
        self._require_store().remove_by_key(address)
        logger.info(f"Node deregistered: {address}")

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
        self._connection = None
        self._store = None
        self._config = None


# =============================================================================
# Factory
# =============================================================================

BACKENDS: Dict[str, Callable[..., DiscoveryBackend]] = {
    "mongo": MongoDiscoveryBackend,
}


def create_backend(kind: str, settings: Optional[DiscoverySettings] = None) -> DiscoveryBackend:
    """
    Build the backend registered under kind.

    Raises:
        UnknownBackend: kind is not in BACKENDS.
    """
    try:
        factory = BACKENDS[kind]
    except KeyError:
        raise UnknownBackend(f"Unknown discovery backend: {kind!r}") from None
    return factory(settings=settings)


def split_discovery_uri(uri: str) -> Tuple[str, str]:
    """
    Split "mongo://host:port/db" into ("mongo", "host:port/db").

    Raises:
        UnknownBackend: uri has no "<kind>://" prefix.
    """
    kind, sep, address = uri.partition("://")
    if not sep or not kind:
        raise UnknownBackend(f"Discovery URI has no backend prefix: {uri!r}")
    return kind, address
