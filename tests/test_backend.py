"""
Tests for MongoDiscoveryBackend.

Tests cover:
1. Initialization (defaults, failures, no partial state)
2. Fetch (storage order, malformed records)
3. Register (normalization, idempotency, error propagation)
4. Deregister (exact match, not found)
5. Watch (non-blocking start, cancellation)
6. Backend factory

mongomock stands in for the server; it has no session support, so
sessions are disabled in the test settings.
"""

import threading
from unittest.mock import patch

import mongomock
import pytest
from pymongo import MongoClient
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from node_discovery import (
    BackendNotInitialized,
    ConnectionFailed,
    ConstraintCreationFailed,
    DiscoverySettings,
    FieldMissing,
    InvalidBackendAddress,
    InvalidFieldType,
    MissingDatabaseName,
    MongoDiscoveryBackend,
    Node,
    NodeNotFound,
    UnknownBackend,
    create_backend,
    split_discovery_uri,
)
from node_discovery.config import MongoSettings


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return DiscoverySettings(mongo=MongoSettings(use_sessions=False))


@pytest.fixture
def client():
    return mongomock.MongoClient()


@pytest.fixture
def backend(settings, client):
    """Initialized backend on localhost:27017/swarm."""
    backend = MongoDiscoveryBackend(settings=settings, client_factory=lambda *a, **kw: client)
    backend.initialize("localhost:27017/swarm", 5)
    yield backend
    backend.close()


@pytest.fixture
def nodes_collection(client):
    return client["swarm"]["nodes"]


# =============================================================================
# Test: Initialize
# =============================================================================

class TestInitialize:
    """Tests for initialize()."""

    def test_defaults(self, backend):
        assert backend.initialized
        assert backend.config.database == "swarm"
        assert backend.config.collection == "nodes"
        assert backend.config.field == "url"
        assert backend.config.heartbeat == 5

    def test_connects_to_database_uri(self, settings, client):
        calls = []

        def factory(uri, **kwargs):
            calls.append(uri)
            return client

        backend = MongoDiscoveryBackend(settings=settings, client_factory=factory)
        backend.initialize("db.example:27018/swarm/members/addr", 3)

        assert calls == ["mongodb://db.example:27018/swarm"]
        assert backend.config.collection == "members"
        assert backend.config.field == "addr"

    def test_creates_unique_index(self, backend, nodes_collection):
        indexes = nodes_collection.index_information()

        unique = [info for info in indexes.values() if info.get("unique")]
        assert len(unique) == 1
        assert unique[0]["key"] == [("url", 1)]

    def test_initialize_twice_is_idempotent(self, backend, nodes_collection):
        backend.initialize("localhost:27017/swarm", 5)

        assert backend.initialized
        unique = [info for info in nodes_collection.index_information().values() if info.get("unique")]
        assert len(unique) == 1

    def test_missing_database_name(self, settings, client):
        backend = MongoDiscoveryBackend(settings=settings, client_factory=lambda *a, **kw: client)

        with pytest.raises(MissingDatabaseName):
            backend.initialize("localhost:27017", 5)

        assert not backend.initialized

    def test_connection_failed(self, settings, client):
        backend = MongoDiscoveryBackend(settings=settings, client_factory=lambda *a, **kw: client)

        with patch.object(
            mongomock.database.Database,
            "command",
            side_effect=ServerSelectionTimeoutError("no servers"),
        ):
            with pytest.raises(ConnectionFailed):
                backend.initialize("localhost:27017/swarm", 5)

        assert not backend.initialized
        with pytest.raises(BackendNotInitialized):
            backend.fetch()

    def test_constraint_creation_failed(self, settings, client):
        backend = MongoDiscoveryBackend(settings=settings, client_factory=lambda *a, **kw: client)

        with patch.object(
            mongomock.collection.Collection,
            "create_index",
            side_effect=OperationFailure("index options conflict"),
        ):
            with pytest.raises(ConstraintCreationFailed) as exc_info:
                backend.initialize("localhost:27017/swarm", 5)

        assert isinstance(exc_info.value.__cause__, OperationFailure)
        assert not backend.initialized

    @pytest.mark.parametrize("address", ["localhost:abc/swarm", "localhost:99999/swarm"])
    def test_bad_port_with_real_driver(self, settings, address):
        """Malformed ports arrive as typed errors, not bare ValueError."""
        backend = MongoDiscoveryBackend(settings=settings, client_factory=MongoClient)

        with pytest.raises(InvalidBackendAddress):
            backend.initialize(address, 5)

        assert not backend.initialized

    def test_operations_require_initialize(self, settings):
        backend = MongoDiscoveryBackend(settings=settings)

        with pytest.raises(BackendNotInitialized):
            backend.fetch()
        with pytest.raises(BackendNotInitialized):
            backend.register("10.0.0.1:2375")
        with pytest.raises(BackendNotInitialized):
            backend.deregister("http://10.0.0.1:2375")
        with pytest.raises(BackendNotInitialized):
            backend.watch(lambda nodes: None)

    def test_close(self, backend):
        backend.close()

        assert not backend.initialized
        with pytest.raises(BackendNotInitialized):
            backend.config


# =============================================================================
# Test: Fetch
# =============================================================================

class TestFetch:
    """Tests for fetch()."""

    def test_empty(self, backend):
        assert backend.fetch() == []

    def test_storage_order(self, backend, nodes_collection):
        nodes_collection.insert_many([
            {"url": "http://10.0.0.2:2375", "comment": "b"},
            {"url": "http://10.0.0.1:2375", "comment": "a"},
        ])

        assert backend.fetch() == [
            Node(url="http://10.0.0.2:2375"),
            Node(url="http://10.0.0.1:2375"),
        ]

    def test_record_missing_field(self, backend, nodes_collection):
        """One bad record fails the whole fetch."""
        nodes_collection.insert_many([
            {"url": "http://10.0.0.1:2375"},
            {"comment": "no url here"},
        ])

        with pytest.raises(FieldMissing) as exc_info:
            backend.fetch()

        assert exc_info.value.field == "url"

    def test_record_with_non_string_field(self, backend, nodes_collection):
        nodes_collection.insert_one({"url": 2375})

        with pytest.raises(InvalidFieldType) as exc_info:
            backend.fetch()

        assert exc_info.value.value_type == "int"

    def test_custom_field(self, settings, client):
        backend = MongoDiscoveryBackend(settings=settings, client_factory=lambda *a, **kw: client)
        backend.initialize("localhost/swarm/members/addr", 5)
        client["swarm"]["members"].insert_one({"addr": "http://a:1"})

        assert backend.fetch() == [Node(url="http://a:1")]


# =============================================================================
# Test: Register / Deregister
# =============================================================================

class TestRegister:
    """Tests for register()."""

    def test_stores_normalized_address(self, backend, nodes_collection):
        backend.register("10.0.0.1:2375")

        stored = nodes_collection.find_one({}, {"_id": 0})
        assert stored == {
            "url": "http://10.0.0.1:2375",
            "comment": "registered by node-discovery",
        }

    def test_keeps_existing_scheme(self, backend):
        backend.register("https://10.0.0.1:2376")

        assert backend.fetch() == [Node(url="https://10.0.0.1:2376")]

    def test_idempotent(self, backend, nodes_collection):
        backend.register("10.0.0.1:2375")
        backend.register("10.0.0.1:2375")
        backend.register("http://10.0.0.1:2375")

        assert nodes_collection.count_documents({"url": "http://10.0.0.1:2375"}) == 1

    def test_other_insert_errors_propagate(self, backend):
        with patch.object(
            mongomock.collection.Collection,
            "insert_one",
            side_effect=OperationFailure("not authorized"),
        ):
            with pytest.raises(OperationFailure):
                backend.register("10.0.0.1:2375")

    def test_register_then_fetch(self, backend):
        backend.register("10.0.0.1:2375")
        backend.register("10.0.0.2:2375")

        assert [str(node) for node in backend.fetch()] == [
            "http://10.0.0.1:2375",
            "http://10.0.0.2:2375",
        ]


class TestDeregister:
    """Tests for deregister()."""

    def test_removes_record(self, backend):
        backend.register("10.0.0.1:2375")
        backend.register("10.0.0.2:2375")

        backend.deregister("http://10.0.0.1:2375")

        assert backend.fetch() == [Node(url="http://10.0.0.2:2375")]

    def test_not_found(self, backend):
        with pytest.raises(NodeNotFound) as exc_info:
            backend.deregister("http://10.0.0.9:2375")

        assert exc_info.value.address == "http://10.0.0.9:2375"

    def test_no_normalization(self, backend):
        """Address must be passed in its stored form."""
        backend.register("10.0.0.1:2375")

        with pytest.raises(NodeNotFound):
            backend.deregister("10.0.0.1:2375")

        assert len(backend.fetch()) == 1

    def test_removes_only_one_record(self, backend, nodes_collection):
        nodes_collection.drop_indexes()
        nodes_collection.insert_many([{"url": "http://dup:1"}, {"url": "http://dup:1"}])

        backend.deregister("http://dup:1")

        assert nodes_collection.count_documents({"url": "http://dup:1"}) == 1


class TestScenario:
    """Register, fetch, deregister against a fresh store."""

    def test_full_cycle(self, backend):
        assert backend.config.collection == "nodes"
        assert backend.config.field == "url"

        backend.register("10.0.0.1:2375")
        assert [str(node) for node in backend.fetch()] == ["http://10.0.0.1:2375"]

        backend.deregister("http://10.0.0.1:2375")
        assert backend.fetch() == []


# =============================================================================
# Test: Watch
# =============================================================================

class TestWatch:
    """Tests for watch()."""

    def test_returns_running_watcher(self, backend):
        watcher = backend.watch(lambda nodes: None)
        try:
            assert watcher.is_running
            assert watcher.interval == 5
        finally:
            watcher.stop()

        assert not watcher.is_running

    def test_external_stop_event(self, backend):
        stop = threading.Event()
        watcher = backend.watch(lambda nodes: None, stop_event=stop)

        stop.set()
        watcher._thread.join(timeout=2.0)

        assert not watcher.is_running


# =============================================================================
# Test: Factory
# =============================================================================

class TestFactory:
    """Tests for create_backend() and split_discovery_uri()."""

    def test_create_mongo(self, settings):
        backend = create_backend("mongo", settings=settings)

        assert isinstance(backend, MongoDiscoveryBackend)
        assert backend.settings is settings

    def test_unknown_backend(self):
        with pytest.raises(UnknownBackend):
            create_backend("consul")

    def test_split_uri(self):
        assert split_discovery_uri("mongo://localhost:27017/swarm") == (
            "mongo",
            "localhost:27017/swarm",
        )

    def test_split_uri_without_prefix(self):
        with pytest.raises(UnknownBackend):
            split_discovery_uri("localhost:27017/swarm")

    def test_context_manager_closes(self, settings, client):
        with MongoDiscoveryBackend(settings=settings, client_factory=lambda *a, **kw: client) as backend:
            backend.initialize("localhost/swarm", 5)
            assert backend.initialized

        assert not backend.initialized
