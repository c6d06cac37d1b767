"""
Connection Manager: owns the long-lived MongoDB client.

Operations never share a session: each one enters ``manager.session()``,
which yields a SessionHandle bound to its own ClientSession and ends that
session on every exit path.
"""

import logging
from contextlib import contextmanager, nullcontext
from typing import Any, Callable, Iterator, Optional

from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .errors import BackendNotInitialized, ConnectionFailed


logger = logging.getLogger(__name__)


class SessionHandle:
    """Short-lived handle borrowed by one operation."""

    def __init__(self, database: Database, session: Optional[ClientSession]):
        self.database = database
        self.session = session

    def collection(self, name: str) -> Collection:
        return self.database[name]


class ConnectionManager:
    """
    Long-lived MongoDB client plus scoped per-operation sessions.

    Usage:
        manager = ConnectionManager("mongodb://localhost:27017/swarm", "swarm")
        manager.connect()
        with manager.session() as handle:
            handle.collection("nodes").find({}, session=handle.session)
    """

    def __init__(
        self,
        uri: str,
        database: str,
        server_selection_timeout_ms: int = 5000,
        use_sessions: bool = True,
        client_factory: Callable[..., Any] = MongoClient,
    ):
        self.uri = uri
        self.database_name = database
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.use_sessions = use_sessions
        self._client_factory = client_factory
        self._client: Optional[MongoClient] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """
        Open the client and ping the server.

        Raises:
            ConnectionFailed: Server unreachable or URI rejected.
        """
        client = None
        try:
            client = self._client_factory(
                self.uri,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
            client.admin.command("ping")
        except (PyMongoError, ValueError) as e:
            # MongoClient raises a plain ValueError for an out-of-range port
            logger.error(f"MongoDB connection failed. {e}")
            if client is not None:
                client.close()
            raise ConnectionFailed(f"Cannot connect to {self.uri}: {e}") from e

        self._client = client
        logger.info(f"Connected to MongoDB at {self.uri}")

    def database(self) -> Database:
        if self._client is None:
            raise BackendNotInitialized("Connection is not open")
        return self._client[self.database_name]

    @contextmanager
    def session(self) -> Iterator[SessionHandle]:
        """Yield a SessionHandle whose session ends when the block exits."""
        database = self.database()
        scope = self._client.start_session() if self.use_sessions else nullcontext()
        with scope as session:
            yield SessionHandle(database, session)

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        logger.info(f"Closed MongoDB connection to {self.uri}")
