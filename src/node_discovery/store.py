"""
Membership Store Adapter: maps discovery operations onto MongoDB queries.

    list_nodes()        find({})            -> List[Node]
    insert_if_absent()  insert_one          duplicate key is not an error
    remove_by_key()     delete_one          nothing deleted -> NodeNotFound
    ensure_unique()     create_index(unique=True)
"""

import logging
from typing import List

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .address import decode_record
from .connection import ConnectionManager
from .errors import ConstraintCreationFailed, FieldMissing, InvalidFieldType, NodeNotFound
from .models import BackendConfig, DecodeStatus, EndpointRecord, Node


logger = logging.getLogger(__name__)


class MembershipStore:
    """Endpoint records of one collection."""

    def __init__(self, connection: ConnectionManager, config: BackendConfig):
        self.connection = connection
        self.config = config

    def ensure_unique(self) -> None:
        """
        Create the unique index on the comparison field.

        Creating an index that already exists with the same options is a
        no-op on the server.

        Raises:
            ConstraintCreationFailed: Index could not be created.
        """
        try:
            with self.connection.session() as handle:
                handle.collection(self.config.collection).create_index(
                    [(self.config.field, ASCENDING)],
                    unique=True,
                    session=handle.session,
                )
        except PyMongoError as e:
            raise ConstraintCreationFailed(
                f"Cannot create unique index on "
                f"{self.config.collection}.{self.config.field}: {e}"
            ) from e

        logger.debug(f"Unique index ensured on {self.config.collection}.{self.config.field}")

    def list_nodes(self) -> List[Node]:
        """
        Read every record as a Node, in storage order.

        A single malformed record fails the whole listing.

        Raises:
            FieldMissing: A record lacks the comparison field.
            InvalidFieldType: A record's comparison field is not a string.
        """
        field = self.config.field
        nodes = []

        with self.connection.session() as handle:
            cursor = handle.collection(self.config.collection).find({}, session=handle.session)
            for document in cursor:
                result = decode_record(document, field)
                if result.status == DecodeStatus.MISSING_FIELD:
                    raise FieldMissing(field)
                if result.status == DecodeStatus.WRONG_TYPE:
                    raise InvalidFieldType(field, result.value_type)
                nodes.append(result.node)

        return nodes

    def insert_if_absent(self, record: EndpointRecord) -> bool:
        """
        Insert a record unless its address is already stored.

        Returns:
            True if inserted, False if the address was already registered.
        """
        document = record.to_document(self.config.field)
        try:
            with self.connection.session() as handle:
                handle.collection(self.config.collection).insert_one(
                    document, session=handle.session
                )
        except DuplicateKeyError:
            logger.debug(f"Node already registered: {record.address}")
            return False
        return True

    def remove_by_key(self, address: str) -> None:
        """
        Delete the first record whose comparison field equals address.

        Raises:
            NodeNotFound: No record matched.
        """
        with self.connection.session() as handle:
            result = handle.collection(self.config.collection).delete_one(
                {self.config.field: address}, session=handle.session
            )
        if result.deleted_count == 0:
            raise NodeNotFound(address)
