"""
Pydantic models for node discovery.

- Node: one discovered endpoint (address string)
- EndpointRecord: document stored in the nodes collection
- BackendConfig: immutable backend configuration resolved at initialize()
- DecodeResult: typed outcome of decoding one stored document
"""

from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


# =============================================================================
# Node
# =============================================================================

class Node(BaseModel):
    """A discovered service endpoint."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="Endpoint address as stored")

    @property
    def host(self) -> Optional[str]:
        """Host part of the address, if it has one."""
        return self._split().hostname

    @property
    def port(self) -> Optional[int]:
        """Port part of the address, if it has a valid one."""
        try:
            return self._split().port
        except ValueError:
            return None

    def _split(self):
        # urlsplit needs "//" to find the netloc of a bare host:port
        if "://" in self.url:
            return urlsplit(self.url)
        return urlsplit(f"//{self.url}")

    def __str__(self) -> str:
        return self.url


# =============================================================================
# Stored record
# =============================================================================

class EndpointRecord(BaseModel):
    """
    Document stored for a registered endpoint.

    The name of the key field is configurable per deployment, so the record
    is rendered to a document with to_document() instead of model_dump().
    """

    address: str = Field(..., min_length=1, description="Normalized endpoint address")
    comment: str = Field(default="", description="Free-text annotation")

    def to_document(self, field: str) -> Dict[str, str]:
        return {field: self.address, "comment": self.comment}


class DecodeStatus(str, Enum):
    """Outcome of decoding a stored document."""
    OK = "ok"
    MISSING_FIELD = "missing_field"
    WRONG_TYPE = "wrong_type"


class DecodeResult(BaseModel):
    """Tagged result of decoding one stored document."""

    status: DecodeStatus
    node: Optional[Node] = None
    value_type: Optional[str] = Field(None, description="Type name found when status is WRONG_TYPE")

    @property
    def ok(self) -> bool:
        return self.status == DecodeStatus.OK


# =============================================================================
# Backend configuration
# =============================================================================

class BackendConfig(BaseModel):
    """
    Backend configuration, set once by initialize() and never mutated.

    Example:
        BackendConfig(host="localhost:27017", database="swarm",
                      collection="nodes", field="url", heartbeat=5)
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1, description="host[:port] of the MongoDB server")
    database: str = Field(..., min_length=1, description="Database name")
    collection: str = Field(..., min_length=1, description="Collection holding endpoint records")
    field: str = Field(..., min_length=1, description="Comparison field (unique key)")
    heartbeat: PositiveInt = Field(..., description="Polling interval in seconds")
    scheme: str = Field(default="mongodb", description="Connection URI scheme")

    @property
    def uri(self) -> str:
        """Connection URI for the driver."""
        return f"{self.scheme}://{self.host}/{self.database}"
