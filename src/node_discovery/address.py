"""
Address handling.

- parse_backend_address: "host[:port]/database[/collection[/field]]" -> BackendConfig
- normalize_address: endpoint string -> stored form (scheme-prefixed)
- decode_record: stored document -> DecodeResult

Supported backend addresses:

    192.168.122.122:27017/dbname
    192.168.122.122:27017/dbname/collection
    192.168.122.122:27017/dbname/collection/field
"""

from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from .config import DefaultsSettings
from .errors import InvalidBackendAddress, MissingDatabaseName
from .models import BackendConfig, DecodeResult, DecodeStatus, Node


MAX_SEGMENTS = 4
MAX_PORT = 65535


def parse_backend_address(
    address: str,
    heartbeat: int,
    defaults: Optional[DefaultsSettings] = None,
    scheme: str = "mongodb",
) -> BackendConfig:
    """
    Resolve a backend address into a BackendConfig.

    Args:
        address: host[:port]/database[/collection[/field]]
        heartbeat: Polling interval in seconds (positive integer).
        defaults: Collection/field names used when omitted.
        scheme: Connection URI scheme.

    Raises:
        MissingDatabaseName: Fewer than two segments or empty database.
        InvalidBackendAddress: Too many segments, empty host,
            bad port or bad heartbeat.
    """
    defaults = defaults or DefaultsSettings()
    segments = address.split("/")

    if len(segments) < 2 or not segments[1]:
        raise MissingDatabaseName(address)
    if len(segments) > MAX_SEGMENTS:
        raise InvalidBackendAddress(
            f"Too many segments in backend address {address!r} "
            f"(expected at most {MAX_SEGMENTS})"
        )

    _check_ports(segments[0], address)

    # Empty trailing segments ("host/db/") fall back to the defaults
    collection = segments[2] if len(segments) >= 3 and segments[2] else defaults.collection
    field = segments[3] if len(segments) == 4 and segments[3] else defaults.field

    try:
        return BackendConfig(
            host=segments[0],
            database=segments[1],
            collection=collection,
            field=field,
            heartbeat=heartbeat,
            scheme=scheme,
        )
    except ValidationError as e:
        raise InvalidBackendAddress(f"Invalid backend address {address!r}: {e}") from e


def _host_port(host: str) -> Optional[str]:
    # "[::1]:27017" keeps its colons inside the brackets
    if host.startswith("["):
        _, _, rest = host.partition("]")
        return rest[1:] if rest.startswith(":") else None
    if ":" in host:
        return host.rsplit(":", 1)[1]
    return None


def _check_ports(hosts: str, address: str) -> None:
    """Reject ports the driver would refuse (also for "h1:1,h2:2" seed lists)."""
    for host in hosts.split(","):
        port = _host_port(host)
        if port is None:
            continue
        if not port.isdigit() or not 0 < int(port) <= MAX_PORT:
            raise InvalidBackendAddress(
                f"Invalid port {port!r} in backend address {address!r} "
                f"(expected 1-{MAX_PORT})"
            )


def has_scheme(address: str, schemes: Iterable[str]) -> bool:
    return any(address.startswith(f"{scheme}://") for scheme in schemes)


def normalize_address(
    address: str,
    default_scheme: str = "http",
    recognized_schemes: Iterable[str] = ("http", "https"),
) -> str:
    """Prefix the default scheme unless the address already carries a recognized one."""
    if has_scheme(address, recognized_schemes):
        return address
    return f"{default_scheme}://{address}"


def decode_record(document: Mapping[str, Any], field: str) -> DecodeResult:
    """Extract the comparison field of a stored document as a Node."""
    if field not in document:
        return DecodeResult(status=DecodeStatus.MISSING_FIELD)

    value = document[field]
    if not isinstance(value, str):
        return DecodeResult(status=DecodeStatus.WRONG_TYPE, value_type=type(value).__name__)

    return DecodeResult(status=DecodeStatus.OK, node=Node(url=value))
