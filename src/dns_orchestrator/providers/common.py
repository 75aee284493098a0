"""
Helpers shared by the provider implementations.

Name normalization between fully-qualified and zone-relative names,
conversions between `RecordData` and the value strings used by provider
APIs, hashing primitives for request signing, and a small TTL cache for
zone lookups.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import TYPE_CHECKING

from pydantic import ValidationError

from dns_orchestrator.errors import ParseError, UnsupportedRecordTypeError
from dns_orchestrator.models import (
    AAAARecordData,
    ARecordData,
    CAARecordData,
    CNAMERecordData,
    MXRecordData,
    NSRecordData,
    SRVRecordData,
    TXTRecordData,
)
from dns_orchestrator.timeutil import parse_timestamp

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Final

    from dns_orchestrator.models import ProviderDomain, RecordData


DOMAIN_CACHE_TTL: Final[float] = 300.0


logger = logging.getLogger(__name__)


# Hashing


def sha256_hex(data: bytes | str) -> str:
    """Lowercase hex SHA-256 of `data` (str is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: bytes | str, data: bytes | str) -> bytes:
    """Raw HMAC-SHA256 digest (str arguments are UTF-8 encoded)."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hmac.new(key, data, hashlib.sha256).digest()


# Names


def normalize_domain_name(name: str) -> str:
    """Strip the trailing dot of a DNS name."""
    return name.rstrip(".")


def full_name_to_relative(full_name: str, zone_name: str) -> str:
    """
    Convert a fully-qualified record name to a zone-relative one.

    Parameters
    ----------
    full_name : str
        E.g. ``"www.example.com"`` or ``"www.example.com."``.
    zone_name : str
        E.g. ``"example.com"``.

    Returns
    -------
    str
        ``"@"`` for the apex, the subdomain part when `full_name` is inside
        the zone, otherwise the normalized `full_name` unchanged.
    """
    full = normalize_domain_name(full_name)
    zone = normalize_domain_name(zone_name)

    if full == zone:
        return "@"
    suffix = f".{zone}"
    if full.endswith(suffix):
        return full[: -len(suffix)]
    return full


def relative_to_full_name(relative_name: str, zone_name: str) -> str:
    """Convert a zone-relative name (``@`` for the apex) to a fully-qualified one."""
    zone = normalize_domain_name(zone_name)
    if relative_name in {"@", ""}:
        return zone
    return f"{relative_name}.{zone}"


# Record value strings


def _parse_int(value: str, what: str, provider: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ParseError(provider, f"Invalid {what}: '{value}'") from e


def parse_srv(value: str, provider: str) -> SRVRecordData:
    """Parse ``"priority weight port target"``."""
    parts = value.split(" ", 3)
    if len(parts) != 4:  # noqa: PLR2004
        msg = f"Invalid SRV record format: expected 'priority weight port target', got '{value}'"
        raise ParseError(provider, msg)
    try:
        return SRVRecordData(
            priority=_parse_int(parts[0], "SRV priority", provider),
            weight=_parse_int(parts[1], "SRV weight", provider),
            port=_parse_int(parts[2], "SRV port", provider),
            target=parts[3],
        )
    except ValidationError as e:
        raise ParseError(provider, f"Invalid SRV record '{value}': {e}") from e


def parse_caa(value: str, provider: str) -> CAARecordData:
    """Parse ``'flags tag "value"'`` (quotes around the value are optional)."""
    parts = value.split(" ", 2)
    if len(parts) != 3:  # noqa: PLR2004
        msg = f"Invalid CAA record format: expected 'flags tag value', got '{value}'"
        raise ParseError(provider, msg)
    try:
        return CAARecordData(
            flags=_parse_int(parts[0], "CAA flags", provider),
            tag=parts[1],
            value=parts[2].strip('"'),
        )
    except ValidationError as e:
        raise ParseError(provider, f"Invalid CAA record '{value}': {e}") from e


def parse_mx(value: str, provider: str) -> MXRecordData:
    """Parse ``"priority exchange"``."""
    parts = value.split(" ", 1)
    if len(parts) != 2:  # noqa: PLR2004
        msg = f"Invalid MX record format: expected 'priority exchange', got '{value}'"
        raise ParseError(provider, msg)
    try:
        return MXRecordData(
            priority=_parse_int(parts[0], "MX priority", provider),
            exchange=parts[1],
        )
    except ValidationError as e:
        raise ParseError(provider, f"Invalid MX record '{value}': {e}") from e


def record_data_from_value(
    record_type: str,
    value: str,
    provider: str,
    priority: int | None = None,
) -> RecordData:
    """
    Build `RecordData` from a provider's type name, value string and priority.

    MX takes its priority from `priority` when given, otherwise from the
    value string (``"10 mail.example.com"``). SRV and CAA are parsed from
    their text forms.

    Raises
    ------
    UnsupportedRecordTypeError
        If `record_type` is not modelled.
    ParseError
        If the value cannot be parsed for the type.
    """
    try:
        match record_type.upper():
            case "A":
                return ARecordData(address=value)
            case "AAAA":
                return AAAARecordData(address=value)
            case "CNAME":
                return CNAMERecordData(target=value)
            case "MX":
                if priority is None:
                    return parse_mx(value, provider)
                return MXRecordData(priority=priority, exchange=value)
            case "TXT":
                return TXTRecordData(text=value)
            case "NS":
                return NSRecordData(nameserver=value)
            case "SRV":
                return parse_srv(value, provider)
            case "CAA":
                return parse_caa(value, provider)
    except ValidationError as e:
        raise ParseError(provider, f"Invalid {record_type} record '{value}': {e}") from e
    raise UnsupportedRecordTypeError(provider, record_type)


def record_data_to_value_priority(data: RecordData) -> tuple[str, int | None]:
    """
    Split `RecordData` into the value string and priority used by APIs.

    Only MX carries a separate priority; SRV and CAA are rendered in their
    full text forms.
    """
    if isinstance(data, MXRecordData):
        return data.exchange, data.priority
    if isinstance(data, (ARecordData, AAAARecordData)):
        return data.address, None
    if isinstance(data, CNAMERecordData):
        return data.target, None
    if isinstance(data, TXTRecordData):
        return data.text, None
    if isinstance(data, NSRecordData):
        return data.nameserver, None
    return data.display_value(), None


def parse_optional_timestamp(value: str | int | None) -> datetime | None:
    """Parse a provider timestamp, returning None when absent or unparseable."""
    if value is None or value == "":
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.debug("Ignoring unparseable timestamp: %s", value)
        return None


# Cache


class DomainCache:
    """
    Per-provider cache of zone lookups by ID.

    Entries expire after `ttl` seconds. A miss always falls back to the API;
    the cache only saves round trips inside `list_records`.
    """

    def __init__(self, ttl: float = DOMAIN_CACHE_TTL) -> None:
        self._ttl = ttl
        self._entries: dict[str, tuple[ProviderDomain, float]] = {}

    def get(self, domain_id: str) -> ProviderDomain | None:
        entry = self._entries.get(domain_id)
        if entry is None:
            return None
        domain, inserted_at = entry
        if time.monotonic() - inserted_at >= self._ttl:
            del self._entries[domain_id]
            return None
        return domain

    def insert(self, domain_id: str, domain: ProviderDomain) -> None:
        self._entries[domain_id] = (domain, time.monotonic())

    def clear(self) -> None:
        self._entries.clear()
