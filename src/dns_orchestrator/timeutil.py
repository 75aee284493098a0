"""
Timestamp helpers.

Timestamps are written as RFC 3339 in UTC. On read, RFC 3339 strings and
integer Unix timestamps are both accepted; integers above 10^11 are taken
as milliseconds, everything else as seconds.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated

from pydantic import BeforeValidator, PlainSerializer

if TYPE_CHECKING:
    from typing import Any, Final


MILLIS_THRESHOLD: Final[int] = 100_000_000_000


def from_unix(value: int) -> datetime:
    """
    Convert a Unix timestamp in seconds or milliseconds to a UTC datetime.

    Parameters
    ----------
    value : int
        Seconds or milliseconds since the epoch.

    Returns
    -------
    datetime
        Timezone-aware UTC datetime.

    Raises
    ------
    ValueError
        If the timestamp is out of range.
    """
    try:
        if value > MILLIS_THRESHOLD:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError) as e:
        msg = f"Invalid Unix timestamp: {value}"
        raise ValueError(msg) from e


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an RFC 3339 string, an integer Unix timestamp or a datetime.

    Naive datetimes are assumed to be UTC.

    Raises
    ------
    ValueError
        If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        msg = "Invalid timestamp: boolean"
        raise ValueError(msg)
    elif isinstance(value, int):
        return from_unix(value)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            msg = f"Invalid RFC3339 timestamp: {value}"
            raise ValueError(msg) from e
    else:
        msg = f"Invalid timestamp type: {type(value).__name__}"
        raise ValueError(msg)  # noqa: TRY004

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC 3339 in UTC (``+00:00`` offset)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# Pydantic field type for serialized timestamps
UtcDatetime = Annotated[
    datetime,
    BeforeValidator(parse_timestamp),
    PlainSerializer(format_timestamp, return_type=str),
]
