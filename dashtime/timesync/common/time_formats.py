"""
Conversions between timezone-aware UTC datetimes and the wire formats served
by the dashtime HTTP endpoints.

Two formats are supported:
- UTC ticks: an integer count of 100-nanosecond intervals since
  0001-01-01T00:00:00Z. Trivial to parse, preferred by the client.
- xs:dateTime: `yyyy-MM-ddTHH:mm:ss.fffZ`, millisecond precision (truncated),
  as referenced by DASH MPDs via urn:mpeg:dash:utc:http-xsdate:2014.

Python datetimes carry microsecond precision, so tick values are truncated to
whole microseconds when parsed.
"""

import datetime
import re

from dashtime.timesync.common.constants import kNanosecondsPerTick

kTicksEpoch = datetime.datetime(1, 1, 1, tzinfo=datetime.timezone.utc)
kUnixEpoch = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)

_kMicrosecond = datetime.timedelta(microseconds=1)
_kTicksPerMicrosecond = 1_000 // kNanosecondsPerTick

_kXsDateTimePattern = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d{3})Z$"
)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        raise ValueError("Naive datetimes are ambiguous; expected UTC-aware.")
    return value.astimezone(datetime.timezone.utc)


def to_utc_ticks(value: datetime.datetime) -> int:
    """Converts |value| to 100ns ticks since 0001-01-01T00:00:00Z."""
    microseconds = (_as_utc(value) - kTicksEpoch) // _kMicrosecond
    return microseconds * _kTicksPerMicrosecond


def from_utc_ticks(ticks: int) -> datetime.datetime:
    """
    Converts 100ns ticks since 0001-01-01T00:00:00Z to a UTC datetime.

    Raises:
        ValueError: If |ticks| is outside the range datetime can represent.
    """
    if ticks < 0:
        raise ValueError(f"Tick count must not be negative, got {ticks}.")
    try:
        return kTicksEpoch + datetime.timedelta(
            microseconds=ticks // _kTicksPerMicrosecond
        )
    except OverflowError as e:
        raise ValueError(f"Tick count {ticks} is out of range.") from e


def to_xs_datetime(value: datetime.datetime) -> str:
    """Formats |value| as `yyyy-MM-ddTHH:mm:ss.fffZ` in UTC."""
    utc = _as_utc(value)
    return (
        f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"
        f"T{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}"
        f".{utc.microsecond // 1000:03d}Z"
    )


def to_precise_xs_datetime(value: datetime.datetime) -> str:
    """Formats |value| as `yyyy-MM-ddTHH:mm:ss.fffffZ` for human display."""
    utc = _as_utc(value)
    return (
        f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"
        f"T{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}"
        f".{utc.microsecond // 10:05d}Z"
    )


def parse_xs_datetime(text: str) -> datetime.datetime:
    """
    Parses a `yyyy-MM-ddTHH:mm:ss.fffZ` string into a UTC datetime.

    Raises:
        ValueError: If |text| does not match the format or is not a valid date.
    """
    match = _kXsDateTimePattern.match(text.strip())
    if match is None:
        raise ValueError(f"'{text}' is not a yyyy-MM-ddTHH:mm:ss.fffZ value.")

    year, month, day, hour, minute, second, millis = (
        int(part) for part in match.groups()
    )
    return datetime.datetime(
        year,
        month,
        day,
        hour,
        minute,
        second,
        millis * 1000,
        tzinfo=datetime.timezone.utc,
    )


def to_unix_seconds(value: datetime.datetime) -> float:
    """Converts |value| to floating point seconds since the Unix epoch."""
    return (_as_utc(value) - kUnixEpoch) / datetime.timedelta(seconds=1)


def to_unix_nanoseconds(value: datetime.datetime) -> int:
    """Converts |value| to integer nanoseconds since the Unix epoch."""
    return ((_as_utc(value) - kUnixEpoch) // _kMicrosecond) * 1_000


def from_unix_nanoseconds(nanoseconds: int) -> datetime.datetime:
    """Converts integer nanoseconds since the Unix epoch to a UTC datetime."""
    return kUnixEpoch + datetime.timedelta(microseconds=nanoseconds // 1_000)
