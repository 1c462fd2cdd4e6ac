"""Tests for the dashtime wire format conversions."""

import datetime

import pytest

from dashtime.timesync.common.time_formats import (
    from_unix_nanoseconds,
    from_utc_ticks,
    parse_xs_datetime,
    to_precise_xs_datetime,
    to_unix_nanoseconds,
    to_unix_seconds,
    to_utc_ticks,
    to_xs_datetime,
)

UTC = datetime.timezone.utc
DEFAULT_TIME = datetime.datetime(1999, 6, 5, 4, 3, 2, tzinfo=UTC)


def test_unix_epoch_ticks() -> None:
    epoch = datetime.datetime(1970, 1, 1, tzinfo=UTC)
    assert to_utc_ticks(epoch) == 621_355_968_000_000_000
    assert from_utc_ticks(621_355_968_000_000_000) == epoch


def test_known_time_ticks() -> None:
    assert to_utc_ticks(DEFAULT_TIME) == 630_641_521_820_000_000


def test_ticks_truncate_to_microseconds() -> None:
    parsed = from_utc_ticks(621_355_968_000_000_019)
    assert parsed == datetime.datetime(1970, 1, 1, 0, 0, 0, 1, tzinfo=UTC)


def test_ticks_respect_timezone() -> None:
    plus_two = datetime.timezone(datetime.timedelta(hours=2))
    local = datetime.datetime(1999, 6, 5, 6, 3, 2, tzinfo=plus_two)
    assert to_utc_ticks(local) == to_utc_ticks(DEFAULT_TIME)


def test_naive_datetime_rejected() -> None:
    with pytest.raises(ValueError):
        to_utc_ticks(datetime.datetime(1999, 6, 5))


@pytest.mark.parametrize("ticks", [-1, 10**30])
def test_out_of_range_ticks_rejected(ticks: int) -> None:
    with pytest.raises(ValueError):
        from_utc_ticks(ticks)


def test_xs_datetime_format() -> None:
    value = DEFAULT_TIME + datetime.timedelta(microseconds=123_999)
    assert to_xs_datetime(value) == "1999-06-05T04:03:02.123Z"


def test_xs_datetime_pads_small_years() -> None:
    value = datetime.datetime(9, 1, 2, 3, 4, 5, tzinfo=UTC)
    assert to_xs_datetime(value) == "0009-01-02T03:04:05.000Z"


def test_precise_xs_datetime_format() -> None:
    value = DEFAULT_TIME + datetime.timedelta(microseconds=123_456)
    assert to_precise_xs_datetime(value) == "1999-06-05T04:03:02.12345Z"


def test_parse_xs_datetime() -> None:
    parsed = parse_xs_datetime("1999-06-05T04:03:02.123Z")
    assert parsed == DEFAULT_TIME + datetime.timedelta(milliseconds=123)
    assert parsed.tzinfo is UTC


@pytest.mark.parametrize(
    "text",
    [
        "",
        "1999-06-05 04:03:02.123Z",
        "1999-06-05T04:03:02Z",
        "1999-06-05T04:03:02.123",
        "1999-13-05T04:03:02.123Z",
        "not a time",
    ],
)
def test_parse_xs_datetime_rejects_garbage(text: str) -> None:
    with pytest.raises(ValueError):
        parse_xs_datetime(text)


def test_unix_seconds_keeps_sub_millisecond_precision() -> None:
    value = datetime.datetime(1970, 1, 1, 0, 0, 1, 250, tzinfo=UTC)
    assert to_unix_seconds(value) == pytest.approx(1.000250, abs=1e-9)


def test_unix_nanoseconds() -> None:
    value = datetime.datetime(1970, 1, 1, 0, 0, 2, 5, tzinfo=UTC)
    assert to_unix_nanoseconds(value) == 2_000_005_000
    assert from_unix_nanoseconds(2_000_005_999) == value
