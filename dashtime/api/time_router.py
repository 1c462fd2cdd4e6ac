"""
FastAPI router for the DASH time endpoints.

`/xsdatetime` serves the format referenced by
urn:mpeg:dash:utc:http-xsdate:2014 and `/utcticks` serves integer 100ns
ticks, which is what dashtime clients prefer. Both accept an optional
`offsetSeconds` query parameter, so a stream can be tested
against a "wrong" but still synchronized clock.
"""

import datetime
import logging
from collections.abc import Callable
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from dashtime.timesync.common.time_formats import to_utc_ticks, to_xs_datetime
from dashtime.timesync.common.time_source import TimeSource

logger = logging.getLogger(__name__)

_kRootHelp = (
    "This is a time server. "
    "GET /xsdatetime for an xs:dateTime timestamp or "
    "GET /utcticks for 100ns ticks since 0001-01-01T00:00:00Z. "
    "Both accept an optional offsetSeconds query parameter."
)


class _OffsetOutOfRange(Exception):
    pass


def _apply_offset(
    now: datetime.datetime, offset_seconds: Optional[float]
) -> datetime.datetime:
    if offset_seconds is None:
        return now
    try:
        return now + datetime.timedelta(seconds=offset_seconds)
    except (OverflowError, ValueError) as e:
        logger.debug("Rejecting out of range offset %s: %s", offset_seconds, e)
        raise _OffsetOutOfRange(
            f"offsetSeconds={offset_seconds} is out of range."
        ) from e


def create_time_router(
    get_time_source: Callable[[], TimeSource]
) -> APIRouter:
    """
    Creates the router serving the time endpoints.

    Args:
        get_time_source: FastAPI dependency returning the TimeSource to serve.

    Returns:
        Configured FastAPI APIRouter.
    """
    router = APIRouter(tags=["Time"])

    offset_query = Query(
        None,
        alias="offsetSeconds",
        description="Seconds to add to the served time. May be negative.",
    )

    @router.get("/xsdatetime", response_class=PlainTextResponse)
    async def get_xs_datetime(
        offset_seconds: Optional[float] = offset_query,
        time_source: TimeSource = Depends(get_time_source),
    ) -> PlainTextResponse:
        """Current time as `yyyy-MM-ddTHH:mm:ss.fffZ`."""
        try:
            now = _apply_offset(time_source.get_current_time(), offset_seconds)
        except _OffsetOutOfRange as e:
            return PlainTextResponse(str(e), status_code=400)
        return PlainTextResponse(to_xs_datetime(now))

    @router.get("/utcticks", response_class=PlainTextResponse)
    async def get_utc_ticks(
        offset_seconds: Optional[float] = offset_query,
        time_source: TimeSource = Depends(get_time_source),
    ) -> PlainTextResponse:
        """Current time as 100ns ticks since 0001-01-01T00:00:00Z."""
        try:
            now = _apply_offset(time_source.get_current_time(), offset_seconds)
        except _OffsetOutOfRange as e:
            return PlainTextResponse(str(e), status_code=400)
        return PlainTextResponse(str(to_utc_ticks(now)))

    @router.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def get_root() -> PlainTextResponse:
        return PlainTextResponse(_kRootHelp, status_code=400)

    return router
