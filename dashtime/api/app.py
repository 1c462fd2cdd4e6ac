"""Builds the dashtime FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_client.registry import CollectorRegistry

from dashtime.api.metrics import TrueTimeMetrics
from dashtime.api.time_router import create_time_router
from dashtime.config import ServerConfig
from dashtime.timesync.common.local_time_source import LocalTimeSource
from dashtime.timesync.common.time_source import TimeSource
from dashtime.timesync.server.ntp_time_source import NtpTimeSource

logger = logging.getLogger(__name__)


def get_time_source(request: Request) -> TimeSource:
    """FastAPI dependency returning the TimeSource the app serves."""
    time_source: TimeSource = request.app.state.time_source
    return time_source


def create_app(
    config: ServerConfig, time_source: Optional[TimeSource] = None
) -> FastAPI:
    """
    Creates the time server application.

    Args:
        config: Server configuration.
        time_source: TimeSource to serve. If None, an NtpTimeSource (or a
            LocalTimeSource when NTP is disabled) is created, and started and
            stopped with the application.

    Returns:
        The FastAPI application.
    """
    ntp_time_source: Optional[NtpTimeSource] = None
    if time_source is None:
        if config.use_ntp:
            ntp_time_source = NtpTimeSource.from_config(config)
            time_source = ntp_time_source
        else:
            logger.info("NTP disabled; serving the uncorrected local clock.")
            time_source = LocalTimeSource()

    registry = CollectorRegistry()
    metrics = TrueTimeMetrics(time_source)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Time server startup initiated.")
        if ntp_time_source is not None:
            ntp_time_source.start_async()
        metrics.register(registry)

        yield

        logger.info("Time server shutdown initiated.")
        metrics.close()
        if ntp_time_source is not None:
            await ntp_time_source.stop()

    app = FastAPI(lifespan=lifespan, title="dashtime", version="1.0.0")
    app.state.time_source = time_source

    # Players generally need CORS, so everything is allowed.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_time_router(get_time_source))

    @app.get("/metrics", include_in_schema=False)
    async def get_metrics() -> Response:
        return Response(
            generate_latest(registry), media_type=CONTENT_TYPE_LATEST
        )

    return app
