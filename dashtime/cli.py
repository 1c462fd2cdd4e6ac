"""Command line entry points: the time server and a development watcher."""

import asyncio
import datetime
import logging
from typing import Optional

import click
import uvicorn

from dashtime.api.app import create_app
from dashtime.config import ClientConfig, ServerConfig
from dashtime.timesync.client.synchronized_time_source import (
    SynchronizedTimeSource,
)
from dashtime.timesync.common.constants import kDefaultNtpServer
from dashtime.timesync.common.errors import TimeSyncError
from dashtime.timesync.common.time_formats import to_precise_xs_datetime

logger = logging.getLogger(__name__)

_kLogLevels = ["critical", "error", "warning", "info", "debug"]

log_level_option = click.option(
    "--log-level",
    default="info",
    type=click.Choice(_kLogLevels, case_sensitive=False),
    help="Logging verbosity.",
)


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
def cli() -> None:
    """dashtime: HTTP time server and client for DASH clock sync."""


@cli.command()
@click.option("--host", default="0.0.0.0", help="Host address to bind to.")
@click.option("--port", default=8080, type=int, help="Port to bind to.")
@click.option(
    "--ntp-server",
    default=kDefaultNtpServer,
    help="NTP server the local clock is corrected against.",
)
@click.option(
    "--no-ntp", is_flag=True, help="Serve the uncorrected local clock."
)
@log_level_option
def serve(
    host: str, port: int, ntp_server: str, no_ntp: bool, log_level: str
) -> None:
    """Starts the time server."""
    _configure_logging(log_level)
    try:
        config = ServerConfig(
            host=host, port=port, use_ntp=not no_ntp, ntp_server=ntp_server
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    app = create_app(config)
    logger.info("Serving time on %s:%d.", config.host, config.port)
    uvicorn.run(
        app, host=config.host, port=config.port, log_level=log_level.lower()
    )


@cli.command()
@click.argument("base_url")
@click.option(
    "--interval",
    default=1.0,
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds between printed readings.",
)
@click.option(
    "--count",
    default=None,
    type=click.IntRange(min=1),
    help="Number of readings to print. Runs until interrupted if omitted.",
)
@click.option(
    "--policy",
    default="minimum_latency",
    type=click.Choice(["minimum_latency", "averaging"]),
    help="How concurrent samples are reduced.",
)
@click.option(
    "--endpoint",
    default="utcticks",
    type=click.Choice(["utcticks", "xsdatetime"]),
    help="Time server endpoint to sample.",
)
@log_level_option
def watch(  # pylint: disable=too-many-arguments
    base_url: str,
    interval: float,
    count: Optional[int],
    policy: str,
    endpoint: str,
    log_level: str,
) -> None:
    """
    Synchronizes against the time server at BASE_URL and periodically prints
    the local time, the synchronized true time and the difference between the
    two.
    """
    _configure_logging(log_level)
    try:
        config = ClientConfig(
            base_url=base_url,
            endpoint=endpoint,  # type: ignore[arg-type]
            selection_policy=policy,  # type: ignore[arg-type]
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    try:
        asyncio.run(_watch(config, interval, count))
    except TimeSyncError as e:
        raise click.ClickException(f"Time synchronization failed: {e}") from e


async def _watch(
    config: ClientConfig, interval: float, count: Optional[int]
) -> None:
    async with await SynchronizedTimeSource.create(config) as source:
        printed = 0
        while count is None or printed < count:
            if printed > 0:
                await asyncio.sleep(interval)

            true_time = source.now()
            local_time = datetime.datetime.now(datetime.timezone.utc)
            delta_ms = (true_time - local_time) / datetime.timedelta(
                milliseconds=1
            )

            click.echo(f"Local: {to_precise_xs_datetime(local_time)}")
            click.echo(f" True: {to_precise_xs_datetime(true_time)}")
            click.echo(f"Delta: {delta_ms:,.0f} ms")
            click.echo()
            printed += 1
