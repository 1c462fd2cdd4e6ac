"""Tests for the dashtime command line."""

import datetime

import pytest
from click.testing import CliRunner

from dashtime.cli import cli
from dashtime.timesync.common.errors import (
    SynchronizationFailed,
    TransportError,
)
from dashtime.timesync.common.local_time_source import LocalTimeSource
from dashtime.timesync.server.ntp_time_source import NtpTimeSource

UTC = datetime.timezone.utc


class FakeSynchronizedSource:
    """Stands in for a SynchronizedTimeSource that is ahead of local time."""

    def __init__(self, offset: datetime.timedelta) -> None:
        self.offset = offset
        self.stopped = False

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(UTC) + self.offset

    async def __aenter__(self) -> "FakeSynchronizedSource":
        return self

    async def __aexit__(self, *args) -> None:
        self.stopped = True


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestServe:
    def test_runs_app_under_uvicorn(self, runner: CliRunner, mocker) -> None:
        run = mocker.patch("dashtime.cli.uvicorn.run")

        result = runner.invoke(
            cli, ["serve", "--host", "127.0.0.1", "--port", "9000"]
        )

        assert result.exit_code == 0, result.output
        run.assert_called_once()
        app = run.call_args.args[0]
        assert isinstance(app.state.time_source, NtpTimeSource)
        assert run.call_args.kwargs == {
            "host": "127.0.0.1",
            "port": 9000,
            "log_level": "info",
        }

    def test_no_ntp_serves_local_clock(
        self, runner: CliRunner, mocker
    ) -> None:
        run = mocker.patch("dashtime.cli.uvicorn.run")

        result = runner.invoke(
            cli, ["serve", "--no-ntp", "--log-level", "DEBUG"]
        )

        assert result.exit_code == 0, result.output
        app = run.call_args.args[0]
        assert isinstance(app.state.time_source, LocalTimeSource)
        assert run.call_args.kwargs["log_level"] == "debug"

    def test_invalid_port_rejected(self, runner: CliRunner, mocker) -> None:
        run = mocker.patch("dashtime.cli.uvicorn.run")

        result = runner.invoke(cli, ["serve", "--port", "70000"])

        assert result.exit_code == 2
        assert "Invalid port" in result.output
        run.assert_not_called()


class TestWatch:
    def test_prints_local_true_and_delta(
        self, runner: CliRunner, mocker
    ) -> None:
        source = FakeSynchronizedSource(datetime.timedelta(seconds=2))
        create = mocker.patch(
            "dashtime.cli.SynchronizedTimeSource.create",
            mocker.AsyncMock(return_value=source),
        )

        result = runner.invoke(
            cli,
            [
                "watch",
                "http://timeserver.test/",
                "--count",
                "2",
                "--interval",
                "0.01",
                "--policy",
                "averaging",
            ],
        )

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert sum(line.startswith("Local: ") for line in lines) == 2
        assert sum(line.startswith(" True: ") for line in lines) == 2
        assert lines.count("Delta: 2,000 ms") == 2
        assert source.stopped

        config = create.call_args.args[0]
        assert config.base_url == "http://timeserver.test/"
        assert config.selection_policy == "averaging"
        assert config.endpoint == "utcticks"

    def test_precise_timestamp_format(
        self, runner: CliRunner, mocker
    ) -> None:
        mocker.patch(
            "dashtime.cli.SynchronizedTimeSource.create",
            mocker.AsyncMock(
                return_value=FakeSynchronizedSource(datetime.timedelta())
            ),
        )

        result = runner.invoke(
            cli, ["watch", "http://timeserver.test/", "--count", "1"]
        )

        assert result.exit_code == 0, result.output
        true_line = result.output.splitlines()[1]
        # " True: yyyy-MM-ddTHH:mm:ss.fffffZ"
        assert len(true_line) == len(" True: ") + 26
        assert true_line.endswith("Z")
        assert true_line[7 + 19] == "."

    def test_synchronization_failure_reported(
        self, runner: CliRunner, mocker
    ) -> None:
        mocker.patch(
            "dashtime.cli.SynchronizedTimeSource.create",
            mocker.AsyncMock(
                side_effect=SynchronizationFailed(
                    "All 3 time samples failed.",
                    [TransportError("connection refused")],
                )
            ),
        )

        result = runner.invoke(
            cli, ["watch", "http://timeserver.test/", "--count", "1"]
        )

        assert result.exit_code == 1
        assert "Time synchronization failed" in result.output
        assert "connection refused" in result.output

    def test_empty_base_url_rejected(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["watch", ""])

        assert result.exit_code == 2

    def test_non_positive_interval_rejected(self, runner: CliRunner) -> None:
        result = runner.invoke(
            cli, ["watch", "http://timeserver.test/", "--interval", "0"]
        )

        assert result.exit_code == 2
