"""Tests for ClientConfig and ServerConfig."""

import dataclasses

import pytest

from dashtime.config import ClientConfig, ServerConfig


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig(base_url="http://host/")

        assert config.endpoint == "utcticks"
        assert config.refresh_interval_seconds == 60.0
        assert config.sample_timeout_seconds == 10.0
        assert config.selection_policy == "minimum_latency"
        assert config.sample_count == 3
        assert config.batch_count == 3
        assert config.warm_up

    def test_frozen(self) -> None:
        config = ClientConfig(base_url="http://host/")

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.base_url = "http://other/"  # type: ignore[misc]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_url": ""},
            {"endpoint": "unixtime"},
            {"selection_policy": "median"},
            {"refresh_interval_seconds": 0},
            {"sample_timeout_seconds": -1},
            {"sample_timeout_seconds": 60.0},
            {"sample_count": 0},
            {"batch_count": 0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        values = {"base_url": "http://host/"}
        values.update(kwargs)

        with pytest.raises(ValueError):
            ClientConfig(**values)

    def test_short_refresh_interval_accepted(self) -> None:
        config = ClientConfig(
            base_url="http://host/",
            refresh_interval_seconds=1.0,
            sample_timeout_seconds=0.5,
        )

        assert config.refresh_interval_seconds == 1.0


class TestServerConfig:
    def test_defaults(self) -> None:
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.use_ntp
        assert config.ntp_server == "time.windows.com"
        assert config.ntp_port == 123
        assert config.ntp_refresh_interval_seconds == 60.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"port": 0},
            {"port": 65536},
            {"ntp_port": -1},
            {"ntp_server": ""},
            {"ntp_refresh_interval_seconds": 0},
            {"ntp_timeout_seconds": 0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            ServerConfig(**kwargs)

    def test_ntp_server_optional_without_ntp(self) -> None:
        config = ServerConfig(use_ntp=False, ntp_server="")

        assert not config.use_ntp
