"""Configuration for the dashtime client and server.

`ClientConfig` describes how a `SynchronizedTimeSource` reaches and samples a
time server. `ServerConfig` describes where the HTTP server listens and how it
corrects its own clock against an NTP authority.
"""

from dataclasses import dataclass
from typing import Literal, get_args

from dashtime.timesync.common.constants import (
    kDefaultNtpServer,
    kNtpPort,
    kRefreshIntervalSeconds,
    kSampleTimeoutSeconds,
)

SelectionPolicy = Literal["minimum_latency", "averaging"]
TimeEndpointName = Literal["utcticks", "xsdatetime"]


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for a client-side SynchronizedTimeSource.

    Attributes:
        base_url: Root URL of the time server, without the endpoint path. Any
            query string (e.g. `?offsetSeconds=5`) is preserved on requests.
        endpoint: Which endpoint to sample. `utcticks` is simpler to parse.
        refresh_interval_seconds: Time between background refreshes.
        sample_timeout_seconds: Upper bound for one sample acquisition. Must
            be shorter than the refresh interval.
        selection_policy: How concurrent samples are reduced to one anchor.
        sample_count: Concurrent samples per round (per batch when averaging).
        batch_count: Number of sequential batches for the averaging policy.
        warm_up: Whether to make one discarded exchange before the first
            synchronization, so connection setup does not inflate its RTT.
    """

    base_url: str
    endpoint: TimeEndpointName = "utcticks"
    refresh_interval_seconds: float = kRefreshIntervalSeconds
    sample_timeout_seconds: float = kSampleTimeoutSeconds
    selection_policy: SelectionPolicy = "minimum_latency"
    sample_count: int = 3
    batch_count: int = 3
    warm_up: bool = True

    def __post_init__(self) -> None:
        """Validates the configuration.

        Raises:
            ValueError: If any value is out of range.
        """
        if not self.base_url:
            raise ValueError("base_url must not be empty.")
        if self.endpoint not in get_args(TimeEndpointName):
            raise ValueError(f"Unknown endpoint '{self.endpoint}'.")
        if self.selection_policy not in get_args(SelectionPolicy):
            raise ValueError(
                f"Unknown selection policy '{self.selection_policy}'."
            )
        if self.refresh_interval_seconds <= 0:
            raise ValueError("refresh_interval_seconds must be positive.")
        if self.sample_timeout_seconds <= 0:
            raise ValueError("sample_timeout_seconds must be positive.")
        if self.sample_timeout_seconds >= self.refresh_interval_seconds:
            raise ValueError(
                "sample_timeout_seconds must be shorter than "
                "refresh_interval_seconds."
            )
        if self.sample_count < 1:
            raise ValueError("sample_count must be at least 1.")
        if self.batch_count < 1:
            raise ValueError("batch_count must be at least 1.")


@dataclass(frozen=True)
class ServerConfig:
    """Configuration for the dashtime HTTP server.

    Attributes:
        host: Address to bind the HTTP server to.
        port: Port to bind the HTTP server to.
        use_ntp: Whether to correct the local clock against `ntp_server`. When
            False the local clock is served uncorrected.
        ntp_server: Host name of the upstream NTP authority.
        ntp_port: Port of the upstream NTP authority.
        ntp_refresh_interval_seconds: Time between NTP synchronizations.
        ntp_timeout_seconds: Timeout for one NTP query.
    """

    host: str = "0.0.0.0"
    port: int = 8080
    use_ntp: bool = True
    ntp_server: str = kDefaultNtpServer
    ntp_port: int = kNtpPort
    ntp_refresh_interval_seconds: float = kRefreshIntervalSeconds
    ntp_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        """Validates the configuration.

        Raises:
            ValueError: If any value is out of range.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port {self.port}.")
        if not 0 < self.ntp_port < 65536:
            raise ValueError(f"Invalid NTP port {self.ntp_port}.")
        if self.use_ntp and not self.ntp_server:
            raise ValueError("ntp_server must be set when use_ntp is True.")
        if self.ntp_refresh_interval_seconds <= 0:
            raise ValueError("ntp_refresh_interval_seconds must be positive.")
        if self.ntp_timeout_seconds <= 0:
            raise ValueError("ntp_timeout_seconds must be positive.")
