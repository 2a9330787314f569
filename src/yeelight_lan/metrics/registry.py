"""Prometheus metrics registry for bulb communication."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

CONNECTION_STATES: Final = ("idle", "connecting", "ready", "closing", "faulted", "reconnect_pending")

# Command channel
yeelight_command_sent_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_command_sent_total",
    "Total commands sent",
    ["device_id", "method", "outcome"],
)

yeelight_command_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "yeelight_command_latency_seconds",
    "Command round-trip latency in seconds",
    ["device_id"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

yeelight_command_timeout_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_command_timeout_total",
    "Total commands that timed out waiting for a result",
    ["device_id"],
)

yeelight_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_decode_errors_total",
    "Total inbound lines dropped as undecodable",
    ["device_id", "reason"],
)

yeelight_unmatched_result_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_unmatched_result_total",
    "Total results with no pending command",
    ["device_id"],
)

yeelight_report_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_report_total",
    "Total unsolicited props reports",
    ["device_id"],
)

# Connection lifecycle
yeelight_connection_state: Final = Gauge(  # type: ignore[assignment]
    "yeelight_connection_state",
    "Current session state",
    ["device_id", "state"],
)

yeelight_reconnect_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_reconnect_total",
    "Total reconnect attempts",
    ["device_id", "outcome"],
)

# Discovery
yeelight_discovery_round_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_discovery_round_total",
    "Total discovery rounds",
    ["outcome"],
)

yeelight_discovery_reply_total: Final = Counter(  # type: ignore[assignment]
    "yeelight_discovery_reply_total",
    "Total discovery replies received",
    ["outcome"],
)

# Registry
yeelight_registry_devices: Final = Gauge(  # type: ignore[assignment]
    "yeelight_registry_devices",
    "Devices currently known to the registry",
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_command_sent(device_id: str, method: str, outcome: str) -> None:
    """Record a command and how it ended (ok, rejected, timeout, connection_lost)."""
    yeelight_command_sent_total.labels(device_id=device_id, method=method, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_command_latency(device_id: str, latency_seconds: float) -> None:
    """Record command latency."""
    yeelight_command_latency_seconds.labels(device_id=device_id).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_command_timeout(device_id: str) -> None:
    """Record a command timeout."""
    yeelight_command_timeout_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_decode_error(device_id: str, reason: str) -> None:
    """Record a decode error."""
    yeelight_decode_errors_total.labels(device_id=device_id, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_unmatched_result(device_id: str) -> None:
    """Record a result whose id matched no pending command."""
    yeelight_unmatched_result_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_report(device_id: str) -> None:
    """Record an unsolicited props report."""
    yeelight_report_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_connection_state(device_id: str, state: str) -> None:
    """Record session state change."""
    # 1 for current state, 0 for all others
    for s in CONNECTION_STATES:
        value = 1 if s == state else 0
        yeelight_connection_state.labels(device_id=device_id, state=s).set(value)  # type: ignore[no-untyped-call]


def record_reconnect(device_id: str, outcome: str) -> None:
    """Record a reconnect attempt."""
    yeelight_reconnect_total.labels(device_id=device_id, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_discovery_round(outcome: str) -> None:
    """Record a discovery round."""
    yeelight_discovery_round_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_discovery_reply(outcome: str) -> None:
    """Record a discovery reply (valid or invalid)."""
    yeelight_discovery_reply_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_registry_size(size: int) -> None:
    """Record how many devices the registry holds."""
    yeelight_registry_devices.set(size)  # type: ignore[no-untyped-call]
