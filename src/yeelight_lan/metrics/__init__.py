"""Metrics module."""

from .registry import (
    record_command_latency,
    record_command_sent,
    record_command_timeout,
    record_connection_state,
    record_decode_error,
    record_discovery_reply,
    record_discovery_round,
    record_reconnect,
    record_registry_size,
    record_report,
    record_unmatched_result,
    start_metrics_server,
)

__all__ = [
    "record_command_latency",
    "record_command_sent",
    "record_command_timeout",
    "record_connection_state",
    "record_decode_error",
    "record_discovery_reply",
    "record_discovery_round",
    "record_reconnect",
    "record_registry_size",
    "record_report",
    "record_unmatched_result",
    "start_metrics_server",
]
