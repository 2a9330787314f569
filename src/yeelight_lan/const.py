import logging
import os
from pathlib import Path

from yeelight_lan import __version__

__all__ = [
    "DEFAULT_COMMAND_PORT",
    "DISCOVERY_MULTICAST_ADDRESS",
    "DISCOVERY_PORT",
    "DISCOVERY_SEARCH_TARGET",
    "LOG_FORMATTER",
    "MAX_BRIGHTNESS",
    "MAX_COLOR_TEMPERATURE",
    "MAX_RGB",
    "MIN_BRIGHTNESS",
    "MIN_COLOR_TEMPERATURE",
    "MIN_TRANSITION_MS",
    "YEELIGHT_API_HOST",
    "YEELIGHT_API_PORT",
    "YEELIGHT_COMMAND_TIMEOUT",
    "YEELIGHT_CONNECT_TIMEOUT",
    "YEELIGHT_DEBUG",
    "YEELIGHT_DISCOVERY_INTERVAL",
    "YEELIGHT_DISCOVERY_WINDOW",
    "YEELIGHT_LOG_FORMAT",
    "YEELIGHT_LOG_HUMAN_OUTPUT",
    "YEELIGHT_LOG_JSON_FILE",
    "YEELIGHT_METRICS_PORT",
    "YEELIGHT_PERF_THRESHOLD_MS",
    "YEELIGHT_PERF_TRACKING",
    "YEELIGHT_RECONNECT_ATTEMPTS",
    "YEELIGHT_RECONNECT_DELAY",
    "YEELIGHT_STATE_FILE",
    "YEELIGHT_VERSION",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
YEELIGHT_VERSION: str = __version__

LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)

# Wire protocol constants
DEFAULT_COMMAND_PORT = 55443
DISCOVERY_MULTICAST_ADDRESS = "239.255.255.250"
DISCOVERY_PORT = 1982
DISCOVERY_SEARCH_TARGET = "wifi_bulb"

MIN_BRIGHTNESS = 1
MAX_BRIGHTNESS = 100
MIN_COLOR_TEMPERATURE = 1700
MAX_COLOR_TEMPERATURE = 6500
MAX_RGB = 0xFFFFFF
# bulbs reject smooth transitions shorter than this
MIN_TRANSITION_MS = 30


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


YEELIGHT_DEBUG = os.environ.get("YEELIGHT_DEBUG", "0").casefold() in YES_ANSWER

YEELIGHT_DISCOVERY_INTERVAL: float = env_float("YEELIGHT_DISCOVERY_INTERVAL", 30.0)
YEELIGHT_DISCOVERY_WINDOW: float = env_float("YEELIGHT_DISCOVERY_WINDOW", 3.0)
YEELIGHT_COMMAND_TIMEOUT: float = env_float("YEELIGHT_COMMAND_TIMEOUT", 5.0)
YEELIGHT_CONNECT_TIMEOUT: float = env_float("YEELIGHT_CONNECT_TIMEOUT", 3.0)
YEELIGHT_RECONNECT_DELAY: float = env_float("YEELIGHT_RECONNECT_DELAY", 5.0)
YEELIGHT_RECONNECT_ATTEMPTS: int = env_int("YEELIGHT_RECONNECT_ATTEMPTS", 3)

YEELIGHT_STATE_FILE: str = os.environ.get(
    "YEELIGHT_STATE_FILE",
    str(Path("~/.config/yeelight-lan/devices.yaml").expanduser()),
)

# Logging configuration
YEELIGHT_LOG_FORMAT: str = os.environ.get("YEELIGHT_LOG_FORMAT", "human").casefold()
_json_file = os.environ.get("YEELIGHT_LOG_JSON_FILE")
YEELIGHT_LOG_JSON_FILE: str | None = _json_file if _json_file else None
YEELIGHT_LOG_HUMAN_OUTPUT: str = os.environ.get("YEELIGHT_LOG_HUMAN_OUTPUT", "stdout")

# Performance instrumentation
YEELIGHT_PERF_TRACKING: bool = os.environ.get("YEELIGHT_PERF_TRACKING", "true").casefold() in YES_ANSWER
YEELIGHT_PERF_THRESHOLD_MS: int = env_int("YEELIGHT_PERF_THRESHOLD_MS", 250)

# Optional outer surfaces, 0 disables
YEELIGHT_METRICS_PORT: int = env_int("YEELIGHT_METRICS_PORT", 0)
YEELIGHT_API_HOST: str = os.environ.get("YEELIGHT_API_HOST", "0.0.0.0")
YEELIGHT_API_PORT: int = env_int("YEELIGHT_API_PORT", 0)
