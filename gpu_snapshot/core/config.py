"""Global configuration values for the snapshot dump."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LayoutConfig:
    """Indentation used by the JSON emitter."""

    device_indent: str = "  "
    device_key_indent: str = "   "
    process_indent: str = "     "
    process_key_indent: str = "       "


@dataclass(frozen=True)
class MetricLimits:
    """Upper bounds applied to raw fan readings."""

    fan_speed_percent_max: int = 100
    fan_rpm_max: int = 9999


@dataclass(frozen=True)
class OutputConfig:
    """How strings are escaped and how the document reaches the sink."""

    escape_control_characters: bool = False  # keep raw control bytes in cmd lines
    buffer_output: bool = True  # render the whole document before writing


APP_NAME = "GPU Snapshot"
LAYOUT = LayoutConfig()
LIMITS = MetricLimits()
OUTPUT = OutputConfig()
