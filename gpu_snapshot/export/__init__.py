"""Serialisation of device snapshots."""

from .escape import escape_json_string
from .json_snapshot import (
    device_fields,
    iter_snapshot_chunks,
    process_fields,
    render_snapshot,
    write_snapshot,
)
from .metrics import clamp_fan_rpm, clamp_fan_speed, power_draw_watts, power_utilization

__all__ = [
    "clamp_fan_rpm",
    "clamp_fan_speed",
    "device_fields",
    "escape_json_string",
    "iter_snapshot_chunks",
    "power_draw_watts",
    "power_utilization",
    "process_fields",
    "render_snapshot",
    "write_snapshot",
]
