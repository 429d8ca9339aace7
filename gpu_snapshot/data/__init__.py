"""Data provider package."""

from .gpu import (
    discover_devices,
    nvml_session,
    populate_static_info,
    refresh_dynamic_info,
    refresh_processes,
)

__all__ = [
    "discover_devices",
    "nvml_session",
    "populate_static_info",
    "refresh_dynamic_info",
    "refresh_processes",
]
