"""Models exported by GPU Snapshot."""

from .device_snapshot import Device, DynamicInfo, Process, ProcessType, StaticInfo

__all__ = [
    "Device",
    "DynamicInfo",
    "Process",
    "ProcessType",
    "StaticInfo",
]
