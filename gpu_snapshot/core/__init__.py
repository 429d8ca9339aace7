"""Core utilities for GPU Snapshot."""

from __future__ import annotations

from .config import APP_NAME, LAYOUT, LIMITS, OUTPUT, LayoutConfig, MetricLimits, OutputConfig

__all__ = [
    "APP_NAME",
    "LAYOUT",
    "LIMITS",
    "OUTPUT",
    "LayoutConfig",
    "MetricLimits",
    "OutputConfig",
]
