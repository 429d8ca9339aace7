"""GPU Snapshot: one-shot JSON dump of GPU devices and their processes."""

from __future__ import annotations

__all__ = [
    "main",
    "render_snapshot",
    "take_snapshot",
    "write_snapshot",
]

from .app import main, take_snapshot  # noqa: E402
from .export import render_snapshot, write_snapshot  # noqa: E402
