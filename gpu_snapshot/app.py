"""One-shot snapshot: collect every device once and dump it as JSON."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from gpu_snapshot.core import APP_NAME, OUTPUT, OutputConfig
from gpu_snapshot.data import (
    discover_devices,
    nvml_session,
    populate_static_info,
    refresh_dynamic_info,
    refresh_processes,
)
from gpu_snapshot.export import write_snapshot
from gpu_snapshot.models import Device

logger = logging.getLogger(__name__)


def collect_devices() -> list[Device]:
    """Run static population, dynamic refresh and process refresh, in that order.

    Must be called inside an active :func:`nvml_session`.
    """

    devices = discover_devices()
    populate_static_info(devices)
    refresh_dynamic_info(devices)
    refresh_processes(devices)
    return devices


def take_snapshot(stream: TextIO | None = None, output: OutputConfig = OUTPUT) -> list[Device]:
    with nvml_session() as available:
        devices = collect_devices() if available else []
        write_snapshot(devices, stream, output=output)
    return devices


def main() -> int:
    logging.basicConfig(
        level=logging.WARNING,
        stream=sys.stderr,
        format=f"%(asctime)s {APP_NAME} %(levelname)s %(name)s: %(message)s",
    )
    try:
        take_snapshot()
    except OSError as exc:
        logger.error("Could not write snapshot: %s", exc)
        return 1
    return 0
