"""JSON dump of a device snapshot for one-shot machine consumption.

Each object is assembled in two phases: the ordered ``(key, value)`` pairs
that should be emitted are collected first, with values already rendered as
JSON tokens, and only then joined with separators. Unpopulated fields never
reach the pair list, so no key is ever written as ``null`` or ``0`` and no
trailing comma can appear.
"""

from __future__ import annotations

import logging
import sys
from typing import Callable, Iterator, Sequence, TextIO

from gpu_snapshot.core import LAYOUT, LIMITS, OUTPUT, LayoutConfig, MetricLimits, OutputConfig
from gpu_snapshot.models import Device, Process, ProcessType

from .escape import escape_json_string
from .metrics import clamp_fan_rpm, clamp_fan_speed, power_draw_watts, power_utilization

Pair = tuple[str, str]

logger = logging.getLogger(__name__)


def _number(value: int | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"telemetry values must be integers, got {value!r}")
    if value < 0:
        raise ValueError(f"telemetry values are unsigned, got {value}")
    return str(value)


def _string(value: str | None, output: OutputConfig) -> str | None:
    if value is None:
        return None
    body = escape_json_string(value, escape_control=output.escape_control_characters)
    return f'"{body}"'


def _present(pairs: list[tuple[str, str | None]]) -> list[Pair]:
    return [(key, value) for key, value in pairs if value is not None]


def device_fields(
    device: Device,
    limits: MetricLimits = LIMITS,
    output: OutputConfig = OUTPUT,
) -> list[Pair]:
    """Ordered telemetry pairs of a device, without the process array."""

    info = device.dynamic_info
    fan_speed = None if info.fan_speed is None else clamp_fan_speed(info.fan_speed, limits)
    fan_rpm = None if info.fan_rpm is None else clamp_fan_rpm(info.fan_rpm, limits)
    power_draw = None if info.power_draw is None else power_draw_watts(info.power_draw)
    return _present([
        ("device_name", _string(device.static_info.device_name, output)),
        ("pdev", _string(device.pdev or None, output)),
        ("gpu_clock", _number(info.gpu_clock_speed)),
        ("mem_clock", _number(info.mem_clock_speed)),
        ("temp", _number(info.gpu_temp)),
        ("fan_speed_percentage", _number(fan_speed)),
        ("fan_speed", _number(fan_rpm)),
        ("mem_used", _number(info.used_memory)),
        ("mem_free", _number(info.free_memory)),
        ("pcie_ingress_rate", _number(info.pcie_rx)),
        ("pcie_egress_rate", _number(info.pcie_tx)),
        ("encoder_util", _number(info.encoder_rate)),
        ("decoder_util", _number(info.decoder_rate)),
        ("power_draw", _number(power_draw)),
        ("power_util", _number(power_utilization(info.power_draw, info.power_draw_max))),
        ("gpu_util", _number(info.gpu_util_rate)),
        ("mem_util", _number(info.mem_util_rate)),
    ])


def process_fields(process: Process, output: OutputConfig = OUTPUT) -> list[Pair]:
    """Ordered pairs of a process; ``process_type`` and ``pid`` are always last."""

    pairs = _present([
        ("cmd", _string(process.cmdline, output)),
        ("username", _string(process.user_name, output)),
        ("gpu_util", _number(process.gpu_usage)),
        ("mem_used", _number(process.gpu_memory_usage)),
        ("mem_util", _number(process.gpu_memory_percentage)),
        ("gpu_cycles", _number(process.gpu_cycles)),
        ("encoder_util", _number(process.encode_usage)),
        ("decoder_util", _number(process.decode_usage)),
    ])
    # ProcessType() rejects anything outside the closed set of variants.
    pairs.append(("process_type", f'"{ProcessType(process.type).value}"'))
    pairs.append(("pid", f'"{_number(process.pid)}"'))
    return pairs


def _writer(sink: TextIO) -> Callable[[str], object]:
    """Return a write function for ``sink`` that keeps undecodable bytes intact.

    psutil decodes command lines with ``surrogateescape``; encoding the same
    way turns those lone surrogates back into the bytes the kernel reported.
    """

    raw = getattr(sink, "buffer", None)
    if raw is None:
        return sink.write
    sink.flush()
    return lambda text: raw.write(text.encode("utf-8", "surrogateescape"))


def render_object(pairs: Sequence[Pair], indent: str, key_indent: str) -> str:
    body = ",\n".join(f'{key_indent}"{key}": {value}' for key, value in pairs)
    return f"{indent}{{\n{body}\n{indent}}}"


def render_array(items: Sequence[str], closing_indent: str) -> str:
    if not items:
        return "[]"
    return "[\n" + ",\n".join(items) + f"\n{closing_indent}]"


def render_device(
    device: Device,
    layout: LayoutConfig = LAYOUT,
    limits: MetricLimits = LIMITS,
    output: OutputConfig = OUTPUT,
) -> str:
    processes = [
        render_object(process_fields(process, output), layout.process_indent, layout.process_key_indent)
        for process in device.processes
    ]
    pairs = device_fields(device, limits, output)
    pairs.append(("processes", render_array(processes, layout.device_key_indent)))
    return render_object(pairs, layout.device_indent, layout.device_key_indent)


def iter_snapshot_chunks(
    devices: Sequence[Device],
    layout: LayoutConfig = LAYOUT,
    limits: MetricLimits = LIMITS,
    output: OutputConfig = OUTPUT,
) -> Iterator[str]:
    """Yield the document one device at a time, separators included."""

    if devices is None:
        raise ValueError("a device list is required to build a snapshot")
    if not devices:
        yield "[]\n"
        return
    yield "[\n"
    last = len(devices) - 1
    for index, device in enumerate(devices):
        separator = ",\n" if index < last else "\n"
        yield render_device(device, layout, limits, output) + separator
    yield "]\n"


def render_snapshot(
    devices: Sequence[Device],
    layout: LayoutConfig = LAYOUT,
    limits: MetricLimits = LIMITS,
    output: OutputConfig = OUTPUT,
) -> str:
    return "".join(iter_snapshot_chunks(devices, layout, limits, output))


def write_snapshot(
    devices: Sequence[Device],
    stream: TextIO | None = None,
    layout: LayoutConfig = LAYOUT,
    limits: MetricLimits = LIMITS,
    output: OutputConfig = OUTPUT,
) -> None:
    """Write the snapshot document to ``stream`` (standard output by default).

    Sink errors propagate unchanged. When ``output.buffer_output`` is off, a
    failure part-way through leaves a truncated document behind.
    """

    sink = stream if stream is not None else sys.stdout
    write = _writer(sink)
    if output.buffer_output:
        write(render_snapshot(devices, layout, limits, output))
    else:
        for chunk in iter_snapshot_chunks(devices, layout, limits, output):
            write(chunk)
    sink.flush()
    logger.debug("Snapshot written for %d device(s)", len(devices))
