"""Dataclasses describing one point-in-time readout of the monitored GPUs."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Iterator


class _PresenceMixin:
    """Per-attribute presence queries for dataclasses whose optional fields default to ``None``.

    ``0`` is a legitimate reading, so an attribute only counts as missing when
    it holds ``None``.
    """

    __slots__ = ()

    def is_populated(self, attribute: str) -> bool:
        if attribute not in self._field_names():
            raise AttributeError(f"{type(self).__name__} has no optional field {attribute!r}")
        return getattr(self, attribute) is not None

    def populated_fields(self) -> Iterator[str]:
        for name in self._field_names():
            if getattr(self, name) is not None:
                yield name

    @classmethod
    def _field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.default is None)  # type: ignore[arg-type]


class ProcessType(Enum):
    """Kind of GPU context a process holds. The value is its JSON name."""

    UNKNOWN = "unknown"
    GRAPHICAL = "graphical"
    COMPUTE = "compute"
    GRAPHICAL_COMPUTE = "graphical_compute"

    def merge(self, other: ProcessType) -> ProcessType:
        """Combine the types reported for the same pid by different queries."""

        if self is other or other is ProcessType.UNKNOWN:
            return self
        if self is ProcessType.UNKNOWN:
            return other
        return ProcessType.GRAPHICAL_COMPUTE


@dataclass(slots=True)
class StaticInfo(_PresenceMixin):
    device_name: str | None = None


@dataclass(slots=True)
class DynamicInfo(_PresenceMixin):
    gpu_clock_speed: int | None = None  # MHz
    mem_clock_speed: int | None = None  # MHz
    gpu_temp: int | None = None  # Celsius
    fan_speed: int | None = None  # percent, may exceed 100 on some drivers
    fan_rpm: int | None = None
    used_memory: int | None = None  # bytes
    free_memory: int | None = None  # bytes
    pcie_rx: int | None = None  # KB/s into the GPU
    pcie_tx: int | None = None  # KB/s out of the GPU
    encoder_rate: int | None = None
    decoder_rate: int | None = None
    power_draw: int | None = None  # mW
    power_draw_max: int | None = None  # mW
    gpu_util_rate: int | None = None
    mem_util_rate: int | None = None


@dataclass(slots=True)
class Process(_PresenceMixin):
    pid: int
    type: ProcessType
    cmdline: str | None = None
    user_name: str | None = None
    gpu_usage: int | None = None
    gpu_memory_usage: int | None = None  # bytes
    gpu_memory_percentage: int | None = None
    gpu_cycles: int | None = None
    encode_usage: int | None = None
    decode_usage: int | None = None


@dataclass(slots=True)
class Device:
    pdev: str = ""  # PCI bus id, e.g. 0000:01:00.0
    static_info: StaticInfo = field(default_factory=StaticInfo)
    dynamic_info: DynamicInfo = field(default_factory=DynamicInfo)
    processes: list[Process] = field(default_factory=list)
    handle: Any = field(default=None, repr=False, compare=False)
