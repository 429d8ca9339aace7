from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import psutil
import pytest

from gpu_snapshot.data import gpu as gpu_module
from gpu_snapshot.models import Device, DynamicInfo, Process, ProcessType, StaticInfo


class FakeNVMLError(Exception):
    pass


class FakeNVML:
    """Stand-in for the ``pynvml`` module; a missing key means "not supported"."""

    NVMLError = FakeNVMLError
    NVML_CLOCK_GRAPHICS = 0
    NVML_CLOCK_MEM = 2
    NVML_TEMPERATURE_GPU = 0
    NVML_PCIE_UTIL_TX_BYTES = 0
    NVML_PCIE_UTIL_RX_BYTES = 1

    def __init__(self, gpus: list[dict[str, Any]], fail_init: bool = False) -> None:
        self.gpus = gpus
        self.fail_init = fail_init
        self.initialised = False
        self.shutdown_calls = 0

    def _get(self, handle: int, key: str) -> Any:
        value = self.gpus[handle].get(key)
        if value is None:
            raise FakeNVMLError(f"{key} not supported")
        return value

    def nvmlInit(self) -> None:
        if self.fail_init:
            raise FakeNVMLError("driver not loaded")
        self.initialised = True

    def nvmlShutdown(self) -> None:
        self.shutdown_calls += 1

    def nvmlDeviceGetCount(self) -> int:
        return len(self.gpus)

    def nvmlDeviceGetHandleByIndex(self, index: int) -> int:
        return index

    def nvmlDeviceGetPciInfo(self, handle: int) -> SimpleNamespace:
        return SimpleNamespace(busId=self._get(handle, "bus_id"))

    def nvmlDeviceGetName(self, handle: int) -> Any:
        return self._get(handle, "name")

    def nvmlDeviceGetClockInfo(self, handle: int, clock: int) -> int:
        return self._get(handle, "gpu_clock" if clock == self.NVML_CLOCK_GRAPHICS else "mem_clock")

    def nvmlDeviceGetTemperature(self, handle: int, sensor: int) -> int:
        return self._get(handle, "temp")

    def nvmlDeviceGetFanSpeed(self, handle: int) -> int:
        return self._get(handle, "fan")

    def nvmlDeviceGetMemoryInfo(self, handle: int) -> SimpleNamespace:
        return SimpleNamespace(**self._get(handle, "memory"))

    def nvmlDeviceGetPcieThroughput(self, handle: int, counter: int) -> int:
        return self._get(handle, "pcie_rx" if counter == self.NVML_PCIE_UTIL_RX_BYTES else "pcie_tx")

    def nvmlDeviceGetEncoderUtilization(self, handle: int) -> list[int]:
        return [self._get(handle, "encoder"), 167000]

    def nvmlDeviceGetDecoderUtilization(self, handle: int) -> list[int]:
        return [self._get(handle, "decoder"), 167000]

    def nvmlDeviceGetPowerUsage(self, handle: int) -> int:
        return self._get(handle, "power")

    def nvmlDeviceGetEnforcedPowerLimit(self, handle: int) -> int:
        return self._get(handle, "power_limit")

    def nvmlDeviceGetUtilizationRates(self, handle: int) -> SimpleNamespace:
        return SimpleNamespace(**self._get(handle, "utilization"))

    def nvmlDeviceGetComputeRunningProcesses(self, handle: int) -> list[SimpleNamespace]:
        return [SimpleNamespace(**entry) for entry in self._get(handle, "compute")]

    def nvmlDeviceGetGraphicsRunningProcesses(self, handle: int) -> list[SimpleNamespace]:
        return [SimpleNamespace(**entry) for entry in self._get(handle, "graphics")]

    def nvmlDeviceGetProcessUtilization(self, handle: int, last_seen: int) -> list[SimpleNamespace]:
        return [SimpleNamespace(**entry) for entry in self._get(handle, "samples")]


class FakeProcess:
    """Minimal ``psutil.Process`` replacement driven by a pid table."""

    table: dict[int, dict[str, Any]] = {}

    def __init__(self, pid: int) -> None:
        if pid not in self.table:
            raise psutil.NoSuchProcess(pid)
        self.pid = pid
        self._entry = self.table[pid]

    def _value(self, key: str) -> Any:
        value = self._entry.get(key)
        if value is None:
            raise psutil.AccessDenied(self.pid)
        return value

    def cmdline(self) -> list[str]:
        return self._value("cmdline")

    def username(self) -> str:
        return self._value("username")


@pytest.fixture
def fake_nvml(monkeypatch):
    def _install(gpus: list[dict[str, Any]], fail_init: bool = False) -> FakeNVML:
        fake = FakeNVML(gpus, fail_init=fail_init)
        monkeypatch.setattr(gpu_module, "pynvml", fake)
        return fake

    return _install


@pytest.fixture
def fake_processes(monkeypatch):
    def _install(table: dict[int, dict[str, Any]]) -> None:
        monkeypatch.setattr(FakeProcess, "table", table)
        monkeypatch.setattr(gpu_module.psutil, "Process", FakeProcess)

    return _install


@pytest.fixture
def full_device() -> Device:
    """A device with every optional field populated."""

    return Device(
        pdev="0000:01:00.0",
        static_info=StaticInfo(device_name="NVIDIA GeForce RTX 3080"),
        dynamic_info=DynamicInfo(
            gpu_clock_speed=1710,
            mem_clock_speed=9501,
            gpu_temp=64,
            fan_speed=150,
            fan_rpm=15000,
            used_memory=2147483648,
            free_memory=8589934592,
            pcie_rx=1200,
            pcie_tx=340,
            encoder_rate=5,
            decoder_rate=0,
            power_draw=150000,
            power_draw_max=200000,
            gpu_util_rate=87,
            mem_util_rate=42,
        ),
        processes=[
            Process(
                pid=1234,
                type=ProcessType.COMPUTE,
                cmdline="python train.py",
                user_name="alice",
                gpu_usage=80,
                gpu_memory_usage=1073741824,
                gpu_memory_percentage=10,
                gpu_cycles=123456789,
                encode_usage=0,
                decode_usage=0,
            ),
            Process(pid=99, type=ProcessType.GRAPHICAL),
        ],
    )
