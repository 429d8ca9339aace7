"""NVML-backed collectors that fill a device snapshot in place.

Every NVML query is made independently: a query the driver does not support
raises ``NVMLError`` and simply leaves its field unpopulated, so a device that
reports ``0`` differs from one that reports nothing.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

import psutil

from gpu_snapshot.models import Device, DynamicInfo, Process, ProcessType

try:
    import pynvml  # type: ignore[import]
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pynvml = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def _decode(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _query(fn: Callable[..., Any], *args: Any) -> Any:
    assert pynvml is not None
    try:
        return fn(*args)
    except pynvml.NVMLError as exc:
        logger.debug("%s unavailable: %s", getattr(fn, "__name__", fn), exc)
        return None


def _safe_process_call(fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def _safe_cmdline(cmdline: Iterable[str] | None) -> str | None:
    if not cmdline:
        return None
    return " ".join(arg for arg in cmdline if arg) or None


@contextmanager
def nvml_session() -> Iterator[bool]:
    """Initialise NVML for the duration of the block.

    Yields ``False`` when the bindings are missing or the driver cannot be
    reached; callers then report no devices.
    """

    if pynvml is None:
        logger.warning("pynvml is not installed, no NVIDIA devices will be reported")
        yield False
        return
    try:
        pynvml.nvmlInit()
    except pynvml.NVMLError as exc:
        logger.warning("NVML initialisation failed: %s", exc)
        yield False
        return
    try:
        yield True
    finally:
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError as exc:
            logger.debug("NVML shutdown failed: %s", exc)


def _iter_nvml_handles() -> Iterator[Any]:
    assert pynvml is not None
    count = pynvml.nvmlDeviceGetCount()
    for index in range(count):
        yield pynvml.nvmlDeviceGetHandleByIndex(index)


def discover_devices() -> list[Device]:
    """Return one empty device per GPU visible to NVML, in NVML index order."""

    if pynvml is None:
        return []
    devices: list[Device] = []
    for handle in _iter_nvml_handles():
        pci = _query(pynvml.nvmlDeviceGetPciInfo, handle)
        pdev = _decode(pci.busId) if pci is not None else ""
        devices.append(Device(pdev=pdev, handle=handle))
    logger.debug("Discovered %d NVML device(s)", len(devices))
    return devices


def populate_static_info(devices: list[Device]) -> None:
    for device in devices:
        name = _query(pynvml.nvmlDeviceGetName, device.handle)
        device.static_info.device_name = _decode(name) if name is not None else None


def refresh_dynamic_info(devices: list[Device]) -> None:
    for device in devices:
        handle = device.handle
        info = DynamicInfo()
        info.gpu_clock_speed = _query(pynvml.nvmlDeviceGetClockInfo, handle, pynvml.NVML_CLOCK_GRAPHICS)
        info.mem_clock_speed = _query(pynvml.nvmlDeviceGetClockInfo, handle, pynvml.NVML_CLOCK_MEM)
        info.gpu_temp = _query(pynvml.nvmlDeviceGetTemperature, handle, pynvml.NVML_TEMPERATURE_GPU)
        info.fan_speed = _query(pynvml.nvmlDeviceGetFanSpeed, handle)

        memory = _query(pynvml.nvmlDeviceGetMemoryInfo, handle)
        if memory is not None:
            info.used_memory = int(memory.used)
            info.free_memory = int(memory.free)

        info.pcie_rx = _query(pynvml.nvmlDeviceGetPcieThroughput, handle, pynvml.NVML_PCIE_UTIL_RX_BYTES)
        info.pcie_tx = _query(pynvml.nvmlDeviceGetPcieThroughput, handle, pynvml.NVML_PCIE_UTIL_TX_BYTES)

        # [utilization, sampling period in us]
        encoder = _query(pynvml.nvmlDeviceGetEncoderUtilization, handle)
        if encoder is not None:
            info.encoder_rate = int(encoder[0])
        decoder = _query(pynvml.nvmlDeviceGetDecoderUtilization, handle)
        if decoder is not None:
            info.decoder_rate = int(decoder[0])

        info.power_draw = _query(pynvml.nvmlDeviceGetPowerUsage, handle)
        info.power_draw_max = _query(pynvml.nvmlDeviceGetEnforcedPowerLimit, handle)

        utilization = _query(pynvml.nvmlDeviceGetUtilizationRates, handle)
        if utilization is not None:
            info.gpu_util_rate = int(utilization.gpu)
            info.mem_util_rate = int(utilization.memory)

        device.dynamic_info = info


def _collect_running(handle: Any) -> dict[int, Process]:
    processes: dict[int, Process] = {}
    queries = (
        (pynvml.nvmlDeviceGetComputeRunningProcesses, ProcessType.COMPUTE),
        (pynvml.nvmlDeviceGetGraphicsRunningProcesses, ProcessType.GRAPHICAL),
    )
    for query, kind in queries:
        for entry in _query(query, handle) or ():
            pid = int(entry.pid)
            process = processes.get(pid)
            if process is None:
                process = processes[pid] = Process(pid=pid, type=kind)
            else:
                process.type = process.type.merge(kind)
            used = getattr(entry, "usedGpuMemory", None)
            if used is not None and process.gpu_memory_usage is None:
                process.gpu_memory_usage = int(used)
    return processes


def _apply_utilization(handle: Any, processes: dict[int, Process]) -> None:
    samples = _query(pynvml.nvmlDeviceGetProcessUtilization, handle, 0) or ()
    # Later samples overwrite earlier ones for the same pid.
    for sample in sorted(samples, key=lambda s: getattr(s, "timeStamp", 0)):
        process = processes.get(int(sample.pid))
        if process is None:
            continue
        process.gpu_usage = int(sample.smUtil)
        process.encode_usage = int(sample.encUtil)
        process.decode_usage = int(sample.decUtil)


def _describe(process: Process) -> None:
    proc = _safe_process_call(lambda: psutil.Process(process.pid))
    if proc is None:
        return
    process.cmdline = _safe_cmdline(_safe_process_call(proc.cmdline))
    process.user_name = _safe_process_call(proc.username)


def refresh_processes(devices: list[Device]) -> None:
    for device in devices:
        handle = device.handle
        processes = _collect_running(handle)

        memory = _query(pynvml.nvmlDeviceGetMemoryInfo, handle)
        total = int(memory.total) if memory is not None else 0
        if total:
            for process in processes.values():
                if process.gpu_memory_usage is not None:
                    process.gpu_memory_percentage = process.gpu_memory_usage * 100 // total

        _apply_utilization(handle, processes)
        for process in processes.values():
            _describe(process)
        device.processes = list(processes.values())
