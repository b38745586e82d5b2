"""Device query layer: error taxonomy, query interface and NVML backend."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TypeVar

import psutil
import pynvml
import structlog

from gputop.models import MemoryInfo, ProcessKind, RuntimeVersion

log = structlog.get_logger()

T = TypeVar("T")

UNKNOWN_PROCESS_NAME = "unknown"


# --- Exceptions ---


class GputopError(Exception):
    """Base exception for all gputop errors."""


class QueryError(GputopError):
    """A device query failed."""


class TransientQueryError(QueryError):
    """A single read failed; the next tick may succeed."""


class FatalQueryError(QueryError):
    """The device or driver is gone; further sampling is pointless."""


class ConfigError(GputopError):
    """Configuration loading or validation failure."""


# --- Query interface ---


class DeviceQuery(Protocol):
    """Synchronous queries against a single device. Every read may raise QueryError."""

    def open(self) -> None: ...

    def close(self) -> None: ...

    def name(self) -> str: ...

    def driver_version(self) -> str: ...

    def runtime_version(self) -> RuntimeVersion: ...

    def temperature(self) -> int: ...

    def memory_info(self) -> MemoryInfo: ...

    def power_usage(self) -> int: ...

    def fan_count(self) -> int: ...

    def fan_speed(self, index: int) -> int: ...

    def processes(self, kind: ProcessKind) -> list[tuple[int, int | None]]: ...


_FATAL_NVML_ERRORS = frozenset(
    {
        pynvml.NVML_ERROR_UNINITIALIZED,
        pynvml.NVML_ERROR_GPU_IS_LOST,
        pynvml.NVML_ERROR_DRIVER_NOT_LOADED,
        pynvml.NVML_ERROR_LIBRARY_NOT_FOUND,
    }
)


def classify_nvml_error(error: pynvml.NVMLError) -> QueryError:
    """Map an NVML error onto the transient/fatal taxonomy."""
    if error.value in _FATAL_NVML_ERRORS:
        return FatalQueryError(str(error))
    return TransientQueryError(str(error))


def _decode(value: str | bytes) -> str:
    # Older pynvml releases return bytes
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class NvmlDevice:
    """
    DeviceQuery backed by NVML through pynvml.

    The handle is acquired in open() and released in close(); the owner
    (the sampling thread) is the only caller in between.
    """

    def __init__(self, index: int = 0) -> None:
        """
        Initialize NvmlDevice.

        Args:
            index: NVML device index to query.
        """
        self._index = index
        self._handle = None

    @property
    def index(self) -> int:
        return self._index

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> None:
        """Initialize NVML and acquire the device handle."""
        if self._handle is not None:
            return
        self._call(pynvml.nvmlInit)
        try:
            self._handle = self._call(pynvml.nvmlDeviceGetHandleByIndex, self._index)
        except QueryError:
            pynvml.nvmlShutdown()
            raise
        log.info("device_opened", index=self._index)

    def close(self) -> None:
        """Release the handle and shut NVML down."""
        if self._handle is None:
            return
        self._handle = None
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError as e:
            log.warning("device_close_failed", index=self._index, error=str(e))
        else:
            log.info("device_closed", index=self._index)

    def __enter__(self) -> NvmlDevice:
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _call(self, func: Callable[..., T], *args: object) -> T:
        try:
            return func(*args)
        except pynvml.NVMLError as e:
            raise classify_nvml_error(e) from e

    def _require_handle(self):
        if self._handle is None:
            raise FatalQueryError("device is not open")
        return self._handle

    def name(self) -> str:
        return _decode(self._call(pynvml.nvmlDeviceGetName, self._require_handle()))

    def driver_version(self) -> str:
        return _decode(self._call(pynvml.nvmlSystemGetDriverVersion))

    def runtime_version(self) -> RuntimeVersion:
        return RuntimeVersion.from_nvml(self._call(pynvml.nvmlSystemGetCudaDriverVersion))

    def temperature(self) -> int:
        return int(
            self._call(
                pynvml.nvmlDeviceGetTemperature,
                self._require_handle(),
                pynvml.NVML_TEMPERATURE_GPU,
            )
        )

    def memory_info(self) -> MemoryInfo:
        mem = self._call(pynvml.nvmlDeviceGetMemoryInfo, self._require_handle())
        return MemoryInfo(used=int(mem.used), free=int(mem.free), total=int(mem.total))

    def power_usage(self) -> int:
        return int(self._call(pynvml.nvmlDeviceGetPowerUsage, self._require_handle()))

    def fan_count(self) -> int:
        return int(self._call(pynvml.nvmlDeviceGetNumFans, self._require_handle()))

    def fan_speed(self, index: int) -> int:
        return int(self._call(pynvml.nvmlDeviceGetFanSpeed_v2, self._require_handle(), index))

    def processes(self, kind: ProcessKind) -> list[tuple[int, int | None]]:
        if kind is ProcessKind.COMPUTE:
            func = pynvml.nvmlDeviceGetComputeRunningProcesses
        else:
            func = pynvml.nvmlDeviceGetGraphicsRunningProcesses
        # pynvml reports an unavailable usedGpuMemory as None
        return [(int(p.pid), p.usedGpuMemory) for p in self._call(func, self._require_handle())]


def resolve_process_name(pid: int) -> str:
    """Resolve a PID to a display name, or a placeholder if it can't be read."""
    try:
        return psutil.Process(pid).name() or UNKNOWN_PROCESS_NAME
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as e:
        log.debug("process_name_unresolved", pid=pid, error=type(e).__name__)
        return UNKNOWN_PROCESS_NAME
