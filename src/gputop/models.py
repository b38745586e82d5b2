"""Data models for gputop."""

from dataclasses import dataclass
from enum import Enum


class ProcessKind(Enum):
    """Kind of device-resident process, in display sort order."""

    COMPUTE = 0
    GRAPHICS = 1

    def __str__(self) -> str:
        return self.name.capitalize()


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """Device memory usage in bytes."""

    used: int
    free: int
    total: int


@dataclass(slots=True, frozen=True)
class RuntimeVersion:
    """CUDA driver version as a (major, minor) pair."""

    major: int
    minor: int

    @classmethod
    def from_nvml(cls, version: int) -> "RuntimeVersion":
        """Decode NVML's packed form, e.g. 12020 -> 12.2."""
        return cls(major=version // 1000, minor=(version % 1000) // 10)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable snapshot of one process using the device."""

    pid: int
    kind: ProcessKind
    name: str
    used_gpu_memory: int | None  # Bytes, None when the driver can't report it

    @property
    def memory_sort_value(self) -> int:
        """Memory used for ordering; unavailable sorts as zero."""
        return self.used_gpu_memory if self.used_gpu_memory is not None else 0


@dataclass(slots=True, frozen=True)
class DeviceSnapshot:
    """Point-in-time reading of a single device."""

    name: str
    driver_version: str
    runtime_version: RuntimeVersion
    temperature: int  # Degrees C
    memory: MemoryInfo
    fan_speeds: tuple[int, ...]  # Percent, one per fan index
    power_usage: int  # Milliwatts
    processes: tuple[ProcessRecord, ...] = ()
