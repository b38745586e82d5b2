"""Shared test fixtures for gputop."""

import pytest

from gputop.device import QueryError
from gputop.models import (
    DeviceSnapshot,
    MemoryInfo,
    ProcessKind,
    ProcessRecord,
    RuntimeVersion,
)

GIB = 1024**3


class FakeDevice:
    """In-memory DeviceQuery with injectable failures."""

    def __init__(
        self,
        name: str = "NVIDIA GeForce RTX 4090",
        temperature: int = 45,
        memory: MemoryInfo | None = None,
        power_usage: int = 120_000,
        fan_speeds: list[int] | None = None,
        compute: list[tuple[int, int | None]] | None = None,
        graphics: list[tuple[int, int | None]] | None = None,
    ) -> None:
        self._name = name
        self._temperature = temperature
        self._memory = memory or MemoryInfo(used=4 * GIB, free=20 * GIB, total=24 * GIB)
        self._power_usage = power_usage
        self._fan_speeds = fan_speeds if fan_speeds is not None else [30, 32]
        self._processes = {
            ProcessKind.COMPUTE: compute if compute is not None else [(1234, 2 * GIB)],
            ProcessKind.GRAPHICS: graphics if graphics is not None else [(42, None)],
        }
        # Method name -> exception raised on every call
        self.errors: dict[str, QueryError] = {}
        self.fan_errors: dict[int, QueryError] = {}
        self.calls: list[str] = []
        self.opened = False
        self.closed = False

    def _check(self, method: str) -> None:
        self.calls.append(method)
        if method in self.errors:
            raise self.errors[method]

    def open(self) -> None:
        self._check("open")
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeDevice":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def name(self) -> str:
        self._check("name")
        return self._name

    def driver_version(self) -> str:
        self._check("driver_version")
        return "550.54.14"

    def runtime_version(self) -> RuntimeVersion:
        self._check("runtime_version")
        return RuntimeVersion(12, 4)

    def temperature(self) -> int:
        self._check("temperature")
        return self._temperature

    def memory_info(self) -> MemoryInfo:
        self._check("memory_info")
        return self._memory

    def power_usage(self) -> int:
        self._check("power_usage")
        return self._power_usage

    def fan_count(self) -> int:
        self._check("fan_count")
        return len(self._fan_speeds)

    def fan_speed(self, index: int) -> int:
        self._check("fan_speed")
        if index in self.fan_errors:
            raise self.fan_errors[index]
        return self._fan_speeds[index]

    def processes(self, kind: ProcessKind) -> list[tuple[int, int | None]]:
        self._check(f"processes_{kind.name.lower()}")
        return list(self._processes[kind])


class FakeClock:
    """Manually advanced monotonic clock; sleep() moves time forward."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


def make_process(
    pid: int = 100,
    kind: ProcessKind = ProcessKind.COMPUTE,
    name: str = "python",
    used_gpu_memory: int | None = 1024,
) -> ProcessRecord:
    """Create a ProcessRecord for testing."""
    return ProcessRecord(pid=pid, kind=kind, name=name, used_gpu_memory=used_gpu_memory)


def make_snapshot(
    temperature: int = 50,
    used: int = 4 * GIB,
    total: int = 24 * GIB,
    power_usage: int = 150_000,
    processes: tuple[ProcessRecord, ...] = (),
) -> DeviceSnapshot:
    """Create a DeviceSnapshot for testing."""
    return DeviceSnapshot(
        name="NVIDIA GeForce RTX 4090",
        driver_version="550.54.14",
        runtime_version=RuntimeVersion(12, 4),
        temperature=temperature,
        memory=MemoryInfo(used=used, free=total - used, total=total),
        fan_speeds=(30, 32),
        power_usage=power_usage,
        processes=processes,
    )


@pytest.fixture
def fake_device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
