"""Fixed-capacity ring buffers for metric history.

Each plotted metric keeps the most recent samples only. Once a buffer is
full, pushing a new sample evicts the oldest one. Samples are indexed by
position, not wall-clock time.
"""

from collections import deque
from collections.abc import Iterator
from typing import Generic, TypeVar

from gputop.models import DeviceSnapshot

T = TypeVar("T")

DEFAULT_CAPACITY = 5000

MIB = 1024 * 1024


class RingBuffer(Generic[T]):
    """Overwrite-oldest buffer with a fixed capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._values: deque[T] = deque(maxlen=capacity)

    def __len__(self) -> int:
        """Return number of samples in buffer."""
        return len(self._values)

    def __iter__(self) -> Iterator[T]:
        """Iterate samples oldest to newest."""
        return iter(self._values)

    def __getitem__(self, index: int) -> T:
        return self._values[index]

    @property
    def capacity(self) -> int:
        """Return maximum number of samples the buffer can hold."""
        return self._values.maxlen or 0

    @property
    def is_empty(self) -> bool:
        """Return True if buffer has no samples."""
        return len(self._values) == 0

    def push(self, value: T) -> None:
        """Append a sample, dropping the oldest one if full."""
        self._values.append(value)

    def values(self) -> list[T]:
        """Return a copy of the samples, oldest first."""
        return list(self._values)


class MetricHistory:
    """
    Per-metric history for the dashboard charts.

    Holds one ring buffer per plotted metric along with the ceiling used
    as each chart's initial Y bound.
    """

    TEMPERATURE_CEILING = 100.0  # Degrees C
    POWER_CEILING = 1000.0  # Watts

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """
        Initialize MetricHistory.

        Args:
            capacity: Number of samples retained per metric.
        """
        self.temperature: RingBuffer[float] = RingBuffer(capacity)
        self.memory_used: RingBuffer[float] = RingBuffer(capacity)  # MiB
        self.power_usage: RingBuffer[float] = RingBuffer(capacity)  # Watts
        self.memory_ceiling: float = 0.0

    def record(self, snapshot: DeviceSnapshot) -> None:
        """Append one sample from a snapshot to every metric."""
        self.temperature.push(float(snapshot.temperature))
        self.memory_used.push(snapshot.memory.used / MIB)
        self.power_usage.push(snapshot.power_usage / 1000)
        self.memory_ceiling = snapshot.memory.total / MIB
