"""Telemetry sampling engine for gputop."""

import threading
import time
from collections.abc import Callable
from enum import Enum

import structlog

from gputop.device import (
    UNKNOWN_PROCESS_NAME,
    DeviceQuery,
    FatalQueryError,
    QueryError,
    TransientQueryError,
    resolve_process_name,
)
from gputop.models import DeviceSnapshot, ProcessKind, ProcessRecord

log = structlog.get_logger()

MIN_INTERVAL = 0.01


class SnapshotBuilder:
    """
    Assembles one consistent DeviceSnapshot from a DeviceQuery.

    Scalar device attributes must all read successfully or the sample is
    abandoned. Process and fan reads degrade per item instead.
    """

    def __init__(
        self,
        device: DeviceQuery,
        name_resolver: Callable[[int], str] = resolve_process_name,
    ) -> None:
        self.device = device
        self._resolve_name = name_resolver

    def sample(self) -> DeviceSnapshot:
        """
        Take one reading from the device.

        Raises:
            TransientQueryError: A device attribute could not be read this tick.
            FatalQueryError: The device or driver is no longer usable.
        """
        device = self.device
        name = device.name()
        driver_version = device.driver_version()
        runtime_version = device.runtime_version()
        temperature = device.temperature()
        memory = device.memory_info()
        power_usage = device.power_usage()

        processes = self._collect_processes(ProcessKind.COMPUTE)
        processes.extend(self._collect_processes(ProcessKind.GRAPHICS))

        return DeviceSnapshot(
            name=name,
            driver_version=driver_version,
            runtime_version=runtime_version,
            temperature=temperature,
            memory=memory,
            fan_speeds=self._collect_fan_speeds(),
            power_usage=power_usage,
            processes=tuple(processes),
        )

    def _collect_processes(self, kind: ProcessKind) -> list[ProcessRecord]:
        try:
            entries = self.device.processes(kind)
        except TransientQueryError as e:
            log.warning("process_list_failed", kind=kind.name, error=str(e))
            return []

        return [
            ProcessRecord(
                pid=pid,
                kind=kind,
                name=self._process_name(pid),
                used_gpu_memory=used_memory,
            )
            for pid, used_memory in entries
        ]

    def _process_name(self, pid: int) -> str:
        try:
            return self._resolve_name(pid)
        except Exception:
            log.warning("process_name_failed", pid=pid, exc_info=True)
            return UNKNOWN_PROCESS_NAME

    def _collect_fan_speeds(self) -> tuple[int, ...]:
        try:
            count = self.device.fan_count()
        except TransientQueryError as e:
            log.warning("fan_count_failed", error=str(e))
            return ()

        speeds: list[int] = []
        for index in range(count):
            try:
                speeds.append(self.device.fan_speed(index))
            except TransientQueryError as e:
                # Keep indices aligned with the physical fans
                log.warning("fan_speed_failed", fan=index, error=str(e))
                speeds.append(0)
        return tuple(speeds)


class SnapshotSlot:
    """
    Single-slot handoff where the latest value wins.

    The producer never blocks; an unconsumed value is overwritten. The
    consumer polls without blocking and never sees an older value after a
    newer one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: DeviceSnapshot | None = None
        self._published = 0
        self._taken = 0
        self._skipped = 0

    def publish(self, snapshot: DeviceSnapshot) -> None:
        """Replace the slot contents with a newer snapshot."""
        with self._lock:
            if self._taken != self._published:
                self._skipped += 1
            self._value = snapshot
            self._published += 1

    def take(self) -> DeviceSnapshot | None:
        """Return the newest unseen snapshot, or None if nothing new arrived."""
        with self._lock:
            if self._taken == self._published:
                return None
            self._taken = self._published
            return self._value

    @property
    def skipped(self) -> int:
        """Number of published snapshots that were overwritten before being taken."""
        with self._lock:
            return self._skipped


class SchedulerState(Enum):
    """Lifecycle of the sampling scheduler."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class TelemetryMonitor:
    """
    Fixed-cadence telemetry sampler.

    Runs in a separate daemon thread that owns the device handle and
    publishes each snapshot to a SnapshotSlot. Ticks are scheduled from a
    fixed origin so slow samples don't accumulate drift.
    """

    def __init__(
        self,
        builder: SnapshotBuilder,
        slot: SnapshotSlot,
        interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        """
        Initialize the TelemetryMonitor.

        Args:
            builder: Snapshot builder wrapping the device to sample.
            slot: Handoff slot the presentation side polls.
            interval: Seconds between samples. Default 0.1s.
            clock: Monotonic time source.
            sleep: Sleep function; defaults to waiting on the stop event.
        """
        self._builder = builder
        self._slot = slot
        self._interval = max(MIN_INTERVAL, interval)
        self._clock = clock
        self._stop_event = threading.Event()
        self._sleep = sleep if sleep is not None else self._wait_for_stop
        self._thread: threading.Thread | None = None
        self._state = SchedulerState.IDLE
        self._error: QueryError | None = None
        self._samples = 0

    @property
    def interval(self) -> float:
        """Get the sampling interval."""
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        """Set the sampling interval."""
        self._interval = max(MIN_INTERVAL, value)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def error(self) -> QueryError | None:
        """Fatal error that stopped sampling, if any."""
        return self._error

    @property
    def samples(self) -> int:
        """Number of snapshots published so far."""
        return self._samples

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Start the sampling thread.

        Does nothing while a previous thread is still alive, including one
        that was asked to stop but is stuck in a device query.
        """
        if self.is_running:
            if self._stop_event.is_set():
                log.warning("monitor_start_refused", reason="previous thread still running")
            return

        self._stop_event.clear()
        self._error = None
        self._state = SchedulerState.RUNNING
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="TelemetryMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the sampling thread.

        An in-flight device query is not interrupted; the thread exits once
        it returns.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                log.warning("monitor_stop_timeout", timeout=timeout)
            else:
                self._thread = None
        if self._state is SchedulerState.RUNNING:
            self._state = SchedulerState.STOPPED

    def _wait_for_stop(self, delay: float) -> None:
        self._stop_event.wait(timeout=delay)

    def _run(self) -> None:
        """Thread body: own the device for the lifetime of the loop."""
        device = self._builder.device
        try:
            device.open()
        except QueryError as e:
            log.error("device_open_failed", error=str(e))
            self._error = e
            self._state = SchedulerState.STOPPED
            return

        try:
            self._poll_loop()
        finally:
            device.close()

    def _poll_loop(self) -> None:
        """Main sampling loop running in the background thread."""
        self._state = SchedulerState.RUNNING
        log.info("monitor_started", interval=self._interval)
        next_tick = self._clock() + self._interval

        while not self._stop_event.is_set():
            if self._clock() >= next_tick:
                try:
                    snapshot = self._builder.sample()
                except FatalQueryError as e:
                    log.error("sample_failed_fatal", error=str(e))
                    self._error = e
                    break
                except TransientQueryError as e:
                    log.warning("sample_failed", error=str(e))
                except Exception:
                    log.exception("sample_failed_unexpected")
                else:
                    self._slot.publish(snapshot)
                    self._samples += 1
                next_tick += self._interval

            self._sleep(max(0.0, next_tick - self._clock()))

        self._state = SchedulerState.STOPPED
        log.info(
            "monitor_stopped",
            samples=self._samples,
            skipped=self._slot.skipped,
            fatal=self._error is not None,
        )
