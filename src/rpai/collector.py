"""Process table collection for rpai."""

import logging
import time
from collections.abc import Callable, Iterable

import psutil

from rpai.errors import ScanError
from rpai.models import ProcessRecord

logger = logging.getLogger(__name__)

# Attributes fetched per process in one pass
PROCESS_ATTRS = [
    "pid",
    "ppid",
    "name",
    "cmdline",
    "cwd",
    "terminal",
    "cpu_times",
    "memory_info",
    "create_time",
    "status",
]

# create_time is derived from clock ticks, allow for float noise
_CREATE_TIME_TOLERANCE = 0.01


def same_process(create_time: float, other: float) -> bool:
    """Check whether two start times identify the same process."""
    return abs(create_time - other) < _CREATE_TIME_TOLERANCE


class ProcessCollector:
    """
    Enumerates the OS process table using psutil.

    CPU percentages need two samples: the collector keeps per-pid CPU-time
    totals from the previous collect() and reports the delta over elapsed
    wall time. A pid seen for the first time reports 0.0.
    """

    def __init__(
        self,
        process_iter: Callable[..., Iterable] = psutil.process_iter,
        clock: Callable[[], float] = time.monotonic,
        process_factory: Callable[[int], psutil.Process] = psutil.Process,
    ) -> None:
        """
        Initialize the ProcessCollector.

        Args:
            process_iter: Process table iterator, psutil.process_iter by default.
            clock: Monotonic clock used for CPU deltas.
            process_factory: Constructor for live process handles.
        """
        self._process_iter = process_iter
        self._clock = clock
        self._process_factory = process_factory
        # pid -> (create_time, cpu seconds total, sample time)
        self._cpu_samples: dict[int, tuple[float, float, float]] = {}

    @property
    def tracked_pids(self) -> set[int]:
        """Pids with a retained CPU sample."""
        return set(self._cpu_samples)

    def prime(self) -> None:
        """Take a baseline sample so the next collect() reports real CPU usage."""
        self.collect()

    def collect(self) -> dict[int, ProcessRecord]:
        """
        Collect records for all running processes, keyed by pid.

        Processes that vanish or deny access mid-scan are skipped, as are
        zombies.

        Raises:
            ScanError: If the process table cannot be read at all.
        """
        try:
            procs = list(self._process_iter(attrs=PROCESS_ATTRS, ad_value=None))
        except (psutil.Error, OSError) as e:
            raise ScanError(f"Could not read process table: {e}") from e

        now = self._clock()
        records: dict[int, ProcessRecord] = {}
        samples: dict[int, tuple[float, float, float]] = {}

        for proc in procs:
            try:
                with proc.oneshot():
                    info = proc.info
                    pid = info.get("pid")
                    if pid is None or info.get("status") == psutil.STATUS_ZOMBIE:
                        # Exited, waiting to be reaped
                        continue

                    create_time = info.get("create_time") or 0.0
                    cpu_times = info.get("cpu_times")
                    cpu_total = cpu_times.user + cpu_times.system if cpu_times else 0.0
                    mem_info = info.get("memory_info")

                    record = ProcessRecord(
                        pid=pid,
                        ppid=info.get("ppid") or 0,
                        name=info.get("name") or "",
                        argv=tuple(info.get("cmdline") or ()),
                        cwd=info.get("cwd") or None,
                        terminal=info.get("terminal") or None,
                        cpu_percent=self._cpu_percent(pid, create_time, cpu_total, now),
                        memory_rss=mem_info.rss if mem_info else 0,
                        create_time=create_time,
                    )
                    records[pid] = record
                    samples[pid] = (create_time, cpu_total, now)

            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        # Only pids present this cycle are kept
        self._cpu_samples = samples
        logger.debug(f"Collected {len(records)} processes")
        return records

    def _cpu_percent(self, pid: int, create_time: float, cpu_total: float, now: float) -> float:
        previous = self._cpu_samples.get(pid)
        if previous is None:
            return 0.0
        prev_create_time, prev_total, prev_time = previous
        if not same_process(prev_create_time, create_time):
            # pid was reused by a new process
            return 0.0
        elapsed = now - prev_time
        if elapsed <= 0:
            return 0.0
        return max(0.0, (cpu_total - prev_total) / elapsed * 100.0)

    def is_alive(self, pid: int, create_time: float) -> bool:
        """Check against the live process table that pid still runs the same process."""
        try:
            proc = self._process_factory(pid)
            if not same_process(proc.create_time(), create_time):
                return False
            return proc.status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return False
        except psutil.AccessDenied:
            # Exists but belongs to someone else
            return True
