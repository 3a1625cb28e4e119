"""Shared fakes for rpai tests."""

import contextlib
from collections import namedtuple

import psutil
import pytest

from rpai.collector import ProcessCollector
from rpai.config import EngineConfig
from rpai.engine import Engine
from rpai.models import PaneLocation, ProcessRecord

CpuTimes = namedtuple("CpuTimes", "user system")
MemInfo = namedtuple("MemInfo", "rss vms")

BOOT = 1_700_000_000.0


def make_record(
    pid: int,
    ppid: int = 1,
    name: str = "bash",
    terminal: str | None = None,
    cpu_percent: float = 0.0,
    create_time: float = BOOT,
    argv: tuple[str, ...] = (),
    cwd: str | None = "/home/dev/project",
) -> ProcessRecord:
    return ProcessRecord(
        pid=pid,
        ppid=ppid,
        name=name,
        argv=argv,
        cwd=cwd,
        terminal=terminal,
        cpu_percent=cpu_percent,
        memory_rss=50 * 1024 * 1024,
        create_time=create_time,
    )


def make_pane(terminal: str, pane_id: str = "%1", session_name: str = "main", window: int = 0):
    return PaneLocation(
        session_name=session_name,
        window_index=window,
        pane_id=pane_id,
        terminal=terminal,
    )


class FakeProc:
    """Stands in for a psutil.Process yielded by process_iter."""

    def __init__(self, info: dict) -> None:
        self.info = info

    def oneshot(self):
        return contextlib.nullcontext()


class FakeLiveProcess:
    """Stands in for psutil.Process(pid) used for liveness checks and signals."""

    def __init__(self, table: "FakeProcessTable", pid: int) -> None:
        if pid not in table.entries:
            raise psutil.NoSuchProcess(pid)
        self._table = table
        self.pid = pid

    def create_time(self) -> float:
        return self._table.entries[self.pid]["create_time"]

    def status(self) -> str:
        return self._table.entries[self.pid].get("status", psutil.STATUS_SLEEPING)

    def send_signal(self, sig: int) -> None:
        if self.pid in self._table.protected:
            raise psutil.AccessDenied(self.pid)
        if self.pid not in self._table.entries:
            raise psutil.NoSuchProcess(self.pid)
        self._table.signals.append((self.pid, sig))


class FakeProcessTable:
    """Mutable fake process table driving ProcessCollector."""

    def __init__(self) -> None:
        self.entries: dict[int, dict] = {}
        self.signals: list[tuple[int, int]] = []
        self.protected: set[int] = set()
        self.fail = False

    def add(
        self,
        pid: int,
        ppid: int = 1,
        name: str = "bash",
        terminal: str | None = None,
        cpu_seconds: float = 0.0,
        create_time: float = BOOT,
        cmdline: list[str] | None = None,
        cwd: str | None = "/home/dev/project",
    ) -> None:
        self.entries[pid] = {
            "pid": pid,
            "ppid": ppid,
            "name": name,
            "cmdline": cmdline or [name],
            "cwd": cwd,
            "terminal": terminal,
            "cpu_times": CpuTimes(cpu_seconds, 0.0),
            "memory_info": MemInfo(64 * 1024 * 1024, 0),
            "create_time": create_time,
        }

    def remove(self, pid: int) -> None:
        self.entries.pop(pid, None)

    def burn(self, pid: int, seconds: float) -> None:
        """Add CPU time to a process."""
        times = self.entries[pid]["cpu_times"]
        self.entries[pid]["cpu_times"] = CpuTimes(times.user + seconds, times.system)

    def process_iter(self, attrs=None, ad_value=None):
        if self.fail:
            raise OSError("/proc is not readable")
        return [FakeProc(dict(info)) for info in self.entries.values()]

    def process(self, pid: int) -> FakeLiveProcess:
        return FakeLiveProcess(self, pid)


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMultiplexer:
    """Records pane switches instead of talking to tmux."""

    def __init__(self, panes: list[PaneLocation] | None = None) -> None:
        self.panes = list(panes or [])
        self.switched: list[PaneLocation] = []
        self.list_calls = 0

    def list_panes(self) -> list[PaneLocation]:
        self.list_calls += 1
        return list(self.panes)

    def switch_to(self, pane: PaneLocation) -> None:
        self.switched.append(pane)


@pytest.fixture
def table() -> FakeProcessTable:
    return FakeProcessTable()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(100.0)


@pytest.fixture
def wall_clock() -> FakeClock:
    return FakeClock(BOOT + 3600.0)


@pytest.fixture
def multiplexer() -> FakeMultiplexer:
    return FakeMultiplexer()


@pytest.fixture
def make_engine(table, clock, wall_clock, multiplexer):
    """Build an Engine wired to the fake process table and tmux."""

    def factory(config: EngineConfig | None = None, **kwargs) -> Engine:
        collector = ProcessCollector(
            process_iter=table.process_iter,
            clock=clock,
            process_factory=table.process,
        )
        return Engine(
            config or EngineConfig(),
            collector=collector,
            multiplexer=multiplexer,
            wall_clock=wall_clock,
            **kwargs,
        )

    return factory
