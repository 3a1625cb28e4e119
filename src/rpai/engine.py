"""Session discovery engine for rpai."""

import dataclasses
import logging
import threading
import time
from collections.abc import Callable
from queue import Queue

from rpai.classifier import StateClassifier, children_index
from rpai.collector import ProcessCollector
from rpai.config import EngineConfig
from rpai.errors import ScanError
from rpai.matcher import AgentMatcher
from rpai.models import EMPTY_SNAPSHOT, SessionSnapshot
from rpai.registry import Observation, SessionRegistry
from rpai.resolver import PaneResolver
from rpai.tmux import TmuxMultiplexer

logger = logging.getLogger(__name__)

MIN_INTERVAL = 0.01


class Engine:
    """
    Runs collect -> match -> resolve -> classify -> merge passes.

    Passes run on a daemon thread at config.refresh_interval. Each completed
    pass publishes an immutable SessionSnapshot; readers only ever see the
    latest complete one. A pass still running when the next is due causes
    that tick to be skipped, not queued.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        collector: ProcessCollector | None = None,
        multiplexer: TmuxMultiplexer | None = None,
        update_queue: Queue[SessionSnapshot] | None = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the Engine.

        Args:
            config: Immutable engine configuration. Defaults apply when omitted.
            collector: Process table source.
            multiplexer: tmux adapter used for pane listing.
            update_queue: Optional queue every published snapshot is pushed to.
            wall_clock: Source of epoch time for uptimes.
        """
        self._config = config or EngineConfig()
        self.collector = collector or ProcessCollector()
        self.multiplexer = multiplexer or TmuxMultiplexer()
        self._matcher = AgentMatcher(self._config.agent_binaries)
        self._resolver = PaneResolver(self._config.max_ancestor_depth)
        self._classifier = StateClassifier(self._config)
        self._registry = SessionRegistry()
        self._queue = update_queue
        self._wall_clock = wall_clock

        self._interval = max(MIN_INTERVAL, self._config.refresh_interval)
        self._snapshot = EMPTY_SNAPSHOT
        self._snapshot_lock = threading.Lock()
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._skipped_ticks = 0
        self._counter_lock = threading.Lock()

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def snapshot(self) -> SessionSnapshot:
        """The latest fully published snapshot."""
        with self._snapshot_lock:
            return self._snapshot

    @property
    def interval(self) -> float:
        return self._interval

    @interval.setter
    def interval(self, value: float) -> None:
        self._interval = max(MIN_INTERVAL, value)

    @property
    def skipped_ticks(self) -> int:
        """Ticks dropped because a pass was still running."""
        with self._counter_lock:
            return self._skipped_ticks

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def prime(self) -> None:
        """Take a baseline CPU sample; a failed read only delays CPU figures."""
        try:
            self.collector.prime()
        except ScanError as e:
            logger.warning(f"Baseline scan failed: {e}")

    def run_cycle(self) -> SessionSnapshot:
        """
        Run one full pass and publish its snapshot.

        Raises:
            ScanError: If the process table could not be read; the previous
                snapshot stays published.
        """
        with self._pass_lock:
            return self._run_pass()

    def refresh(self) -> bool:
        """Run a pass unless one is already in progress. Returns whether it ran."""
        if not self._pass_lock.acquire(blocking=False):
            self._skip_ticks(1)
            logger.debug("Pass still running, skipping tick")
            return False
        try:
            self._run_pass()
        except ScanError as e:
            logger.warning(f"Scan failed, keeping previous snapshot: {e}")
        except Exception:
            logger.exception("Unexpected error during scan pass")
        finally:
            self._pass_lock.release()
        return True

    def _run_pass(self) -> SessionSnapshot:
        processes = self.collector.collect()
        now = self._wall_clock()

        agents = self._matcher.match_all(processes.values())
        panes = self.multiplexer.list_panes() if agents else []
        locations = self._resolver.resolve(agents, processes, panes)
        children = children_index(processes)

        observations = []
        for agent in agents:
            state, cpu = self._classifier.classify(agent, processes, now, children)
            observations.append(
                Observation(agent=agent, state=state, cpu_percent=cpu, pane=locations.get(agent.pid))
            )

        snapshot = self._registry.merge(observations, now)
        self._publish(snapshot)
        return snapshot

    def _skip_ticks(self, count: int) -> None:
        with self._counter_lock:
            self._skipped_ticks += count

    def _publish(self, snapshot: SessionSnapshot) -> None:
        with self._snapshot_lock:
            self._snapshot = snapshot
        if self._queue is not None:
            self._queue.put(snapshot)

    def rename(self, session_id: int, name: str | None) -> SessionSnapshot:
        """Label a session and republish the current snapshot with the label applied."""
        with self._pass_lock:
            self._registry.rename(session_id, name)
            current = self.snapshot
            sessions = tuple(
                dataclasses.replace(s, name=name or None) if s.id == session_id else s
                for s in current.sessions
            )
            snapshot = dataclasses.replace(current, sessions=sessions)
            self._publish(snapshot)
            return snapshot

    def start(self) -> None:
        """Start the refresh thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="rpai-engine",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the refresh thread.

        Args:
            timeout: How long to wait for the thread to finish its pass (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main loop running in the background thread."""
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            self.refresh()

            next_tick += self._interval
            now = time.monotonic()
            if now > next_tick:
                # Overran: drop the ticks that fell due meanwhile
                missed = int((now - next_tick) // self._interval) + 1
                self._skip_ticks(missed)
                next_tick += missed * self._interval
                logger.debug(f"Pass overran, skipped {missed} tick(s)")

            self._stop_event.wait(timeout=next_tick - now)
