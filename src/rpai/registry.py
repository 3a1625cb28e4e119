"""Stable session identities across scan cycles."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from rpai.collector import same_process
from rpai.errors import NotFoundError
from rpai.models import (
    AgentProcess,
    PaneLocation,
    Session,
    SessionSnapshot,
    SessionState,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Observation:
    """What one pass learned about one agent."""

    agent: AgentProcess
    state: SessionState
    cpu_percent: float
    pane: PaneLocation | None = None

    @property
    def sort_key(self) -> tuple[str, int]:
        return (self.agent.kind.value, self.agent.pid)


@dataclass(slots=True, frozen=True)
class _Identity:
    session_id: int
    create_time: float


class SessionRegistry:
    """
    Merges each pass's observations into sessions with stable IDs.

    A pid keeps its ID for as long as it is observed on consecutive passes.
    IDs are handed out from a counter and never reused, so a pid that
    disappears and comes back, or is recycled by the OS, gets a new one.
    """

    def __init__(self) -> None:
        self._next_id = 1
        self._cycle = 0
        self._identities: dict[int, _Identity] = {}
        self._names: dict[int, str] = {}

    def merge(self, observations: Iterable[Observation], now: float) -> SessionSnapshot:
        """Fold one pass into the registry and return the ordered snapshot."""
        # New IDs are allotted in list order
        ordered = sorted(observations, key=lambda o: o.sort_key)
        identities: dict[int, _Identity] = {}
        sessions: list[Session] = []

        for obs in ordered:
            record = obs.agent.process
            identity = self._identities.get(record.pid)
            if identity is None or not same_process(identity.create_time, record.create_time):
                identity = _Identity(self._next_id, record.create_time)
                self._next_id += 1
                logger.debug(f"New session {identity.session_id} for pid {record.pid}")
            identities[record.pid] = identity

            sessions.append(
                Session(
                    id=identity.session_id,
                    kind=obs.agent.kind,
                    pid=record.pid,
                    cwd=record.cwd,
                    state=obs.state,
                    cpu_percent=obs.cpu_percent,
                    memory_rss=record.memory_rss,
                    uptime_seconds=max(0.0, now - record.create_time),
                    create_time=record.create_time,
                    pane=obs.pane,
                    name=self._names.get(identity.session_id),
                )
            )

        live_ids = {identity.session_id for identity in identities.values()}
        self._names = {sid: name for sid, name in self._names.items() if sid in live_ids}
        self._identities = identities
        self._cycle += 1
        return SessionSnapshot(sessions=tuple(sessions), generated_at=now, cycle=self._cycle)

    def rename(self, session_id: int, name: str | None) -> None:
        """
        Label a live session; the label is shown and usable by jump.

        Raises:
            NotFoundError: If no live session has that ID.
        """
        if session_id not in {identity.session_id for identity in self._identities.values()}:
            raise NotFoundError(f"No session with id {session_id}")
        if name:
            self._names[session_id] = name
        else:
            self._names.pop(session_id, None)
