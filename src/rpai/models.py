"""Data models for rpai."""

from dataclasses import dataclass
from enum import Enum


class AgentKind(Enum):
    """Known AI coding agents."""

    AIDER = "aider"
    CLAUDE = "claude"
    CODEX = "codex"
    CURSOR = "cursor"
    GEMINI = "gemini"
    OPENCODE = "opencode"


class SessionState(Enum):
    """Activity state of an agent session."""

    ACTIVE = "active"
    IDLE = "idle"
    STALE = "stale"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable snapshot of one process, rebuilt every cycle."""

    pid: int
    ppid: int
    name: str
    argv: tuple[str, ...]
    cwd: str | None
    terminal: str | None  # e.g. '/dev/pts/3'
    cpu_percent: float  # two-sample delta, 0.0 on first sight
    memory_rss: int  # Bytes
    create_time: float  # Epoch seconds

    @property
    def command_line(self) -> str:
        return " ".join(self.argv) if self.argv else self.name


@dataclass(slots=True, frozen=True)
class AgentProcess:
    """A process recognized as an agent."""

    process: ProcessRecord
    kind: AgentKind

    @property
    def pid(self) -> int:
        return self.process.pid


@dataclass(slots=True, frozen=True)
class PaneLocation:
    """A tmux pane as reported by the multiplexer."""

    session_name: str
    window_index: int
    pane_id: str  # e.g. '%12'
    terminal: str

    @property
    def target(self) -> str:
        return f"{self.session_name}:{self.window_index}.{self.pane_id}"


@dataclass(slots=True, frozen=True)
class Session:
    """An agent process together with its location and classification."""

    id: int
    kind: AgentKind
    pid: int
    cwd: str | None
    state: SessionState
    cpu_percent: float
    memory_rss: int
    uptime_seconds: float
    create_time: float
    pane: PaneLocation | None = None
    name: str | None = None

    @property
    def jumpable(self) -> bool:
        return self.pane is not None

    @property
    def sort_key(self) -> tuple[str, int]:
        return (self.kind.value, self.pid)


@dataclass(slots=True, frozen=True)
class SessionSnapshot:
    """Ordered, immutable list of sessions published after one pass."""

    sessions: tuple[Session, ...]
    generated_at: float
    cycle: int

    def __len__(self) -> int:
        return len(self.sessions)

    def __iter__(self):
        return iter(self.sessions)

    def by_id(self, session_id: int) -> Session | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def by_index(self, index: int) -> Session | None:
        """Return the session at a 1-based position in the ordered list."""
        if 1 <= index <= len(self.sessions):
            return self.sessions[index - 1]
        return None

    def by_name(self, name: str) -> list[Session]:
        """
        Return sessions addressed by a name.

        A user label wins over the agent kind, so a labelled session can be
        reached even when several agents of its kind are running.
        """
        labelled = [s for s in self.sessions if s.name == name]
        if labelled:
            return labelled
        return [s for s in self.sessions if s.kind.value == name]


EMPTY_SNAPSHOT = SessionSnapshot(sessions=(), generated_at=0.0, cycle=0)
