"""Text formatting shared by the CLI and the TUI."""

from rpai.config import SymbolStyle
from rpai.models import Session, SessionState

SYMBOLS = {
    SymbolStyle.UNICODE: {
        SessionState.ACTIVE: "●",
        SessionState.IDLE: "○",
        SessionState.STALE: "◌",
    },
    SymbolStyle.ASCII: {
        SessionState.ACTIVE: "*",
        SessionState.IDLE: "o",
        SessionState.STALE: ".",
    },
}


def state_symbol(state: SessionState, style: SymbolStyle = SymbolStyle.UNICODE) -> str:
    return SYMBOLS[style][state]


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_duration(seconds: float) -> str:
    """Format an uptime as '2h 5m', '7m' or '42s'."""
    seconds = int(seconds)
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{seconds}s"


def shorten_path(path: str | None, max_len: int = 60) -> str:
    if not path:
        return "unknown"
    if len(path) > max_len:
        return "..." + path[-(max_len - 3):]
    return path


def session_label(session: Session) -> str:
    """Display name: the user label if set, else the agent kind."""
    return session.name or session.kind.value


def session_to_dict(session: Session) -> dict:
    """Plain-data form of a session for JSON output."""
    pane = session.pane
    return {
        "id": session.id,
        "kind": session.kind.value,
        "name": session.name,
        "pid": session.pid,
        "cwd": session.cwd,
        "state": session.state.value,
        "cpu_percent": round(session.cpu_percent, 1),
        "memory_rss": session.memory_rss,
        "uptime_seconds": int(session.uptime_seconds),
        "pane": (
            {
                "session_name": pane.session_name,
                "window_index": pane.window_index,
                "pane_id": pane.pane_id,
                "terminal": pane.terminal,
            }
            if pane
            else None
        ),
    }


def render_sessions(sessions: list[Session], style: SymbolStyle = SymbolStyle.UNICODE) -> str:
    """Render the session list the way `rpai scan` prints it."""
    if not sessions:
        return "No AI agent processes detected"

    blocks = []
    for session in sessions:
        pane = session.pane.target if session.pane else "-"
        blocks.append(
            "\n".join(
                [
                    f"{state_symbol(session.state, style)} [{session.id}] {session_label(session)}"
                    f" | {session.state.label} | {format_duration(session.uptime_seconds)}",
                    f"    PID: {session.pid} | Mem: {session.memory_rss // (1024 * 1024)}MB"
                    f" | CPU: {session.cpu_percent:.1f}% | Pane: {pane}",
                    f"    {shorten_path(session.cwd)}",
                ]
            )
        )
    return "AI Agent Sessions:\n\n" + "\n\n".join(blocks)
