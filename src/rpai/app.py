"""rpai - Textual session browser."""

from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Vertical
from textual.screen import ModalScreen
from textual.widgets import DataTable, Footer, Input, Label, Static

from rpai.commands import CommandExecutor
from rpai.config import EngineConfig, SymbolStyle
from rpai.display import format_bytes, format_duration, session_label, shorten_path, state_symbol
from rpai.engine import Engine
from rpai.errors import RpaiError
from rpai.models import Session, SessionSnapshot, SessionState

STATE_COLORS = {
    SessionState.ACTIVE: "green",
    SessionState.IDLE: "yellow",
    SessionState.STALE: "dim",
}


class SummaryBar(Static):
    """Header widget showing session counts per state."""

    DEFAULT_CSS = """
    SummaryBar {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__("Scanning for agents...", **kwargs)
        self._counts: dict[SessionState, int] = {state: 0 for state in SessionState}
        self._unresolved = 0
        self._cycle = 0

    def update_summary(self, snapshot: SessionSnapshot) -> None:
        self._counts = {state: 0 for state in SessionState}
        for session in snapshot:
            self._counts[session.state] += 1
        self._unresolved = sum(1 for session in snapshot if not session.jumpable)
        self._cycle = snapshot.cycle
        self.update(self.render_summary())

    def render_summary(self) -> str:
        if self._cycle == 0:
            return "Scanning for agents..."
        total = sum(self._counts.values())
        parts = [
            f"[{STATE_COLORS[state]}]{state.label}: {count}[/{STATE_COLORS[state]}]"
            for state, count in self._counts.items()
        ]
        return f"Sessions: {total}  " + "  ".join(parts) + f"  No pane: {self._unresolved}"


class SessionTable(Container):
    """Container for the session data table."""

    DEFAULT_CSS = """
    SessionTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, symbol_style: SymbolStyle = SymbolStyle.UNICODE, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._symbol_style = symbol_style
        self._order: list[int] = []

    @property
    def session_ids(self) -> list[int]:
        """Session IDs in displayed order."""
        return list(self._order)

    def compose(self) -> ComposeResult:
        yield DataTable(id="session-table")

    def on_mount(self) -> None:
        table = self.query_one("#session-table", DataTable)
        table.cursor_type = "row"

        table.add_column("#", key="index", width=3)
        table.add_column("ID", key="id", width=4)
        table.add_column("", key="symbol", width=2)
        table.add_column("Agent", key="agent", width=12)
        table.add_column("State", key="state", width=7)
        table.add_column("Uptime", key="uptime", width=8)
        table.add_column("CPU%", key="cpu", width=6)
        table.add_column("RES", key="rss", width=7)
        table.add_column("PID", key="pid", width=8)
        table.add_column("Pane", key="pane", width=16)
        table.add_column("Directory", key="cwd")

    @property
    def selected_id(self) -> int | None:
        table = self.query_one("#session-table", DataTable)
        row = table.cursor_row
        if 0 <= row < len(self._order):
            return self._order[row]
        return None

    def update_sessions(self, sessions: list[Session]) -> None:
        """
        Show the given ordered sessions.

        When the set and order of sessions is unchanged the cells are updated
        in place; otherwise the rows are rebuilt and the cursor follows the
        session it was on.
        """
        table = self.query_one("#session-table", DataTable)
        new_order = [session.id for session in sessions]

        if new_order == self._order:
            for session in sessions:
                self._update_row(table, session)
            return

        selected = self.selected_id
        table.clear()
        for index, session in enumerate(sessions, start=1):
            table.add_row(*self._cells(index, session), key=str(session.id))
        self._order = new_order
        if selected in new_order:
            table.move_cursor(row=new_order.index(selected))

    def _cells(self, index: int, session: Session) -> tuple[str, ...]:
        color = STATE_COLORS[session.state]
        return (
            str(index),
            str(session.id),
            f"[{color}]{state_symbol(session.state, self._symbol_style)}[/{color}]",
            session_label(session)[:12],
            session.state.label,
            format_duration(session.uptime_seconds),
            f"{session.cpu_percent:5.1f}",
            format_bytes(session.memory_rss),
            str(session.pid),
            session.pane.target if session.pane else "-",
            shorten_path(session.cwd, 50),
        )

    def _update_row(self, table: DataTable, session: Session) -> None:
        row_key = str(session.id)
        keys = ["index", "id", "symbol", "agent", "state", "uptime", "cpu", "rss", "pid", "pane", "cwd"]
        index = self._order.index(session.id) + 1
        for key, value in zip(keys, self._cells(index, session)):
            table.update_cell(row_key, key, value)


class RenameScreen(ModalScreen[str | None]):
    """Prompt for a new session label."""

    DEFAULT_CSS = """
    RenameScreen {
        align: center middle;
    }

    RenameScreen > Vertical {
        width: 50;
        height: auto;
        border: thick $primary;
        background: $surface;
        padding: 1;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, current: str = "") -> None:
        super().__init__()
        self._current = current

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label("Session name (empty to clear):"),
            Input(value=self._current, id="rename-input"),
        )

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip())

    def action_cancel(self) -> None:
        self.dismiss(None)


class RpaiApp(App):
    """Main rpai application."""

    TITLE = "rpai"
    SUB_TITLE = "AI agent sessions"

    CSS = """
    Screen {
        layout: vertical;
    }

    #summary {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("j", "jump", "Jump"),
        ("x", "kill", "Kill"),
        ("n", "rename", "Rename"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        config: EngineConfig | None = None,
        engine: Engine | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        super().__init__()
        self._config = config or EngineConfig()
        self._update_queue: Queue[SessionSnapshot] = Queue()
        self._engine = engine or Engine(self._config, update_queue=self._update_queue)
        self._executor = executor or CommandExecutor(self._engine)
        self._snapshot: SessionSnapshot = self._engine.snapshot

    def compose(self) -> ComposeResult:
        yield SummaryBar(id="summary")
        yield SessionTable(self._config.symbol_style)
        yield Footer()

    def on_mount(self) -> None:
        """Start the engine when the app is mounted."""
        self._engine.prime()
        self._engine.start()
        self.set_interval(0.1, self._check_for_updates)

    def _check_for_updates(self) -> None:
        # Drain the queue, only the newest snapshot matters
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
        if snapshot is None and self._engine.snapshot is not self._snapshot:
            snapshot = self._engine.snapshot
        if snapshot is not None:
            self.show_snapshot(snapshot)

    def show_snapshot(self, snapshot: SessionSnapshot) -> None:
        self._snapshot = snapshot
        self.query_one(SummaryBar).update_summary(snapshot)
        self.query_one(SessionTable).update_sessions(list(snapshot))

    def _selected(self) -> int | None:
        return self.query_one(SessionTable).selected_id

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self.action_jump()

    def action_jump(self) -> None:
        session_id = self._selected()
        if session_id is None:
            return
        try:
            self._executor.jump(session_id)
        except RpaiError as e:
            self.notify(str(e), severity="error")
            return
        self.action_quit()

    def action_kill(self) -> None:
        session_id = self._selected()
        if session_id is None:
            return
        try:
            session = self._executor.kill(session_id)
        except RpaiError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"Terminated {session_label(session)} (pid {session.pid})")
        self.action_refresh()

    def action_rename(self) -> None:
        session_id = self._selected()
        if session_id is None:
            return
        session = self._snapshot.by_id(session_id)
        current = (session.name or "") if session else ""

        def apply(name: str | None) -> None:
            if name is None:
                return
            try:
                self._executor.rename(session_id, name or None)
            except RpaiError as e:
                self.notify(str(e), severity="error")
                return
            self.show_snapshot(self._engine.snapshot)

        self.push_screen(RenameScreen(current), apply)

    def action_refresh(self) -> None:
        self.run_worker(self._engine.refresh, thread=True, exclusive=True)

    def action_quit(self) -> None:
        """Stop the engine and leave."""
        self._engine.stop()
        self.exit()

