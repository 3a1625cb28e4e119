"""Jump and kill commands against published sessions."""

import logging
import os
import signal
from collections.abc import Callable

import psutil

from rpai.collector import same_process
from rpai.config import KillPolicy
from rpai.engine import Engine
from rpai.errors import NotFoundError, SignalPermissionError, UnresolvedPaneError
from rpai.models import Session, SessionSnapshot

logger = logging.getLogger(__name__)


def parse_session_id(session_id: str | int) -> int:
    """Turn a CLI or TUI session reference into a stable ID, or raise NotFoundError."""
    if isinstance(session_id, int):
        return session_id
    if not str(session_id).isdigit():
        raise NotFoundError(f"{session_id!r} is not a session id")
    return int(session_id)


def resolve_session(snapshot: SessionSnapshot, id_or_name: str | int) -> Session:
    """
    Find a session by stable ID or by name.

    Names match a session label first, then an agent kind, and must pick out
    exactly one session.

    Raises:
        NotFoundError: If nothing, or more than one session, matches.
    """
    if isinstance(id_or_name, int) or str(id_or_name).isdigit():
        session = snapshot.by_id(int(id_or_name))
        if session is None:
            raise NotFoundError(f"No session with id {id_or_name}")
        return session

    matches = snapshot.by_name(str(id_or_name))
    if not matches:
        raise NotFoundError(f"No session named {id_or_name!r}")
    if len(matches) > 1:
        ids = ", ".join(str(s.id) for s in matches)
        raise NotFoundError(f"{id_or_name!r} is ambiguous, matches sessions {ids}")
    return matches[0]


class CommandExecutor:
    """
    Acts on sessions from the engine's latest snapshot.

    The snapshot may be stale by the time a command runs, so every command
    re-checks the live process table (and tmux, for jump) before acting and
    fails instead of acting on the wrong target.
    """

    def __init__(
        self,
        engine: Engine,
        process_factory: Callable[[int], psutil.Process] = psutil.Process,
        sig: int = signal.SIGTERM,
    ) -> None:
        self._engine = engine
        self._process_factory = process_factory
        self._signal = sig

    def resolve(self, id_or_name: str | int) -> Session:
        return resolve_session(self._engine.snapshot, id_or_name)

    def jump(self, id_or_name: str | int) -> Session:
        """
        Switch tmux to the session's pane.

        Raises:
            NotFoundError: If no such session exists or its process is gone.
            UnresolvedPaneError: If the session has no pane, or the pane closed.
            MultiplexerError: If tmux rejects the switch.
        """
        session = self.resolve(id_or_name)
        if session.pane is None:
            raise UnresolvedPaneError(f"Session {session.id} ({session.kind.value}) has no tmux pane")

        if not self._engine.collector.is_alive(session.pid, session.create_time):
            raise NotFoundError(f"Session {session.id} (pid {session.pid}) has exited")
        live = {(p.pane_id, p.terminal) for p in self._engine.multiplexer.list_panes()}
        if (session.pane.pane_id, session.pane.terminal) not in live:
            raise UnresolvedPaneError(f"Pane {session.pane.target} of session {session.id} is gone")

        self._engine.multiplexer.switch_to(session.pane)
        return session

    def kill(self, session_id: int | str) -> Session:
        """
        Send a termination signal to the session's process.

        With KillPolicy.GROUP the signal goes to the process group instead,
        unless that group is our own.

        Raises:
            NotFoundError: If session_id is not an ID of a live session.
            SignalPermissionError: If the OS denies the signal.
        """
        session = self._engine.snapshot.by_id(parse_session_id(session_id))
        if session is None:
            raise NotFoundError(f"No session with id {session_id}")

        try:
            proc = self._process_factory(session.pid)
            if not same_process(proc.create_time(), session.create_time):
                raise NotFoundError(f"Session {session.id} (pid {session.pid}) has exited")
            if proc.status() == psutil.STATUS_ZOMBIE:
                raise NotFoundError(f"Session {session.id} (pid {session.pid}) has exited")

            if self._engine.config.kill_policy is KillPolicy.GROUP:
                self._kill_group(proc)
            else:
                proc.send_signal(self._signal)
        except (psutil.NoSuchProcess, ProcessLookupError) as e:
            raise NotFoundError(f"Session {session.id} (pid {session.pid}) has exited") from e
        except (psutil.AccessDenied, PermissionError) as e:
            raise SignalPermissionError(
                f"Not permitted to signal pid {session.pid}; it may belong to another user"
            ) from e

        logger.info(f"Sent signal {self._signal} to session {session.id} (pid {session.pid})")
        return session

    def _kill_group(self, proc: psutil.Process) -> None:
        pgid = os.getpgid(proc.pid)
        if pgid == os.getpgrp():
            logger.warning(f"pid {proc.pid} shares our process group, signalling it alone")
            proc.send_signal(self._signal)
            return
        os.killpg(pgid, self._signal)

    def rename(self, session_id: int | str, name: str | None) -> Session:
        """
        Label a session.

        Raises:
            NotFoundError: If no such session exists.
        """
        session_id = parse_session_id(session_id)
        snapshot = self._engine.rename(session_id, name)
        session = snapshot.by_id(session_id)
        if session is None:
            raise NotFoundError(f"No session with id {session_id}")
        return session
