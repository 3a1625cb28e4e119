"""tmux adapter: pane listing and pane switching."""

import logging
import os
import subprocess
from collections.abc import Callable, Mapping, Sequence

from rpai.errors import MultiplexerError
from rpai.models import PaneLocation

logger = logging.getLogger(__name__)

PANE_FORMAT = "#{session_name}\t#{window_index}\t#{pane_id}\t#{pane_tty}"
DEFAULT_TIMEOUT = 2.0


def parse_panes(output: str) -> list[PaneLocation]:
    """Parse `tmux list-panes -a -F PANE_FORMAT` output."""
    panes: list[PaneLocation] = []
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) != 4:
            continue
        session_name, window_index, pane_id, terminal = parts
        if not terminal:
            continue
        try:
            index = int(window_index)
        except ValueError:
            continue
        panes.append(
            PaneLocation(
                session_name=session_name,
                window_index=index,
                pane_id=pane_id,
                terminal=terminal,
            )
        )
    return panes


class TmuxMultiplexer:
    """Queries and drives the local tmux server through its CLI."""

    def __init__(
        self,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: float = DEFAULT_TIMEOUT,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._timeout = timeout
        self._environ = os.environ if environ is None else environ

    @property
    def attached(self) -> bool:
        """Whether rpai itself runs inside a tmux client."""
        return bool(self._environ.get("TMUX"))

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        return self._runner(
            ["tmux", *args],
            capture_output=True,
            text=True,
            check=False,
            timeout=self._timeout,
        )

    def list_panes(self) -> list[PaneLocation]:
        """
        List every pane of every session.

        Returns an empty list when tmux is missing or no server is running,
        which leaves all sessions unresolved rather than failing the pass.
        """
        try:
            proc = self._run(["list-panes", "-a", "-F", PANE_FORMAT])
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug(f"tmux list-panes unavailable: {e}")
            return []
        if proc.returncode != 0:
            logger.debug(f"tmux list-panes failed: {(proc.stderr or '').strip()}")
            return []
        return parse_panes(proc.stdout or "")

    def switch_to(self, pane: PaneLocation) -> None:
        """
        Make pane the active pane, switching the attached client to its session.

        Raises:
            MultiplexerError: If any tmux command fails.
        """
        commands = [
            ["select-window", "-t", pane.pane_id],
            ["select-pane", "-t", pane.pane_id],
        ]
        if self.attached:
            commands.insert(0, ["switch-client", "-t", pane.session_name])

        for args in commands:
            try:
                proc = self._run(args)
            except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                raise MultiplexerError(f"tmux {args[0]} failed: {e}") from e
            if proc.returncode != 0:
                raise MultiplexerError(
                    f"tmux {args[0]} failed: {(proc.stderr or '').strip() or proc.returncode}"
                )
        logger.info(f"Switched to tmux pane {pane.target}")
