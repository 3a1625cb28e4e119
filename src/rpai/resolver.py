"""Locate the tmux pane an agent process runs in.

Agents are often not the pane's own process: they run under a shell, a
wrapper script or a package-manager shim. The resolver walks up the parent
chain to the first process holding a terminal device, then matches that
device against the terminals tmux reports for its panes.
"""

import logging
from collections.abc import Iterable, Mapping

from rpai.errors import CycleDetectedError
from rpai.models import AgentProcess, PaneLocation, ProcessRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


def find_terminal(
    pid: int,
    processes: Mapping[int, ProcessRecord],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> str | None:
    """
    Find the terminal device owning pid.

    Uses the process's own terminal when it has one, otherwise the terminal of
    the nearest ancestor, looking at most max_depth ancestors up.

    Raises:
        CycleDetectedError: If the parent chain revisits a pid.
    """
    record = processes.get(pid)
    if record is None:
        return None
    if record.terminal:
        return record.terminal

    chain = [pid]
    visited = {pid}
    for _ in range(max_depth):
        ppid = record.ppid
        if ppid <= 0:
            return None
        if ppid in visited:
            raise CycleDetectedError(pid, chain + [ppid])
        record = processes.get(ppid)
        if record is None:
            # Parent exited or is hidden from us
            return None
        visited.add(ppid)
        chain.append(ppid)
        if record.terminal:
            return record.terminal
    return None


class PaneResolver:
    """Maps agent processes to tmux panes by terminal device."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._max_depth = max_depth
        # (pid, create_time) of agents whose cycle has already been logged
        self._reported_cycles: set[tuple[int, float]] = set()

    def resolve(
        self,
        agents: Iterable[AgentProcess],
        processes: Mapping[int, ProcessRecord],
        panes: Iterable[PaneLocation],
    ) -> dict[int, PaneLocation | None]:
        """Return pid -> pane for each agent, None where no pane could be found."""
        by_terminal = {pane.terminal: pane for pane in panes}
        resolved: dict[int, PaneLocation | None] = {}
        seen: set[tuple[int, float]] = set()

        for agent in agents:
            try:
                terminal = find_terminal(agent.pid, processes, self._max_depth)
            except CycleDetectedError as e:
                key = (agent.pid, agent.process.create_time)
                seen.add(key)
                if key in self._reported_cycles:
                    logger.debug(str(e))
                else:
                    logger.warning(str(e))
                terminal = None
            resolved[agent.pid] = by_terminal.get(terminal) if terminal else None

        self._reported_cycles = seen
        return resolved
