"""Activity classification of agent sessions."""

import re
from collections import defaultdict
from collections.abc import Mapping

from rpai.config import EngineConfig
from rpai.models import AgentProcess, ProcessRecord, SessionState


def classify(cpu_percent: float, uptime_seconds: float, config: EngineConfig) -> SessionState:
    """
    Label an agent from its CPU usage and uptime.

    Busy or freshly started agents are active. Quiet agents become stale once
    they have been running longer than config.stale_after_seconds.
    """
    busy = cpu_percent >= config.idle_cpu_threshold
    if busy or uptime_seconds < config.grace_period_seconds:
        return SessionState.ACTIVE
    if uptime_seconds > config.stale_after_seconds:
        return SessionState.STALE
    return SessionState.IDLE


def children_index(processes: Mapping[int, ProcessRecord]) -> dict[int, list[int]]:
    """Build ppid -> child pids."""
    children: dict[int, list[int]] = defaultdict(list)
    for record in processes.values():
        if record.ppid != record.pid:
            children[record.ppid].append(record.pid)
    return children


class StateClassifier:
    """Classifies agents, discounting CPU used by excluded helper processes."""

    def __init__(self, config: EngineConfig) -> None:
        self._config = config
        self._exclude = [re.compile(pattern) for pattern in config.exclude_patterns]

    def is_excluded(self, record: ProcessRecord) -> bool:
        return any(
            pattern.search(record.name) or pattern.search(record.command_line)
            for pattern in self._exclude
        )

    def effective_cpu(
        self,
        agent: AgentProcess,
        processes: Mapping[int, ProcessRecord],
        children: Mapping[int, list[int]] | None = None,
    ) -> float:
        """
        CPU attributed to an agent: its own usage plus that of its descendants.

        Excluded descendants, and everything below them, count for nothing so
        that a busy language server cannot keep an idle agent looking active.
        """
        if children is None:
            children = children_index(processes)

        total = agent.process.cpu_percent
        visited = {agent.pid}
        stack = [(pid, 1) for pid in children.get(agent.pid, ())]
        while stack:
            pid, depth = stack.pop()
            if pid in visited or depth > self._config.max_ancestor_depth:
                continue
            visited.add(pid)
            record = processes.get(pid)
            if record is None or self.is_excluded(record):
                continue
            total += record.cpu_percent
            stack.extend((child, depth + 1) for child in children.get(pid, ()))
        return total

    def classify(
        self,
        agent: AgentProcess,
        processes: Mapping[int, ProcessRecord],
        now: float,
        children: Mapping[int, list[int]] | None = None,
    ) -> tuple[SessionState, float]:
        """Return (state, cpu percent) for an agent at wall time now."""
        cpu = self.effective_cpu(agent, processes, children)
        uptime = max(0.0, now - agent.process.create_time)
        return classify(cpu, uptime, self._config), cpu
