"""Agent recognition by executable name."""

from collections.abc import Iterable, Mapping

from rpai.models import AgentKind, AgentProcess, ProcessRecord

# Executable name -> agent kind. New agents are added here, or through the
# [agents] table of the config file.
DEFAULT_AGENT_BINARIES: dict[str, AgentKind] = {
    "aider": AgentKind.AIDER,
    "claude": AgentKind.CLAUDE,
    "codex": AgentKind.CODEX,
    "cursor-agent": AgentKind.CURSOR,
    "gemini": AgentKind.GEMINI,
    "opencode": AgentKind.OPENCODE,
}


class AgentMatcher:
    """Tags processes whose executable name is a known agent binary."""

    def __init__(self, extra_binaries: Mapping[str, AgentKind] | None = None) -> None:
        self._table = dict(DEFAULT_AGENT_BINARIES)
        if extra_binaries:
            self._table.update(extra_binaries)

    @property
    def binaries(self) -> dict[str, AgentKind]:
        return dict(self._table)

    def match(self, record: ProcessRecord) -> AgentProcess | None:
        # Exact, case-sensitive; argv is never consulted
        kind = self._table.get(record.name)
        if kind is None:
            return None
        return AgentProcess(process=record, kind=kind)

    def match_all(self, records: Iterable[ProcessRecord]) -> list[AgentProcess]:
        matched = (self.match(record) for record in records)
        return sorted((agent for agent in matched if agent is not None), key=lambda a: a.pid)
