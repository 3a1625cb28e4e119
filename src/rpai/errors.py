"""Exceptions raised by the rpai engine and command layer."""


class RpaiError(Exception):
    """Base class for rpai errors."""


class ScanError(RpaiError):
    """The process table could not be read this cycle (transient)."""


class CycleDetectedError(RpaiError):
    """An ancestor chain loops back on itself."""

    def __init__(self, pid: int, chain: list[int]) -> None:
        self.pid = pid
        self.chain = chain
        path = " -> ".join(str(p) for p in chain)
        super().__init__(f"ancestor cycle while resolving pid {pid}: {path}")


class NotFoundError(RpaiError):
    """No session (or no live process) matches the requested target."""


class UnresolvedPaneError(RpaiError):
    """The session has no tmux pane to switch to."""


class SignalPermissionError(RpaiError, PermissionError):
    """The OS refused to deliver a signal to the session's process."""


class MultiplexerError(RpaiError):
    """A tmux command failed."""


class ConfigError(RpaiError):
    """The configuration file is invalid."""
