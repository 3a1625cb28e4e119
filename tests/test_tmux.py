"""Tests for the tmux adapter."""

import subprocess

import pytest

from rpai.errors import MultiplexerError
from rpai.tmux import TmuxMultiplexer, parse_panes

from conftest import make_pane


class FakeRunner:
    def __init__(self, stdout: str = "", returncode: int = 0, exc: Exception | None = None) -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.exc = exc
        self.calls: list[list[str]] = []

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        if self.exc:
            raise self.exc
        return subprocess.CompletedProcess(args, self.returncode, self.stdout, "boom")


def test_parse_panes():
    """Test list-panes output is parsed into PaneLocations."""
    output = "main\t0\t%1\t/dev/pts/1\nwork\t3\t%12\t/dev/pts/9\n"
    assert parse_panes(output) == [
        make_pane("/dev/pts/1", "%1", "main", 0),
        make_pane("/dev/pts/9", "%12", "work", 3),
    ]


def test_parse_panes_skips_malformed_lines():
    output = "garbage\nmain\tx\t%1\t/dev/pts/1\nmain\t1\t%2\t\nmain\t1\t%3\t/dev/pts/3\n"
    assert [p.pane_id for p in parse_panes(output)] == ["%3"]


def test_list_panes_runs_tmux():
    runner = FakeRunner("main\t0\t%1\t/dev/pts/1\n")
    panes = TmuxMultiplexer(runner=runner).list_panes()
    assert len(panes) == 1
    assert runner.calls[0][:3] == ["tmux", "list-panes", "-a"]


@pytest.mark.parametrize(
    "runner",
    [
        FakeRunner(returncode=1),
        FakeRunner(exc=FileNotFoundError("tmux")),
        FakeRunner(exc=subprocess.TimeoutExpired("tmux", 2.0)),
    ],
)
def test_list_panes_without_tmux_is_empty(runner):
    """Test a missing tmux or server yields no panes instead of failing."""
    assert TmuxMultiplexer(runner=runner).list_panes() == []


def test_switch_inside_tmux_switches_client():
    runner = FakeRunner()
    mux = TmuxMultiplexer(runner=runner, environ={"TMUX": "/tmp/tmux-1000/default,1,0"})
    mux.switch_to(make_pane("/dev/pts/9", "%12", "work", 3))
    assert runner.calls == [
        ["tmux", "switch-client", "-t", "work"],
        ["tmux", "select-window", "-t", "%12"],
        ["tmux", "select-pane", "-t", "%12"],
    ]


def test_switch_outside_tmux_selects_pane_only():
    runner = FakeRunner()
    TmuxMultiplexer(runner=runner, environ={}).switch_to(make_pane("/dev/pts/9", "%12"))
    assert [call[1] for call in runner.calls] == ["select-window", "select-pane"]


def test_switch_failure_raises():
    runner = FakeRunner(returncode=1)
    with pytest.raises(MultiplexerError):
        TmuxMultiplexer(runner=runner, environ={}).switch_to(make_pane("/dev/pts/9"))
