"""Verification Test: Chaos Monkey - agents exiting while the engine scans.

Spawns real child processes registered as agents, terminates them at random
while the engine is running, and checks that the session list never keeps a
dead agent and that the refresh loop survives.
"""

import random
import subprocess
import sys
import time

import psutil
import pytest

from rpai.collector import ProcessCollector
from rpai.config import EngineConfig
from rpai.engine import Engine
from rpai.models import AgentKind

from conftest import FakeMultiplexer


def spawn_sleepers(count: int, duration: float = 60.0) -> list[subprocess.Popen]:
    code = f"import time; time.sleep({duration})"
    return [subprocess.Popen([sys.executable, "-c", code]) for _ in range(count)]


def reap(children: list[subprocess.Popen]) -> None:
    for child in children:
        if child.poll() is None:
            child.terminate()
    for child in children:
        try:
            child.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            child.kill()


@pytest.fixture
def children():
    procs = spawn_sleepers(12)
    # Let the interpreters exec so their names settle
    time.sleep(0.3)
    yield procs
    reap(procs)


def make_engine(children, interval: float = 0.05) -> Engine:
    name = psutil.Process(children[0].pid).name()
    config = EngineConfig(refresh_interval=interval, agent_binaries={name: AgentKind.CLAUDE})
    return Engine(config, collector=ProcessCollector(), multiplexer=FakeMultiplexer())


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_dead_agents_leave_the_list(self, children):
        """Test sessions appear for live agents and vanish once they exit."""
        engine = make_engine(children)
        pids = {session.pid for session in engine.run_cycle()}
        assert {child.pid for child in children} <= pids

        victims = random.sample(children, 6)
        reap(victims)

        pids = {session.pid for session in engine.run_cycle()}
        survivors = [child for child in children if child not in victims]
        assert {child.pid for child in survivors} <= pids
        assert not {child.pid for child in victims} & pids

    def test_unreaped_agents_leave_the_list(self, children):
        """Test agents that exited but were not yet waited on are dropped."""
        engine = make_engine(children)
        engine.run_cycle()

        victims = children[:3]
        for child in victims:
            child.terminate()
        deadline = time.monotonic() + 5.0
        for child in victims:
            while psutil.Process(child.pid).status() != psutil.STATUS_ZOMBIE:
                assert time.monotonic() < deadline, "child never became a zombie"
                time.sleep(0.01)

        pids = {session.pid for session in engine.run_cycle()}
        assert not {child.pid for child in victims} & pids
        assert {child.pid for child in children[3:]} <= pids

    def test_ids_survive_churn(self, children):
        """Test surviving agents keep their IDs while others exit."""
        engine = make_engine(children)
        before = {s.pid: s.id for s in engine.run_cycle()}

        reap(children[:4])
        after = {s.pid: s.id for s in engine.run_cycle()}

        for child in children[4:]:
            assert after[child.pid] == before[child.pid]

    def test_loop_survives_random_termination(self, children):
        """Test the refresh thread keeps publishing while agents die mid-scan."""
        engine = make_engine(children)
        engine.start()
        try:
            for child in random.sample(children, len(children)):
                child.terminate()
                time.sleep(0.03)

            start_cycle = engine.snapshot.cycle
            deadline = time.monotonic() + 5.0
            while engine.snapshot.cycle < start_cycle + 3 and time.monotonic() < deadline:
                time.sleep(0.05)

            assert engine.is_running, "Engine should still be running after chaos"
            assert engine.snapshot.cycle >= start_cycle + 3
        finally:
            engine.stop()

        reap(children)
        pids = {session.pid for session in engine.run_cycle()}
        assert not {child.pid for child in children} & pids
