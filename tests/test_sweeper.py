import pytest

from codex_bridge.config import SessionConfig
from codex_bridge.core.models import Message
from codex_bridge.services.sweeper import SWEEP_JOB_ID, SessionSweeper


@pytest.mark.asyncio
async def test_run_once_removes_idle_sessions(sessions, clock):
    sessions.resolve([Message(role="user", content="a")], "s1")
    clock.advance(sessions.ttl_seconds + 1)
    sweeper = SessionSweeper(sessions, SessionConfig())

    assert await sweeper.run_once() == 1
    assert len(sessions) == 0


@pytest.mark.asyncio
async def test_run_once_survives_registry_errors(sessions, monkeypatch):
    def broken():
        raise RuntimeError("boom")

    monkeypatch.setattr(sessions, "sweep", broken)
    assert await SessionSweeper(sessions, SessionConfig()).run_once() == 0


@pytest.mark.asyncio
async def test_start_and_stop(sessions):
    sweeper = SessionSweeper(sessions, SessionConfig(sweep_interval_seconds=5))

    await sweeper.start()
    await sweeper.start()
    try:
        assert sweeper.running
        assert sweeper._scheduler.get_job(SWEEP_JOB_ID) is not None
    finally:
        await sweeper.stop()
    await sweeper.stop()

    assert sweeper.service_name == "session_sweeper"
