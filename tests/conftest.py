from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from codex_bridge.ai.handler import CompletionHandler
from codex_bridge.ai.tools.registry import ToolRegistry
from codex_bridge.api.server import create_app
from codex_bridge.app import BridgeApp
from codex_bridge.config import AppConfig
from codex_bridge.core.sessions import SessionRegistry
from tests.fakes import FakeClock, ScriptedBackend


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(ttl_seconds=60.0, clock=clock)


@pytest.fixture
def tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_defaults()
    return registry


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def handler(backend: ScriptedBackend, sessions: SessionRegistry, tool_registry: ToolRegistry) -> CompletionHandler:
    return CompletionHandler(backend=backend, sessions=sessions, tool_registry=tool_registry)


@pytest.fixture
def bridge(backend: ScriptedBackend) -> BridgeApp:
    return BridgeApp(AppConfig(models=["gpt-5-codex", "gpt-4o"]), backend=backend)


@pytest.fixture
def client(bridge: BridgeApp):
    with TestClient(create_app(bridge)) as test_client:
        yield test_client
