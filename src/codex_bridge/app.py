"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from codex_bridge.ai.client import Backend, CodexCliBackend
from codex_bridge.ai.handler import CompletionHandler
from codex_bridge.ai.tools.registry import ToolRegistry
from codex_bridge.config import AppConfig
from codex_bridge.core.sessions import SessionRegistry
from codex_bridge.log import get_logger
from codex_bridge.services.sweeper import SessionSweeper

logger = get_logger(__name__)


class BridgeApp:
    """Top-level application object.

    Built once per process and handed to the HTTP layer; every shared service
    hangs off this object rather than module globals.
    """

    def __init__(self, config: AppConfig, backend: Backend | None = None):
        self.config = config
        self.sessions = SessionRegistry(ttl_seconds=config.sessions.ttl_seconds)
        self.tool_registry = ToolRegistry()
        self.backend = backend or CodexCliBackend(config.codex)
        self.sweeper = SessionSweeper(self.sessions, config.sessions)
        self.handler = CompletionHandler(
            backend=self.backend,
            sessions=self.sessions,
            tool_registry=self.tool_registry,
            workdir=config.codex.workdir,
        )
        self.tool_registry.register_defaults()

    async def start(self) -> None:
        """Initialize and start all components."""
        if self.config.codex.verify_on_start:
            verified = await self.backend.verify()
            if not verified:
                logger.warning("backend_unverified", hint="requests may fail")

        await self.sweeper.start()
        logger.info(
            "codex_bridge_started",
            tools=len(self.tool_registry.all_tools()),
            session_ttl=self.config.sessions.ttl_seconds,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        await self.sweeper.stop()
        logger.info("codex_bridge_stopped", sessions=len(self.sessions))
        self.sessions.clear()
