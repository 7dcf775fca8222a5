"""Tool registry for discovering and managing available tools."""

from __future__ import annotations

from typing import Any

from codex_bridge.ai.tools.base import ToolDefinition
from codex_bridge.log import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_names(self) -> set[str]:
        return set(self._tools)

    def all_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def to_openai(self) -> list[dict[str, Any]]:
        return [t.to_api_dict() for t in self._tools.values()]

    def register_defaults(self) -> None:
        """Register the built-in tool catalogue."""
        from codex_bridge.ai.tools.builtin import BUILTIN_TOOLS

        for tool in BUILTIN_TOOLS:
            self.register(tool)
        logger.info("builtin_tools_registered", count=len(BUILTIN_TOOLS))
