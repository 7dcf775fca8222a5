"""Decide which tools a request may use and describe them to the backend."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Sequence

from codex_bridge.ai.tools.registry import ToolRegistry
from codex_bridge.core.models import ChatCompletionRequest, Message, ToolSpec
from codex_bridge.core.types import Role
from codex_bridge.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolPolicy:
    """Tool permissions derived from one request.

    ``allowed`` of ``None`` means every registered tool is allowed.
    """

    enabled: bool
    allowed: frozenset[str] | None = None
    disallowed: frozenset[str] = frozenset()

    def permits(self, name: str) -> bool:
        if not self.enabled or name in self.disallowed:
            return False
        return self.allowed is None or name in self.allowed

    @classmethod
    def from_request(cls, request: ChatCompletionRequest, registry: ToolRegistry) -> ToolPolicy:
        if not should_enable_tools(request):
            return cls(enabled=False, disallowed=frozenset(registry.list_names()))

        if request.tools:
            requested = [
                t.function.name for t in request.tools if t.type == "function" and t.function.name
            ]
            if requested:
                logger.debug("specific_tools_requested", tools=requested)
                return cls(enabled=True, allowed=frozenset(requested))

        choice = request.tool_choice
        if choice == "none":
            return cls(enabled=False, disallowed=frozenset(registry.list_names()))
        if isinstance(choice, dict) and choice.get("type") == "function":
            name = (choice.get("function") or {}).get("name")
            if name:
                return cls(enabled=True, allowed=frozenset([name]))

        return cls(enabled=True)


def should_enable_tools(request: ChatCompletionRequest) -> bool:
    """Tools are off by default; any explicit tool signal turns them on."""
    if request.enable_tools is True:
        return True
    if request.tools:
        return True
    if request.functions:
        return True
    return False


def build_tool_context(tools: Sequence[ToolSpec]) -> str:
    """Describe caller-declared tools in plain text for the system prompt."""
    lines = []
    for tool in tools:
        params = json.dumps(tool.function.parameters) if tool.function.parameters else "{}"
        description = tool.function.description or "No description"
        lines.append(f"- {tool.function.name}: {description}\n  Parameters: {params}")

    return (
        "You have access to the following tools:\n\n"
        + "\n\n".join(lines)
        + "\n\nWhen you need to use a tool, clearly indicate which tool and what "
        "parameters you're using."
    )


def inject_tool_context(messages: Sequence[Message], tools: Sequence[ToolSpec] | None) -> list[Message]:
    """Return a copy of ``messages`` whose system prompt describes ``tools``."""
    if not tools:
        return list(messages)

    context = build_tool_context(tools)
    if any(m.role == Role.SYSTEM for m in messages):
        return [
            m.model_copy(update={"content": f"{m.content or ''}\n\n{context}"})
            if m.role == Role.SYSTEM
            else m
            for m in messages
        ]
    return [Message(role=Role.SYSTEM.value, content=context), *messages]
