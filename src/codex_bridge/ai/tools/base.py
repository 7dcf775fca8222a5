"""Tool descriptor advertised to callers and used to vet recovered tool calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the agent backend can use.

    The bridge never executes tools itself; the backend does. Definitions are
    only advertised (``GET /v1/tools``), described to the model, and used to
    accept or reject tool calls recovered from free text.
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the OpenAI function-tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
