"""Convert structured chat messages into the linear prompt the agent backend reads."""

from __future__ import annotations

import math
from typing import Sequence

from codex_bridge.core.models import Message
from codex_bridge.core.types import Role
from codex_bridge.errors import InvalidRequest

VALID_ROLES = frozenset(r.value for r in Role)
CHARS_PER_TOKEN = 4


def to_prompt(messages: Sequence[Message]) -> tuple[str, str | None]:
    """Render messages into ``(prompt, system_prompt)``.

    System messages are collected (in order) into the system prompt; every
    other role is rendered as one transcript entry with a fixed prefix. The
    transform is lossy: the backend only ever sees text.
    """
    system_parts: list[str] = []
    parts: list[str] = []

    for msg in messages:
        content = msg.content or ""

        if msg.role == Role.SYSTEM:
            if content:
                system_parts.append(content)

        elif msg.role == Role.USER:
            label = f"{msg.name}: " if msg.name else ""
            parts.append(f"User: {label}{content}")

        elif msg.role == Role.ASSISTANT:
            if content:
                parts.append(f"Assistant: {content}")
            if msg.tool_calls:
                calls = "\n".join(
                    f"Tool call: {tc.function.name}({tc.function.arguments})"
                    for tc in msg.tool_calls
                )
                parts.append(f"Assistant: {calls}")

        elif msg.role == Role.TOOL:
            parts.append(f"Tool result: {content}")

    system_prompt = "\n\n".join(system_parts) if system_parts else None
    return "\n\n".join(parts), system_prompt


def from_text(text: str) -> Message:
    """Wrap backend output as an assistant message."""
    return Message(role=Role.ASSISTANT.value, content=text)


def compose_prompt(prompt: str, system_prompt: str | None) -> str:
    """Prepend the system prompt; the backend has no separate system channel."""
    if system_prompt:
        return f"{system_prompt}\n\n{prompt}"
    return prompt


def validate(messages: Sequence[Message]) -> None:
    """Raise ``InvalidRequest`` if the message list is not acceptable."""
    if not messages:
        raise InvalidRequest("Messages must be a non-empty array")

    for i, msg in enumerate(messages):
        if not msg.role:
            raise InvalidRequest(f"Message at index {i} missing required field: role")
        if msg.role not in VALID_ROLES:
            raise InvalidRequest(f"Message at index {i} has invalid role: {msg.role}")
        if msg.role == Role.USER and not msg.content:
            raise InvalidRequest(f"User message at index {i} missing content")


def has_conversation(messages: Sequence[Message]) -> bool:
    """True if at least one non-system message is present."""
    return any(m.role != Role.SYSTEM for m in messages)


def last_user_message(messages: Sequence[Message]) -> str | None:
    for msg in reversed(messages):
        if msg.role == Role.USER and msg.content:
            return msg.content
    return None


def estimate_tokens(text: str) -> int:
    """Rough token count (~4 characters per token). Not a tokenizer."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)
