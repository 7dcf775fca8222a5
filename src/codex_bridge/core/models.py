"""Caller-facing wire models and the internal backend event type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from codex_bridge.core.types import EventKind


class FunctionCall(BaseModel):
    name: str
    arguments: str  # JSON-encoded


class ToolCall(BaseModel):
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class Message(BaseModel):
    """One chat message.

    ``role`` is deliberately loose here: role checks belong to
    :func:`codex_bridge.ai.conversation.validate` so that bad roles surface as
    ``InvalidRequest`` rather than schema errors.
    """

    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def _flatten_content_parts(cls, value: Any) -> Any:
        # OpenAI content-part lists: keep the text parts only
        if isinstance(value, list):
            texts = [
                part.get("text", "")
                for part in value
                if isinstance(part, dict) and part.get("type") == "text"
            ]
            return "\n".join(t for t in texts if t)
        return value

    def to_wire(self) -> dict[str, Any]:
        """Serialize with ``content`` always present (``null`` allowed)."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            data["name"] = self.name
        if self.tool_calls:
            data["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        return data


class FunctionSpec(BaseModel):
    name: str
    description: Optional[str] = None
    parameters: Optional[dict[str, Any]] = None


class ToolSpec(BaseModel):
    type: str = "function"
    function: FunctionSpec


class ChatCompletionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str
    messages: list[Message] = Field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    n: Optional[int] = None
    stream: bool = False
    stop: Optional[str | list[str]] = None
    max_tokens: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    logit_bias: Optional[dict[str, float]] = None
    user: Optional[str] = None

    # Bridge extensions
    session_id: Optional[str] = None
    enable_tools: Optional[bool] = None
    tools: Optional[list[ToolSpec]] = None
    functions: Optional[list[dict[str, Any]]] = None  # legacy function-calling format
    tool_choice: Optional[str | dict[str, Any]] = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> Usage:
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class Choice(BaseModel):
    index: int = 0
    message: Message
    finish_reason: Optional[str] = None
    logprobs: Optional[Any] = None


class ChatCompletionResponse(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: Usage
    system_fingerprint: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump()
        data["choices"] = [
            {
                "index": c.index,
                "message": c.message.to_wire(),
                "finish_reason": c.finish_reason,
                "logprobs": c.logprobs,
            }
            for c in self.choices
        ]
        return data


class StreamChoice(BaseModel):
    index: int = 0
    delta: dict[str, Any] = Field(default_factory=dict)
    finish_reason: Optional[str] = None
    logprobs: Optional[Any] = None


class ChatCompletionChunk(BaseModel):
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[StreamChoice]
    usage: Optional[Usage] = None

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump()
        if self.usage is None:
            data.pop("usage")
        return data


class SessionInfo(BaseModel):
    session_id: str
    created_at: str
    last_active: str
    message_count: int
    expires_at: str


class SessionDetail(BaseModel):
    session_id: str
    thread_id: str
    created_at: str
    last_active: str
    message_count: int
    messages: list[dict[str, Any]]


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]
    total: int


class SessionStats(BaseModel):
    active_sessions: int
    total_messages: int
    oldest_session: Optional[str] = None
    newest_session: Optional[str] = None


class ModelInfo(BaseModel):
    id: str
    object: Literal["model"] = "model"
    owned_by: str = "openai"
    created: Optional[int] = None


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One event of a backend run.

    ``thread_id`` rides along on any event once the backend has announced it.
    """

    kind: EventKind
    text: str = ""
    usage: Optional[Usage] = None
    finish_reason: Optional[str] = None
    error: Optional[str] = None
    thread_id: Optional[str] = None

    @classmethod
    def content(cls, text: str, thread_id: str | None = None) -> StreamEvent:
        return cls(kind=EventKind.CONTENT, text=text, thread_id=thread_id)

    @classmethod
    def usage_report(cls, usage: Usage, thread_id: str | None = None) -> StreamEvent:
        return cls(kind=EventKind.USAGE, usage=usage, thread_id=thread_id)

    @classmethod
    def complete(
        cls,
        thread_id: str | None = None,
        finish_reason: str | None = None,
        usage: Usage | None = None,
    ) -> StreamEvent:
        return cls(
            kind=EventKind.COMPLETE,
            thread_id=thread_id,
            finish_reason=finish_reason,
            usage=usage,
        )

    @classmethod
    def failure(cls, error: str, thread_id: str | None = None) -> StreamEvent:
        return cls(kind=EventKind.ERROR, error=error, thread_id=thread_id)
