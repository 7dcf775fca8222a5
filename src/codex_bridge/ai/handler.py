"""Completion handler: request -> session -> prompt -> backend -> response."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import AsyncIterator

from codex_bridge.ai import conversation
from codex_bridge.ai.client import Backend, ConversationHandle, RunOptions
from codex_bridge.ai.stream import StreamFrame, StreamTranslator
from codex_bridge.ai.tool_calls import extract_tool_calls
from codex_bridge.ai.tool_policy import ToolPolicy, inject_tool_context
from codex_bridge.ai.tools.registry import ToolRegistry
from codex_bridge.core.models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    Choice,
    Message,
    Usage,
)
from codex_bridge.core.sessions import SessionRegistry
from codex_bridge.core.types import FinishReason, Role
from codex_bridge.errors import BackendFailure, BridgeError, InvalidRequest
from codex_bridge.log import get_logger

logger = get_logger(__name__)


def new_request_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


@dataclass
class PreparedTurn:
    """Everything resolved for one request before the backend is called."""

    request_id: str
    prompt: str
    session_id: str | None
    handle: ConversationHandle
    policy: ToolPolicy
    options: RunOptions
    prompt_tokens: int


class CompletionHandler:
    """Handles the full flow for one chat-completion request.

    Validation happens before any session or backend side effect. Backend
    failures surface as ``BackendFailure`` in single-shot mode and as a
    terminal error frame in streaming mode.
    """

    def __init__(
        self,
        backend: Backend,
        sessions: SessionRegistry,
        tool_registry: ToolRegistry,
        workdir: str | None = None,
    ):
        self._backend = backend
        self._sessions = sessions
        self._tool_registry = tool_registry
        self._workdir = workdir

    def prepare(self, request: ChatCompletionRequest, request_id: str | None = None) -> PreparedTurn:
        conversation.validate(request.messages)
        if not conversation.has_conversation(request.messages):
            raise InvalidRequest("No valid prompt in messages")
        # the caller's own turn must render before any session is touched
        incoming, _ = conversation.to_prompt(request.messages)
        if not incoming:
            raise InvalidRequest("No valid prompt in messages")

        policy = ToolPolicy.from_request(request, self._tool_registry)
        messages, session_id = self._sessions.resolve(request.messages, request.session_id)

        # history never holds system entries; re-add the caller's current ones
        if session_id:
            system = [m for m in request.messages if m.role == Role.SYSTEM]
            messages = [*system, *messages]

        messages = inject_tool_context(messages, request.tools)
        prompt, system_prompt = conversation.to_prompt(messages)

        thread_id = self._sessions.thread_of(session_id) if session_id else None
        if thread_id:
            handle = self._backend.resume_conversation(thread_id)
        else:
            handle = self._backend.start_conversation(self._workdir)

        final_prompt = conversation.compose_prompt(prompt, system_prompt)
        turn = PreparedTurn(
            request_id=request_id or new_request_id(),
            prompt=final_prompt,
            session_id=session_id,
            handle=handle,
            policy=policy,
            options=RunOptions(tools_enabled=policy.enabled),
            prompt_tokens=conversation.estimate_tokens(final_prompt),
        )
        logger.info(
            "completion_prepared",
            request_id=turn.request_id,
            session_id=session_id,
            resumed=thread_id is not None,
            tools_enabled=policy.enabled,
            message_count=len(messages),
        )
        return turn

    async def complete(
        self, request: ChatCompletionRequest, request_id: str | None = None
    ) -> ChatCompletionResponse:
        """Run a single-shot completion and shape the response envelope."""
        turn = self.prepare(request, request_id)

        try:
            result = await self._backend.run(turn.handle, turn.prompt, turn.options)
        except BridgeError:
            raise
        except Exception as e:
            logger.error("backend_run_failed", request_id=turn.request_id, error=str(e))
            raise BackendFailure(str(e) or type(e).__name__) from e

        tool_calls = None
        finish_reason = result.finish_reason or FinishReason.STOP.value
        if turn.policy.enabled and result.text:
            tool_calls = extract_tool_calls(result.text, self._tool_registry, turn.policy)
            if tool_calls:
                finish_reason = FinishReason.TOOL_CALLS.value

        if turn.session_id:
            if result.thread_id:
                self._sessions.bind_thread(turn.session_id, result.thread_id)
            self._sessions.append_assistant(turn.session_id, conversation.from_text(result.text))

        usage = result.usage or Usage.from_counts(
            turn.prompt_tokens, conversation.estimate_tokens(result.text)
        )
        message = Message(
            role=Role.ASSISTANT.value,
            content=None if tool_calls else result.text,
            tool_calls=tool_calls,
        )
        logger.info(
            "completion_finished",
            request_id=turn.request_id,
            finish_reason=finish_reason,
            tool_calls=len(tool_calls or []),
        )
        return ChatCompletionResponse(
            id=turn.request_id,
            created=int(time.time()),
            model=request.model,
            choices=[Choice(message=message, finish_reason=finish_reason)],
            usage=usage,
        )

    def stream(
        self, request: ChatCompletionRequest, request_id: str | None = None
    ) -> AsyncIterator[StreamFrame]:
        """Prepare eagerly (so validation errors raise here) and return the frame stream."""
        turn = self.prepare(request, request_id)
        translator = StreamTranslator(
            request_id=turn.request_id,
            model=request.model,
            sessions=self._sessions,
            session_id=turn.session_id,
            prompt_tokens=turn.prompt_tokens,
        )
        events = self._backend.run_streamed(turn.handle, turn.prompt, turn.options)
        return translator.translate(events)
