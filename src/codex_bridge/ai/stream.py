"""Translate backend run events into OpenAI-style streaming chunks."""

from __future__ import annotations

import json
import time
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, AsyncIterator

from codex_bridge.ai.conversation import estimate_tokens, from_text
from codex_bridge.core.models import ChatCompletionChunk, StreamChoice, StreamEvent, Usage
from codex_bridge.core.sessions import SessionRegistry
from codex_bridge.core.types import EventKind, FinishReason, Role
from codex_bridge.errors import BackendFailure, BridgeError
from codex_bridge.log import get_logger

logger = get_logger(__name__)

DONE_MARKER = "[DONE]"


class StreamState(StrEnum):
    STARTED = "started"
    EMITTING = "emitting"
    FINISHED = "finished"
    ERRORED = "errored"


TERMINAL_STATES = frozenset({StreamState.FINISHED, StreamState.ERRORED})


@dataclass(frozen=True, slots=True)
class StreamFrame:
    """One server-sent event. ``payload`` of None is the end-of-stream marker."""

    payload: dict[str, Any] | None

    @property
    def is_done(self) -> bool:
        return self.payload is None

    @property
    def is_error(self) -> bool:
        return self.payload is not None and "error" in self.payload

    def to_sse(self) -> str:
        if self.payload is None:
            return f"data: {DONE_MARKER}\n\n"
        return f"data: {json.dumps(self.payload, ensure_ascii=False)}\n\n"


DONE_FRAME = StreamFrame(payload=None)


def error_payload(message: str, error_type: str = BackendFailure.error_type) -> dict[str, Any]:
    return {"error": {"message": message, "type": error_type}}


class StreamTranslator:
    """Drive one streamed completion through STARTED -> EMITTING* -> FINISHED | ERRORED.

    Every path out of :meth:`translate` ends the output with a terminal frame
    and the ``[DONE]`` marker, except cancellation by the consumer, which only
    closes the backend iterator. Session state (thread id and assistant text)
    is persisted exactly once, up to the last processed event, whichever way
    the stream ends.
    """

    def __init__(
        self,
        request_id: str,
        model: str,
        sessions: SessionRegistry | None = None,
        session_id: str | None = None,
        prompt_tokens: int = 0,
    ):
        self.request_id = request_id
        self.model = model
        self.state = StreamState.STARTED
        self._sessions = sessions
        self._session_id = session_id
        self._prompt_tokens = prompt_tokens
        self._created = int(time.time())
        self._parts: list[str] = []
        self._usage: Usage | None = None
        self._thread_id: str | None = None
        self._persisted = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def thread_id(self) -> str | None:
        return self._thread_id

    def _chunk(
        self,
        delta: dict[str, Any],
        finish_reason: str | None = None,
        usage: Usage | None = None,
    ) -> StreamFrame:
        chunk = ChatCompletionChunk(
            id=self.request_id,
            created=self._created,
            model=self.model,
            choices=[StreamChoice(delta=delta, finish_reason=finish_reason)],
            usage=usage,
        )
        return StreamFrame(payload=chunk.to_dict())

    def _on_content(self, text: str) -> StreamFrame:
        delta: dict[str, Any] = {"content": text}
        if self.state == StreamState.STARTED:
            delta = {"role": Role.ASSISTANT.value, **delta}
        self.state = StreamState.EMITTING
        self._parts.append(text)
        return self._chunk(delta)

    def _on_complete(self, event: StreamEvent) -> StreamFrame:
        usage = event.usage or self._usage
        if usage is None:
            usage = Usage.from_counts(self._prompt_tokens, estimate_tokens(self.text))
        self.state = StreamState.FINISHED
        return self._chunk({}, finish_reason=event.finish_reason or FinishReason.STOP.value, usage=usage)

    def _on_error(self, message: str, error_type: str = BackendFailure.error_type) -> StreamFrame:
        self.state = StreamState.ERRORED
        logger.warning("stream_errored", request_id=self.request_id, error=message)
        return StreamFrame(payload=error_payload(message, error_type))

    def _persist(self) -> None:
        if self._persisted or self._sessions is None or not self._session_id:
            return
        self._persisted = True
        if self._thread_id:
            self._sessions.bind_thread(self._session_id, self._thread_id)
        if self._parts:
            self._sessions.append_assistant(self._session_id, from_text(self.text))
        logger.debug(
            "stream_persisted",
            session_id=self._session_id,
            state=self.state.value,
            chars=len(self.text),
        )

    async def translate(self, events: AsyncIterator[StreamEvent]) -> AsyncIterator[StreamFrame]:
        try:
            async with aclosing(events) as source:
                async for event in source:
                    if event.thread_id:
                        self._thread_id = event.thread_id

                    match event.kind:
                        case EventKind.CONTENT:
                            if event.text:
                                yield self._on_content(event.text)
                        case EventKind.USAGE:
                            self._usage = event.usage
                        case EventKind.COMPLETE:
                            yield self._on_complete(event)
                            yield DONE_FRAME
                            self._persist()
                            return
                        case EventKind.ERROR:
                            yield self._on_error(event.error or "Unknown error")
                            yield DONE_FRAME
                            return

            raise BackendFailure("Backend stream ended without a completion event")

        except Exception as e:
            if self.state in TERMINAL_STATES:
                raise
            if isinstance(e, BridgeError):
                yield self._on_error(e.message, e.error_type)
            else:
                logger.exception("stream_backend_exception", request_id=self.request_id)
                yield self._on_error(str(e) or type(e).__name__)
            yield DONE_FRAME

        finally:
            self._persist()
