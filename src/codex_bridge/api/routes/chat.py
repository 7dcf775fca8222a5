"""Chat completions endpoint, JSON or server-sent events."""

from __future__ import annotations

from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from structlog.contextvars import bound_contextvars

from codex_bridge.ai.handler import new_request_id
from codex_bridge.ai.stream import StreamFrame
from codex_bridge.api.deps import get_bridge
from codex_bridge.app import BridgeApp
from codex_bridge.core.models import ChatCompletionRequest

router = APIRouter()


async def _sse(
    frames: AsyncIterator[StreamFrame],
    request_id: str,
    session_id: str | None,
) -> AsyncIterator[str]:
    # the body is iterated after the route returns, so bind the request keys here
    with bound_contextvars(request_id=request_id, session_id=session_id):
        # closing here propagates a client disconnect down to the backend process
        async with aclosing(frames) as source:
            async for frame in source:
                yield frame.to_sse()


@router.post("/chat/completions")
async def create_chat_completion(
    payload: ChatCompletionRequest,
    bridge: BridgeApp = Depends(get_bridge),
):
    request_id = new_request_id()
    with bound_contextvars(request_id=request_id, session_id=payload.session_id):
        if payload.stream:
            frames = bridge.handler.stream(payload, request_id)
            return StreamingResponse(
                _sse(frames, request_id, payload.session_id),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        response = await bridge.handler.complete(payload, request_id)
        return JSONResponse(response.to_dict())
