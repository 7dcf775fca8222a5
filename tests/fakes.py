"""Test doubles shared across the suite."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from codex_bridge.ai.client import Backend, ConversationHandle, RunOptions
from codex_bridge.core.models import StreamEvent, Usage


def reply(text: str, thread_id: str = "thread-1", usage: Usage | None = None) -> list:
    """Event script for a plain successful turn."""
    events: list = [StreamEvent.content(text, thread_id=thread_id)]
    if usage is not None:
        events.append(StreamEvent.usage_report(usage, thread_id=thread_id))
    events.append(StreamEvent.complete(thread_id=thread_id, finish_reason="stop", usage=usage))
    return events


class ScriptedBackend(Backend):
    """Backend double replaying queued event scripts, one per run.

    A script entry that is an exception instance is raised at that point.
    """

    def __init__(self, *scripts: list) -> None:
        self.scripts = list(scripts)
        self.calls: list[tuple[ConversationHandle, str, RunOptions | None]] = []
        self.closed = 0

    def queue(self, script: list) -> None:
        self.scripts.append(script)

    def start_conversation(self, workdir: str | None = None) -> ConversationHandle:
        return ConversationHandle(thread_id=None, workdir=workdir)

    def resume_conversation(self, thread_id: str) -> ConversationHandle:
        return ConversationHandle(thread_id=thread_id)

    async def run_streamed(
        self,
        handle: ConversationHandle,
        prompt: str,
        options: RunOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append((handle, prompt, options))
        script = self.scripts.pop(0) if self.scripts else reply("ok")
        try:
            for item in script:
                await asyncio.sleep(0)
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed += 1


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
