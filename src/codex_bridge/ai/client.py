"""Agent backend abstraction and the Codex CLI implementation."""

from __future__ import annotations

import asyncio
import json
import os
import platform
import shutil
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator

from codex_bridge.config import CodexConfig
from codex_bridge.core.models import StreamEvent, Usage
from codex_bridge.core.types import EventKind, FinishReason
from codex_bridge.errors import BackendFailure
from codex_bridge.log import get_logger

logger = get_logger(__name__)

# Codex emits whole items per JSONL line; command output can make them long.
STDOUT_LINE_LIMIT = 16 * 1024 * 1024


@dataclass
class ConversationHandle:
    """A started or resumed backend thread. ``thread_id`` is None until announced."""

    thread_id: str | None = None
    workdir: str | None = None


@dataclass
class RunOptions:
    tools_enabled: bool = False


@dataclass
class BackendResult:
    """Unified single-shot result from any backend."""

    text: str
    thread_id: str | None = None
    usage: Usage | None = None
    finish_reason: str = FinishReason.STOP.value


class Backend(ABC):
    """Abstract base class for agent backends."""

    @abstractmethod
    def start_conversation(self, workdir: str | None = None) -> ConversationHandle:
        ...

    @abstractmethod
    def resume_conversation(self, thread_id: str) -> ConversationHandle:
        ...

    @abstractmethod
    def run_streamed(
        self,
        handle: ConversationHandle,
        prompt: str,
        options: RunOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn and yield its events.

        The sequence ends with exactly one ``complete`` or ``error`` event.
        Closing the iterator early must stop the underlying run.
        """
        ...

    async def run(
        self,
        handle: ConversationHandle,
        prompt: str,
        options: RunOptions | None = None,
    ) -> BackendResult:
        """Run one turn to completion and return the collected text."""
        parts: list[str] = []
        usage: Usage | None = None
        thread_id = handle.thread_id

        async with aclosing(self.run_streamed(handle, prompt, options)) as events:
            async for event in events:
                thread_id = event.thread_id or thread_id
                match event.kind:
                    case EventKind.CONTENT:
                        parts.append(event.text)
                    case EventKind.USAGE:
                        usage = event.usage
                    case EventKind.ERROR:
                        raise BackendFailure(event.error or "Unknown backend error")
                    case EventKind.COMPLETE:
                        return BackendResult(
                            text="".join(parts),
                            thread_id=thread_id,
                            usage=event.usage or usage,
                            finish_reason=event.finish_reason or FinishReason.STOP.value,
                        )

        raise BackendFailure("Backend run ended without a completion event")

    async def verify(self) -> bool:
        """Check that the backend is reachable and authenticated."""
        return True


@dataclass
class CodexRunState:
    """Per-run bookkeeping while reading Codex JSONL events."""

    thread_id: str | None = None
    messages_seen: int = 0
    usage: Usage | None = None
    failed: bool = False


def _item_text(item: dict[str, Any]) -> str:
    item_type = item.get("type")
    if item_type in ("agent_message", "assistant_message", "text"):
        return item.get("text") or ""
    if item_type == "message":
        content = item.get("content")
        if isinstance(content, list):
            return "".join(c.get("text", "") for c in content if isinstance(c, dict))
        return content or ""
    return ""


def translate_codex_event(line: str, state: CodexRunState) -> StreamEvent | None:
    """Map one ``codex exec --json`` line to a StreamEvent (or None to skip it)."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("codex_non_json_line", line=line[:200])
        return None
    if not isinstance(data, dict):
        return None

    match data.get("type"):
        case "thread.started":
            state.thread_id = data.get("thread_id") or state.thread_id
            logger.debug("codex_thread_started", thread_id=state.thread_id)
            return None

        case "item.completed":
            item = data.get("item")
            text = _item_text(item) if isinstance(item, dict) else ""
            if not text:
                return None
            # successive agent messages read as separate paragraphs
            if state.messages_seen:
                text = "\n\n" + text
            state.messages_seen += 1
            return StreamEvent.content(text, thread_id=state.thread_id)

        case "turn.completed":
            raw = data.get("usage") or {}
            state.usage = Usage.from_counts(
                int(raw.get("input_tokens") or 0),
                int(raw.get("output_tokens") or 0),
            )
            return StreamEvent.usage_report(state.usage, thread_id=state.thread_id)

        case "turn.failed":
            error = data.get("error")
            message = error.get("message") if isinstance(error, dict) else error
            state.failed = True
            return StreamEvent.failure(str(message or "Codex turn failed"), thread_id=state.thread_id)

        case "error":
            state.failed = True
            return StreamEvent.failure(
                str(data.get("message") or "Unknown error"), thread_id=state.thread_id
            )

    return None


class CodexCliBackend(Backend):
    """Codex CLI backend driving ``codex exec --json`` through a subprocess."""

    def __init__(self, config: CodexConfig):
        self._cli_path = self._resolve_cli_path(config.cli_path)
        self._timeout = config.timeout
        self._workdir = config.workdir or os.getcwd()
        self._model = config.model
        self._network_access = config.network_access
        self._skip_git_repo_check = config.skip_git_repo_check

    @staticmethod
    def _resolve_cli_path(cli_path: str) -> str:
        """Resolve the codex CLI path, checking common install locations."""
        if os.path.isabs(cli_path) and os.path.exists(cli_path):
            return cli_path

        found = shutil.which(cli_path)
        if found:
            return found

        # On Windows, check common npm global locations
        if platform.system() == "Windows":
            for base in (os.environ.get("APPDATA", ""), os.environ.get("LOCALAPPDATA", "")):
                if not base:
                    continue
                for name in ("codex.cmd", "codex"):
                    candidate = os.path.join(base, "npm", name)
                    if os.path.exists(candidate):
                        return candidate

        return cli_path

    def start_conversation(self, workdir: str | None = None) -> ConversationHandle:
        return ConversationHandle(thread_id=None, workdir=workdir or self._workdir)

    def resume_conversation(self, thread_id: str) -> ConversationHandle:
        return ConversationHandle(thread_id=thread_id, workdir=self._workdir)

    def build_command(self, handle: ConversationHandle, options: RunOptions) -> list[str]:
        """Build the argv for one turn; the prompt itself goes through stdin."""
        cmd = [self._cli_path, "exec", "--json"]
        if self._skip_git_repo_check:
            cmd.append("--skip-git-repo-check")
        cmd.extend(["--cd", handle.workdir or self._workdir])

        sandbox = "workspace-write" if options.tools_enabled else "read-only"
        cmd.extend(["--sandbox", sandbox])
        if options.tools_enabled and self._network_access:
            cmd.extend(["-c", "sandbox_workspace_write.network_access=true"])
        if self._model:
            cmd.extend(["--model", self._model])

        if handle.thread_id:
            cmd.extend(["resume", handle.thread_id])
        cmd.append("-")
        return cmd

    async def run_streamed(
        self,
        handle: ConversationHandle,
        prompt: str,
        options: RunOptions | None = None,
    ) -> AsyncIterator[StreamEvent]:
        cmd = self.build_command(handle, options or RunOptions())
        logger.info(
            "codex_request",
            cli_path=self._cli_path,
            prompt_length=len(prompt),
            resume=handle.thread_id is not None,
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STDOUT_LINE_LIMIT,
            )
        except FileNotFoundError as e:
            logger.error("codex_not_found", cli_path=self._cli_path)
            raise BackendFailure(
                f"Codex CLI not found at '{self._cli_path}'. "
                "Install it with: npm install -g @openai/codex"
            ) from e

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout

        def remaining() -> float:
            left = deadline - loop.time()
            if left <= 0:
                raise TimeoutError
            return left

        state = CodexRunState(thread_id=handle.thread_id)
        stderr_task = asyncio.create_task(process.stderr.read())

        try:
            try:
                process.stdin.write(prompt.encode("utf-8"))
                await asyncio.wait_for(process.stdin.drain(), timeout=remaining())
                process.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                # the process exited early; its exit status explains why
                pass

            while True:
                raw = await asyncio.wait_for(process.stdout.readline(), timeout=remaining())
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                event = translate_codex_event(line, state)
                if event is None:
                    continue
                yield event
                if event.kind == EventKind.ERROR:
                    return

            returncode = await asyncio.wait_for(process.wait(), timeout=remaining())
            stderr_text = (await stderr_task).decode("utf-8", errors="replace").strip()

            if returncode != 0:
                logger.error("codex_error", returncode=returncode, stderr=stderr_text[:500])
                yield StreamEvent.failure(
                    f"Codex error (exit {returncode}): {stderr_text or '(no output)'}",
                    thread_id=state.thread_id,
                )
                return

            yield StreamEvent.complete(
                thread_id=state.thread_id,
                finish_reason=FinishReason.STOP.value,
                usage=state.usage,
            )

        except TimeoutError as e:
            logger.error("codex_timeout", timeout=self._timeout)
            raise BackendFailure(f"Codex timed out after {self._timeout} seconds.") from e

        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
            if not stderr_task.done():
                stderr_task.cancel()

    async def verify(self) -> bool:
        try:
            logger.info("codex_verify_start")
            handle = self.start_conversation()
            await self.run(handle, 'Say "hello"')
        except BackendFailure as e:
            logger.error("codex_verify_failed", error=e.message)
            return False
        logger.info("codex_verify_ok")
        return True
