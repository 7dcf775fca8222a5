"""Best-effort recovery of tool calls from the agent's free-text output.

The backend has no structured tool-call channel, so calls are recognised by
two textual conventions, scanned in this order:

1. inline calls, ``read_file({"path": "a.txt"})``
2. fenced blocks tagged with the tool name::

       ```read_file
       {"path": "a.txt"}
       ```

Candidates whose arguments are not a strict JSON object, or whose name is not
a registered (and permitted) tool, are dropped. A fenced block overlapping an
inline call already taken is ignored. This is a heuristic with known false
negatives, not a grammar.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from typing import Any, Iterator

from codex_bridge.ai.tool_policy import ToolPolicy
from codex_bridge.ai.tools.registry import ToolRegistry
from codex_bridge.core.models import FunctionCall, ToolCall
from codex_bridge.errors import ParseSkipped
from codex_bridge.log import get_logger

logger = get_logger(__name__)

INLINE_CALL_PATTERN = re.compile(r"\b([A-Za-z_]\w*)\(\s*(?=\{)")
FENCED_CALL_PATTERN = re.compile(r"```([A-Za-z_]\w*)[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL)

_decoder = json.JSONDecoder()


@dataclass(frozen=True, slots=True)
class _Candidate:
    name: str
    arguments: dict[str, Any]
    start: int
    end: int

    def overlaps(self, start: int, end: int) -> bool:
        return start < self.end and self.start < end


def _as_object(value: Any, name: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ParseSkipped("arguments are not a JSON object", tool_name=name)
    return value


def _inline_candidates(text: str, accept) -> Iterator[_Candidate]:
    for match in INLINE_CALL_PATTERN.finditer(text):
        name = match.group(1)
        if not accept(name):
            continue
        try:
            value, end = _decoder.raw_decode(text, match.end())
            args = _as_object(value, name)
            rest = text[end:].lstrip()
            if not rest.startswith(")"):
                raise ParseSkipped("call is not closed after its arguments", tool_name=name)
        except json.JSONDecodeError as e:
            logger.debug("tool_call_skipped", tool_name=name, reason=str(e), form="inline")
            continue
        except ParseSkipped as e:
            logger.debug("tool_call_skipped", tool_name=e.tool_name, reason=e.message, form="inline")
            continue
        close = text.index(")", end) + 1
        yield _Candidate(name=name, arguments=args, start=match.start(), end=close)


def _fenced_candidates(text: str, accept) -> Iterator[_Candidate]:
    for match in FENCED_CALL_PATTERN.finditer(text):
        name = match.group(1)
        if not accept(name):
            continue
        try:
            args = _as_object(json.loads(match.group(2)), name)
        except json.JSONDecodeError as e:
            logger.debug("tool_call_skipped", tool_name=name, reason=str(e), form="fenced")
            continue
        except ParseSkipped as e:
            logger.debug("tool_call_skipped", tool_name=e.tool_name, reason=e.message, form="fenced")
            continue
        yield _Candidate(name=name, arguments=args, start=match.start(), end=match.end())


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:24]}"


def extract_tool_calls(
    text: str | None,
    registry: ToolRegistry,
    policy: ToolPolicy | None = None,
) -> list[ToolCall] | None:
    """Return the tool calls found in ``text``, or ``None`` when there are none."""
    if not text:
        return None

    registered = registry.list_names()

    def accept(name: str) -> bool:
        if name not in registered:
            return False
        return policy is None or policy.permits(name)

    found = list(_inline_candidates(text, accept))
    inline_spans = list(found)
    for candidate in _fenced_candidates(text, accept):
        if any(c.overlaps(candidate.start, candidate.end) for c in inline_spans):
            logger.debug("tool_call_duplicate_span", tool_name=candidate.name)
            continue
        found.append(candidate)

    if not found:
        return None

    calls = [
        ToolCall(
            id=_new_call_id(),
            function=FunctionCall(
                name=c.name,
                arguments=json.dumps(c.arguments, separators=(",", ":"), ensure_ascii=False),
            ),
        )
        for c in found
    ]
    logger.debug("tool_calls_extracted", names=[c.function.name for c in calls])
    return calls
