"""Error taxonomy shared by the translation core and the HTTP surface."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors.

    ``status_code`` and ``error_type`` describe how the HTTP layer renders the
    error to the caller.
    """

    status_code: int = 500
    error_type: str = "api_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class InvalidRequest(BridgeError):
    """Malformed or missing request fields. Never retried."""

    status_code = 400
    error_type = "invalid_request_error"


class BackendFailure(BridgeError):
    """The agent backend raised, timed out, or returned a malformed result."""

    status_code = 502
    error_type = "backend_error"


class SessionNotFound(BridgeError):
    """Unknown or expired session id."""

    status_code = 404
    error_type = "not_found_error"

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", code="session_not_found")
        self.session_id = session_id


class ParseSkipped(BridgeError):
    """A tool-call candidate could not be parsed. Internal to the extractor."""

    def __init__(self, message: str, tool_name: str | None = None):
        super().__init__(message)
        self.tool_name = tool_name or "unknown_tool"
