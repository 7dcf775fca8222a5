"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from codex_bridge.app import BridgeApp


def get_bridge(request: Request) -> BridgeApp:
    return request.app.state.bridge
