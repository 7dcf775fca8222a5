"""Session introspection endpoints backed by the session registry."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from codex_bridge.api.deps import get_bridge
from codex_bridge.app import BridgeApp
from codex_bridge.core.models import SessionDetail, SessionListResponse, SessionStats
from codex_bridge.errors import SessionNotFound

router = APIRouter()


@router.get("", response_model=SessionListResponse)
async def list_sessions(bridge: BridgeApp = Depends(get_bridge)) -> SessionListResponse:
    sessions = bridge.sessions.list()
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/stats", response_model=SessionStats)
async def session_stats(bridge: BridgeApp = Depends(get_bridge)) -> SessionStats:
    return bridge.sessions.stats()


@router.get("/{session_id}", response_model=SessionDetail)
async def get_session(session_id: str, bridge: BridgeApp = Depends(get_bridge)) -> SessionDetail:
    snapshot = bridge.sessions.get(session_id)
    if snapshot is None:
        raise SessionNotFound(session_id)
    return snapshot.to_detail()


@router.delete("/{session_id}")
async def delete_session(session_id: str, bridge: BridgeApp = Depends(get_bridge)) -> dict:
    if not bridge.sessions.delete(session_id):
        raise SessionNotFound(session_id)
    return {"message": f"Session {session_id} deleted successfully"}
