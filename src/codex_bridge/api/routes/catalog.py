"""Model and tool listings."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from codex_bridge.api.deps import get_bridge
from codex_bridge.app import BridgeApp
from codex_bridge.core.models import ModelInfo

router = APIRouter()


@router.get("/models")
async def list_models(bridge: BridgeApp = Depends(get_bridge)) -> dict:
    created = int(time.time())
    return {
        "object": "list",
        "data": [
            ModelInfo(id=model_id, created=created).model_dump() for model_id in bridge.config.models
        ],
    }


@router.get("/tools")
async def list_tools(bridge: BridgeApp = Depends(get_bridge)) -> dict:
    return {"object": "list", "data": bridge.tool_registry.to_openai()}
