"""FastAPI application factory exposing the OpenAI-compatible surface."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codex_bridge import __version__
from codex_bridge.api.routes.catalog import router as catalog_router
from codex_bridge.api.routes.chat import router as chat_router
from codex_bridge.api.routes.sessions import router as sessions_router
from codex_bridge.app import BridgeApp
from codex_bridge.errors import BridgeError, InvalidRequest
from codex_bridge.log import get_logger

logger = get_logger(__name__)


def error_body(message: str, error_type: str, code: str | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"message": message, "type": error_type}
    if code:
        error["code"] = code
    return {"error": error}


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request body"


def create_app(bridge: BridgeApp) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await bridge.start()
        try:
            yield
        finally:
            await bridge.stop()

    app = FastAPI(title="Codex Bridge", version=__version__, lifespan=lifespan)
    app.state.bridge = bridge

    app.add_middleware(
        CORSMiddleware,
        allow_origins=bridge.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router, prefix="/v1", tags=["chat"])
    app.include_router(catalog_router, prefix="/v1", tags=["catalog"])
    app.include_router(sessions_router, prefix="/v1/sessions", tags=["sessions"])

    @app.exception_handler(BridgeError)
    async def _bridge_error(request: Request, exc: BridgeError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log("request_failed", path=request.url.path, error_type=exc.error_type, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.error_type, exc.code),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _describe_validation_error(exc)
        logger.warning("request_invalid", path=request.url.path, error=message)
        return JSONResponse(
            status_code=InvalidRequest.status_code,
            content=error_body(message, InvalidRequest.error_type),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_crashed", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_body(str(exc) or "Internal server error", "api_error"),
        )

    return app
