#!/usr/bin/env python3
"""
FastAPI server exposing controller status, decision history and controls.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class ConfigUpdate(BaseModel):
    """Partial configuration; secrets sent as "***" keep their current value."""

    model_config = ConfigDict(extra="ignore")

    okx_api_key: Optional[str] = None
    okx_secret_key: Optional[str] = None
    okx_passphrase: Optional[str] = None
    deepseek_api_key: Optional[str] = None
    is_simulation: Optional[bool] = None
    deepseek_base_url: Optional[str] = None
    deepseek_model: Optional[str] = None
    model_timeout_seconds: Optional[float] = None
    poll_interval_seconds: Optional[int] = None
    analysis_interval_seconds: Optional[int] = None


class ToggleRequest(BaseModel):
    running: bool


def create_app(loop_controller) -> FastAPI:
    """
    Build the API bound to one LoopController.

    Args:
        loop_controller: Controller whose state is served and controlled

    Returns:
        FastAPI application
    """
    app = FastAPI(title="Warlord Swap Controller API")
    state = loop_controller.state

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Any uncaught route error becomes a JSON 500."""
        logger.error(f"Unhandled exception in {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "detail": str(exc),
                "path": str(request.url.path)
            }
        )

    # Enable CORS for the dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"message": "Warlord Swap Controller API", "status": "running"}

    @app.get("/api/status")
    async def get_status():
        """Running flag, masked config, latest snapshots, latest decision and logs"""
        return state.status()

    @app.get("/api/history")
    async def get_history():
        """Decisions from the last hour and the last 50 non-HOLD decisions"""
        return state.history_view()

    @app.post("/api/config")
    async def update_config(update: ConfigUpdate):
        try:
            config = loop_controller.apply_config(update.model_dump(exclude_none=True))
        except ValueError as e:
            logger.warning(f"Rejected configuration update: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "config": config.masked()}

    @app.post("/api/toggle")
    async def toggle(request: ToggleRequest):
        is_running = loop_controller.set_running(request.running)
        return {"success": True, "is_running": is_running}

    return app
