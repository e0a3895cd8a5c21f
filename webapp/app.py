from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from project_settings import (
    MAX_FAST_CYCLE_SECONDS,
    MAX_SLOW_CYCLE_SECONDS,
    MIN_FAST_CYCLE_SECONDS,
    MIN_SLOW_CYCLE_SECONDS,
)

from .services import ArbitrageService


class ModePayload(BaseModel):
    mode: str
    username: Optional[str] = None


class SettingsPayload(BaseModel):
    exchanges: Optional[Dict[str, bool]] = None
    fast_cycle_seconds: Optional[int] = Field(
        None, ge=MIN_FAST_CYCLE_SECONDS, le=MAX_FAST_CYCLE_SECONDS
    )
    slow_cycle_seconds: Optional[int] = Field(
        None, ge=MIN_SLOW_CYCLE_SECONDS, le=MAX_SLOW_CYCLE_SECONDS
    )
    adapter_timeout_seconds: Optional[float] = Field(None, gt=0)
    depth_limit: Optional[int] = Field(None, ge=1)
    depth_symbols_limit: Optional[int] = Field(None, ge=0)
    mode_thresholds: Optional[Dict[str, float]] = None
    renotify_policy: Optional[str] = None
    alert_after_failures: Optional[int] = Field(None, ge=1)


def create_app(service: ArbitrageService | None = None) -> FastAPI:
    """Application factory, served with ``uvicorn webapp.app:create_app --factory``."""
    service = service or ArbitrageService()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await service.startup()
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(title="Cross-Exchange Arbitrage Monitor", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.get("/api/status")
    async def status_api() -> JSONResponse:
        return JSONResponse(service.state_payload())

    @app.get("/api/opportunities")
    async def opportunities_api() -> JSONResponse:
        return JSONResponse({"opportunities": service.latest_opportunities()})

    @app.get("/api/depth/{symbol}")
    async def depth_api(symbol: str) -> JSONResponse:
        payload = service.depth_payload(symbol)
        if payload is None:
            raise HTTPException(status_code=404, detail=f"No depth cached for {symbol.upper()}")
        return JSONResponse(payload)

    @app.get("/api/statistics")
    async def statistics_api() -> JSONResponse:
        return JSONResponse({"statistics": service.statistics_payload()})

    @app.get("/api/subscribers")
    async def subscribers_api() -> JSONResponse:
        return JSONResponse({"subscribers": service.subscribers_payload()})

    @app.post("/api/subscribers/{chat_id}/mode")
    async def select_mode(chat_id: int, payload: ModePayload) -> JSONResponse:
        try:
            subscriber = service.select_mode(chat_id, payload.mode, payload.username)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse({"subscriber": subscriber.to_dict()})

    @app.post("/api/refresh")
    async def refresh_api() -> JSONResponse:
        ok = await service.refresh_now()
        return JSONResponse(
            {
                "status": "completed" if ok else "failed",
                "opportunities": service.latest_opportunities(),
            }
        )

    @app.get("/api/events")
    async def events_api(limit: int = 50, prefix: Optional[str] = None) -> JSONResponse:
        return JSONResponse({"events": service.telemetry_backlog(limit, prefix)})

    @app.get("/api/settings")
    async def get_settings() -> JSONResponse:
        return JSONResponse({"settings": service.settings.to_dict()})

    @app.post("/api/settings")
    async def update_settings(payload: SettingsPayload) -> JSONResponse:
        try:
            service.settings_manager.update(payload.model_dump(exclude_none=True))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await service.on_settings_updated()
        return JSONResponse({"settings": service.settings.to_dict()})

    return app
