"""FastAPI application that exposes the controller over HTTP."""
from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from ..config import AppSettings, load_settings
from ..controller import MatController
from ..drive import DriveInput
from ..geometry import PanelPoint
from ..patterns import HELD_PATTERNS, parse_kind

logger = logging.getLogger(__name__)

CONFIG_ENV = "MATPILOT_CONFIG"


def create_controller() -> MatController:
    path = os.environ.get(CONFIG_ENV)
    settings = load_settings(path) if path else AppSettings()
    return MatController(settings=settings)


def _axis(payload: Dict[str, Any], key: str) -> float:
    try:
        value = float(payload.get(key) or 0.0)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"{key} must be a number") from exc
    return max(-1.0, min(1.0, value))


def create_app(controller: MatController, *, connect_on_startup: bool = True) -> FastAPI:
    drive = DriveInput()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if connect_on_startup:
            await controller.connect()
        ticker = asyncio.create_task(controller.run_ticker(lambda: drive))
        logger.info("Control server ready")
        try:
            yield
        finally:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
            await controller.shutdown()

    app = FastAPI(title="matpilot Control Server", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.controller = controller
    app.state.drive = drive

    @app.get("/api/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/status")
    async def status() -> Dict[str, Any]:
        data = controller.status()
        data["log"] = list(controller.status_log)[-20:]
        return data

    @app.post("/api/connect")
    async def connect(payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        modes = (payload or {}).get("modes")
        try:
            found = await controller.connect(modes)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"ok": bool(found), "robots": [sink.name for sink in found], "error": controller.state.last_error}

    @app.post("/api/calibration/start")
    async def calibration_start() -> Dict[str, Any]:
        controller.start_calibration()
        return {"ok": True, "state": controller.session.state.value, "prompt": controller.session.prompt}

    @app.post("/api/calibration/record")
    async def calibration_record() -> Dict[str, Any]:
        result = controller.record_calibration_point()
        return {
            "accepted": result.accepted,
            "state": result.state.value,
            "reason": result.reason.value if result.reason else None,
            "prompt": controller.session.prompt,
        }

    @app.post("/api/pointer")
    async def pointer(payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            point = PanelPoint(float(payload["x"]), float(payload["y"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail="x and y are required") from exc
        target = controller.handle_pointer(point)
        return {"sent": target is not None, "target": [target.x, target.y] if target else None}

    @app.post("/api/drive")
    async def set_drive(payload: Dict[str, Any]) -> Dict[str, Any]:
        held = payload.get("held")
        if held:
            try:
                kind = parse_kind(str(held))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            if kind not in HELD_PATTERNS:
                raise HTTPException(status_code=400, detail=f"{kind.value} is not a held pattern")
            drive.held = kind
        else:
            drive.held = None
        drive.forward = _axis(payload, "forward")
        drive.rotate = _axis(payload, "rotate")
        return {
            "held": drive.held.value if drive.held else None,
            "forward": drive.forward,
            "rotate": drive.rotate,
        }

    @app.post("/api/pattern/cancel")
    async def pattern_cancel() -> Dict[str, Any]:
        return {"ok": True, "cancelled": controller.cancel_patterns()}

    @app.post("/api/pattern/{kind}")
    async def pattern_start(kind: str) -> Dict[str, Any]:
        try:
            started = controller.start_pattern(kind)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not started:
            raise HTTPException(status_code=409, detail="Another program is running")
        return {"ok": True, "pattern": controller.engine.active.value if controller.engine.active else kind}

    @app.post("/api/patrol/toggle")
    async def patrol_toggle() -> Dict[str, Any]:
        active = controller.toggle_patrol()
        return {"active": active, "status": controller.patrol.status}

    @app.post("/api/spin/toggle")
    async def spin_toggle() -> Dict[str, Any]:
        return {"active": controller.toggle_spin(), "speed": controller.turntable.speed}

    @app.post("/api/spin/speed")
    async def spin_speed(payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            speed = int(payload["speed"])
        except (KeyError, TypeError, ValueError) as exc:
            raise HTTPException(status_code=400, detail="speed is required") from exc
        return {"speed": controller.turntable.set_speed(speed)}

    return app


controller = create_controller()
app = create_app(controller)


__all__ = ["app", "controller", "create_app", "create_controller"]
