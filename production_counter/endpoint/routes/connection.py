"""
Connection Routes - manual control of the camera link.

- POST /api/connection/connect    - Optional JSON body {"camera_ip", "camera_port"}
- POST /api/connection/disconnect - Stop reading and close the socket
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from production_counter.app.CounterApp import CounterApp
from production_counter.endpoint.shared import get_counter_app
from production_counter.exceptions import CameraConnectionError
from production_counter.utils.AppLogging import logger

router = APIRouter(tags=["connection"])


@router.post("/api/connection/connect")
async def connect(request: Request, counter_app: CounterApp = Depends(get_counter_app)) -> Dict[str, Any]:
    body = {}
    if await request.body():
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(400, "Request body must be JSON")
        if not isinstance(body, dict):
            raise HTTPException(400, "Request body must be a JSON object")

    address = body.get("camera_ip")
    port = body.get("camera_port")
    if port is not None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise HTTPException(422, f"Invalid camera_port: {port!r}")

    try:
        await run_in_threadpool(counter_app.connect, address, port)
    except CameraConnectionError as e:
        logger.warning(f"[Connection] Manual connect failed: {e}")
        raise HTTPException(502, str(e))

    return counter_app.get_status()


@router.post("/api/connection/disconnect")
async def disconnect(counter_app: CounterApp = Depends(get_counter_app)) -> Dict[str, Any]:
    await run_in_threadpool(counter_app.disconnect)
    return counter_app.get_status()
