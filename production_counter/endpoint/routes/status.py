"""
Status Routes - live line status.

Provides:
- GET /api/status        - JSON snapshot (connection, master counts, current plan)
- GET /api/status/stream - SSE endpoint pushing the snapshot when it changes
"""

import asyncio
import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from production_counter.app.CounterApp import CounterApp
from production_counter.endpoint.shared import get_counter_app
from production_counter.utils.AppLogging import logger

router = APIRouter(tags=["status"])

SSE_INTERVAL_SECONDS = 1.0


@router.get("/api/status")
async def api_status(counter_app: CounterApp = Depends(get_counter_app)) -> Dict[str, Any]:
    return counter_app.get_status()


@router.get("/api/status/stream")
async def api_status_stream(
    request: Request,
    counter_app: CounterApp = Depends(get_counter_app)
) -> StreamingResponse:
    """
    Server-Sent Events (SSE) endpoint for live status.

    Sends the snapshot whenever its version changes, a keepalive comment
    otherwise. Stops when the client disconnects.

    Clients connect via EventSource:
        const es = new EventSource('/api/status/stream');
        es.onmessage = (e) => { const status = JSON.parse(e.data); ... };
    """
    return StreamingResponse(
        _sse_generator(request, counter_app),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _sse_generator(request: Request, counter_app: CounterApp):
    last_version = -1

    while True:
        if await request.is_disconnected():
            logger.debug("[SSE] Client disconnected, stopping stream")
            return

        status = counter_app.get_status()
        if status["version"] != last_version:
            last_version = status["version"]
            yield f"data: {json.dumps(status)}\n\n"
        else:
            yield ": keepalive\n\n"

        await asyncio.sleep(SSE_INTERVAL_SECONDS)
