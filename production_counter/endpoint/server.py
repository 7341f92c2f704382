"""
FastAPI Server for the Production Counter.

create_app() binds the API to a CounterApp instance:
- Status, plan, record, report and connection routers
- Optional lifespan management of the CounterApp
- Health monitoring
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from production_counter.app.CounterApp import CounterApp
from production_counter.config.settings import AppConfig
from production_counter.endpoint.routes import connection, plans, reports, status
from production_counter.endpoint.shared import get_counter_app
from production_counter.exceptions import PersistenceError
from production_counter.utils.AppLogging import logger

APP_VERSION = AppConfig.APP_VERSION


def create_app(counter_app: CounterApp, manage_lifecycle: bool = False) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        counter_app: The application the routes operate on
        manage_lifecycle: Start the CounterApp on startup and stop it on shutdown
            (used when uvicorn owns the process)
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("[Endpoint] Starting up...")
        if manage_lifecycle:
            counter_app.start()
        yield
        logger.info("[Endpoint] Shutting down...")
        if manage_lifecycle:
            counter_app.stop()

    app = FastAPI(
        title="Production Counter API",
        description="Camera counter reconciliation and production plan queue",
        version=APP_VERSION,
        lifespan=lifespan
    )
    app.state.counter_app = counter_app
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(status.router)
    app.include_router(plans.router)
    app.include_router(reports.router)
    app.include_router(connection.router)

    @app.get("/health")
    async def health(counter_app: CounterApp = Depends(get_counter_app)) -> Dict[str, Any]:
        """Version, uptime, database and camera link state."""
        uptime_seconds = time.time() - app.state.started_at
        hours, remainder = divmod(int(uptime_seconds), 3600)
        minutes, seconds = divmod(remainder, 60)

        db_ok = True
        try:
            counter_app.gateway.list_plans(1)
        except PersistenceError as e:
            logger.warning(f"[Endpoint] Health check database error: {e}")
            db_ok = False

        line = counter_app.get_status()
        return {
            "status": "healthy" if db_ok else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": APP_VERSION,
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime": f"{hours:02d}:{minutes:02d}:{seconds:02d}",
            "database": "connected" if db_ok else "error",
            "camera": line["connection_state"],
            "current_plan_id": line["current_plan"]["id"] if line["current_plan"] else None,
            "statistics": {
                "connection": counter_app.connection.get_statistics(),
                "counter": counter_app.reconciler.get_statistics(),
            },
        }

    return app
