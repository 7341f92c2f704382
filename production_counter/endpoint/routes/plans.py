"""
Plan Routes - production plan queue and records.

Provides:
- GET  /api/plans                - Current plan, active queue and recent history
- POST /api/plans                - Queue a new plan {"product_name", "target_quantity"}
- POST /api/plans/{plan_id}/stop - Stop a running plan or cancel a waiting one
- GET  /api/records              - Recent production records
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from production_counter.app.CounterApp import CounterApp
from production_counter.endpoint.shared import get_counter_app, get_gateway
from production_counter.exceptions import (
    PersistenceError,
    PlanNotFoundError,
    PlanStateError,
    PlanValidationError,
)
from production_counter.persistence.Gateway import PersistenceGateway
from production_counter.utils.AppLogging import logger

router = APIRouter(tags=["plans"])


@router.get("/api/plans")
async def list_plans(
    limit: int = Query(50, ge=1, le=500),
    counter_app: CounterApp = Depends(get_counter_app)
) -> Dict[str, Any]:
    current = counter_app.plans.current_plan
    active = [p.to_dict() for p in counter_app.plans.get_plans() if not p.status.is_terminal]
    try:
        history = await run_in_threadpool(counter_app.gateway.list_plans, limit)
    except PersistenceError as e:
        raise HTTPException(503, f"Plan history unavailable: {e}")

    return {
        "current_plan": current.to_dict() if current else None,
        "active": active,
        "history": [p.to_dict() for p in history],
    }


@router.post("/api/plans", status_code=201)
async def create_plan(request: Request, counter_app: CounterApp = Depends(get_counter_app)):
    """
    Queue a new production plan.

    Starts immediately when no plan is running.
    """
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(400, "Request body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(400, "Request body must be a JSON object")

    product_name = body.get("product_name", "")
    target_quantity = body.get("target_quantity")
    if not isinstance(product_name, str):
        raise HTTPException(422, "product_name must be a string")

    try:
        plan = await run_in_threadpool(counter_app.add_plan, product_name, target_quantity)
    except PlanValidationError as e:
        raise HTTPException(422, str(e))
    except PersistenceError as e:
        logger.error(f"[Plans] Failed to create plan: {e}")
        raise HTTPException(503, f"Plan could not be saved: {e}")

    return JSONResponse(status_code=201, content=plan.to_dict())


@router.post("/api/plans/{plan_id}/stop")
async def stop_plan(plan_id: int, counter_app: CounterApp = Depends(get_counter_app)) -> Dict[str, Any]:
    try:
        plan = await run_in_threadpool(counter_app.stop_plan, plan_id)
    except PlanNotFoundError as e:
        raise HTTPException(404, str(e))
    except PlanStateError as e:
        raise HTTPException(409, str(e))

    logger.info(f"[Plans] Plan {plan_id} stopped via API ({plan.status.value})")
    return plan.to_dict()


@router.get("/api/records")
async def list_records(
    limit: int = Query(100, ge=1, le=1000),
    gateway: PersistenceGateway = Depends(get_gateway)
) -> List[Dict[str, Any]]:
    try:
        records = await run_in_threadpool(gateway.list_records, limit)
    except PersistenceError as e:
        raise HTTPException(503, f"Records unavailable: {e}")
    return [r.to_dict() for r in records]
