"""Report Routes - production summary and product list."""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool

from production_counter.app.CounterApp import CounterApp
from production_counter.endpoint.services.report_service import ReportService
from production_counter.endpoint.shared import get_counter_app, get_gateway
from production_counter.exceptions import PersistenceError
from production_counter.persistence.Gateway import PersistenceGateway

router = APIRouter(tags=["reports"])


def get_report_service(gateway: PersistenceGateway = Depends(get_gateway)) -> ReportService:
    """Dependency injection for report service."""
    return ReportService(gateway)


@router.get("/api/report")
async def api_report(
    from_date: Optional[str] = Query(None, description="First day, YYYY-MM-DD (default: 30 days ago)"),
    to_date: Optional[str] = Query(None, description="Last day, YYYY-MM-DD (default: today)"),
    service: ReportService = Depends(get_report_service)
) -> Dict[str, Any]:
    """
    Plans created in the date range (both ends inclusive) with totals:
    total, completed and cancelled plan counts and summed actual quantity.
    """
    try:
        return await run_in_threadpool(service.get_report, from_date, to_date)
    except PersistenceError as e:
        raise HTTPException(503, f"Report unavailable: {e}")


@router.get("/api/products")
async def api_products(counter_app: CounterApp = Depends(get_counter_app)) -> List[str]:
    return list(counter_app.config.product_list)
