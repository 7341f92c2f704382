"""Report Service - date range handling for the production report."""
from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException

from production_counter.persistence.Gateway import PersistenceGateway
from production_counter.utils.AppLogging import logger

DEFAULT_RANGE_DAYS = 30


class ReportService:
    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    @staticmethod
    def parse_date(val: Optional[str]) -> Optional[date]:
        if not val:
            return None
        try:
            return date.fromisoformat(val.strip())
        except ValueError:
            raise HTTPException(400, f"Invalid date: {val} (expected YYYY-MM-DD)")

    @staticmethod
    def resolve_range(from_date: Optional[date], to_date: Optional[date],
                      today: Optional[date] = None) -> Tuple[date, date]:
        """Fill in missing bounds: the last 30 days ending today."""
        today = today or date.today()
        to_date = to_date or today
        from_date = from_date or (to_date - timedelta(days=DEFAULT_RANGE_DAYS))
        if from_date > to_date:
            raise HTTPException(422, "from_date must not be after to_date")
        return from_date, to_date

    def get_report(self, from_value: Optional[str], to_value: Optional[str]) -> Dict[str, Any]:
        from_date, to_date = self.resolve_range(self.parse_date(from_value), self.parse_date(to_value))
        logger.info(f"[Report] Query range: {from_date.isoformat()} to {to_date.isoformat()}")
        return self.gateway.get_report_summary(from_date, to_date)
