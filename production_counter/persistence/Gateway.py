"""
Abstract base class for the persistence gateway.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List

from production_counter.plans.models import PlanStatus, ProductionPlan, ProductionRecord


class PersistenceGateway(ABC):
    """
    Durable store for production plans and records.

    Implementations:
    - DatabaseManager (SQLite)
    """

    @abstractmethod
    def load_active_plans(self) -> List[ProductionPlan]:
        """
        Waiting and Running plans, newest first.
        """
        pass

    @abstractmethod
    def save_plan(self, plan: ProductionPlan) -> ProductionPlan:
        """
        Insert the plan when plan.id is None (assigning the id), update it
        otherwise.
        """
        pass

    @abstractmethod
    def save_record(self, record: ProductionRecord) -> ProductionRecord:
        """Insert a production record, assigning its id."""
        pass

    @abstractmethod
    def list_plans(self, limit: int = 50) -> List[ProductionPlan]:
        """Most recent plans of any status, newest first."""
        pass

    @abstractmethod
    def list_records(self, limit: int = 100) -> List[ProductionRecord]:
        """Most recent production records, newest first."""
        pass

    @abstractmethod
    def get_report_summary(self, from_date: date, to_date: date) -> Dict[str, Any]:
        """Plans created between the two dates (inclusive) with totals."""
        pass

    def close(self) -> None:
        """Release resources."""
        pass


def summarize_plans(plans: List[ProductionPlan]) -> Dict[str, Any]:
    """Report totals for a list of plans."""
    return {
        "total_plans": len(plans),
        "completed_plans": sum(1 for p in plans if p.status == PlanStatus.COMPLETED),
        "cancelled_plans": sum(1 for p in plans if p.status == PlanStatus.CANCELLED),
        "total_actual_quantity": sum(p.current_quantity for p in plans),
        "plans": [p.to_dict() for p in plans],
    }
