"""Production plan and record models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from production_counter.exceptions import PlanStateError


class PlanStatus(str, Enum):
    WAITING = "Waiting"
    RUNNING = "Running"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.COMPLETED, PlanStatus.CANCELLED)


@dataclass
class ProductionPlan:
    """
    A product and the quantity to produce.

    Status changes go through start(), complete() and cancel(); each one
    checks the source status, and terminal plans reject every mutation.
    """
    product_name: str
    target_quantity: int
    queue_order: int = 0
    current_quantity: int = 0
    status: PlanStatus = PlanStatus.WAITING
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    id: Optional[int] = None

    def _require(self, *allowed: PlanStatus) -> None:
        if self.status not in allowed:
            raise PlanStateError(
                f"Plan {self.id} ({self.product_name}) is {self.status.value}; "
                f"expected {' or '.join(s.value for s in allowed)}"
            )

    def start(self, now: Optional[datetime] = None) -> None:
        self._require(PlanStatus.WAITING)
        self.status = PlanStatus.RUNNING
        self.started_at = now or datetime.now()

    def set_progress(self, quantity: int) -> None:
        self._require(PlanStatus.RUNNING)
        self.current_quantity = quantity

    def complete(self, now: Optional[datetime] = None) -> None:
        self._require(PlanStatus.RUNNING)
        self.status = PlanStatus.COMPLETED
        self.completed_at = now or datetime.now()

    def cancel(self, now: Optional[datetime] = None) -> None:
        self._require(PlanStatus.WAITING)
        self.status = PlanStatus.CANCELLED
        self.cancelled_at = now or datetime.now()

    def requeue(self) -> None:
        """Running -> Waiting. Only used when recovering from a crash mid-switch."""
        self._require(PlanStatus.RUNNING)
        self.status = PlanStatus.WAITING
        self.started_at = None

    @property
    def is_target_reached(self) -> bool:
        return self.current_quantity >= self.target_quantity

    @property
    def progress_percentage(self) -> float:
        if self.target_quantity <= 0:
            return 0.0
        return self.current_quantity / self.target_quantity * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "target_quantity": self.target_quantity,
            "current_quantity": self.current_quantity,
            "queue_order": self.queue_order,
            "status": self.status.value,
            "progress_percentage": round(self.progress_percentage, 1),
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
        }


@dataclass
class ProductionRecord:
    """Write-once snapshot taken when a plan leaves Running."""
    product_id: str
    total: int
    ok: int
    ng: int
    plan_id: Optional[int] = None
    mfg_date: str = "-"
    exp_date: str = "-"
    timestamp: datetime = field(default_factory=datetime.now)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "timestamp": _iso(self.timestamp),
            "product_id": self.product_id,
            "total": self.total,
            "ok": self.ok,
            "ng": self.ng,
            "mfg_date": self.mfg_date,
            "exp_date": self.exp_date,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
