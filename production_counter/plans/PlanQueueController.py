"""
Plan Queue Controller - state machine over production plans.

Plan lifecycle:
    Waiting -> Running -> Completed | Cancelled

Rules:
- At most one plan is Running; it is the "current" plan.
- Every counts update from the reconciler is applied to the current plan and
  persisted (no batching).
- When the current plan reaches its target, or is stopped manually, the
  controller: saves a ProductionRecord, marks the plan Completed and persists
  it, switches the current pointer to the next Waiting plan (activating it),
  and only then resets the reconciler. The reset emits a zero-count update;
  because the pointer already moved, that update lands on the new plan (or
  nowhere) instead of overwriting the completed plan's final quantity.
- Stopping a Waiting plan cancels it without a record or a counter reset.
- Next plan: the most recently created Waiting plan by default; the
  "queue_order" policy picks the lowest queue_order instead.

Every public operation holds one re-entrant lock. Counts updates come from
the camera read thread, user commands from API worker threads; the lock
serializes them, which also keeps persistence writes in production order.
"""

import threading
from datetime import datetime
from typing import Callable, List, Optional

from production_counter.codec.PacketCodec import CameraPacket, format_date_display
from production_counter.config.settings import NEXT_PLAN_MOST_RECENT, NEXT_PLAN_QUEUE_ORDER
from production_counter.counting.CounterReconciler import CounterReconciler
from production_counter.exceptions import (
    PersistenceError,
    PlanNotFoundError,
    PlanStateError,
    PlanValidationError,
)
from production_counter.persistence.Gateway import PersistenceGateway
from production_counter.plans.models import PlanStatus, ProductionPlan, ProductionRecord
from production_counter.utils.AppLogging import logger
from production_counter.utils.Notifier import Notifier


class PlanQueueController:
    """
    Drives plan transitions from reconciled counts and user commands.

    Notifications:
        current_plan_changed(plan_or_None) whenever the current plan pointer moves.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        reconciler: CounterReconciler,
        next_plan_policy: str = NEXT_PLAN_MOST_RECENT,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if next_plan_policy not in (NEXT_PLAN_MOST_RECENT, NEXT_PLAN_QUEUE_ORDER):
            raise ValueError(f"Unknown next plan policy: {next_plan_policy}")

        self.gateway = gateway
        self.reconciler = reconciler
        self.next_plan_policy = next_plan_policy
        self._clock = clock

        self._lock = threading.RLock()
        # Active (Waiting/Running) plans plus plans finished in this session, newest first
        self._plans: List[ProductionPlan] = []
        self._current_plan: Optional[ProductionPlan] = None

        # Last packet metadata, captured for the record snapshot
        self._last_product_id: str = ""
        self._last_mfg_date: str = "-"
        self._last_exp_date: str = "-"

        self.current_plan_changed = Notifier("current_plan_changed")
        self.reconciler.counts_updated.subscribe(self._on_counts_updated)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def current_plan(self) -> Optional[ProductionPlan]:
        return self._current_plan

    def get_plans(self) -> List[ProductionPlan]:
        with self._lock:
            return list(self._plans)

    def get_plan(self, plan_id: int) -> ProductionPlan:
        with self._lock:
            for plan in self._plans:
                if plan.id == plan_id:
                    return plan
        raise PlanNotFoundError(f"Plan {plan_id} not found")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def restore(self) -> Optional[ProductionPlan]:
        """
        Load active plans and rebuild the current plan after a restart.

        A plan that was Running keeps running and seeds the reconciler with
        its stored quantity; otherwise the next Waiting plan is activated.
        """
        with self._lock:
            try:
                plans = self.gateway.load_active_plans()
            except PersistenceError as e:
                logger.error(f"[PlanQueue] Failed to load plans, starting with an empty queue: {e}")
                plans = []

            self._plans = sorted(plans, key=lambda p: (p.created_at, p.id or 0), reverse=True)
            logger.info(f"[PlanQueue] Loaded {len(self._plans)} active plan(s)")

            running = [p for p in self._plans if p.status == PlanStatus.RUNNING]
            if len(running) > 1:
                # Newest wins; older ones go back to Waiting so they are not lost
                logger.warning(f"[PlanQueue] {len(running)} plans stored as Running, keeping the newest")
                for stale in running[1:]:
                    stale.requeue()
                    self._persist_plan(stale)

            if running:
                self._set_current(running[0])
                qty = running[0].current_quantity
                # Only the total is persisted per plan; OK mirrors it, NG restarts at 0
                self.reconciler.restore_state(qty, qty, 0)
            else:
                self._activate_next()
                if self._current_plan is not None:
                    self.reconciler.reset_for_new_window()

            return self._current_plan

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def add_plan(self, product_name: str, target_quantity: int) -> ProductionPlan:
        """
        Queue a new plan. If nothing is running it starts immediately.

        Raises:
            PlanValidationError: empty product name or target <= 0
            PersistenceError: the plan could not be stored
        """
        product_name = (product_name or "").strip()
        if not product_name:
            raise PlanValidationError("Product name is required")
        if not isinstance(target_quantity, int) or isinstance(target_quantity, bool) or target_quantity <= 0:
            raise PlanValidationError(f"Target quantity must be a positive integer, got {target_quantity!r}")

        with self._lock:
            max_order = max((p.queue_order for p in self._plans), default=0)
            plan = ProductionPlan(
                product_name=product_name,
                target_quantity=target_quantity,
                queue_order=max_order + 1,
                created_at=self._clock(),
            )
            # The plan needs an id before it can be addressed, so this write is not swallowed
            self.gateway.save_plan(plan)
            self._plans.insert(0, plan)
            logger.info(
                f"[PlanQueue] Plan {plan.id} queued: {plan.product_name} x{plan.target_quantity} "
                f"(order {plan.queue_order})"
            )

            if self._current_plan is None:
                self._activate(plan)
                self.reconciler.reset_for_new_window()

            return plan

    def stop_plan(self, plan_id: int) -> ProductionPlan:
        """
        Stop a plan early.

        Running -> Completed (record saved, queue advances, counters reset).
        Waiting -> Cancelled.

        Raises:
            PlanNotFoundError: unknown plan id
            PlanStateError: the plan is already Completed or Cancelled
        """
        with self._lock:
            plan = self.get_plan(plan_id)

            if plan.status.is_terminal:
                raise PlanStateError(f"Plan {plan_id} is already {plan.status.value}")

            if plan.status == PlanStatus.RUNNING:
                logger.info(f"[PlanQueue] Manual stop of running plan {plan.id} at {plan.current_quantity}")
                self._finish_current()
            else:
                plan.cancel(self._clock())
                self._persist_plan(plan)
                logger.info(f"[PlanQueue] Plan {plan.id} cancelled")

            return plan

    def handle_packet(self, packet: CameraPacket) -> None:
        """
        Entry point for decoded camera packets.

        Packets are only counted while a plan is running; otherwise they are
        dropped and the camera baseline is taken afresh when a plan starts.
        """
        with self._lock:
            self._last_product_id = packet.product_id
            self._last_mfg_date = format_date_display(packet.mfg_date)
            self._last_exp_date = format_date_display(packet.exp_date)

            if self._current_plan is None:
                logger.debug("[PlanQueue] No running plan, packet not counted")
                return

            self.reconciler.process_packet(packet)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_counts_updated(self, total: int, ok: int, ng: int) -> None:
        with self._lock:
            plan = self._current_plan
            if plan is None:
                return

            plan.set_progress(total)
            self._persist_plan(plan)

            if plan.is_target_reached:
                logger.info(
                    f"[PlanQueue] Plan {plan.id} reached target {plan.target_quantity} "
                    f"(current {plan.current_quantity})"
                )
                self._finish_current()

    def _finish_current(self) -> None:
        """Record, complete, advance, then reset. Order matters."""
        plan = self._current_plan
        now = self._clock()

        record = ProductionRecord(
            plan_id=plan.id,
            product_id=plan.product_name,
            total=plan.current_quantity,
            ok=self.reconciler.app_ok,
            ng=self.reconciler.app_ng,
            mfg_date=self._last_mfg_date,
            exp_date=self._last_exp_date,
            timestamp=now,
        )
        self._persist_record(record)

        plan.complete(now)
        self._persist_plan(plan)
        logger.info(f"[PlanQueue] Plan {plan.id} completed with {plan.current_quantity}/{plan.target_quantity}")

        self._set_current(None)
        self._activate_next()

        self.reconciler.reset_for_new_window()

    def _select_next(self) -> Optional[ProductionPlan]:
        waiting = [p for p in self._plans if p.status == PlanStatus.WAITING]
        if not waiting:
            return None
        if self.next_plan_policy == NEXT_PLAN_QUEUE_ORDER:
            return min(waiting, key=lambda p: (p.queue_order, p.id or 0))
        return max(waiting, key=lambda p: (p.created_at, p.id or 0))

    def _activate_next(self) -> None:
        plan = self._select_next()
        if plan is None:
            logger.info("[PlanQueue] No waiting plan, queue idle")
            return
        self._activate(plan)

    def _activate(self, plan: ProductionPlan) -> None:
        plan.start(self._clock())
        self._persist_plan(plan)
        self._set_current(plan)
        logger.info(f"[PlanQueue] Plan {plan.id} started: {plan.product_name} x{plan.target_quantity}")

    def _set_current(self, plan: Optional[ProductionPlan]) -> None:
        if plan is self._current_plan:
            return
        self._current_plan = plan
        self.current_plan_changed.emit(plan)

    def _persist_plan(self, plan: ProductionPlan) -> None:
        try:
            self.gateway.save_plan(plan)
        except PersistenceError as e:
            logger.error(f"[PlanQueue] Failed to save plan {plan.id}: {e}")

    def _persist_record(self, record: ProductionRecord) -> None:
        try:
            self.gateway.save_record(record)
        except PersistenceError as e:
            logger.error(f"[PlanQueue] Failed to save record for plan {record.plan_id}: {e}")
