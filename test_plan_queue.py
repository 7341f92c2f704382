#!/usr/bin/env python3
"""
Tests for the plan queue controller.

Tests:
1. End-to-end: target 3, packets (5,5,0) (6,6,0) (8,7,1) complete the plan
2. Completion keeps the final quantity (reset lands on the next plan)
   and listeners after the controller see the reset last
3. Next plan selection: most recent by default, queue_order policy
4. Manual stop of running / waiting / terminal / unknown plans
5. Packets are not counted while no plan is running
6. Restore after restart seeds the reconciler from the running plan
   (extra Running plans left by a crash go back to Waiting)
7. Persistence failures are logged and do not stop counting
"""

import itertools
import os
import sys
import tempfile
from datetime import datetime, timedelta

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from production_counter.codec import PacketCodec
from production_counter.config.settings import NEXT_PLAN_QUEUE_ORDER
from production_counter.counting.CounterReconciler import CounterReconciler
from production_counter.exceptions import (
    PersistenceError,
    PlanNotFoundError,
    PlanStateError,
    PlanValidationError,
)
from production_counter.persistence.Database import DatabaseManager
from production_counter.persistence.Gateway import PersistenceGateway, summarize_plans
from production_counter.plans.PlanQueueController import PlanQueueController
from production_counter.plans.models import PlanStatus, ProductionPlan


def plans_in_range(plans, from_date, to_date):
    """Plans created between the two dates, inclusive on both ends."""
    return [
        p for p in plans
        if (from_date is None or p.created_at.date() >= from_date)
        and (to_date is None or p.created_at.date() <= to_date)
    ]


class InMemoryGateway(PersistenceGateway):
    """Gateway that keeps copies in dicts; optionally fails on save."""

    def __init__(self):
        self.plans = {}
        self.records = []
        self.plan_saves = []
        self.fail_saves = False
        self._next_id = itertools.count(1)

    def load_active_plans(self):
        active = [p for p in self.plans.values() if not p.status.is_terminal]
        return sorted(active, key=lambda p: (p.created_at, p.id), reverse=True)

    def save_plan(self, plan):
        if self.fail_saves:
            raise PersistenceError("disk full")
        if plan.id is None:
            plan.id = next(self._next_id)
        self.plans[plan.id] = ProductionPlan(**vars(plan))
        self.plan_saves.append((plan.id, plan.status, plan.current_quantity))
        return plan

    def save_record(self, record):
        if self.fail_saves:
            raise PersistenceError("disk full")
        record.id = len(self.records) + 1
        self.records.append(record)
        return record

    def list_plans(self, limit=50):
        return sorted(self.plans.values(), key=lambda p: (p.created_at, p.id), reverse=True)[:limit]

    def list_records(self, limit=100):
        return list(reversed(self.records))[:limit]

    def get_report_summary(self, from_date, to_date):
        return summarize_plans(plans_in_range(self.list_plans(), from_date, to_date))


def _clock():
    start = datetime(2026, 3, 2, 8, 0, 0)
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))


def _packet(total, ok, ng, product="Hehe", mfg="111225", exp="110626"):
    return PacketCodec.decode(f"{total},{ok},{ng},{product},{mfg},{exp}")


def _controller(gateway=None, policy="most_recent"):
    gateway = gateway or InMemoryGateway()
    reconciler = CounterReconciler()
    controller = PlanQueueController(gateway, reconciler, next_plan_policy=policy, clock=_clock())
    return controller, reconciler, gateway


def test_end_to_end_target_reached():
    controller, reconciler, gateway = _controller()
    plan = controller.add_plan("Chay Dong Co", 3)
    assert plan.status == PlanStatus.RUNNING
    assert controller.current_plan is plan

    for p in [(5, 5, 0), (6, 6, 0), (8, 7, 1)]:
        controller.handle_packet(_packet(*p))

    assert plan.status == PlanStatus.COMPLETED
    assert plan.current_quantity == 3
    assert plan.completed_at is not None
    assert controller.current_plan is None

    assert len(gateway.records) == 1
    record = gateway.records[0]
    assert record.plan_id == plan.id
    assert record.product_id == "Chay Dong Co"
    assert (record.total, record.ok, record.ng) == (3, 2, 1)
    assert record.mfg_date == "11/12/2025"
    assert record.exp_date == "11/06/2026"

    assert reconciler.snapshot().counts() == (0, 0, 0)
    assert reconciler.is_first_packet

    # Stored copy keeps the final quantity
    stored = gateway.plans[plan.id]
    assert stored.status == PlanStatus.COMPLETED
    assert stored.current_quantity == 3
    print("✓ test_end_to_end_target_reached passed")


def test_progress_persisted_on_every_update():
    controller, _, gateway = _controller()
    plan = controller.add_plan("A", 100)
    gateway.plan_saves.clear()

    for p in [(1, 1, 0), (2, 2, 0), (3, 3, 0), (4, 4, 0)]:
        controller.handle_packet(_packet(*p))

    quantities = [q for (pid, status, q) in gateway.plan_saves if pid == plan.id]
    assert quantities == [0, 1, 2, 3], quantities
    print("✓ test_progress_persisted_on_every_update passed")


def test_completion_switches_before_reset():
    controller, reconciler, gateway = _controller()
    first = controller.add_plan("A", 2)
    second = controller.add_plan("B", 10)
    assert second.status == PlanStatus.WAITING

    changes = []
    controller.current_plan_changed.subscribe(lambda p: changes.append(p.id if p else None))

    for p in [(10, 10, 0), (11, 11, 0), (12, 12, 0)]:
        controller.handle_packet(_packet(*p))

    assert first.status == PlanStatus.COMPLETED
    assert first.current_quantity == 2
    assert second.status == PlanStatus.RUNNING
    assert second.current_quantity == 0
    assert changes == [None, second.id]

    # Next reading is a fresh baseline for the new plan
    controller.handle_packet(_packet(13, 13, 0))
    assert second.current_quantity == 0
    controller.handle_packet(_packet(15, 14, 1))
    assert second.current_quantity == 2
    assert gateway.plans[first.id].current_quantity == 2
    print("✓ test_completion_switches_before_reset passed")


def test_later_listeners_see_counts_in_order():
    controller, reconciler, _ = _controller()
    controller.add_plan("A", 3)
    second = controller.add_plan("B", 100)

    seen = []
    reconciler.counts_updated.subscribe(lambda t, o, n: seen.append((t, o, n)))

    for p in [(5, 5, 0), (6, 6, 0), (8, 7, 1)]:
        controller.handle_packet(_packet(*p))

    # Completion counts first, then the reset for plan B
    assert seen == [(0, 0, 0), (1, 1, 0), (3, 2, 1), (0, 0, 0)], seen
    assert seen[-1] == reconciler.snapshot().counts()
    assert controller.current_plan is second
    assert second.current_quantity == 0
    print("✓ test_later_listeners_see_counts_in_order passed")


def test_overshoot_completes():
    controller, _, gateway = _controller()
    plan = controller.add_plan("A", 2)
    controller.handle_packet(_packet(0, 0, 0))
    controller.handle_packet(_packet(5, 5, 0))

    assert plan.status == PlanStatus.COMPLETED
    assert plan.current_quantity == 5
    assert gateway.records[0].total == 5
    print("✓ test_overshoot_completes passed")


def test_next_plan_most_recent():
    controller, _, _ = _controller()
    running = controller.add_plan("A", 100)
    b = controller.add_plan("B", 100)
    c = controller.add_plan("C", 100)

    controller.stop_plan(running.id)

    assert c.status == PlanStatus.RUNNING
    assert b.status == PlanStatus.WAITING
    assert controller.current_plan is c
    print("✓ test_next_plan_most_recent passed")


def test_next_plan_queue_order_policy():
    controller, _, _ = _controller(policy=NEXT_PLAN_QUEUE_ORDER)
    running = controller.add_plan("A", 100)
    b = controller.add_plan("B", 100)
    c = controller.add_plan("C", 100)
    assert (running.queue_order, b.queue_order, c.queue_order) == (1, 2, 3)

    controller.stop_plan(running.id)

    assert b.status == PlanStatus.RUNNING
    assert c.status == PlanStatus.WAITING
    print("✓ test_next_plan_queue_order_policy passed")


def test_unknown_policy_rejected():
    try:
        _controller(policy="random")
    except ValueError:
        print("✓ test_unknown_policy_rejected passed")
        return
    raise AssertionError("Expected ValueError for unknown policy")


def test_manual_stop_running_plan():
    controller, reconciler, gateway = _controller()
    plan = controller.add_plan("A", 100)
    controller.handle_packet(_packet(50, 50, 0))
    controller.handle_packet(_packet(57, 55, 2))

    controller.stop_plan(plan.id)

    assert plan.status == PlanStatus.COMPLETED
    assert plan.current_quantity == 7
    assert len(gateway.records) == 1
    assert (gateway.records[0].total, gateway.records[0].ok, gateway.records[0].ng) == (7, 5, 2)
    assert reconciler.app_total == 0
    assert controller.current_plan is None
    print("✓ test_manual_stop_running_plan passed")


def test_manual_stop_waiting_plan():
    controller, reconciler, gateway = _controller()
    running = controller.add_plan("A", 100)
    waiting = controller.add_plan("B", 100)
    controller.handle_packet(_packet(10, 10, 0))
    controller.handle_packet(_packet(14, 14, 0))

    controller.stop_plan(waiting.id)

    assert waiting.status == PlanStatus.CANCELLED
    assert waiting.cancelled_at is not None
    assert gateway.records == []
    assert running.status == PlanStatus.RUNNING
    assert reconciler.app_total == 4
    assert running.current_quantity == 4
    print("✓ test_manual_stop_waiting_plan passed")


def test_stop_terminal_or_unknown_plan():
    controller, _, _ = _controller()
    plan = controller.add_plan("A", 100)
    controller.stop_plan(plan.id)

    try:
        controller.stop_plan(plan.id)
        raise AssertionError("Expected PlanStateError")
    except PlanStateError:
        pass

    try:
        controller.stop_plan(999)
        raise AssertionError("Expected PlanNotFoundError")
    except PlanNotFoundError:
        pass
    print("✓ test_stop_terminal_or_unknown_plan passed")


def test_add_plan_validation():
    controller, _, gateway = _controller()
    for name, target in [("", 10), ("   ", 10), ("A", 0), ("A", -5), ("A", "10"), ("A", None), ("A", True)]:
        try:
            controller.add_plan(name, target)
            raise AssertionError(f"Expected PlanValidationError for {name!r}, {target!r}")
        except PlanValidationError:
            pass
    assert gateway.plans == {}
    print("✓ test_add_plan_validation passed")


def test_packets_ignored_without_running_plan():
    controller, reconciler, _ = _controller()
    controller.handle_packet(_packet(10, 10, 0))
    controller.handle_packet(_packet(20, 20, 0))
    assert reconciler.get_statistics()["packets_processed"] == 0

    plan = controller.add_plan("A", 100)
    controller.handle_packet(_packet(25, 25, 0))
    assert plan.current_quantity == 0
    controller.handle_packet(_packet(26, 26, 0))
    assert plan.current_quantity == 1
    print("✓ test_packets_ignored_without_running_plan passed")


def test_restore_running_plan():
    gateway = InMemoryGateway()
    first, _, _ = _controller(gateway)
    plan = first.add_plan("A", 100)
    waiting = first.add_plan("B", 50)
    for p in [(0, 0, 0), (7, 7, 0)]:
        first.handle_packet(_packet(*p))
    assert plan.current_quantity == 7

    # Process restart
    controller, reconciler, _ = _controller(gateway)
    current = controller.restore()

    assert current is not None and current.id == plan.id
    assert current.status == PlanStatus.RUNNING
    assert reconciler.snapshot().counts() == (7, 7, 0)
    assert reconciler.is_first_packet
    assert {p.id for p in controller.get_plans()} == {plan.id, waiting.id}

    controller.handle_packet(_packet(300, 300, 0))  # baseline
    controller.handle_packet(_packet(303, 303, 0))
    assert controller.current_plan.current_quantity == 10
    print("✓ test_restore_running_plan passed")


def test_restore_activates_waiting_plan():
    gateway = InMemoryGateway()
    gateway.save_plan(ProductionPlan("Old", 10, queue_order=1, created_at=datetime(2026, 3, 1, 9, 0)))
    newest = gateway.save_plan(ProductionPlan("New", 10, queue_order=2, created_at=datetime(2026, 3, 1, 10, 0)))

    controller, _, _ = _controller(gateway)
    current = controller.restore()

    assert current.id == newest.id
    assert current.status == PlanStatus.RUNNING
    assert gateway.plans[newest.id].status == PlanStatus.RUNNING
    print("✓ test_restore_activates_waiting_plan passed")


def test_restore_requeues_extra_running_plans():
    gateway = InMemoryGateway()
    older = ProductionPlan("Old", 10, queue_order=1, created_at=datetime(2026, 3, 1, 9, 0))
    older.start(datetime(2026, 3, 1, 9, 5))
    newer = ProductionPlan("New", 10, queue_order=2, created_at=datetime(2026, 3, 1, 10, 0))
    newer.start(datetime(2026, 3, 1, 10, 5))
    gateway.save_plan(older)
    gateway.save_plan(newer)

    controller, _, _ = _controller(gateway)
    current = controller.restore()

    assert current.id == newer.id
    requeued = controller.get_plan(older.id)
    assert requeued.status == PlanStatus.WAITING
    assert requeued.started_at is None
    assert gateway.plans[older.id].status == PlanStatus.WAITING

    # Waiting is not a valid source for requeue
    try:
        requeued.requeue()
        raise AssertionError("Expected PlanStateError")
    except PlanStateError:
        pass
    print("✓ test_restore_requeues_extra_running_plans passed")


def test_restore_empty_queue():
    controller, reconciler, _ = _controller()
    assert controller.restore() is None
    assert reconciler.app_total == 0
    print("✓ test_restore_empty_queue passed")


def test_persistence_failure_is_not_fatal():
    controller, reconciler, gateway = _controller()
    plan = controller.add_plan("A", 3)
    gateway.fail_saves = True

    for p in [(0, 0, 0), (1, 1, 0), (3, 3, 0)]:
        controller.handle_packet(_packet(*p))

    assert plan.status == PlanStatus.COMPLETED
    assert plan.current_quantity == 3
    assert gateway.records == []
    assert reconciler.app_total == 0

    # add_plan must report the failure: the plan would have no id
    try:
        controller.add_plan("B", 5)
        raise AssertionError("Expected PersistenceError")
    except PersistenceError:
        pass
    print("✓ test_persistence_failure_is_not_fatal passed")


def test_with_sqlite_gateway():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'plans.db'))
        try:
            controller, _, _ = _controller(db)
            plan = controller.add_plan("Lau Tom", 2)
            for p in [(1, 1, 0), (2, 2, 0), (3, 2, 1)]:
                controller.handle_packet(_packet(*p))

            stored = db.get_plan(plan.id)
            assert stored.status == PlanStatus.COMPLETED
            assert stored.current_quantity == 2
            records = db.list_records()
            assert len(records) == 1
            assert (records[0].total, records[0].ok, records[0].ng) == (2, 1, 1)
            assert db.load_active_plans() == []
        finally:
            db.close()
    print("✓ test_with_sqlite_gateway passed")


def main():
    print("=" * 60)
    print("Plan Queue Controller Tests")
    print("=" * 60)

    tests = [
        test_end_to_end_target_reached,
        test_progress_persisted_on_every_update,
        test_completion_switches_before_reset,
        test_later_listeners_see_counts_in_order,
        test_overshoot_completes,
        test_next_plan_most_recent,
        test_next_plan_queue_order_policy,
        test_unknown_policy_rejected,
        test_manual_stop_running_plan,
        test_manual_stop_waiting_plan,
        test_stop_terminal_or_unknown_plan,
        test_add_plan_validation,
        test_packets_ignored_without_running_plan,
        test_restore_running_plan,
        test_restore_activates_waiting_plan,
        test_restore_requeues_extra_running_plans,
        test_restore_empty_queue,
        test_persistence_failure_is_not_fatal,
        test_with_sqlite_gateway,
    ]

    passed = 0
    failed = 0

    for test_fn in tests:
        try:
            test_fn()
            passed += 1
        except AssertionError as e:
            print(f"✗ {test_fn.__name__} FAILED: {e}")
            failed += 1
        except Exception as e:
            print(f"✗ {test_fn.__name__} ERROR: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print()
    print("=" * 60)
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    print("=" * 60)

    return 0 if failed == 0 else 1


if __name__ == '__main__':
    sys.exit(main())
