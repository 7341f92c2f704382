#!/usr/bin/env python3
"""
Tests for the SQLite persistence gateway.

Tests:
1. save_plan inserts (assigning an id) then updates in place
2. load_active_plans returns Waiting/Running plans, newest first
3. Records are written once and listed newest first
4. Report summary filters by creation date (inclusive) and totals plans
5. SQLite errors surface as PersistenceError
6. Each thread gets its own connection
"""

import os
import sys
import tempfile
import threading
from datetime import date, datetime

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from production_counter.exceptions import PersistenceError
from production_counter.persistence.Database import DatabaseManager
from production_counter.plans.models import PlanStatus, ProductionPlan, ProductionRecord


def _plan(name, created_at, target=10, status=PlanStatus.WAITING, quantity=0):
    return ProductionPlan(product_name=name, target_quantity=target, current_quantity=quantity,
                          status=status, created_at=created_at)


def test_save_plan_insert_then_update():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'test.db'))
        try:
            plan = _plan("Chay Dong Co", datetime(2026, 3, 2, 8, 0), target=500)
            db.save_plan(plan)
            assert plan.id is not None

            plan.start(datetime(2026, 3, 2, 8, 5))
            plan.set_progress(42)
            db.save_plan(plan)

            stored = db.get_plan(plan.id)
            assert stored.status == PlanStatus.RUNNING
            assert stored.current_quantity == 42
            assert stored.target_quantity == 500
            assert stored.started_at == datetime(2026, 3, 2, 8, 5)
            assert stored.created_at == datetime(2026, 3, 2, 8, 0)
            assert len(db.list_plans()) == 1
            assert db.get_plan(9999) is None
        finally:
            db.close()
    print("✓ test_save_plan_insert_then_update passed")


def test_load_active_plans():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'test.db'))
        try:
            old = db.save_plan(_plan("Old", datetime(2026, 3, 1, 9, 0)))
            running = db.save_plan(_plan("Run", datetime(2026, 3, 1, 10, 0), status=PlanStatus.RUNNING))
            newest = db.save_plan(_plan("New", datetime(2026, 3, 1, 11, 0)))
            db.save_plan(_plan("Done", datetime(2026, 3, 1, 12, 0), status=PlanStatus.COMPLETED))
            db.save_plan(_plan("Gone", datetime(2026, 3, 1, 13, 0), status=PlanStatus.CANCELLED))

            active = db.load_active_plans()
            assert [p.id for p in active] == [newest.id, running.id, old.id]
        finally:
            db.close()
    print("✓ test_load_active_plans passed")


def test_records():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'test.db'))
        try:
            plan = db.save_plan(_plan("A", datetime(2026, 3, 2, 8, 0)))
            first = db.save_record(ProductionRecord(product_id="A", total=3, ok=2, ng=1, plan_id=plan.id,
                                                    mfg_date="11/12/2025", exp_date="11/06/2026",
                                                    timestamp=datetime(2026, 3, 2, 9, 0)))
            second = db.save_record(ProductionRecord(product_id="A", total=5, ok=5, ng=0, plan_id=plan.id,
                                                     timestamp=datetime(2026, 3, 2, 10, 0)))
            assert first.id is not None and second.id is not None

            records = db.list_records()
            assert [r.id for r in records] == [second.id, first.id]
            assert records[1].mfg_date == "11/12/2025"
            assert records[0].mfg_date == "-"
            assert records[1].timestamp == datetime(2026, 3, 2, 9, 0)
            assert len(db.list_records(limit=1)) == 1
        finally:
            db.close()
    print("✓ test_records passed")


def test_report_summary():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'test.db'))
        try:
            db.save_plan(_plan("Before", datetime(2026, 2, 28, 23, 59), status=PlanStatus.COMPLETED, quantity=99))
            db.save_plan(_plan("A", datetime(2026, 3, 1, 0, 0), status=PlanStatus.COMPLETED, quantity=10))
            db.save_plan(_plan("B", datetime(2026, 3, 2, 12, 0), status=PlanStatus.CANCELLED, quantity=0))
            db.save_plan(_plan("C", datetime(2026, 3, 3, 23, 59, 59), status=PlanStatus.RUNNING, quantity=4))
            db.save_plan(_plan("After", datetime(2026, 3, 4, 0, 0), status=PlanStatus.COMPLETED, quantity=50))

            summary = db.get_report_summary(date(2026, 3, 1), date(2026, 3, 3))
            assert summary["total_plans"] == 3
            assert summary["completed_plans"] == 1
            assert summary["cancelled_plans"] == 1
            assert summary["total_actual_quantity"] == 14
            assert [p["product_name"] for p in summary["plans"]] == ["C", "B", "A"]
            assert summary["from_date"] == "2026-03-01"
            assert summary["to_date"] == "2026-03-03"

            empty = db.get_report_summary(date(2025, 1, 1), date(2025, 1, 31))
            assert empty["total_plans"] == 0
            assert empty["total_actual_quantity"] == 0
        finally:
            db.close()
    print("✓ test_report_summary passed")


def test_sqlite_errors_become_persistence_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'test.db'))
        try:
            bad = _plan("Bad", datetime(2026, 3, 2, 8, 0), target=0)
            try:
                db.save_plan(bad)
                raise AssertionError("Expected PersistenceError for target 0")
            except PersistenceError:
                pass
            assert bad.id is None
            assert db.list_plans() == []
        finally:
            db.close()
    print("✓ test_sqlite_errors_become_persistence_errors passed")


def test_connections_per_thread():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = DatabaseManager(os.path.join(tmpdir, 'test.db'))
        try:
            errors = []

            def writer(n):
                try:
                    for i in range(10):
                        db.save_plan(_plan(f"T{n}-{i}", datetime(2026, 3, 2, 8, n, i)))
                except PersistenceError as e:
                    errors.append(e)

            threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=10.0)

            assert errors == []
            assert len(db.list_plans(limit=100)) == 40
        finally:
            db.close()
    print("✓ test_connections_per_thread passed")


def main():
    print("=" * 60)
    print("Database Tests")
    print("=" * 60)

    tests = [
        test_save_plan_insert_then_update,
        test_load_active_plans,
        test_records,
        test_report_summary,
        test_sqlite_errors_become_persistence_errors,
        test_connections_per_thread,
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
