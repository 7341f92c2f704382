"""
Database Manager for the Production Counter.

SQLite implementation of the persistence gateway with:
- Foreign key support
- Schema initialization
- Thread-local connections (read loop and API workers each get their own)
- Repository-style methods for plans and records
- Errors surfaced as PersistenceError
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from production_counter.exceptions import PersistenceError
from production_counter.persistence.Gateway import PersistenceGateway, summarize_plans
from production_counter.plans.models import PlanStatus, ProductionPlan, ProductionRecord
from production_counter.utils.AppLogging import logger

_PLAN_COLUMNS = (
    "id, product_name, target_quantity, current_quantity, queue_order, status, "
    "created_at, started_at, completed_at, cancelled_at"
)
_RECORD_COLUMNS = "id, plan_id, timestamp, product_id, total, ok, ng, mfg_date, exp_date"


class DatabaseManager(PersistenceGateway):
    """SQLite-backed store for production plans and records."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._ensure_db_exists()
        self._initialize_schema()
        logger.info(f"[DatabaseManager] Initialized: {db_path}")

    def _ensure_db_exists(self):
        db_file = Path(self.db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)
        if not db_file.exists():
            db_file.touch()
            logger.info(f"[DatabaseManager] Created new database: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        if not hasattr(self._local, 'connection') or self._local.connection is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._local.connection

    @contextmanager
    def _cursor(self):
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"[DatabaseManager] Database error: {e}", exc_info=True)
            raise PersistenceError(str(e)) from e
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _initialize_schema(self):
        with self._cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS production_plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_name TEXT NOT NULL,
                    target_quantity INTEGER NOT NULL CHECK (target_quantity > 0),
                    current_quantity INTEGER NOT NULL DEFAULT 0,
                    queue_order INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    cancelled_at TEXT
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS production_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    plan_id INTEGER,
                    timestamp TEXT NOT NULL,
                    product_id TEXT NOT NULL,
                    total INTEGER NOT NULL,
                    ok INTEGER NOT NULL,
                    ng INTEGER NOT NULL,
                    mfg_date TEXT,
                    exp_date TEXT,
                    FOREIGN KEY (plan_id) REFERENCES production_plans(id) ON DELETE SET NULL
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_plans_queue_order ON production_plans(queue_order)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_plans_status ON production_plans(status)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_plans_created_at ON production_plans(created_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_records_timestamp ON production_records(timestamp)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_records_product_id ON production_records(product_id)")

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def load_active_plans(self) -> List[ProductionPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_PLAN_COLUMNS} FROM production_plans "
                f"WHERE status IN (?, ?) ORDER BY created_at DESC, id DESC",
                (PlanStatus.WAITING.value, PlanStatus.RUNNING.value)
            )
            return [_row_to_plan(row) for row in cursor.fetchall()]

    def save_plan(self, plan: ProductionPlan) -> ProductionPlan:
        params = (
            plan.product_name,
            plan.target_quantity,
            plan.current_quantity,
            plan.queue_order,
            plan.status.value,
            _to_text(plan.created_at),
            _to_text(plan.started_at),
            _to_text(plan.completed_at),
            _to_text(plan.cancelled_at),
        )
        with self._cursor() as cursor:
            if plan.id is None:
                cursor.execute(
                    "INSERT INTO production_plans (product_name, target_quantity, current_quantity, "
                    "queue_order, status, created_at, started_at, completed_at, cancelled_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    params
                )
                plan.id = cursor.lastrowid
                logger.info(f"[DatabaseManager] Created plan {plan.id}: {plan.product_name} x{plan.target_quantity}")
            else:
                cursor.execute(
                    "UPDATE production_plans SET product_name = ?, target_quantity = ?, current_quantity = ?, "
                    "queue_order = ?, status = ?, created_at = ?, started_at = ?, completed_at = ?, "
                    "cancelled_at = ? WHERE id = ?",
                    params + (plan.id,)
                )
        return plan

    def get_plan(self, plan_id: int) -> Optional[ProductionPlan]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {_PLAN_COLUMNS} FROM production_plans WHERE id = ?", (plan_id,))
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def list_plans(self, limit: int = 50) -> List[ProductionPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_PLAN_COLUMNS} FROM production_plans ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,)
            )
            return [_row_to_plan(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def save_record(self, record: ProductionRecord) -> ProductionRecord:
        with self._cursor() as cursor:
            cursor.execute(
                "INSERT INTO production_records (plan_id, timestamp, product_id, total, ok, ng, mfg_date, exp_date) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.plan_id,
                    _to_text(record.timestamp),
                    record.product_id,
                    record.total,
                    record.ok,
                    record.ng,
                    record.mfg_date,
                    record.exp_date,
                )
            )
            record.id = cursor.lastrowid
        logger.info(
            f"[DatabaseManager] Saved record {record.id}: {record.product_id} "
            f"total={record.total} ok={record.ok} ng={record.ng}"
        )
        return record

    def list_records(self, limit: int = 100) -> List[ProductionRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_RECORD_COLUMNS} FROM production_records ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,)
            )
            return [_row_to_record(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_report_summary(self, from_date: date, to_date: date) -> Dict[str, Any]:
        start = datetime.combine(from_date, time.min)
        end = datetime.combine(to_date + timedelta(days=1), time.min)
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_PLAN_COLUMNS} FROM production_plans "
                f"WHERE created_at >= ? AND created_at < ? ORDER BY created_at DESC, id DESC",
                (_to_text(start), _to_text(end))
            )
            plans = [_row_to_plan(row) for row in cursor.fetchall()]

        summary = summarize_plans(plans)
        summary["from_date"] = from_date.isoformat()
        summary["to_date"] = to_date.isoformat()
        return summary

    def close(self):
        with self._connections_lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.warning(f"[DatabaseManager] Error closing connection: {e}")
        self._local = threading.local()
        logger.info("[DatabaseManager] Closed")


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(sep=" ") if value else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_plan(row: sqlite3.Row) -> ProductionPlan:
    return ProductionPlan(
        id=row["id"],
        product_name=row["product_name"],
        target_quantity=row["target_quantity"],
        current_quantity=row["current_quantity"],
        queue_order=row["queue_order"],
        status=PlanStatus(row["status"]),
        created_at=_from_text(row["created_at"]),
        started_at=_from_text(row["started_at"]),
        completed_at=_from_text(row["completed_at"]),
        cancelled_at=_from_text(row["cancelled_at"]),
    )


def _row_to_record(row: sqlite3.Row) -> ProductionRecord:
    return ProductionRecord(
        id=row["id"],
        plan_id=row["plan_id"],
        timestamp=_from_text(row["timestamp"]),
        product_id=row["product_id"],
        total=row["total"],
        ok=row["ok"],
        ng=row["ng"],
        mfg_date=row["mfg_date"] or "-",
        exp_date=row["exp_date"] or "-",
    )
