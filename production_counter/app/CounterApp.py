"""
Production Counter Application.

Central orchestrator that:
1. Builds the persistence gateway, reconciler, plan queue and camera link
2. Wires their notifications explicitly (no globals)
3. Restores plan state at startup
4. Maintains a thread-safe LineStatus snapshot for the HTTP endpoint

Packet path (camera read thread):
    ConnectionManager -> CounterApp._on_packet -> PlanQueueController.handle_packet
        -> CounterReconciler.process_packet -> counts_updated
        -> PlanQueueController (progress / completion) -> LineStatus
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from production_counter.codec.PacketCodec import CameraPacket, format_date_display
from production_counter.config.config_manager import save_settings
from production_counter.config.settings import AppConfig
from production_counter.connection.CameraConnection import ConnectionManager
from production_counter.counting.CounterReconciler import CounterReconciler
from production_counter.exceptions import CameraConnectionError
from production_counter.persistence.Database import DatabaseManager
from production_counter.persistence.Gateway import PersistenceGateway
from production_counter.plans.PlanQueueController import PlanQueueController
from production_counter.plans.models import ProductionPlan
from production_counter.utils.AppLogging import logger


@dataclass
class LineStatus:
    """Live view of the production line (thread-safe)."""
    connected: bool = False
    connection_state: str = "disconnected"

    app_total: int = 0
    app_ok: int = 0
    app_ng: int = 0

    current_plan: Optional[Dict[str, Any]] = None

    # Last packet as received from the camera
    camera_total: int = 0
    camera_ok: int = 0
    camera_ng: int = 0
    product_id: str = ""
    mfg_date: str = "-"
    exp_date: str = "-"
    last_packet_at: Optional[str] = None

    # Bumped on every change; lets SSE clients skip unchanged snapshots
    version: int = 0
    updated_at: float = field(default_factory=time.time)

    def __post_init__(self):
        self._lock = threading.Lock()

    def update(self, **values) -> int:
        with self._lock:
            for key, value in values.items():
                setattr(self, key, value)
            self.version += 1
            self.updated_at = time.time()
            return self.version

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "connected": self.connected,
                "connection_state": self.connection_state,
                "app_total": self.app_total,
                "app_ok": self.app_ok,
                "app_ng": self.app_ng,
                "current_plan": dict(self.current_plan) if self.current_plan else None,
                "camera_total": self.camera_total,
                "camera_ok": self.camera_ok,
                "camera_ng": self.camera_ng,
                "product_id": self.product_id,
                "mfg_date": self.mfg_date,
                "exp_date": self.exp_date,
                "last_packet_at": self.last_packet_at,
                "version": self.version,
                "updated_at": self.updated_at,
            }


class CounterApp:
    """
    Owns and wires the core components.

    Args:
        config: Application configuration
        gateway: Persistence gateway; a DatabaseManager on config.db_path when omitted
    """

    def __init__(self, config: AppConfig, gateway: Optional[PersistenceGateway] = None):
        self.config = config
        self.status = LineStatus()

        self.gateway = gateway if gateway is not None else DatabaseManager(config.db_path)
        self.reconciler = CounterReconciler()
        self.plans = PlanQueueController(
            self.gateway,
            self.reconciler,
            next_plan_policy=config.next_plan_policy,
        )
        self.connection = ConnectionManager(
            packet_handler=self._on_packet,
            address=config.camera_ip,
            port=config.camera_port,
            auto_reconnect=config.auto_reconnect,
            connect_timeout=config.connect_timeout_seconds,
            reconnect_delay=config.reconnect_delay_seconds,
            max_reconnect_delay=config.max_reconnect_delay_seconds,
            max_reconnect_attempts=config.max_reconnect_attempts,
            read_error_delay=config.reconnect_delay_seconds,
        )

        # The controller subscribed to counts_updated in its constructor, so it
        # sees each update before the status does.
        self.reconciler.counts_updated.subscribe(self._on_counts_updated)
        self.plans.current_plan_changed.subscribe(self._on_current_plan_changed)
        self.connection.connectivity_changed.subscribe(self._on_connectivity_changed)

        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, connect: bool = True) -> None:
        """Restore plans and (optionally) start the camera link."""
        if self._started:
            return

        logger.info("[CounterApp] Starting...")
        self.config.log_configuration()

        self.plans.restore()
        self._refresh_plan_status()

        if connect:
            try:
                self.connection.connect()
            except CameraConnectionError as e:
                if self.connection.auto_reconnect:
                    logger.warning(f"[CounterApp] Initial connection failed, read loop will retry: {e}")
                else:
                    logger.error(f"[CounterApp] Initial connection failed: {e}")
            self.connection.start_reading()

        self._started = True
        logger.info("[CounterApp] Started")

    def stop(self) -> None:
        """Stop the camera link and release storage."""
        logger.info("[CounterApp] Stopping...")
        self.connection.disconnect()
        self.gateway.close()
        self._started = False
        logger.info("[CounterApp] Stopped")

    # ------------------------------------------------------------------
    # Commands (called from API worker threads)
    # ------------------------------------------------------------------

    def connect(self, address: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Connect (or reconnect) to the camera and make sure the read loop runs.

        A new address that connects successfully is saved to the settings file.

        Raises:
            CameraConnectionError: the connection could not be established
        """
        self.connection.connect(address, port)
        self.connection.start_reading()

        if (address, port) != (None, None):
            self.config.camera_ip = self.connection.address
            self.config.camera_port = self.connection.port
            save_settings(self.config)

    def disconnect(self) -> None:
        self.connection.disconnect()

    def add_plan(self, product_name: str, target_quantity: int) -> ProductionPlan:
        plan = self.plans.add_plan(product_name, target_quantity)
        self._refresh_plan_status()
        return plan

    def stop_plan(self, plan_id: int) -> ProductionPlan:
        plan = self.plans.stop_plan(plan_id)
        self._refresh_plan_status()
        return plan

    def get_status(self) -> Dict[str, Any]:
        return self.status.snapshot()

    # ------------------------------------------------------------------
    # Notification handlers
    # ------------------------------------------------------------------

    def _on_packet(self, packet: CameraPacket) -> None:
        self.status.update(
            camera_total=packet.total_count,
            camera_ok=packet.ok_count,
            camera_ng=packet.ng_count,
            product_id=packet.product_id,
            mfg_date=format_date_display(packet.mfg_date),
            exp_date=format_date_display(packet.exp_date),
            last_packet_at=datetime.now().isoformat(),
        )
        self.plans.handle_packet(packet)

    def _on_counts_updated(self, total: int, ok: int, ng: int) -> None:
        self.status.update(app_total=total, app_ok=ok, app_ng=ng)
        self._refresh_plan_status()

    def _on_current_plan_changed(self, plan: Optional[ProductionPlan]) -> None:
        if plan is None:
            logger.info("[CounterApp] No plan running")
        else:
            logger.info(f"[CounterApp] Current plan: {plan.id} {plan.product_name}")
        self._refresh_plan_status()

    def _on_connectivity_changed(self, connected: bool) -> None:
        self.status.update(
            connected=connected,
            connection_state=self.connection.state.value,
        )

    def _refresh_plan_status(self) -> None:
        plan = self.plans.current_plan
        self.status.update(current_plan=plan.to_dict() if plan else None)
