"""
Application settings for the Production Counter.

Environment-driven defaults for the camera link, storage and API server.
"""

import os
from dataclasses import dataclass, field
from typing import List


def _parse_bool_env(key: str, default: bool) -> bool:
    """Parse boolean environment variable."""
    val = os.getenv(key, str(default)).lower()
    return val in ('true', '1', 'yes', 'on')


NEXT_PLAN_MOST_RECENT = "most_recent"
NEXT_PLAN_QUEUE_ORDER = "queue_order"


@dataclass
class AppConfig:
    """
    Application configuration for the Production Counter.
    """

    APP_VERSION: str = "1.2.0"

    # ==================== Camera link ====================
    camera_ip: str = os.getenv("CAMERA_IP", "192.168.0.10")
    camera_port: int = int(os.getenv("CAMERA_PORT", "8500"))
    auto_reconnect: bool = field(default_factory=lambda: _parse_bool_env("AUTO_RECONNECT", True))

    # Base delay for reconnection backoff and the pause after a read error
    reconnect_delay_seconds: float = float(os.getenv("RECONNECT_DELAY_SECONDS", "5"))
    max_reconnect_delay_seconds: float = 60.0
    max_reconnect_attempts: int = 10
    connect_timeout_seconds: float = 10.0

    # ==================== Storage ====================
    db_path: str = os.getenv("DB_PATH", "data/db/production.db")
    settings_file: str = os.getenv("SETTINGS_FILE", "data/settings.json")

    # ==================== API server ====================
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # ==================== Plan queue ====================
    # "most_recent" picks the newest waiting plan, "queue_order" the lowest queue_order
    next_plan_policy: str = os.getenv("NEXT_PLAN_POLICY", NEXT_PLAN_MOST_RECENT)
    plan_history_limit: int = 50

    product_list: List[str] = field(default_factory=lambda: [
        "Chay Dong Co",
        "Lau Tom Chua Cay Cung Dinh",
    ])

    def log_configuration(self):
        """Log current configuration."""
        from production_counter.utils.AppLogging import logger
        logger.info(f"[Config] App Version: {self.APP_VERSION}")
        logger.info(f"[Config] Camera: {self.camera_ip}:{self.camera_port} (auto-reconnect={self.auto_reconnect})")
        logger.info(f"[Config] Database: {self.db_path}")
        logger.info(f"[Config] Next plan policy: {self.next_plan_policy}")
