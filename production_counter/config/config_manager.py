"""
Configuration Manager for the Production Counter.

Centralized configuration with:
- Type-safe dataclass (see settings.AppConfig)
- Global instance with lazy initialization
- JSON settings file for the user-editable subset
  (camera address, port, auto-reconnect flag, product list)
"""

import json
import os
from typing import Any, Dict, Optional

from production_counter.config.settings import AppConfig
from production_counter.utils.AppLogging import logger

# Keys persisted to the settings file
PERSISTED_KEYS = ("camera_ip", "camera_port", "auto_reconnect", "product_list")


# ============================================================================
# Global Configuration Instance
# ============================================================================

_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get global configuration instance (singleton).

    Lazy initialization on first access; values stored in the settings file
    override the environment defaults.

    Returns:
        AppConfig: Global configuration instance
    """
    global _config
    if _config is None:
        _config = AppConfig()
        apply_settings(_config, load_settings(_config.settings_file))
    return _config


def update_config(**kwargs) -> None:
    """
    Update configuration values.

    Example:
        update_config(camera_ip="10.0.0.5", camera_port=9000)

    Raises:
        AttributeError: If invalid configuration key provided
    """
    config = get_config()
    for key, value in kwargs.items():
        if not hasattr(config, key):
            raise AttributeError(f"Invalid configuration key: {key}")
        setattr(config, key, value)


def reset_config() -> None:
    """Reset configuration to defaults."""
    global _config
    _config = AppConfig()


# ============================================================================
# Settings file
# ============================================================================

def load_settings(path: str) -> Dict[str, Any]:
    """
    Read persisted settings from *path*.

    A missing or unreadable file yields an empty dict so the caller keeps
    its defaults.
    """
    if not os.path.exists(path):
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"[ConfigManager] Failed to load settings from {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"[ConfigManager] Ignoring settings file {path}: not a JSON object")
        return {}

    return {k: v for k, v in data.items() if k in PERSISTED_KEYS}


def apply_settings(config: AppConfig, settings: Dict[str, Any]) -> AppConfig:
    """Copy recognised settings onto *config*, coercing basic types."""
    if "camera_ip" in settings:
        config.camera_ip = str(settings["camera_ip"])
    if "camera_port" in settings:
        try:
            config.camera_port = int(settings["camera_port"])
        except (TypeError, ValueError):
            logger.warning(f"[ConfigManager] Invalid camera_port in settings: {settings['camera_port']!r}")
    if "auto_reconnect" in settings:
        config.auto_reconnect = bool(settings["auto_reconnect"])
    if isinstance(settings.get("product_list"), list):
        config.product_list = [str(p) for p in settings["product_list"]]
    return config


def save_settings(config: AppConfig, path: Optional[str] = None) -> bool:
    """
    Write the user-editable subset of *config* to the settings file.

    Written atomically via a temp file.

    Returns:
        True if written successfully
    """
    filepath = path or config.settings_file
    data = {key: getattr(config, key) for key in PERSISTED_KEYS}
    try:
        os.makedirs(os.path.dirname(filepath) or ".", exist_ok=True)
        tmp_path = filepath + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=4)
        os.replace(tmp_path, filepath)
        logger.info(f"[ConfigManager] Settings saved: {filepath}")
        return True
    except OSError as e:
        logger.error(f"[ConfigManager] Failed to save settings: {e}")
        return False
