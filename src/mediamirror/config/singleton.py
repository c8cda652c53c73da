"""
Global configuration singleton.

Provides a global config instance that can be accessed from anywhere in the application.
"""

import threading
from typing import Any

from mediamirror.config.loader import Config


class GlobalConfig:
    """Global configuration singleton manager."""

    _instance: Config | None = None
    _lock = threading.Lock()

    @classmethod
    def set_config(cls, config: Config):
        """Set the global config instance."""
        with cls._lock:
            cls._instance = config

    @classmethod
    def get_config(cls) -> Config | None:
        """Get the global config instance."""
        return cls._instance

    @classmethod
    def reset_config(cls):
        """Reset the global config instance (for testing)."""
        with cls._lock:
            cls._instance = None


def get_config() -> Config | None:
    """
    Get the global Config instance.

    Returns:
        Config instance if set, None otherwise
    """
    return GlobalConfig.get_config()


class ConfigProxy:
    """
    Proxy object that provides dict-like access to global config.

    Usage:
        from mediamirror import config
        bucket = config["storage"]["bucket"]
        # or
        bucket = config.get("storage.bucket")
    """

    def __getitem__(self, key: str):
        cfg = get_config()
        if cfg is None:
            raise RuntimeError("Config not initialized. Load a config and call GlobalConfig.set_config() first.")
        return cfg[key]

    def __contains__(self, key: str) -> bool:
        cfg = get_config()
        if cfg is None:
            return False
        return key in cfg

    def get(self, key: str, default: Any = None):
        """Get config value with dot notation: config.get('storage.bucket')."""
        cfg = get_config()
        if cfg is None:
            return default
        return cfg.get(key, default)


config = ConfigProxy()
