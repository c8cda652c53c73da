"""
Configuration management.

Configuration file parsing, environment resolution and validation.
"""

from mediamirror.config.loader import Config, config_from_environment, load_config
from mediamirror.config.resolver import resolve_config

__all__ = [
    "load_config",
    "config_from_environment",
    "Config",
    "resolve_config",
]
