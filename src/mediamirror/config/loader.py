"""
Configuration file loading.

Load and parse config.yaml files, or build the same structure from the
process environment for serverless deployments.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from mediamirror.config.resolver import is_unresolved, resolve_config
from mediamirror.exceptions import ConfigurationError

DEFAULT_SOURCE_ROOT = "0 US"
DEFAULT_IMAGE_WIDTHS = [480, 960, 1600]


class Config:
    """MediaMirror configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        # Convenience properties for common config sections
        self.origin = data.get("origin", {}) or {}
        self.sync = data.get("sync", {}) or {}
        self.storage = data.get("storage", {}) or {}
        self.queue = data.get("queue", {}) or {}
        self.encoder = data.get("encoder", {}) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        keys = key.split(".")
        value = self.data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested']['key']."""
        if isinstance(key, str) and "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            # Return nested dicts as Config objects for chaining
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        if isinstance(key, str) and "." in key:
            keys = key.split(".")
            value = self.data
            for k in keys:
                if not isinstance(value, dict) or k not in value:
                    return False
                value = value[k]
            return True
        return key in self.data

    def __iter__(self) -> "Iterator[str]":
        """Iterate over top-level keys."""
        return iter(self.data)

    def keys(self):
        """Get top-level keys."""
        return self.data.keys()

    def items(self):
        """Get top-level items."""
        return self.data.items()

    @property
    def queue_url(self) -> str | None:
        """Configured work queue URL, or None when running inline."""
        url = self.queue.get("url")
        if is_unresolved(url):
            return None
        return url

    @property
    def source_root(self) -> str:
        return self.sync.get("source_root") or DEFAULT_SOURCE_ROOT

    @property
    def image_widths(self) -> list[int]:
        widths = self.sync.get("image_widths")
        if not widths:
            return list(DEFAULT_IMAGE_WIDTHS)
        return [int(w) for w in widths]

    def validate(self) -> None:
        """
        Validate configuration structure and content.

        Collects every problem before raising so operators see them all at once.
        """
        errors = []

        if not isinstance(self.data, dict):
            raise ConfigurationError(f"Configuration must be a mapping, got {type(self.data).__name__}")

        for section in ("origin", "sync", "storage", "queue", "encoder", "cursor_store", "logging", "metrics"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{section}' must be a mapping, got {type(value).__name__}")

        if is_unresolved(self.storage.get("bucket")):
            errors.append("storage.bucket is required")

        for key in ("app_key", "app_secret", "refresh_token"):
            if is_unresolved(self.origin.get(key)):
                errors.append(f"origin.{key} is required")

        widths = self.sync.get("image_widths")
        if widths is not None:
            if not isinstance(widths, list) or not all(isinstance(w, int) and w > 0 for w in widths):
                errors.append("sync.image_widths must be a list of positive integers")

        if self.queue_url:
            if is_unresolved(self.encoder.get("role_arn")):
                errors.append("encoder.role_arn is required when a queue is configured")
        elif not self.queue.get("allow_inline", False):
            # Inline mode never processes videos; make that an explicit opt-in.
            errors.append(
                "queue.url is not set; inline mode skips every video. "
                "Set queue.allow_inline: true to accept this for development"
            )

        cursor_type = (self.data.get("cursor_store") or {}).get("type", "s3")
        if cursor_type not in ("s3", "memory"):
            errors.append(f"cursor_store.type must be 's3' or 'memory', got '{cursor_type}'")

        if errors:
            raise ConfigurationError("\n".join(errors), details={"errors": errors})


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load MediaMirror configuration.

    Load config.yaml and config.{env}.yaml, merge with environment variables.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment name (dev, staging, prod)

    Returns:
        Config instance with merged configuration
    """
    if project_path is None:
        project_path = Path.cwd()

    base_config_path = project_path / "config.yaml"
    if not base_config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a config.yaml file in your project root"
        )

    if not base_config_path.is_file():
        raise ConfigurationError(f"Configuration path is not a file: {base_config_path}")

    config_data = _read_yaml(base_config_path)

    if env:
        env_config_path = project_path / f"config.{env}.yaml"
        if env_config_path.exists():
            _merge_dict(config_data, _read_yaml(env_config_path))

    env_name = env or "dev"
    config_data = resolve_config(config_data, env_name)

    return Config(config_data)


def config_from_environment(environ: dict[str, str] | None = None) -> Config:
    """
    Build configuration from process environment variables.

    Used by the queue worker entry point, where no config file is deployed.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {
        "origin": {
            "app_key": environ.get("DROPBOX_CLIENT_ID"),
            "app_secret": environ.get("DROPBOX_CLIENT_SECRET"),
            "refresh_token": environ.get("DROPBOX_REFRESH_TOKEN"),
        },
        "sync": {
            "source_root": environ.get("MEDIAMIRROR_SOURCE_ROOT", DEFAULT_SOURCE_ROOT),
            "user_folder": environ.get("MEDIAMIRROR_USER_FOLDER"),
        },
        "storage": {
            "bucket": environ.get("AWS_S3_BUCKET"),
            "region": environ.get("AWS_REGION"),
        },
        "queue": {
            "url": environ.get("SQS_QUEUE_URL"),
            "allow_inline": environ.get("MEDIAMIRROR_ALLOW_INLINE", "").lower() in ("1", "true", "yes"),
        },
        "encoder": {
            "endpoint_url": environ.get("MEDIACONVERT_ENDPOINT"),
            "role_arn": environ.get("MEDIACONVERT_ROLE_ARN"),
            "region": environ.get("AWS_REGION"),
        },
        "logging": {"level": environ.get("LOG_LEVEL", "INFO"), "format": environ.get("LOG_FORMAT", "json")},
    }
    return Config(data)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            try:
                return yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                if hasattr(e, "problem_mark"):
                    mark = e.problem_mark
                    raise ConfigurationError(
                        f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                        f"  {e}\n"
                        f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes"
                    ) from e
                raise ConfigurationError(f"Error parsing {path.name}: {e}") from e
    except PermissionError as e:
        raise ConfigurationError(f"Permission denied reading {path}: {e}") from e


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
