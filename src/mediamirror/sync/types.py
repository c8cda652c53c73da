"""
Type definitions for sync passes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class SyncOptions:
    """Config-derived parameters of a sync pass."""

    source_root: str = "0 US"
    user_folder: str = ""
    recursive: bool = True
    image_widths: tuple[int, ...] | None = None

    @classmethod
    def from_config(cls, sync_config: dict[str, Any]) -> "SyncOptions":
        widths = sync_config.get("image_widths")
        return cls(
            source_root=sync_config.get("source_root") or "0 US",
            user_folder=sync_config.get("user_folder") or "",
            recursive=bool(sync_config.get("recursive", True)),
            image_widths=tuple(widths) if widths else None,
        )


@dataclass
class SyncSummary:
    """Counts for one sync pass, for logs and CLI output."""

    base_path: str
    full_listing: bool = False
    listed: int = 0
    dispatched: int = 0
    skipped: int = 0
    collisions: int = 0
    batches: int = 0
    cursor: str | None = None
    outcomes: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
