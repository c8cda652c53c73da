"""
Origin-to-queue sync passes.
"""

from mediamirror.sync.orchestrator import SyncOrchestrator, base_path_for
from mediamirror.sync.types import SyncOptions, SyncSummary

__all__ = ["SyncOptions", "SyncOrchestrator", "SyncSummary", "base_path_for"]
