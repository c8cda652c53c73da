"""
Incremental sync of one origin folder.

A pass resumes from the cursor stored for the folder (or lists it in full),
walks every page of changes, routes each new or modified media file to the
dispatcher, and finally stores the new cursor. If anything fails mid-pass the
cursor is left untouched, so the next pass sees the same changes again.
"""

from __future__ import annotations

from typing import Optional

from mediamirror.media.classifier import classify
from mediamirror.observability.metrics import MetricsRegistry, get_metrics_registry
from mediamirror.observability.structured_logging import add_correlation_id
from mediamirror.origin.base import ListResult, OriginStore
from mediamirror.queue.dispatcher import DispatchOutcome, JobDispatcher
from mediamirror.state.cursor import CursorStore, cursor_key
from mediamirror.sync.types import SyncOptions, SyncSummary
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.sync.orchestrator")


def base_path_for(source_root: str, user_folder: str) -> str:
    """Listing base for a user folder: `/{source_root}/{user_folder}`."""
    root = source_root.strip("/")
    folder = user_folder.strip("/")
    return f"/{root}/{folder}" if folder else f"/{root}"


class SyncOrchestrator:
    """
    Runs sync passes against an origin store.

    Args:
        origin: Origin store client
        dispatcher: Routes classified files to the queue (or inline)
        cursor_store: Persists the per-folder resume cursor
        image_widths: Rendition widths put on every image job
        metrics: Metrics registry (defaults to the global one)
    """

    def __init__(
        self,
        origin: OriginStore,
        dispatcher: JobDispatcher,
        cursor_store: CursorStore,
        *,
        image_widths: Optional[tuple[int, ...]] = None,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.origin = origin
        self.dispatcher = dispatcher
        self.cursor_store = cursor_store
        self.image_widths = image_widths
        self.metrics = metrics or get_metrics_registry()

    async def run(self, options: SyncOptions) -> SyncSummary:
        """Run a pass described by SyncOptions."""
        return await self.sync(
            options.source_root, options.user_folder, recursive=options.recursive, image_widths=options.image_widths
        )

    async def sync(
        self,
        source_root: str = "0 US",
        user_folder: str = "",
        recursive: bool = True,
        *,
        image_widths: Optional[tuple[int, ...]] = None,
    ) -> SyncSummary:
        """
        Run one sync pass for `/{source_root}/{user_folder}`.

        `image_widths` overrides the configured widths for this pass only.

        Raises:
            OriginError: If a listing call fails (no cursor is written)
            QueueError: If a job cannot be enqueued (no cursor is written)
            CursorConflictError: If another pass stored a cursor for the same
                folder after this one started
        """
        base_path = base_path_for(source_root, user_folder)
        widths = image_widths or self.image_widths
        key = cursor_key(base_path)
        summary = SyncSummary(base_path=base_path)

        with add_correlation_id(f"sync:{base_path}"):
            stored = await self.cursor_store.load(key)
            expected_version = stored.version if stored else None

            if stored is not None and stored.token and stored.valid_for(base_path):
                logger.info(f"Resuming sync of {base_path} from stored cursor")
                page = await self.origin.list_folder_continue(stored.token)
            else:
                if stored is not None:
                    logger.warning(f"Stored cursor for {key} was issued for '{stored.prefix}', listing {base_path} in full")
                else:
                    logger.info(f"No cursor for {base_path}, listing in full")
                summary.full_listing = True
                page = await self.origin.list_folder(base_path, recursive=recursive)

            # destination key -> remote id of the first file routed to it
            claimed: dict[str, str] = {}
            while True:
                await self._route(page, source_root.strip("/"), widths, claimed, summary)
                if not page.has_more:
                    break
                page = await self.origin.list_folder_continue(page.cursor)

            await self.cursor_store.save(key, page.cursor, base_path, expected_version=expected_version)
            summary.cursor = page.cursor

        logger.info(
            f"Sync of {base_path} complete: {summary.listed} listed, {summary.dispatched} dispatched, "
            f"{summary.skipped} skipped, {summary.collisions} collision(s) in {summary.batches} batch(es)"
        )
        return summary

    async def _route(
        self,
        page: ListResult,
        root_segment: str,
        widths: Optional[tuple[int, ...]],
        claimed: dict[str, str],
        summary: SyncSummary,
    ) -> None:
        summary.batches += 1
        summary.listed += len(page.entries)

        for entry in page.entries:
            classified = classify(entry, root_segment=root_segment)
            if classified is None:
                summary.skipped += 1
                self.metrics.record_sync_entry("skipped")
                continue

            owner = claimed.setdefault(classified.destination_key, classified.remote_id)
            if owner != classified.remote_id:
                logger.warning(
                    f"Destination key {classified.destination_key} already claimed by {owner}; "
                    f"rejecting {classified.remote_id} ({classified.source_path})"
                )
                summary.collisions += 1
                self.metrics.record_sync_entry("collision")
                continue

            outcome = await self.dispatcher.dispatch(classified, widths)
            summary.outcomes[outcome.value] = summary.outcomes.get(outcome.value, 0) + 1
            if outcome is DispatchOutcome.SKIPPED:
                summary.skipped += 1
                self.metrics.record_sync_entry("skipped")
            else:
                summary.dispatched += 1
                self.metrics.record_sync_entry("dispatched")
