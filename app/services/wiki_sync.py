"""Google Drive -> wiki_content sync run controller.

One invocation discovers markdown files under the configured Drive folder,
ingests at most ``max_files`` new or changed files sequentially, and reports
how many candidates were not reached so the next invocation can continue.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

import httpx

from app.config.logger import app_logger, log_performance
from app.config.settings import settings
from app.services.content_processing import compute_content_hash, has_changed, prepare_content
from app.services.drive_client import RateLimitedClient
from app.services.drive_discovery import (
    Candidate,
    DiscoveryStats,
    FileClassification,
    FileDiscoverer,
    SyncMode,
)
from app.services.sync_errors import CallBudgetExceeded, ConfigurationError, ErrorKind, SyncError
from app.services.wiki_embeddings import Embedder, EmbeddingUpserter, OpenAIEmbedder
from app.services.wiki_index import KnownDocumentIndex
from app.services.wiki_store import WikiStore, build_wiki_store

__all__ = [
    "SyncMode",
    "SyncRunConfig",
    "SyncRunController",
    "SyncRunState",
    "SyncRunStats",
    "run_drive_sync",
]


class SyncRunState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass
class SyncRunConfig:
    """Parameters of one sync invocation."""

    mode: SyncMode = SyncMode.FULL
    max_files: int = settings.SYNC_MAX_FILES_DEFAULT
    max_api_calls: int = settings.SYNC_MAX_API_CALLS
    recency_cutoff: Optional[datetime] = None
    budget_threshold: float = settings.SYNC_BUDGET_THRESHOLD

    def __post_init__(self) -> None:
        self.mode = SyncMode(self.mode)
        if self.max_files < 1:
            raise ValueError("max_files must be at least 1")
        if self.max_api_calls < 1:
            raise ValueError("max_api_calls must be at least 1")
        if self.mode is SyncMode.INCREMENTAL and self.recency_cutoff is None:
            self.recency_cutoff = datetime.now(timezone.utc) - timedelta(days=settings.SYNC_INCREMENTAL_DAYS)

    @classmethod
    def from_flags(
        cls,
        incremental: bool = False,
        get_missing: bool = False,
        max_files: Optional[int] = None,
        max_api_calls: Optional[int] = None,
        mode: Optional[SyncMode] = None,
    ) -> "SyncRunConfig":
        """Build a config from the request flags; ``get_missing`` wins over ``incremental``."""
        if mode is None:
            if get_missing:
                mode = SyncMode.MISSING_ONLY
            elif incremental:
                mode = SyncMode.INCREMENTAL
            else:
                mode = SyncMode.FULL
        if max_files is None:
            max_files = (
                settings.SYNC_MAX_FILES_MISSING_DEFAULT
                if mode is SyncMode.MISSING_ONLY
                else settings.SYNC_MAX_FILES_DEFAULT
            )
        return cls(
            mode=mode,
            max_files=max_files,
            max_api_calls=max_api_calls or settings.SYNC_MAX_API_CALLS,
        )

    @property
    def call_threshold(self) -> float:
        return self.max_api_calls * self.budget_threshold


@dataclass
class SyncRunStats:
    """Outcome of one run; zeroed at start, returned at the end."""

    mode: SyncMode = SyncMode.FULL
    max_api_calls: int = 0
    discovery: DiscoveryStats = field(default_factory=DiscoveryStats)
    total_in_database: int = 0
    candidates_found: int = 0
    new: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    processed_this_run: int = 0
    api_requests_made: int = 0
    stopped_on_budget: bool = False
    errors: List[str] = field(default_factory=list)
    error_counts: Dict[ErrorKind, int] = field(default_factory=lambda: {kind: 0 for kind in ErrorKind})
    processed_files: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    max_errors: int = settings.SYNC_MAX_ERRORS_REPORTED
    max_processed_files: int = settings.SYNC_MAX_PROCESSED_REPORTED

    @property
    def total_discovered(self) -> int:
        return self.discovery.total_files

    @property
    def skipped(self) -> int:
        """Files excluded at discovery time by the run mode."""
        return self.discovery.skipped_by_mode

    @property
    def pages_scraped(self) -> int:
        return self.new + self.updated

    @property
    def pages_skipped(self) -> int:
        return self.unchanged + self.failed

    @property
    def batch_used(self) -> int:
        """Files that count toward ``max_files``: everything attempted except unchanged checks."""
        return self.new + self.updated + self.failed

    @property
    def remaining_for_next_run(self) -> int:
        return max(0, self.candidates_found - self.processed_this_run)

    @property
    def progress_percentage(self) -> int:
        if self.candidates_found == 0:
            return 100
        return int(round(100 * self.processed_this_run / self.candidates_found))

    @property
    def rate_limit_errors(self) -> int:
        return self.error_counts[ErrorKind.RATE_LIMIT]

    def record_error(self, path: str, error: BaseException) -> None:
        kind = error.kind if isinstance(error, SyncError) else ErrorKind.OTHER
        self.error_counts[kind] += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(f"{path}: {error}")

    def record_processed(self, path: str) -> None:
        if len(self.processed_files) < self.max_processed_files:
            self.processed_files.append(path)


class SyncRunController:
    """Discover -> process state machine for one sync invocation."""

    def __init__(
        self,
        client: RateLimitedClient,
        upserter: EmbeddingUpserter,
        store: WikiStore,
        root_folder_id: str,
    ):
        self.client = client
        self.upserter = upserter
        self.store = store
        self.root_folder_id = root_folder_id
        self.state = SyncRunState.IDLE

    def _budget_reached(self, config: SyncRunConfig) -> bool:
        return self.client.calls_made >= config.call_threshold

    async def run(self, config: SyncRunConfig) -> SyncRunStats:
        start_time = time.time()
        stats = SyncRunStats(mode=config.mode, max_api_calls=config.max_api_calls)
        app_logger.info(
            f"SYNC START: mode={config.mode.value} max_files={config.max_files} "
            f"max_api_calls={config.max_api_calls} folder={self.root_folder_id}"
        )

        try:
            self.state = SyncRunState.DISCOVERING
            index = KnownDocumentIndex.from_documents(await self.store.load_known())
            stats.total_in_database = len(index)

            discoverer = FileDiscoverer(self.client, index, config.mode, config.recency_cutoff)
            candidates = await discoverer.discover(self.root_folder_id)
            stats.discovery = discoverer.stats
            stats.candidates_found = len(candidates)
            stats.stopped_on_budget = discoverer.budget_exhausted

            self.state = SyncRunState.PROCESSING
            if not stats.stopped_on_budget:
                await self._process(candidates, config, stats)
        finally:
            self.state = SyncRunState.COMPLETED
            stats.api_requests_made = self.client.calls_made
            stats.elapsed_seconds = round(time.time() - start_time, 2)

        app_logger.info(
            f"SYNC COMPLETE: mode={config.mode.value} discovered={stats.total_discovered} "
            f"candidates={stats.candidates_found} new={stats.new} updated={stats.updated} "
            f"unchanged={stats.unchanged} failed={stats.failed} remaining={stats.remaining_for_next_run} "
            f"api_calls={stats.api_requests_made}/{config.max_api_calls}"
        )
        log_performance("drive_sync", stats.elapsed_seconds, mode=config.mode.value)
        return stats

    async def _process(self, candidates: List[Candidate], config: SyncRunConfig, stats: SyncRunStats) -> None:
        """Work through candidates in discovery order.

        Only new, updated and failed files fill the ``max_files`` batch; hash
        checks that come back unchanged are bounded by the call budget alone,
        so a rerun moves past files ingested by earlier runs.
        """
        total = len(candidates)
        for position, candidate in enumerate(candidates, start=1):
            if stats.batch_used >= config.max_files:
                app_logger.info(
                    f"Batch of {config.max_files} files filled; leaving {total - position + 1} files for the next run"
                )
                return
            if self._budget_reached(config):
                stats.stopped_on_budget = True
                app_logger.warning(
                    f"API budget threshold reached ({self.client.calls_made}/{config.max_api_calls}); "
                    f"leaving {total - position + 1} files for the next run"
                )
                return

            path = candidate.file.path
            app_logger.info(f"Processing {position}/{total}: {path} ({candidate.classification.value})")
            try:
                await self._process_file(candidate, config, stats)
            except CallBudgetExceeded as exc:
                stats.stopped_on_budget = True
                app_logger.warning(f"Stopping run: {exc}")
                return
            except SyncError as exc:
                stats.failed += 1
                stats.record_error(path, exc)
                app_logger.warning(f"Failed {path}: {exc}")
            except Exception as exc:
                stats.failed += 1
                stats.record_error(path, exc)
                app_logger.exception(f"Unexpected error processing {path}: {exc}")
            stats.processed_this_run += 1

    async def _process_file(self, candidate: Candidate, config: SyncRunConfig, stats: SyncRunStats) -> None:
        remote = candidate.file
        raw = await self.client.download(remote.id)
        content_hash = compute_content_hash(raw)

        if not has_changed(candidate.known, content_hash, config.mode):
            stats.unchanged += 1
            app_logger.info(f"Unchanged: {remote.path}")
            return

        prepared = prepare_content(raw, remote.name)
        # Keep the stored URL format for known files so the upsert hits the same row
        url = candidate.known.url if candidate.known else remote.url
        await self.upserter.ingest(url, prepared.title, prepared.content, content_hash)

        if candidate.classification is FileClassification.NEW:
            stats.new += 1
        else:
            stats.updated += 1
        stats.record_processed(remote.path)
        app_logger.info(f"Saved: {prepared.title} ({len(prepared.content)} chars)")


def _require(value: str, name: str) -> str:
    if not value or not value.strip():
        raise ConfigurationError(f"{name} is not configured")
    return value.strip()


async def run_drive_sync(
    config: SyncRunConfig,
    store: Optional[WikiStore] = None,
    embedder: Optional[Embedder] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SyncRunStats:
    """Run one sync invocation with clients built from settings.

    Raises:
        ConfigurationError: Drive API key, folder id or OpenAI key missing
    """
    api_key = _require(settings.GOOGLE_DRIVE_API_KEY, "GOOGLE_DRIVE_API_KEY")
    folder_id = _require(settings.GOOGLE_DRIVE_FOLDER_ID, "GOOGLE_DRIVE_FOLDER_ID")
    if embedder is None:
        embedder = OpenAIEmbedder(api_key=_require(settings.OPENAI_API_KEY, "OPENAI_API_KEY"))
    if store is None:
        store = build_wiki_store()

    async with RateLimitedClient(api_key, config.max_api_calls, http_client=http_client) as client:
        controller = SyncRunController(client, EmbeddingUpserter(embedder, store), store, folder_id)
        return await controller.run(config)
