"""Request and response schemas for the Drive sync endpoints."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.services.drive_discovery import SyncMode
from app.services.sync_errors import ErrorKind
from app.services.wiki_sync import SyncRunConfig, SyncRunStats


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncRequest(CamelModel):
    """Request schema for POST /v1/sync/drive."""

    mode: Optional[SyncMode] = Field(
        default=None,
        description="Explicit run mode; when omitted it is derived from incremental/getMissing.",
    )
    incremental: bool = Field(default=False, description="Only files modified in the last 7 days.")
    get_missing: bool = Field(default=False, description="Only files absent from wiki_content.")
    max_files: Optional[int] = Field(
        default=None,
        ge=1,
        le=500,
        description="New or changed files to ingest this invocation; unchanged checks do not count (default 50, or 25 for missing-only).",
    )
    max_api_calls: Optional[int] = Field(default=None, ge=1, le=5000)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={"example": {"incremental": True, "maxFiles": 50}},
    )

    def to_run_config(self) -> SyncRunConfig:
        return SyncRunConfig.from_flags(
            incremental=self.incremental,
            get_missing=self.get_missing,
            max_files=self.max_files,
            max_api_calls=self.max_api_calls,
            mode=self.mode,
        )


class DiscoveryStatistics(CamelModel):
    total_files: int
    new_files: int
    missing_files_found: int
    potentially_updated: int
    existing_checked: int
    skipped_by_mode: int
    non_markdown_files: int
    folders_scanned: int
    folder_listing_failures: int
    candidates_found: int
    in_database: int


class ProcessingStatistics(CamelModel):
    actually_new: int
    actually_updated: int
    actually_unchanged: int
    failed: int
    error_categories: Dict[str, int]


class CompletionStatistics(CamelModel):
    files_processed_this_run: int
    files_remaining: int
    progress_percentage: int
    stopped_on_budget: bool
    elapsed_seconds: float


class SyncStatistics(CamelModel):
    discovery: DiscoveryStatistics
    processing: ProcessingStatistics
    completion: CompletionStatistics


class SyncRunResponse(CamelModel):
    """Response payload for POST /v1/sync/drive."""

    success: bool = True
    mode: SyncMode
    incremental: bool
    pages_scraped: int
    pages_skipped: int
    total_discovered: int
    total_in_database: int
    new_files: int
    updated_files: int
    unchanged_files: int
    missing_files: Optional[int] = None
    files_processed_this_run: int
    files_remaining_for_next_run: int
    progress_percentage: int = Field(ge=0, le=100)
    rate_limit_errors: int
    api_requests_made: int
    max_api_requests: int
    errors: List[str] = Field(default_factory=list)
    processed_files: List[str] = Field(default_factory=list)
    statistics: SyncStatistics
    message: str

    @classmethod
    def from_stats(cls, stats: SyncRunStats) -> "SyncRunResponse":
        discovery = stats.discovery
        missing_mode = stats.mode is SyncMode.MISSING_ONLY
        return cls(
            mode=stats.mode,
            incremental=stats.mode is SyncMode.INCREMENTAL,
            pages_scraped=stats.pages_scraped,
            pages_skipped=stats.pages_skipped,
            total_discovered=stats.total_discovered,
            total_in_database=stats.total_in_database,
            new_files=stats.new,
            updated_files=stats.updated,
            unchanged_files=stats.unchanged,
            missing_files=discovery.new_files if missing_mode else None,
            files_processed_this_run=stats.processed_this_run,
            files_remaining_for_next_run=stats.remaining_for_next_run,
            progress_percentage=stats.progress_percentage,
            rate_limit_errors=stats.rate_limit_errors,
            api_requests_made=stats.api_requests_made,
            max_api_requests=stats.max_api_calls,
            errors=list(stats.errors),
            processed_files=list(stats.processed_files),
            statistics=SyncStatistics(
                discovery=DiscoveryStatistics(
                    total_files=discovery.total_files,
                    new_files=discovery.new_files,
                    missing_files_found=discovery.new_files,
                    potentially_updated=discovery.potentially_updated,
                    existing_checked=discovery.existing_checked,
                    skipped_by_mode=discovery.skipped_by_mode,
                    non_markdown_files=discovery.non_matching_files,
                    folders_scanned=discovery.folders_scanned,
                    folder_listing_failures=discovery.folder_failures,
                    candidates_found=stats.candidates_found,
                    in_database=stats.total_in_database,
                ),
                processing=ProcessingStatistics(
                    actually_new=stats.new,
                    actually_updated=stats.updated,
                    actually_unchanged=stats.unchanged,
                    failed=stats.failed,
                    error_categories={kind.value: count for kind, count in stats.error_counts.items()},
                ),
                completion=CompletionStatistics(
                    files_processed_this_run=stats.processed_this_run,
                    files_remaining=stats.remaining_for_next_run,
                    progress_percentage=stats.progress_percentage,
                    stopped_on_budget=stats.stopped_on_budget,
                    elapsed_seconds=stats.elapsed_seconds,
                ),
            ),
            message=build_summary_message(stats),
        )


def build_summary_message(stats: SyncRunStats) -> str:
    if stats.total_discovered == 0:
        return "No markdown files found in the specified folder."
    message = (
        f"Drive sync ({stats.mode.value}) complete: found {stats.total_discovered} .md files, "
        f"scraped {stats.pages_scraped} ({stats.new} new, {stats.updated} updated, "
        f"{stats.unchanged} unchanged, {stats.failed} failed)"
    )
    if stats.remaining_for_next_run:
        message += f". {stats.remaining_for_next_run} files remaining for next run"
    if stats.stopped_on_budget:
        message += " (stopped at API request budget)"
    return message


class WikiStatsResponse(CamelModel):
    """Response payload for GET /v1/sync/wiki/stats."""

    total_documents: int
    last_updated_at: Optional[datetime] = None
