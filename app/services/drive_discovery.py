"""Recursive discovery and classification of wiki files in a Drive folder tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.config.logger import app_logger
from app.config.settings import settings
from app.services.drive_client import FOLDER_MIME_TYPE, RateLimitedClient
from app.services.sync_errors import CallBudgetExceeded, FolderListingFailed, SyncError
from app.services.wiki_index import GDRIVE_SCHEME, KnownDocument, KnownDocumentIndex


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    MISSING_ONLY = "missing-only"


class FileClassification(str, Enum):
    NEW = "new"
    POTENTIALLY_UPDATED = "potentially-updated"
    EXISTING_CHECK = "existing-check"
    EXISTING_UNCHANGED = "existing-unchanged"


def parse_drive_time(value: Optional[str]) -> Optional[datetime]:
    """Parse Drive's RFC 3339 timestamps (``2025-06-01T12:00:00.000Z``)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        app_logger.warning(f"Unparseable Drive timestamp: {value}")
        return None


@dataclass
class RemoteFile:
    """One leaf file found in the Drive tree."""

    id: str
    name: str
    path: str
    modified_time: Optional[datetime] = None
    size: Optional[int] = None
    parent_id: Optional[str] = None
    web_view_link: Optional[str] = None

    @property
    def url(self) -> str:
        return self.web_view_link or f"{GDRIVE_SCHEME}{self.id}"

    @classmethod
    def from_api(cls, item: Dict[str, Any], path: str, parent_id: str) -> "RemoteFile":
        size = item.get("size")
        return cls(
            id=item["id"],
            name=item["name"],
            path=path,
            modified_time=parse_drive_time(item.get("modifiedTime")),
            size=int(size) if size is not None else None,
            parent_id=parent_id,
            web_view_link=item.get("webViewLink"),
        )


@dataclass
class Candidate:
    file: RemoteFile
    classification: FileClassification
    known: Optional[KnownDocument] = None


@dataclass
class DiscoveryStats:
    total_files: int = 0
    new_files: int = 0
    potentially_updated: int = 0
    existing_checked: int = 0
    skipped_by_mode: int = 0
    non_matching_files: int = 0
    folders_scanned: int = 0
    folder_failures: int = 0
    failed_folder_ids: List[str] = field(default_factory=list)


class FileDiscoverer:
    """Depth-first walk of a Drive folder, classifying files against the index."""

    def __init__(
        self,
        client: RateLimitedClient,
        index: KnownDocumentIndex,
        mode: SyncMode,
        recency_cutoff: Optional[datetime] = None,
        extension: str = settings.SYNC_FILE_EXTENSION,
    ):
        self.client = client
        self.index = index
        self.mode = mode
        self.recency_cutoff = recency_cutoff
        self.extension = extension.lower()
        self.stats = DiscoveryStats()
        self.budget_exhausted = False
        self._candidates: List[Candidate] = []

    async def discover(self, root_folder_id: str) -> List[Candidate]:
        """Return candidates in walk order.

        If the call budget runs out mid-walk, the candidates found so far are
        returned and ``budget_exhausted`` is set.
        """
        self.stats = DiscoveryStats()
        self.budget_exhausted = False
        self._candidates = []
        app_logger.info(f"Scanning Drive folder {root_folder_id} (mode={self.mode.value})")
        try:
            await self._walk(root_folder_id, "", is_root=True)
        except CallBudgetExceeded as exc:
            self.budget_exhausted = True
            app_logger.warning(f"Discovery stopped early: {exc}")
        app_logger.info(
            f"Discovery done: {self.stats.total_files} files, {len(self._candidates)} candidates, "
            f"{self.stats.skipped_by_mode} skipped by mode"
        )
        return list(self._candidates)

    async def _list_children(self, folder_id: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            data = await self.client.list_folder(folder_id, page_token)
            items.extend(data.get("files") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                return items

    async def _walk(self, folder_id: str, path: str, is_root: bool = False) -> None:
        try:
            children = await self._list_children(folder_id)
        except CallBudgetExceeded:
            raise
        except SyncError as exc:
            if is_root:
                raise FolderListingFailed(
                    f"Could not list root folder {folder_id}: {exc.message}", kind=exc.kind
                ) from exc
            # A broken subfolder contributes no files
            failure = FolderListingFailed(f"Could not list folder {path or folder_id}: {exc.message}", kind=exc.kind)
            self.stats.folder_failures += 1
            self.stats.failed_folder_ids.append(folder_id)
            app_logger.warning(str(failure))
            return

        self.stats.folders_scanned += 1
        for item in children:
            current_path = f"{path}/{item['name']}" if path else item["name"]
            if item.get("mimeType") == FOLDER_MIME_TYPE:
                await self._walk(item["id"], current_path)
            elif item["name"].lower().endswith(self.extension):
                self._classify(RemoteFile.from_api(item, current_path, folder_id))
            else:
                self.stats.non_matching_files += 1

    def classify(self, remote: RemoteFile) -> Candidate:
        """Classify one file against the index without touching counters."""
        known = self.index.get(remote.id)
        if known is None:
            return Candidate(remote, FileClassification.NEW)
        if self.mode is SyncMode.MISSING_ONLY:
            return Candidate(remote, FileClassification.EXISTING_UNCHANGED, known)
        if self.mode is SyncMode.INCREMENTAL:
            if (
                self.recency_cutoff is not None
                and remote.modified_time is not None
                and remote.modified_time < self.recency_cutoff
            ):
                return Candidate(remote, FileClassification.EXISTING_UNCHANGED, known)
            return Candidate(remote, FileClassification.POTENTIALLY_UPDATED, known)
        return Candidate(remote, FileClassification.EXISTING_CHECK, known)

    def _classify(self, remote: RemoteFile) -> None:
        candidate = self.classify(remote)
        self.stats.total_files += 1
        if candidate.classification is FileClassification.EXISTING_UNCHANGED:
            self.stats.skipped_by_mode += 1
            app_logger.debug(f"Skipping {remote.path} ({self.mode.value})")
            return
        if candidate.classification is FileClassification.NEW:
            self.stats.new_files += 1
        elif candidate.classification is FileClassification.POTENTIALLY_UPDATED:
            self.stats.potentially_updated += 1
        else:
            self.stats.existing_checked += 1
        self._candidates.append(candidate)
