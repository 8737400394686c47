"""Shared fakes for the Drive sync tests: a Drive API double, a store and an embedder."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from app.services.drive_client import FOLDER_MIME_TYPE, RateLimitedClient
from app.services.sync_errors import EmbeddingUnavailable, ErrorKind
from app.services.wiki_embeddings import EmbeddingUpserter
from app.services.wiki_index import KnownDocument
from app.services.wiki_store import WikiRecord, WikiStore
from app.services.wiki_sync import SyncRunController

DRIVE_BASE = "https://www.googleapis.com/drive/v3"
ROOT_ID = "root"


def iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


class FakeDrive:
    """In-memory Drive v3 API served through httpx.MockTransport."""

    def __init__(self, page_size: int = 100):
        self.page_size = page_size
        self.folders: Dict[str, List[Dict[str, Any]]] = {ROOT_ID: []}
        self.contents: Dict[str, bytes] = {}
        self.failing_folders: set = set()
        self.failing_files: set = set()
        self.requests: List[httpx.Request] = []

    def add_folder(self, name: str, folder_id: str, parent: str = ROOT_ID) -> str:
        self.folders.setdefault(folder_id, [])
        self.folders[parent].append({"id": folder_id, "name": name, "mimeType": FOLDER_MIME_TYPE})
        return folder_id

    def add_file(
        self,
        name: str,
        content: str = "",
        file_id: Optional[str] = None,
        parent: str = ROOT_ID,
        modified: Optional[datetime] = None,
        mime_type: str = "text/markdown",
    ) -> str:
        file_id = file_id or f"id-{name}"
        raw = content.encode("utf-8")
        self.folders[parent].append(
            {
                "id": file_id,
                "name": name,
                "mimeType": mime_type,
                "parents": [parent],
                "webViewLink": f"https://drive.google.com/file/d/{file_id}/view?usp=drivesdk",
                "modifiedTime": iso(modified or days_ago(1)),
                "size": str(len(raw)),
            }
        )
        self.contents[file_id] = raw
        return file_id

    def set_content(self, file_id: str, content: str) -> None:
        self.contents[file_id] = content.encode("utf-8")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = parse_qs(request.url.query.decode())
        path = request.url.path
        if path.endswith("/files"):
            folder_id = params["q"][0].split("'")[1]
            if folder_id in self.failing_folders:
                return httpx.Response(500, text="backend error")
            items = self.folders.get(folder_id, [])
            start = int(params.get("pageToken", ["0"])[0])
            page = items[start:start + self.page_size]
            body: Dict[str, Any] = {"files": page}
            if start + self.page_size < len(items):
                body["nextPageToken"] = str(start + self.page_size)
            return httpx.Response(200, json=body)

        file_id = path.rsplit("/", 1)[-1]
        if file_id in self.failing_files or file_id not in self.contents:
            return httpx.Response(500, text="download failed")
        return httpx.Response(200, content=self.contents[file_id])

    @property
    def download_count(self) -> int:
        return sum(1 for r in self.requests if not r.url.path.endswith("/files"))


class SleepRecorder:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_client(
    handler: Callable[[httpx.Request], httpx.Response],
    max_calls: int = 1000,
    sleep: Optional[SleepRecorder] = None,
    **kwargs: Any,
) -> RateLimitedClient:
    kwargs.setdefault("base_delay", 1.0)
    kwargs.setdefault("max_delay", 30.0)
    kwargs.setdefault("backoff_factor", 1.5)
    kwargs.setdefault("max_retries", 3)
    kwargs.setdefault("retry_base_delay", 2.0)
    kwargs.setdefault("success_streak_threshold", 5)
    kwargs.setdefault("recovery_factor", 0.9)
    return RateLimitedClient(
        "test-key",
        max_calls,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        base_url=DRIVE_BASE,
        sleep=sleep or SleepRecorder(),
        jitter=lambda: 0.0,
        **kwargs,
    )


class InMemoryWikiStore(WikiStore):
    def __init__(self, documents: Optional[List[WikiRecord]] = None):
        self.records: Dict[str, WikiRecord] = {doc.url: doc for doc in documents or []}
        self.upserts = 0
        self.fail_on_upsert = False

    def seed(self, url: str, content_hash: str = "stale-hash") -> None:
        self.records[url] = WikiRecord(
            url=url,
            title="seeded",
            content="seeded content",
            content_hash=content_hash,
            embedding=[0.0],
            updated_at=days_ago(30),
        )

    async def load_known(self) -> List[KnownDocument]:
        return [KnownDocument(r.url, r.content_hash, r.updated_at) for r in self.records.values()]

    async def upsert(self, record: WikiRecord) -> None:
        if self.fail_on_upsert:
            raise RuntimeError("connection reset by peer")
        self.upserts += 1
        self.records[record.url] = record

    async def stats(self) -> Dict[str, Any]:
        latest = max((r.updated_at for r in self.records.values()), default=None)
        return {"total_documents": len(self.records), "last_updated_at": latest}


class FakeEmbedder:
    def __init__(self, fail_when: Optional[str] = None, kind: ErrorKind = ErrorKind.RATE_LIMIT):
        self.texts: List[str] = []
        self.fail_when = fail_when
        self.kind = kind

    async def embed(self, text: str) -> List[float]:
        if self.fail_when and self.fail_when in text:
            raise EmbeddingUnavailable("Embedding API error 429: rate limited", kind=self.kind, status_code=429)
        self.texts.append(text)
        return [float(len(text)), 0.5, 1.0]


def build_controller(
    drive: FakeDrive,
    store: WikiStore,
    embedder: Optional[FakeEmbedder] = None,
    max_calls: int = 1000,
) -> SyncRunController:
    client = make_client(drive.handler, max_calls=max_calls)
    upserter = EmbeddingUpserter(embedder or FakeEmbedder(), store)
    return SyncRunController(client, upserter, store, ROOT_ID)


def markdown(title: str, body: str = "Some lore about the ancient ruins of the north.") -> str:
    return f"# {title}\n\n{body}\n"


@pytest.fixture
def drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def store() -> InMemoryWikiStore:
    return InMemoryWikiStore()
