"""Snapshot of already-ingested wiki documents, keyed by Drive file id."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from app.config.logger import app_logger

GDRIVE_SCHEME = "gdrive://"

# /file/d/<id>/view, /document/d/<id>/edit, /spreadsheets/d/<id>, ...
_DRIVE_PATH_ID = re.compile(r"/d/([A-Za-z0-9_-]+)")


def document_key(url: str) -> str:
    """Derive the lookup key for a stored document URL.

    Both ``gdrive://<id>`` and Drive/Docs web links resolve to the bare file id,
    so the two historical URL formats of one file compare equal. URLs that carry
    no Drive id are keyed by themselves.
    """
    url = (url or "").strip()
    if url.startswith(GDRIVE_SCHEME):
        return url[len(GDRIVE_SCHEME):].strip("/")

    parsed = urlparse(url)
    if parsed.netloc.endswith("google.com"):
        match = _DRIVE_PATH_ID.search(parsed.path)
        if match:
            return match.group(1)
        ids = parse_qs(parsed.query).get("id")
        if ids:
            return ids[0]
    return url


@dataclass(frozen=True)
class KnownDocument:
    url: str
    content_hash: str
    updated_at: Optional[datetime] = None


class KnownDocumentIndex:
    """Read-only map of document key -> stored url/hash/timestamp for one run."""

    def __init__(self, documents: Mapping[str, KnownDocument], duplicates: Optional[List[Tuple[str, str]]] = None):
        self._documents: Dict[str, KnownDocument] = dict(documents)
        # (ignored url, kept url) pairs that resolved to the same key
        self.duplicates: List[Tuple[str, str]] = list(duplicates or [])

    @classmethod
    def from_documents(cls, documents: Iterable[KnownDocument]) -> "KnownDocumentIndex":
        """Index stored rows by key; when two URL formats of one file are stored, the later row wins."""
        index: Dict[str, KnownDocument] = {}
        duplicates: List[Tuple[str, str]] = []
        for doc in documents:
            key = document_key(doc.url)
            previous = index.get(key)
            if previous is not None and previous.url != doc.url:
                duplicates.append((previous.url, doc.url))
                app_logger.warning(
                    f"Duplicate wiki rows for Drive file {key}: {previous.url!r} is ignored, "
                    f"{doc.url!r} will be updated; delete one of them"
                )
            index[key] = doc
        return cls(index, duplicates)

    def get(self, key: str) -> Optional[KnownDocument]:
        return self._documents.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[str]:
        return iter(self._documents)
