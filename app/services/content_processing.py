"""Change detection and markdown normalization for wiki documents."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from app.config.settings import settings
from app.services.drive_discovery import SyncMode
from app.services.sync_errors import ContentTooShort
from app.services.wiki_index import KnownDocument

_FENCED_CODE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`]+`")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKUP = re.compile(r"[#*_~`]")
_WHITESPACE = re.compile(r"\s+")
_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def compute_content_hash(raw: bytes) -> str:
    """SHA-256 of the raw downloaded bytes (never of normalized text)."""
    return hashlib.sha256(raw).hexdigest()


def has_changed(known: Optional[KnownDocument], content_hash: str, mode: SyncMode) -> bool:
    """Whether a downloaded file needs (re-)embedding.

    Unchanged only when it is already stored, the run is not missing-only, and
    the stored digest matches.
    """
    if known is None or mode is SyncMode.MISSING_ONLY:
        return True
    return known.content_hash != content_hash


def decode_content(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def normalize_markdown(text: str) -> str:
    """Strip code, link targets and markup so the text embeds cleanly."""
    text = _FENCED_CODE.sub("", text)
    text = _INLINE_CODE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _MARKUP.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def derive_title(text: str, file_name: str) -> str:
    """First top-level heading, else the file name without extension."""
    match = _H1.search(text)
    if match:
        return match.group(1).strip()
    stem = PurePosixPath(file_name).stem
    return re.sub(r"[-_]", " ", stem).strip()


@dataclass
class PreparedContent:
    title: str
    content: str


def prepare_content(
    raw: bytes,
    file_name: str,
    min_length: int = settings.SYNC_MIN_CONTENT_LENGTH,
    max_chars: int = settings.SYNC_MAX_CONTENT_CHARS,
) -> PreparedContent:
    """Decode, normalize and cap a downloaded file.

    Raises:
        ContentTooShort: normalized text is shorter than ``min_length``
    """
    text = decode_content(raw)
    cleaned = normalize_markdown(text)
    if len(cleaned) < min_length:
        raise ContentTooShort(
            f"{file_name}: content too short after cleaning ({len(cleaned)} chars, minimum {min_length})"
        )
    return PreparedContent(title=derive_title(text, file_name), content=cleaned[:max_chars])
