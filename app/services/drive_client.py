"""Rate-limited Google Drive v3 client.

Drive does not publish its per-key limits and answers bursts with
``403 ... automated queries``. Every outbound call of a sync run goes through
one ``RateLimitedClient`` which paces requests, backs off on throttling, and
refuses to exceed the run's call budget.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.config.logger import app_logger
from app.config.settings import settings
from app.services.sync_errors import (
    CallBudgetExceeded,
    DownloadFailed,
    ErrorKind,
    SyncError,
    ThrottlingDetected,
    TransportError,
    kind_for_status,
)

THROTTLE_MARKERS = (
    "automated queries",
    "rate limit",
    "ratelimitexceeded",
    "userratelimitexceeded",
    "quota",
)
QUOTA_MARKERS = ("quota", "dailylimitexceeded")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
LISTING_FIELDS = "nextPageToken, files(id,name,mimeType,parents,webViewLink,modifiedTime,size)"


@dataclass
class RateLimiterState:
    """Run-scoped pacing state shared by every call of one run."""

    current_delay: float
    consecutive_errors: int = 0
    success_streak: int = 0
    calls_made: int = 0
    throttle_events: int = 0


def _throttle_kind(status_code: int, body: str) -> Optional[ErrorKind]:
    """Return the throttling kind for a response, or None if it is not throttling."""
    lowered = body.lower()
    if status_code == 429:
        return ErrorKind.QUOTA if any(m in lowered for m in QUOTA_MARKERS) else ErrorKind.RATE_LIMIT
    if status_code == 403 and any(m in lowered for m in THROTTLE_MARKERS):
        return ErrorKind.QUOTA if any(m in lowered for m in QUOTA_MARKERS) else ErrorKind.RATE_LIMIT
    return None


class RateLimitedClient:
    """Adaptive, budgeted HTTP client for the Drive API."""

    def __init__(
        self,
        api_key: str,
        max_calls: int,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = settings.GOOGLE_DRIVE_API_URL,
        base_delay: float = settings.DRIVE_BASE_DELAY,
        max_delay: float = settings.DRIVE_MAX_DELAY,
        backoff_factor: float = settings.DRIVE_BACKOFF_FACTOR,
        recovery_factor: float = settings.DRIVE_RECOVERY_FACTOR,
        success_streak_threshold: int = settings.DRIVE_SUCCESS_STREAK,
        max_jitter: float = settings.DRIVE_MAX_JITTER,
        max_retries: int = settings.DRIVE_MAX_RETRIES,
        retry_base_delay: float = settings.DRIVE_RETRY_BASE_DELAY,
        page_size: int = settings.GOOGLE_DRIVE_PAGE_SIZE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Optional[Callable[[], float]] = None,
    ):
        self.api_key = api_key
        self.max_calls = max_calls
        self.base_url = base_url.rstrip("/")
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.recovery_factor = recovery_factor
        self.success_streak_threshold = success_streak_threshold
        self.max_jitter = max_jitter
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.page_size = page_size
        self.state = RateLimiterState(current_delay=base_delay)
        self._sleep = sleep
        self._jitter = jitter or (lambda: random.uniform(0, self.max_jitter))
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.GOOGLE_DRIVE_TIMEOUT_SECONDS)

    @property
    def calls_made(self) -> int:
        return self.state.calls_made

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _check_budget(self) -> None:
        if self.state.calls_made >= self.max_calls:
            raise CallBudgetExceeded(self.state.calls_made, self.max_calls)

    def _record_success(self) -> None:
        state = self.state
        state.consecutive_errors = 0
        state.success_streak += 1
        if state.success_streak >= self.success_streak_threshold and state.current_delay > self.base_delay:
            state.current_delay = max(self.base_delay, state.current_delay * self.recovery_factor)
            state.success_streak = 0
            app_logger.debug(f"Drive pacing relaxed to {state.current_delay:.2f}s")

    def _record_throttle(self, attempt: int) -> float:
        """Raise the shared delay and return the wait before the next attempt."""
        state = self.state
        state.consecutive_errors += 1
        state.success_streak = 0
        state.throttle_events += 1
        state.current_delay = min(state.current_delay * self.backoff_factor, self.max_delay)
        wait = state.current_delay * attempt + state.consecutive_errors * self.base_delay
        return min(wait, self.max_delay)

    async def call(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Issue a GET through the pacing, retry and budget rules.

        Raises:
            CallBudgetExceeded: the run has no calls left (checked before each attempt)
            ThrottlingDetected: Drive kept throttling through every retry
            TransportError: any other failure once retries are exhausted
        """
        query = dict(params or {})
        query["key"] = self.api_key

        self._check_budget()
        await self._sleep(self.state.current_delay + self._jitter())

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            self._check_budget()
            self.state.calls_made += 1
            # The key travels as a query param, log the path only
            app_logger.debug(f"Drive call {attempt}/{attempts}: {url}")

            try:
                response = await self._http.get(url, params=query)
            except httpx.TransportError as exc:
                self.state.success_streak = 0
                app_logger.warning(f"Drive transport failure (attempt {attempt}): {exc!r}")
                if attempt == attempts:
                    raise TransportError(f"Network error calling Drive: {exc!r}", kind=ErrorKind.NETWORK) from exc
                await self._sleep(self.retry_base_delay * attempt + self._jitter())
                continue

            if response.is_success:
                self._record_success()
                return response

            body = response.text[:500]
            throttle_kind = _throttle_kind(response.status_code, body)
            if throttle_kind is not None:
                wait = self._record_throttle(attempt)
                app_logger.warning(
                    f"Drive throttling detected (HTTP {response.status_code}, attempt {attempt}); "
                    f"pace now {self.state.current_delay:.2f}s"
                )
                if attempt == attempts:
                    raise ThrottlingDetected(
                        f"Drive rate limit after {attempts} attempts: HTTP {response.status_code} {body[:200]}",
                        kind=throttle_kind,
                        status_code=response.status_code,
                    )
                await self._sleep(wait + self._jitter())
                continue

            self.state.success_streak = 0
            app_logger.warning(f"Drive HTTP {response.status_code} (attempt {attempt}): {body[:200]}")
            if attempt == attempts:
                raise TransportError(
                    f"Drive HTTP {response.status_code}: {body[:200]}",
                    kind=kind_for_status(response.status_code),
                    status_code=response.status_code,
                )
            await self._sleep(self.retry_base_delay * attempt + self._jitter())

        raise TransportError("All retry attempts failed")  # pragma: no cover - loop always returns or raises

    async def list_folder(self, folder_id: str, page_token: Optional[str] = None) -> Dict[str, Any]:
        """Return one page of a folder's direct children."""
        params: Dict[str, Any] = {
            "q": f"'{folder_id}' in parents and trashed = false",
            "fields": LISTING_FIELDS,
            "pageSize": self.page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        response = await self.call(f"{self.base_url}/files", params=params)
        return response.json()

    async def download(self, file_id: str) -> bytes:
        """Download a file's raw bytes."""
        try:
            response = await self.call(f"{self.base_url}/files/{file_id}", params={"alt": "media"})
        except CallBudgetExceeded:
            raise
        except SyncError as exc:
            raise DownloadFailed(
                f"Download of {file_id} failed: {exc.message}",
                kind=exc.kind,
                status_code=exc.status_code,
            ) from exc
        return response.content
