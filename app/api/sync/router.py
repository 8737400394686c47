"""Drive -> wiki sync endpoints."""

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, status

from app.api.sync.schemas import SyncRequest, SyncRunResponse, WikiStatsResponse
from app.config.logger import app_logger
from app.services.sync_errors import ConfigurationError, SyncError
from app.services.wiki_store import WikiStore, build_wiki_store
from app.services.wiki_sync import SyncRunConfig, SyncRunStats, run_drive_sync
from app.utils.responses import error_json

router = APIRouter(prefix="/v1/sync", tags=["sync"])

SyncRunner = Callable[[SyncRunConfig], Awaitable[SyncRunStats]]


def get_sync_runner() -> SyncRunner:
    """Dependency returning the coroutine that executes one sync run."""
    return run_drive_sync


def get_wiki_store() -> WikiStore:
    return build_wiki_store()


@router.post(
    "/drive",
    response_model=SyncRunResponse,
    response_model_exclude_none=True,
    summary="Sync markdown files from Google Drive into wiki_content",
)
async def sync_drive(
    request: SyncRequest,
    runner: SyncRunner = Depends(get_sync_runner),
):
    """Run one bounded sync invocation.

    Ingests at most ``maxFiles`` new or changed files and stops early near the API
    request budget; ``filesRemainingForNextRun`` tells the caller whether to
    invoke again.
    """
    config = request.to_run_config()
    app_logger.info(f"Drive sync requested: mode={config.mode.value} max_files={config.max_files}")
    try:
        stats = await runner(config)
    except ConfigurationError as exc:
        app_logger.error(f"Drive sync misconfigured: {exc}")
        return error_json(status.HTTP_400_BAD_REQUEST, exc)
    except SyncError as exc:
        app_logger.error(f"Drive sync failed: {exc}")
        return error_json(status.HTTP_502_BAD_GATEWAY, exc)
    except Exception as exc:  # pragma: no cover - unexpected errors
        app_logger.exception(f"Drive sync crashed: {exc}")
        return error_json(status.HTTP_500_INTERNAL_SERVER_ERROR, exc, f"Drive sync failed: {exc}")

    return SyncRunResponse.from_stats(stats)


@router.get(
    "/wiki/stats",
    response_model=WikiStatsResponse,
    summary="Count of ingested wiki documents",
)
async def wiki_stats(store: WikiStore = Depends(get_wiki_store)):
    try:
        result = await store.stats()
    except Exception as exc:
        app_logger.error(f"Wiki stats failed: {exc}")
        return error_json(status.HTTP_503_SERVICE_UNAVAILABLE, exc, "Wiki store unavailable")
    return WikiStatsResponse(
        total_documents=result.get("total_documents", 0),
        last_updated_at=result.get("last_updated_at"),
    )
