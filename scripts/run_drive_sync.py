"""Run one Drive -> wiki sync invocation from the command line (cron friendly)."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from app
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.api.sync.schemas import SyncRunResponse
from app.config.settings import settings
from app.db.db import close_db, init_db
from app.services.drive_discovery import SyncMode
from app.services.sync_errors import SyncError
from app.services.wiki_sync import SyncRunConfig, run_drive_sync


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sync Google Drive markdown into wiki_content")
    parser.add_argument("--mode", choices=[m.value for m in SyncMode], default=SyncMode.INCREMENTAL.value)
    parser.add_argument("--max-files", type=int, default=None)
    parser.add_argument("--max-api-calls", type=int, default=None)
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main entry point. Exit code 0 on success, 1 on failure."""
    args = parse_args(argv)
    config = SyncRunConfig.from_flags(
        mode=SyncMode(args.mode),
        max_files=args.max_files,
        max_api_calls=args.max_api_calls,
    )

    if settings.WIKI_STORE_BACKEND == "sql":
        await init_db()
    try:
        stats = await run_drive_sync(config)
    except SyncError as exc:
        print(json.dumps({"success": False, "error": type(exc).__name__, "message": str(exc)}))
        return 1
    finally:
        await close_db()

    response = SyncRunResponse.from_stats(stats)
    print(json.dumps(response.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
