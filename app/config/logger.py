"""
Loguru setup for the Lore Drive Sync backend.

Console output plus rotating files under ``settings.LOG_DIR``:
- app.log / errors.log for everything at DEBUG / ERROR
- requests.log, performance.log and sync.log, fed by messages that start
  with the matching tag (``REQUEST``, ``PERFORMANCE``, ``SYNC``)
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Request
from loguru import logger

from app.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
TAGGED_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def _tag_filter(tag: str):
    return lambda record: record["message"].startswith(tag)


# file name -> handler options; tagged sinks only see their own messages
FILE_SINKS: Dict[str, Dict[str, Any]] = {
    "app.log": {"level": "DEBUG", "rotation": "10 MB", "retention": "7 days", "format": FILE_FORMAT},
    "errors.log": {"level": "ERROR", "rotation": "5 MB", "retention": "30 days", "format": FILE_FORMAT},
    "requests.log": {"tag": "REQUEST", "rotation": "20 MB", "retention": "14 days"},
    "performance.log": {"tag": "PERFORMANCE", "rotation": "10 MB", "retention": "7 days"},
    "sync.log": {"tag": "SYNC", "rotation": "10 MB", "retention": "30 days"},
}


class LoguruConfig:
    """Installs the console and file handlers once per process."""

    def __init__(self, logs_dir: str = settings.LOG_DIR):
        self.logs_dir = Path(logs_dir)
        self.handler_ids: List[int] = []

    def setup_logger(self, log_level: str = "INFO") -> None:
        logger.remove()
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        self.handler_ids.append(
            logger.add(sys.stdout, format=CONSOLE_FORMAT, level=log_level, colorize=True, backtrace=True)
        )
        for file_name, options in FILE_SINKS.items():
            options = dict(options)
            tag = options.pop("tag", None)
            if tag:
                options.update(level="INFO", format=TAGGED_FORMAT, filter=_tag_filter(tag))
            else:
                options.update(backtrace=True, diagnose=True)
            self.handler_ids.append(
                logger.add(self.logs_dir / file_name, compression="zip", encoding="utf-8", **options)
            )


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def log_request_start(request: Request) -> None:
    logger.info(f"REQUEST START: {request.method} {request.url.path} from {_client_ip(request)}")


def log_request_end(request: Request, status_code: int, process_time: float) -> None:
    logger.info(f"REQUEST END: {request.method} {request.url.path} - {status_code} ({process_time:.4f}s)")


def log_request_error(request: Request, error: Exception, process_time: float) -> None:
    logger.error(
        f"REQUEST ERROR: {request.method} {request.url.path} - "
        f"{type(error).__name__}: {error} ({process_time:.4f}s)"
    )


def log_performance(operation: str, duration: float, **context: Any) -> None:
    """Write one PERFORMANCE line; ``context`` is appended as key=value pairs."""
    details = " ".join(f"{key}={value}" for key, value in context.items())
    logger.info(f"PERFORMANCE: {operation} completed in {duration:.4f}s {details}".rstrip())


loguru_config = LoguruConfig()
loguru_config.setup_logger(settings.LOG_LEVEL)

app_logger = logger
