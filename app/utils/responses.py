"""Error payloads returned by the API routers."""

from datetime import datetime, timezone
from typing import Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.config.settings import settings
from app.services.sync_errors import SyncError


class ResponseMetadata(BaseModel):
    app_name: str = Field(default=settings.APP_NAME)
    app_version: str = Field(default=settings.APP_VERSION)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorResponse(BaseModel):
    """Body of every non-2xx response produced by a handler (not by validation)."""

    success: bool = False
    error: str = Field(description="Exception class name")
    kind: Optional[str] = Field(default=None, description="Error category for pipeline errors")
    message: str
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "ConfigurationError",
                "kind": "other",
                "message": "GOOGLE_DRIVE_API_KEY is not configured",
                "metadata": {
                    "app_name": "Lore Drive Sync",
                    "app_version": "1.0.0",
                    "timestamp": "2025-06-21T17:05:02Z",
                },
            }
        }
    }


def error_response(error: Exception, message: Optional[str] = None) -> ErrorResponse:
    return ErrorResponse(
        error=type(error).__name__,
        kind=error.kind.value if isinstance(error, SyncError) else None,
        message=message or str(error),
    )


def error_json(status_code: int, error: Exception, message: Optional[str] = None) -> JSONResponse:
    body = error_response(error, message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
