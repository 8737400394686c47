from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api.health.router import ping_wiki_store, router as health_router
from app.api.sync.router import router as sync_router
from app.config.logger import app_logger, log_request_end, log_request_error, log_request_start
from app.config.settings import settings
from app.db.db import close_db, init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the wiki store on startup and release connections on shutdown."""
    app_logger.info(f"{settings.APP_NAME} starting up (wiki store: {settings.WIKI_STORE_BACKEND})")

    if settings.WIKI_STORE_BACKEND == "sql":
        await init_db()

    is_ok, message = await ping_wiki_store()
    if is_ok:
        app_logger.info(f"Wiki store connection: {message}")
    else:
        app_logger.warning(f"Wiki store connection issue: {message}")

    if not settings.GOOGLE_DRIVE_API_KEY or not settings.GOOGLE_DRIVE_FOLDER_ID:
        app_logger.warning("GOOGLE_DRIVE_API_KEY / GOOGLE_DRIVE_FOLDER_ID not set; sync requests will fail")

    yield

    await close_db()
    app_logger.info(f"{settings.APP_NAME} shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = datetime.now()
    log_request_start(request)
    try:
        response = await call_next(request)
    except Exception as e:
        log_request_error(request, e, (datetime.now() - start_time).total_seconds())
        raise
    log_request_end(request, response.status_code, (datetime.now() - start_time).total_seconds())
    return response


app.include_router(health_router)
app.include_router(sync_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)
