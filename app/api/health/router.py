"""Liveness, build info and wiki store health endpoints."""

import os
import subprocess
from functools import lru_cache
from typing import Dict, Tuple

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.db.db import ping_database
from app.db.supabase_db import ping_supabase

router = APIRouter(tags=["health"])


@lru_cache(maxsize=1)
def local_git_sha() -> str:
    """Short HEAD sha of the checkout, or ``local-dev`` outside a git repo."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short=8", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0,
        )
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        return "local-dev"
    return result.stdout.strip()


def build_info() -> Dict[str, str]:
    """Build metadata injected by CI; GIT_SHA beats GITHUB_SHA, ENVIRONMENT beats ENV."""
    env = os.environ
    return {
        "build": env.get("BUILD_NUMBER", "local-dev"),
        "sha": env.get("GIT_SHA") or env.get("GITHUB_SHA") or local_git_sha(),
        "env": env.get("ENVIRONMENT") or env.get("ENV") or "development",
    }


async def ping_wiki_store() -> Tuple[bool, str]:
    if settings.WIKI_STORE_BACKEND == "sql":
        return await ping_database()
    return await ping_supabase()


@router.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "status": "operational",
        "wikiStore": settings.WIKI_STORE_BACKEND,
        "docs": "/docs",
    }


@router.get("/status")
async def status():
    """Build information for deploy monitoring."""
    return {"status": "ok", **build_info()}


@router.get("/health/db")
async def health_db():
    is_ok, message = await ping_wiki_store()
    if not is_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": "unavailable", "backend": settings.WIKI_STORE_BACKEND, "message": message},
        )
    return {"status": "ok", "db": "available", "backend": settings.WIKI_STORE_BACKEND, "message": message}
