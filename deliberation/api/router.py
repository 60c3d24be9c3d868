"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "deliberation"}


# ── Routes ───────────────────────────────────────────────────────────

from .cron import cron_router
from .modes import modes_router
from .sessions import sessions_router

router.include_router(sessions_router, prefix="/v1")
router.include_router(modes_router, prefix="/v1")
# Cron triggers check X-Cron-Secret themselves
router.include_router(cron_router, prefix="/internal")
