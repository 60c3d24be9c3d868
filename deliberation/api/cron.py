"""
Scheduler triggers for external timers.

POST /internal/cron/sessions - run one Session Scheduler pass
POST /internal/cron/turns    - run one Turn Scheduler pass
"""

import logging
import time

from fastapi import APIRouter, Depends

from ..core.dependencies import require_cron_secret
from ..scheduler.session_scheduler import run_session_scheduler
from ..scheduler.turn_scheduler import run_turn_scheduler

logger = logging.getLogger(__name__)

cron_router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@cron_router.post("/sessions")
async def trigger_sessions():
    start = time.monotonic()
    await run_session_scheduler()
    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info("Cron: session pass took %dms", elapsed_ms)
    return {"status": "ok", "scheduler": "sessions", "elapsed_ms": elapsed_ms}


@cron_router.post("/turns")
async def trigger_turns():
    start = time.monotonic()
    await run_turn_scheduler()
    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info("Cron: turn pass took %dms", elapsed_ms)
    return {"status": "ok", "scheduler": "turns", "elapsed_ms": elapsed_ms}
