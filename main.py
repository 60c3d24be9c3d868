"""
Deliberation engine entry point.

    python main.py            serve the HTTP API
    python main.py sessions   run one Session Scheduler pass
    python main.py turns      run one Turn Scheduler pass
"""

import asyncio
import sys

import uvicorn

from deliberation.core.config import get_settings
from deliberation.factory import configure_logging, create_app

app = create_app()


async def _run_pass(name: str) -> None:
    from deliberation.core.database import close_db, init_db
    from deliberation.core.redis import close_redis
    from deliberation.scheduler.session_scheduler import run_session_scheduler
    from deliberation.scheduler.turn_scheduler import run_turn_scheduler
    from deliberation.services.llm import close_client

    await init_db()
    try:
        if name == "sessions":
            await run_session_scheduler()
        else:
            await run_turn_scheduler()
    finally:
        await close_client()
        await close_redis()
        await close_db()


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "serve"

    if command in ("sessions", "turns"):
        configure_logging()
        asyncio.run(_run_pass(command))
    elif command == "serve":
        settings = get_settings()
        uvicorn.run(
            "main:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=settings.env == "development",
            log_level=settings.log_level.lower(),
        )
    else:
        sys.exit(f"Unknown command: {command} (expected sessions, turns or serve)")
