"""
FastAPI dependencies. Injected into route handlers.
"""

import secrets

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_db as _get_db
from .flags import get_flags


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def require_cron_secret(
    x_cron_secret: str = Header(default=""),
) -> None:
    """
    Guard for scheduler triggers.
    Hidden entirely (404) when FF_ENABLE_CRON_ENDPOINTS=false.
    """
    if not get_flags().enable_cron_endpoints:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    expected = get_settings().cron_secret
    if not expected or not secrets.compare_digest(x_cron_secret, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
