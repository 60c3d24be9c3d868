"""
Session modes API.

GET /v1/modes   - Available session modes and their default lengths
"""

from fastapi import APIRouter
from pydantic import BaseModel

from ..services.modes import get_mode_registry

modes_router = APIRouter(prefix="/modes", tags=["modes"])


class ModeOut(BaseModel):
    name: str
    display_name: str
    description: str
    default_max_turns: int


@modes_router.get("", response_model=list[ModeOut])
async def list_modes():
    return [ModeOut(**m.describe()) for m in get_mode_registry().list_modes()]
