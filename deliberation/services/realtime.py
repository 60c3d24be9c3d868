"""
Realtime notifications. Thin wrapper around core.redis.
Provides typed event helpers for the schedulers.
"""

from ..core import redis as _redis


# ── Session events ───────────────────────────────────────────────────

async def session_created(topic_id: str, session_id: str, participant_count: int):
    await _redis.notify_topic(
        topic_id, "session.created",
        {"session_id": session_id, "participant_count": participant_count},
    )


async def session_completed(session_id: str, data: dict = None):
    await _redis.notify_session(session_id, "session.completed", data)


async def session_finalize_failed(session_id: str, error: str):
    await _redis.notify_session(session_id, "session.finalize_failed", {"error": error})


# ── Turn events ──────────────────────────────────────────────────────

async def turn_started(session_id: str, turn_number: int):
    await _redis.notify_session(session_id, "turn.started", {"turn_number": turn_number})


async def turn_completed(session_id: str, turn_number: int, succeeded: int, failed: int):
    await _redis.notify_session(
        session_id, "turn.completed",
        {"turn_number": turn_number, "succeeded": succeeded, "failed": failed},
    )


async def turn_failed(session_id: str, turn_number: int, error: str):
    await _redis.notify_session(
        session_id, "turn.failed", {"turn_number": turn_number, "error": error},
    )
