"""
Session finalization: summary, judge verdict, persona updates.

Finalization blocks on the verdict. When either the summary or the verdict
fails, nothing is written and the session stays active so a later pass can
try again. Re-running on a completed session is a no-op.
"""

import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.errors import DocumentParseError
from ..core.flags import get_flags
from ..models.session import SessionStatus
from ..services import realtime
from ..services.documents import Verdict, parse_document
from ..services.personas import update_participant_personas
from ..services.prompts import summary_prompts, verdict_prompts
from . import state

logger = logging.getLogger(__name__)


async def finalize_session(
    session_id: str,
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
    client,
) -> bool:
    """
    Complete a session whose last turn is done.

    Returns True when this call completed the session, False when it was
    already completed. Raises GenerationError or DocumentParseError when the
    summary or the verdict cannot be produced.
    """
    settings = get_settings()

    async with session_factory() as db:
        session, topic = await state.get_session_with_topic(db, session_id)
        if session.status == SessionStatus.COMPLETED.value:
            logger.info("Session %s already completed, skipping finalization", session_id)
            return False

        transcript = await state.load_transcript(db, session_id)
        summary_system, summary_user = summary_prompts(topic.title, transcript, session.max_turns)
        verdict_system, verdict_user = verdict_prompts(topic.title, topic.description or "", transcript)

        summary_text, verdict_text = await asyncio.gather(
            client.complete(summary_system, summary_user, settings.summary_max_tokens),
            client.complete(verdict_system, verdict_user, settings.verdict_max_tokens),
        )

        summary = (summary_text or "").strip()
        if not summary:
            raise DocumentParseError("summary", "empty response")
        verdict = parse_document(verdict_text, Verdict, "verdict")

        await state.complete_session(db, session, summary, verdict.model_dump(), now)
        participant_ids = await state.list_participant_ids(db, session_id)

    logger.info(
        "Session %s completed (quality=%d cooperation=%d convergence=%d novelty=%d)",
        session_id, verdict.quality_score, verdict.cooperation_score,
        verdict.convergence_score, verdict.novelty_score,
    )
    await realtime.session_completed(session_id, {"verdict": verdict.model_dump()})

    if get_flags().enable_persona_updates:
        updated = await update_participant_personas(session_factory, client, participant_ids, now)
        logger.info("Session %s: %d/%d personas updated", session_id, updated, len(participant_ids))

    return True
