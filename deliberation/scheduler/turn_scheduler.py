"""
Turn Scheduler: advances one turn per active session per pass.

Pipeline per turn:
  1. Mark processing (stamp started_at)
  2. Load session, topic, participants, prior transcript, per-agent context
  3. Fan out one statement per participant (concurrent, isolated)
  4. Join
  5. Mark completed, even when every agent failed
  6. Advance session.current_turn
  7. Finalize on the last turn, otherwise create the next turn

A failure in steps 1-2 marks the turn failed and stops the session there.
Failed turns are never retried; processing turns are retried once they are
older than STALE_TURN_MINUTES.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import get_session_factory
from ..core.errors import EntityNotFoundError
from ..models.base import utcnow
from ..models.session import DeliberationSession, SessionStatus, Turn, TurnStatus
from ..services import realtime
from ..services.llm import get_llm_client
from ..services.statements import generate_turn_statements
from . import state
from .finalizer import finalize_session

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    turn_id: str
    session_id: str
    turn_number: int
    status: str
    succeeded: int = 0
    failed: int = 0
    error: Optional[str] = None


@dataclass
class TurnPassReport:
    turns: list[TurnResult] = field(default_factory=list)
    sessions_advanced: int = 0
    sessions_finalized: int = 0

    @property
    def completed(self) -> int:
        return sum(1 for t in self.turns if t.status == TurnStatus.COMPLETED.value)

    @property
    def failed(self) -> int:
        return sum(1 for t in self.turns if t.status == TurnStatus.FAILED.value)


# ── Entry point ──────────────────────────────────────────────────────

async def run_turn_scheduler(
    now: Optional[datetime] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    client=None,
) -> None:
    """Run one pass. Never raises: every error is logged."""
    now = now or utcnow()
    try:
        report = await advance_turns(
            now,
            session_factory or get_session_factory(),
            client or get_llm_client(),
        )
    except Exception:
        logger.exception("Turn scheduler pass failed")
        return

    logger.info(
        "Turn scheduler pass done: %d turns (%d completed, %d failed), %d stalled sessions advanced, %d finalized",
        len(report.turns), report.completed, report.failed,
        report.sessions_advanced, report.sessions_finalized,
    )


async def advance_turns(
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
    client,
) -> TurnPassReport:
    report = TurnPassReport()
    await sweep_stalled_sessions(now, session_factory, client, report)

    async with session_factory() as db:
        turns = await select_eligible_turns(db, now)

    if not turns:
        logger.info("No pending turns")
    for turn in turns:
        try:
            report.turns.append(await process_turn(turn.id, now, session_factory, client))
        except Exception:
            logger.exception("Turn %s could not be processed", turn.id)
    return report


# ── Selection ────────────────────────────────────────────────────────

async def select_eligible_turns(db: AsyncSession, now: datetime) -> list[Turn]:
    """
    Pending turns plus stale processing turns of active sessions.

    At most one turn per session. A session with a fresh processing turn is
    in flight elsewhere and is skipped entirely.
    """
    settings = get_settings()
    cutoff = now - timedelta(minutes=settings.stale_turn_minutes)

    result = await db.execute(
        select(Turn)
        .join(DeliberationSession, DeliberationSession.id == Turn.session_id)
        .where(
            DeliberationSession.status == SessionStatus.ACTIVE.value,
            Turn.status.in_([TurnStatus.PENDING.value, TurnStatus.PROCESSING.value]),
        )
        .order_by(Turn.created_at)
    )
    candidates = list(result.scalars().all())

    stale_ids = set((await db.execute(
        select(Turn.id).where(
            Turn.status == TurnStatus.PROCESSING.value,
            (Turn.started_at.is_(None)) | (Turn.started_at < cutoff),
        )
    )).scalars().all())

    busy = {
        t.session_id for t in candidates
        if t.status == TurnStatus.PROCESSING.value and t.id not in stale_ids
    }

    eligible: list[Turn] = []
    seen: set[str] = set()
    for turn in candidates:
        if turn.session_id in busy or turn.session_id in seen:
            continue
        if turn.status == TurnStatus.PROCESSING.value:
            logger.warning("Retrying stale turn %d of session %s", turn.turn_number, turn.session_id)
        seen.add(turn.session_id)
        eligible.append(turn)
        if len(eligible) >= settings.turn_batch_limit:
            break
    return eligible


# ── Per-turn pipeline ────────────────────────────────────────────────

async def process_turn(
    turn_id: str,
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
    client,
) -> TurnResult:
    async with session_factory() as db:
        turn = await db.get(Turn, turn_id)
        if turn is None:
            raise EntityNotFoundError("turn", turn_id)
        session_id, turn_number = turn.session_id, turn.turn_number
        result = TurnResult(
            turn_id=turn_id, session_id=turn.session_id,
            turn_number=turn.turn_number, status=turn.status,
        )
        is_retry = turn.status == TurnStatus.PROCESSING.value

        # Steps 1-2: anything raised here fails the turn
        try:
            await state.set_turn_status(db, turn, TurnStatus.PROCESSING, now)
            await realtime.turn_started(turn.session_id, turn.turn_number)

            session, topic = await state.get_session_with_topic(db, turn.session_id)
            participant_ids = await state.list_participant_ids(db, session.id)
            if not participant_ids:
                raise EntityNotFoundError("participants", session.id)

            if is_retry:
                done = await state.statement_agent_ids(db, turn.id)
                participant_ids = [a for a in participant_ids if a not in done]
                logger.info("Turn %d retry: %d agents still to speak", turn.turn_number, len(participant_ids))

            transcript = await state.load_transcript(db, session.id, before_turn=turn.turn_number)
            contexts = [
                await state.load_agent_context(db, agent_id, session.id, turn.turn_number)
                for agent_id in participant_ids
            ]
        except Exception as e:
            logger.error("Turn %d of session %s failed before generation: %s: %s",
                         turn_number, session_id, type(e).__name__, e)
            await db.rollback()
            await db.refresh(turn)
            await state.set_turn_status(db, turn, TurnStatus.FAILED, now)
            await realtime.turn_failed(session_id, turn_number, str(e))
            result.status = TurnStatus.FAILED.value
            result.error = str(e)
            return result

        # Steps 3-4
        outcomes = await generate_turn_statements(
            session_factory, client,
            turn_id=turn.id,
            turn_number=turn.turn_number,
            max_turns=session.max_turns,
            topic_title=topic.title,
            topic_description=topic.description or "",
            contexts=contexts,
            transcript=transcript,
            mode=session.mode,
        )
        result.succeeded = sum(1 for o in outcomes if o.success)
        result.failed = len(outcomes) - result.succeeded

        # Steps 5-6
        await state.set_turn_status(db, turn, TurnStatus.COMPLETED, now)
        await state.set_current_turn(db, session, turn.turn_number)
        result.status = TurnStatus.COMPLETED.value
        logger.info("Turn %d/%d of session %s completed: %d ok, %d failed",
                    turn.turn_number, session.max_turns, session.id, result.succeeded, result.failed)
        await realtime.turn_completed(session.id, turn.turn_number, result.succeeded, result.failed)

        # Step 7
        if turn.turn_number >= session.max_turns:
            await _finalize(session.id, now, session_factory, client)
        else:
            await state.create_turn(db, session.id, turn.turn_number + 1)

    return result


async def _finalize(session_id: str, now: datetime, session_factory, client) -> bool:
    """Run the finalizer; a failure leaves the session active for a later pass."""
    try:
        return await finalize_session(session_id, now, session_factory, client)
    except Exception as e:
        logger.error("Finalization of session %s failed: %s: %s", session_id, type(e).__name__, e)
        await realtime.session_finalize_failed(session_id, str(e))
        return False


# ── Stalled sessions ─────────────────────────────────────────────────

async def sweep_stalled_sessions(
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
    client,
    report: Optional[TurnPassReport] = None,
) -> None:
    """
    Repair active sessions that no pending turn will ever move.

    Two shapes: no turns at all (session activated without its first turn),
    and a highest turn that is completed without a successor (crash between
    turn completion and next-turn creation, or a failed finalization).
    """
    report = report or TurnPassReport()

    async with session_factory() as db:
        stalled = []
        for session in await state.list_active_sessions(db):
            last = await state.latest_turn(db, session.id)
            if last is None:
                stalled.append((session.id, 0, session.max_turns))
            elif last.status == TurnStatus.COMPLETED.value:
                stalled.append((session.id, last.turn_number, session.max_turns))

    for session_id, turn_number, max_turns in stalled:
        try:
            async with session_factory() as db:
                session = await db.get(DeliberationSession, session_id)
                await state.set_current_turn(db, session, turn_number)
                if turn_number < max_turns:
                    logger.warning("Session %s stalled after turn %d, creating next turn",
                                   session_id, turn_number)
                    await state.create_turn(db, session_id, turn_number + 1)
                    report.sessions_advanced += 1
                    continue

            logger.info("Session %s: retrying finalization", session_id)
            if await _finalize(session_id, now, session_factory, client):
                report.sessions_finalized += 1
        except Exception as e:
            logger.error("Repair of session %s failed: %s: %s", session_id, type(e).__name__, e)
