"""
Storage helpers shared by the schedulers.

Every write helper commits on its own: the pipelines are written so that a
crash between two helpers leaves rows a later pass can pick up.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import EntityNotFoundError, InvalidTransitionError
from ..models.agent import Agent, KnowledgeEntry
from ..models.feedback import Direction, Feedback, SessionStrategy
from ..models.session import (
    DeliberationSession, SessionParticipant, SessionStatus, Statement, Turn, TurnStatus,
)
from ..models.topic import Topic
from ..services.documents import Persona, load_persona

logger = logging.getLogger(__name__)

# Allowed forward moves. processing -> processing restamps a stale retry.
TURN_TRANSITIONS = {
    TurnStatus.PENDING.value: {TurnStatus.PROCESSING.value, TurnStatus.FAILED.value},
    TurnStatus.PROCESSING.value: {
        TurnStatus.PROCESSING.value, TurnStatus.COMPLETED.value, TurnStatus.FAILED.value,
    },
    TurnStatus.COMPLETED.value: set(),
    TurnStatus.FAILED.value: set(),
}

SESSION_TRANSITIONS = {
    SessionStatus.PENDING.value: {SessionStatus.ACTIVE.value, SessionStatus.CANCELLED.value},
    SessionStatus.ACTIVE.value: {SessionStatus.COMPLETED.value, SessionStatus.CANCELLED.value},
    SessionStatus.COMPLETED.value: set(),
    SessionStatus.CANCELLED.value: set(),
}


@dataclass
class TranscriptLine:
    turn_number: int
    agent_id: str
    agent_name: str
    content: str


@dataclass
class AgentContext:
    """Everything one agent's statement prompt needs."""

    agent_id: str
    agent_name: str
    persona: Persona
    knowledge: list = field(default_factory=list)
    strategy: Optional[str] = None
    direction: Optional[str] = None


# ── Sessions ─────────────────────────────────────────────────────────

async def get_session_with_topic(
    db: AsyncSession, session_id: str
) -> tuple[DeliberationSession, Topic]:
    row = (await db.execute(
        select(DeliberationSession, Topic)
        .join(Topic, Topic.id == DeliberationSession.topic_id)
        .where(DeliberationSession.id == session_id)
    )).first()
    if row is None:
        raise EntityNotFoundError("session", session_id)
    return row[0], row[1]


async def create_session(
    db: AsyncSession, topic_id: str, max_turns: int, mode: str
) -> DeliberationSession:
    session = DeliberationSession(
        topic_id=topic_id,
        status=SessionStatus.PENDING.value,
        max_turns=max_turns,
        mode=mode,
    )
    db.add(session)
    await db.commit()
    logger.info("Created %s session %s for topic %s", mode, session.id, topic_id)
    return session


async def set_session_status(
    db: AsyncSession, session: DeliberationSession, status: SessionStatus
) -> None:
    if status.value not in SESSION_TRANSITIONS[session.status]:
        raise InvalidTransitionError("session", session.id, session.status, status.value)
    session.status = status.value
    await db.commit()


async def activate_session(
    db: AsyncSession, session: DeliberationSession, participant_count: int, now: datetime
) -> None:
    if SessionStatus.ACTIVE.value not in SESSION_TRANSITIONS[session.status]:
        raise InvalidTransitionError("session", session.id, session.status, SessionStatus.ACTIVE.value)
    session.status = SessionStatus.ACTIVE.value
    session.participant_count = participant_count
    session.started_at = now
    await db.commit()


async def complete_session(
    db: AsyncSession,
    session: DeliberationSession,
    summary: str,
    verdict: dict,
    now: datetime,
) -> None:
    """Persist summary + verdict and flip the session to completed in one write."""
    if SessionStatus.COMPLETED.value not in SESSION_TRANSITIONS[session.status]:
        raise InvalidTransitionError("session", session.id, session.status, SessionStatus.COMPLETED.value)
    session.summary = summary
    session.judge_verdict = verdict
    session.status = SessionStatus.COMPLETED.value
    session.completed_at = now
    await db.commit()


async def set_current_turn(db: AsyncSession, session: DeliberationSession, turn_number: int) -> None:
    if turn_number > session.current_turn:
        session.current_turn = turn_number
        await db.commit()


async def list_active_sessions(db: AsyncSession) -> list[DeliberationSession]:
    result = await db.execute(
        select(DeliberationSession)
        .where(DeliberationSession.status == SessionStatus.ACTIVE.value)
        .order_by(DeliberationSession.created_at)
    )
    return list(result.scalars().all())


# ── Participants ─────────────────────────────────────────────────────

async def add_participants(
    db: AsyncSession, session_id: str, agent_ids: list[str], now: datetime
) -> None:
    for agent_id in agent_ids:
        db.add(SessionParticipant(session_id=session_id, agent_id=agent_id, joined_at=now))
    await db.commit()


async def list_participant_ids(db: AsyncSession, session_id: str) -> list[str]:
    result = await db.execute(
        select(SessionParticipant.agent_id)
        .where(SessionParticipant.session_id == session_id)
        .order_by(SessionParticipant.joined_at, SessionParticipant.created_at)
    )
    return list(result.scalars().all())


# ── Turns ────────────────────────────────────────────────────────────

async def create_turn(
    db: AsyncSession, session_id: str, turn_number: int
) -> Turn:
    turn = Turn(session_id=session_id, turn_number=turn_number, status=TurnStatus.PENDING.value)
    db.add(turn)
    await db.commit()
    logger.info("Created turn %d for session %s", turn_number, session_id)
    return turn


async def set_turn_status(
    db: AsyncSession, turn: Turn, status: TurnStatus, now: datetime
) -> None:
    """Move a turn forward. Raises InvalidTransitionError on any backwards move."""
    if status.value not in TURN_TRANSITIONS[turn.status]:
        raise InvalidTransitionError("turn", turn.id, turn.status, status.value)
    turn.status = status.value
    if status == TurnStatus.PROCESSING:
        turn.started_at = now
    elif status in (TurnStatus.COMPLETED, TurnStatus.FAILED):
        turn.completed_at = now
    await db.commit()


async def latest_turn(db: AsyncSession, session_id: str) -> Optional[Turn]:
    result = await db.execute(
        select(Turn)
        .where(Turn.session_id == session_id)
        .order_by(Turn.turn_number.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def statement_agent_ids(db: AsyncSession, turn_id: str) -> set[str]:
    result = await db.execute(select(Statement.agent_id).where(Statement.turn_id == turn_id))
    return set(result.scalars().all())


# ── Transcript / context ─────────────────────────────────────────────

async def load_transcript(
    db: AsyncSession,
    session_id: str,
    before_turn: Optional[int] = None,
    agent_id: Optional[str] = None,
) -> list[TranscriptLine]:
    """
    All statements of a session in (turn_number, created_at) order.

    before_turn excludes that turn and later ones; agent_id narrows the
    transcript to one speaker.
    """
    query = (
        select(Turn.turn_number, Statement.agent_id, Agent.name, Statement.content)
        .join(Turn, Turn.id == Statement.turn_id)
        .join(Agent, Agent.id == Statement.agent_id)
        .where(Turn.session_id == session_id)
    )
    if before_turn is not None:
        query = query.where(Turn.turn_number < before_turn)
    if agent_id is not None:
        query = query.where(Statement.agent_id == agent_id)
    query = query.order_by(Turn.turn_number, Statement.created_at)

    rows = (await db.execute(query)).all()
    return [
        TranscriptLine(turn_number=r[0], agent_id=r[1], agent_name=r[2], content=r[3])
        for r in rows
    ]


async def load_agent_context(
    db: AsyncSession, agent_id: str, session_id: str, turn_number: int
) -> AgentContext:
    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise EntityNotFoundError("agent", agent_id)

    knowledge = (await db.execute(
        select(KnowledgeEntry)
        .where(KnowledgeEntry.agent_id == agent_id)
        .order_by(KnowledgeEntry.created_at)
        .limit(get_settings().knowledge_slots)
    )).scalars().all()

    strategy = (await db.execute(
        select(SessionStrategy.strategy).where(
            SessionStrategy.agent_id == agent_id,
            SessionStrategy.session_id == session_id,
        )
    )).scalar_one_or_none()

    # Latest direction wins when an owner sent several for the same turn
    direction = (await db.execute(
        select(Direction.content)
        .where(
            Direction.agent_id == agent_id,
            Direction.session_id == session_id,
            Direction.turn_number == turn_number,
        )
        .order_by(Direction.created_at.desc())
        .limit(1)
    )).scalar_one_or_none()

    return AgentContext(
        agent_id=agent.id,
        agent_name=agent.name,
        persona=load_persona(agent.persona),
        knowledge=list(knowledge),
        strategy=strategy,
        direction=direction,
    )


# ── Feedback ─────────────────────────────────────────────────────────

async def unapplied_feedback(db: AsyncSession, agent_id: str) -> list[Feedback]:
    result = await db.execute(
        select(Feedback)
        .where(Feedback.agent_id == agent_id, Feedback.applied_at.is_(None))
        .order_by(Feedback.created_at)
    )
    return list(result.scalars().all())


async def last_completed_session_id(
    db: AsyncSession, agent_id: str, exclude_session_id: Optional[str] = None
) -> Optional[str]:
    """The most recently completed session this agent took part in."""
    query = (
        select(DeliberationSession.id)
        .join(SessionParticipant, SessionParticipant.session_id == DeliberationSession.id)
        .where(
            SessionParticipant.agent_id == agent_id,
            DeliberationSession.status == SessionStatus.COMPLETED.value,
        )
    )
    if exclude_session_id is not None:
        query = query.where(DeliberationSession.id != exclude_session_id)
    query = query.order_by(DeliberationSession.completed_at.desc()).limit(1)
    return (await db.execute(query)).scalar_one_or_none()


async def session_feedback(
    db: AsyncSession, agent_id: str, session_id: str
) -> Optional[Feedback]:
    """Unapplied feedback an owner left on one session, if any."""
    result = await db.execute(
        select(Feedback).where(
            Feedback.agent_id == agent_id,
            Feedback.session_id == session_id,
            Feedback.applied_at.is_(None),
        )
    )
    return result.scalar_one_or_none()
