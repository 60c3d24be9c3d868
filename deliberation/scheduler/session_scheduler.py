"""
Session Scheduler: opens one new session per active topic per pass.

For each topic:
  1. Create the session (pending)
  2. Pick 4-6 recently active agents at random
  3. No eligible agents → cancel the session
  4. Insert participants, create turn 1, activate the session
  5. Best-effort strategies for returning participants with feedback

Topics are processed independently: one topic failing never stops the others.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.database import get_session_factory
from ..core.flags import get_flags
from ..models.agent import Agent, KnowledgeEntry
from ..models.base import utcnow
from ..models.feedback import Feedback
from ..models.session import SessionStatus
from ..models.topic import Topic, TopicStatus
from ..services import realtime
from ..services.llm import get_llm_client
from ..services.modes import get_mode
from ..services.personas import prepare_session_strategy
from . import state

logger = logging.getLogger(__name__)


@dataclass
class SessionPassReport:
    created: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    failed_topics: list[str] = field(default_factory=list)
    strategies: int = 0


async def run_session_scheduler(
    now: Optional[datetime] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    client=None,
    rng: Optional[random.Random] = None,
) -> None:
    """Run one pass. Never raises: every error is logged."""
    now = now or utcnow()
    try:
        report = await create_sessions(
            now,
            session_factory or get_session_factory(),
            client or get_llm_client(),
            rng,
        )
    except Exception:
        logger.exception("Session scheduler pass failed")
        return

    logger.info(
        "Session scheduler pass done: %d created, %d cancelled, %d topics failed, %d strategies",
        len(report.created), len(report.cancelled), len(report.failed_topics), report.strategies,
    )


async def create_sessions(
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
    client,
    rng: Optional[random.Random] = None,
) -> SessionPassReport:
    rng = rng or random.Random()
    report = SessionPassReport()

    async with session_factory() as db:
        result = await db.execute(
            select(Topic.id)
            .where(Topic.status == TopicStatus.ACTIVE.value)
            .order_by(Topic.created_at)
        )
        topic_ids = list(result.scalars().all())

    if not topic_ids:
        logger.info("No active topics")
    for topic_id in topic_ids:
        try:
            await create_session_for_topic(topic_id, now, session_factory, client, rng, report)
        except Exception as e:
            logger.error("Session creation for topic %s failed: %s: %s", topic_id, type(e).__name__, e)
            report.failed_topics.append(topic_id)
    return report


async def select_participants(
    db: AsyncSession, now: datetime, count: int, rng: random.Random
) -> list[str]:
    """
    Random sample of agents active within AGENT_ACTIVITY_DAYS.

    Active means created recently, or has recent feedback or knowledge.
    """
    cutoff = now - timedelta(days=get_settings().agent_activity_days)

    result = await db.execute(
        select(Agent.id)
        .where(or_(
            Agent.created_at >= cutoff,
            select(Feedback.id).where(Feedback.agent_id == Agent.id, Feedback.created_at >= cutoff).exists(),
            select(KnowledgeEntry.id).where(
                KnowledgeEntry.agent_id == Agent.id, KnowledgeEntry.created_at >= cutoff,
            ).exists(),
        ))
        .order_by(Agent.id)
    )
    eligible = list(result.scalars().all())
    return rng.sample(eligible, min(count, len(eligible)))


async def create_session_for_topic(
    topic_id: str,
    now: datetime,
    session_factory: async_sessionmaker[AsyncSession],
    client,
    rng: random.Random,
    report: Optional[SessionPassReport] = None,
) -> Optional[str]:
    """Returns the new session id, or None when the session was cancelled."""
    settings = get_settings()
    report = report or SessionPassReport()

    async with session_factory() as db:
        mode = get_mode(settings.session_mode)
        max_turns = settings.session_max_turns or mode.default_max_turns
        session = await state.create_session(db, topic_id, max_turns, mode.name)

        count = rng.randint(settings.participants_min, settings.participants_max)
        agent_ids = await select_participants(db, now, count, rng)
        if not agent_ids:
            await state.set_session_status(db, session, SessionStatus.CANCELLED)
            logger.warning("No eligible agents for topic %s, session %s cancelled", topic_id, session.id)
            report.cancelled.append(session.id)
            return None

        await state.add_participants(db, session.id, agent_ids, now)
        await state.create_turn(db, session.id, 1)
        await state.activate_session(db, session, len(agent_ids), now)
        session_id = session.id

    logger.info("Session %s started for topic %s with %d agents", session_id, topic_id, len(agent_ids))
    report.created.append(session_id)
    await realtime.session_created(topic_id, session_id, len(agent_ids))

    if get_flags().enable_session_strategies:
        for agent_id in agent_ids:
            try:
                async with session_factory() as db:
                    if await prepare_session_strategy(db, client, agent_id, session_id) is not None:
                        report.strategies += 1
            except Exception as e:
                logger.warning("Strategy for agent %s in session %s failed: %s: %s",
                               agent_id, session_id, type(e).__name__, e)

    return session_id
