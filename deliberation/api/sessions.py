"""
Sessions API (read-only).

GET /v1/sessions                 - List sessions, newest first
GET /v1/sessions/{id}            - Session with participants and verdict
GET /v1/sessions/{id}/turns      - Turns with their statements
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..models.agent import Agent
from ..models.session import (
    DeliberationSession, SessionParticipant, SessionStatus, Statement, Turn,
)
from ..models.topic import Topic

logger = logging.getLogger(__name__)

sessions_router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionSummary(BaseModel):
    id: str
    topic_id: str
    topic_title: str
    status: str
    mode: str
    participant_count: int
    current_turn: int
    max_turns: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class ParticipantOut(BaseModel):
    agent_id: str
    name: str
    joined_at: datetime


class SessionDetail(SessionSummary):
    topic_description: str = ""
    summary: Optional[str] = None
    judge_verdict: Optional[dict] = None
    participants: list[ParticipantOut] = []


class StatementOut(BaseModel):
    id: str
    agent_id: str
    agent_name: str
    content: str
    thinking_process: str = ""
    summary: Optional[str] = None
    created_at: datetime


class TurnOut(BaseModel):
    id: str
    turn_number: int
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    statements: list[StatementOut] = []


def _summary(session: DeliberationSession, topic: Topic) -> dict:
    return dict(
        id=session.id,
        topic_id=topic.id,
        topic_title=topic.title,
        status=session.status,
        mode=session.mode,
        participant_count=session.participant_count,
        current_turn=session.current_turn,
        max_turns=session.max_turns,
        started_at=session.started_at,
        completed_at=session.completed_at,
        created_at=session.created_at,
    )


async def _get_session_or_404(db: AsyncSession, session_id: str) -> tuple[DeliberationSession, Topic]:
    row = (await db.execute(
        select(DeliberationSession, Topic)
        .join(Topic, Topic.id == DeliberationSession.topic_id)
        .where(DeliberationSession.id == session_id)
    )).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return row[0], row[1]


@sessions_router.get("", response_model=list[SessionSummary])
async def list_sessions(
    db: AsyncSession = Depends(get_db),
    status: Optional[SessionStatus] = None,
    topic_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    """List sessions, newest first."""
    query = select(DeliberationSession, Topic).join(Topic, Topic.id == DeliberationSession.topic_id)
    if status is not None:
        query = query.where(DeliberationSession.status == status.value)
    if topic_id:
        query = query.where(DeliberationSession.topic_id == topic_id)
    query = query.order_by(DeliberationSession.created_at.desc()).limit(limit).offset(offset)

    rows = (await db.execute(query)).all()
    return [SessionSummary(**_summary(s, t)) for s, t in rows]


@sessions_router.get("/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
):
    session, topic = await _get_session_or_404(db, session_id)

    rows = (await db.execute(
        select(SessionParticipant, Agent.name)
        .join(Agent, Agent.id == SessionParticipant.agent_id)
        .where(SessionParticipant.session_id == session_id)
        .order_by(SessionParticipant.joined_at, SessionParticipant.created_at)
    )).all()

    return SessionDetail(
        **_summary(session, topic),
        topic_description=topic.description or "",
        summary=session.summary,
        judge_verdict=session.judge_verdict,
        participants=[
            ParticipantOut(agent_id=p.agent_id, name=name, joined_at=p.joined_at)
            for p, name in rows
        ],
    )


@sessions_router.get("/{session_id}/turns", response_model=list[TurnOut])
async def list_turns(
    session_id: str,
    db: AsyncSession = Depends(get_db),
):
    """All turns of a session in order, each with its statements."""
    await _get_session_or_404(db, session_id)

    turns = (await db.execute(
        select(Turn).where(Turn.session_id == session_id).order_by(Turn.turn_number)
    )).scalars().all()

    rows = (await db.execute(
        select(Statement, Agent.name)
        .join(Turn, Turn.id == Statement.turn_id)
        .join(Agent, Agent.id == Statement.agent_id)
        .where(Turn.session_id == session_id)
        .order_by(Turn.turn_number, Statement.created_at)
    )).all()

    by_turn: dict[str, list[StatementOut]] = {}
    for statement, name in rows:
        by_turn.setdefault(statement.turn_id, []).append(StatementOut(
            id=statement.id,
            agent_id=statement.agent_id,
            agent_name=name,
            content=statement.content,
            thinking_process=statement.thinking_process or "",
            summary=statement.summary,
            created_at=statement.created_at,
        ))

    return [
        TurnOut(
            id=t.id,
            turn_number=t.turn_number,
            status=t.status,
            started_at=t.started_at,
            completed_at=t.completed_at,
            statements=by_turn.get(t.id, []),
        )
        for t in turns
    ]
