"""
Deliberation sessions, their participants, turns and statements.

A session owns an ordered sequence of turns (1..k, no gaps). Each turn holds
at most one statement per participating agent; the unique constraints below
are the storage-level guarantee of that.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String, Text, Integer, JSON, DateTime, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import EntityBase


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TurnStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliberationSession(EntityBase):
    __tablename__ = "sessions"

    topic_id: Mapped[str] = mapped_column(
        String, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=SessionStatus.PENDING.value, index=True
    )
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_turn: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_turns: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    # Key into the mode registry; decides the phase of each turn
    mode: Mapped[str] = mapped_column(String, nullable=False, default="double_diamond", index=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Validated verdict document: scores + summary/highlights/consensus
    judge_verdict: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class SessionParticipant(EntityBase):
    __tablename__ = "session_participants"
    __table_args__ = (
        UniqueConstraint("session_id", "agent_id", name="uq_participants_session_agent"),
    )

    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Turn(EntityBase):
    __tablename__ = "turns"
    __table_args__ = (
        UniqueConstraint("session_id", "turn_number", name="uq_turns_session_number"),
    )

    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    turn_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=TurnStatus.PENDING.value, index=True
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Statement(EntityBase):
    __tablename__ = "statements"
    __table_args__ = (
        UniqueConstraint("turn_id", "agent_id", name="uq_statements_turn_agent"),
    )

    turn_id: Mapped[str] = mapped_column(
        String, ForeignKey("turns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    thinking_process: Mapped[str] = mapped_column(Text, nullable=False, default="")
    summary: Mapped[Optional[str]] = mapped_column(String, nullable=True)  # one-line gist
