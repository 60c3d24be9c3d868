"""
User-authored inputs the engine reads (feedback, directions) and the
strategies it derives from them.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import EntityBase


class Feedback(EntityBase):
    __tablename__ = "feedbacks"
    __table_args__ = (
        UniqueConstraint("agent_id", "session_id", name="uq_feedbacks_agent_session"),
    )

    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Set when a persona update consumed this row
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Direction(EntityBase):
    __tablename__ = "directions"

    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    turn_number: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


class SessionStrategy(EntityBase):
    __tablename__ = "session_strategies"
    __table_args__ = (
        UniqueConstraint("agent_id", "session_id", name="uq_strategies_agent_session"),
    )

    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feedback_id: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("feedbacks.id", ondelete="SET NULL"), nullable=True
    )
    strategy: Mapped[str] = mapped_column(Text, nullable=False)
