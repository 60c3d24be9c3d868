"""
Base model with id and timestamps. Every model inherits from this.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


class EntityBase(Base):
    """Abstract base with a UUID primary key and created/updated stamps."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=new_uuid
    )
    # Python-side default: microsecond resolution keeps creation order stable
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
