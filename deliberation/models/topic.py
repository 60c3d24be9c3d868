"""
Topics: the subjects sessions are created for.
"""

from enum import Enum

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import EntityBase


class TopicStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Topic(EntityBase):
    __tablename__ = "topics"

    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=TopicStatus.ACTIVE.value, index=True
    )
