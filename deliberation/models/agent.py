"""
Agents, their knowledge slots and persona history.
"""

from sqlalchemy import String, Text, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from .base import EntityBase


class Agent(EntityBase):
    __tablename__ = "agents"

    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # Persona document. Example:
    # {
    #   "core_values": ["fairness", "evidence"],
    #   "thinking_style": "...",
    #   "personality_traits": ["curious", "patient"],
    #   "background": "...",
    #   "version": 3
    # }
    persona: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class KnowledgeEntry(EntityBase):
    __tablename__ = "knowledge_entries"

    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


class PersonaChange(EntityBase):
    __tablename__ = "persona_changes"

    agent_id: Mapped[str] = mapped_column(
        String, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    persona_before: Mapped[dict] = mapped_column(JSON, nullable=False)
    persona_after: Mapped[dict] = mapped_column(JSON, nullable=False)
    feedback_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
