"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import EntityBase
from .topic import Topic, TopicStatus
from .agent import Agent, KnowledgeEntry, PersonaChange
from .session import (
    DeliberationSession,
    SessionParticipant,
    SessionStatus,
    Statement,
    Turn,
    TurnStatus,
)
from .feedback import Direction, Feedback, SessionStrategy

__all__ = [
    "EntityBase",
    "Topic", "TopicStatus",
    "Agent", "KnowledgeEntry", "PersonaChange",
    "DeliberationSession", "SessionParticipant", "SessionStatus",
    "Turn", "TurnStatus", "Statement",
    "Feedback", "Direction", "SessionStrategy",
]
