"""
Test helpers: scripted generation client, row builders and readers.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select

from deliberation.core.errors import GenerationTimeoutError
from deliberation.models import (
    Agent, DeliberationSession, Feedback, KnowledgeEntry, SessionParticipant,
    SessionStatus, Statement, Topic, Turn, TurnStatus,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

BASE_PERSONA = {
    "core_values": ["fairness", "evidence", "curiosity"],
    "thinking_style": "Analytical and careful",
    "personality_traits": ["patient", "direct"],
    "background": "A former urban planner.",
    "version": 1,
}

VERDICT = {
    "quality_score": 6,
    "cooperation_score": 7,
    "convergence_score": 4,
    "novelty_score": 5,
    "summary": "A focused discussion that stopped short of agreement.",
    "highlights": ["Alice reframed the question"],
    "consensus": "Partial agreement on goals.",
}

REVISED_PERSONA = {
    "core_values": ["fairness", "evidence", "humility"],
    "thinking_style": "Analytical, now more open to intuition",
    "personality_traits": ["patient", "direct", "warm"],
    "background": "A former urban planner.",
    "version": 99,
}

_NAME_RE = re.compile(r'You are "([^"]+)"')


# ============================================================================
# Scripted generation client
# ============================================================================


def classify(system_prompt: str) -> str:
    """Which operation a prompt belongs to."""
    if system_prompt.startswith("You are \""):
        return "statement"
    if "summarizing" in system_prompt:
        return "summary"
    if "strict judge" in system_prompt:
        return "verdict"
    if "revising the personas" in system_prompt:
        return "persona"
    if "plan how to approach" in system_prompt:
        return "strategy"
    return "unknown"


def default_response(kind: str, system_prompt: str, user_prompt: str) -> str:
    if kind == "statement":
        name = _NAME_RE.search(system_prompt).group(1)
        turn = re.search(r"## Your turn \(turn (\d+)", user_prompt).group(1)
        return (
            f"<thinking>{name} weighs the arguments.</thinking>\n"
            f"{name} speaks in turn {turn}.\n"
            f"<summary>{name} gist {turn}</summary>"
        )
    if kind == "summary":
        return "The participants debated the topic and converged on shared goals."
    if kind == "verdict":
        return json.dumps(VERDICT)
    if kind == "persona":
        return json.dumps(REVISED_PERSONA)
    if kind == "strategy":
        return "Lead with evidence and answer objections directly."
    raise AssertionError(f"unexpected prompt: {system_prompt[:80]}")


class FakeGenerationClient:
    """
    Stand-in for LLMClient.

    `script` may override any call: it receives (kind, system, user) and
    returns a string, an exception instance to raise, or None to fall back to
    the default response.
    """

    def __init__(self, script: Optional[Callable] = None):
        self.script = script
        self.calls: list[dict] = []

    def calls_of(self, kind: str) -> list[dict]:
        return [c for c in self.calls if c["kind"] == kind]

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        kind = classify(system_prompt)
        self.calls.append({
            "kind": kind, "system": system_prompt, "user": user_prompt, "max_tokens": max_tokens,
        })
        if self.script is not None:
            result = self.script(kind, system_prompt, user_prompt)
            if isinstance(result, Exception):
                raise result
            if result is not None:
                return result
        return default_response(kind, system_prompt, user_prompt)


def speaker(system_prompt: str) -> str:
    return _NAME_RE.search(system_prompt).group(1)


def timeout_for(name: str, turn: int):
    """Script: time out one agent's statement in one turn."""

    def script(kind, system_prompt, user_prompt):
        if kind == "statement" and speaker(system_prompt) == name and f"(turn {turn} of" in user_prompt:
            return GenerationTimeoutError(30.0)
        return None

    return script


# ============================================================================
# Builders
# ============================================================================


async def add_topic(factory, title: str = "Should cities ban cars?", status: str = "active") -> Topic:
    async with factory() as db:
        topic = Topic(title=title, description="Weigh mobility against livability.", status=status)
        db.add(topic)
        await db.commit()
        return topic


async def add_agent(
    factory, name: str, created_at: datetime = NOW, persona: Optional[dict] = None,
) -> Agent:
    async with factory() as db:
        agent = Agent(
            owner_id=f"owner-{name.lower()}",
            name=name,
            persona=dict(persona or BASE_PERSONA),
            created_at=created_at,
        )
        db.add(agent)
        await db.commit()
        return agent


async def add_knowledge(factory, agent_id: str, title: str, content: str, created_at: datetime = NOW):
    async with factory() as db:
        entry = KnowledgeEntry(agent_id=agent_id, title=title, content=content, created_at=created_at)
        db.add(entry)
        await db.commit()
        return entry


async def add_feedback(factory, agent_id: str, session_id: str, content: str, created_at: datetime = NOW):
    async with factory() as db:
        feedback = Feedback(agent_id=agent_id, session_id=session_id, content=content, created_at=created_at)
        db.add(feedback)
        await db.commit()
        return feedback


async def start_session(
    factory,
    topic: Topic,
    agents: list[Agent],
    max_turns: int = 3,
    status: str = SessionStatus.ACTIVE.value,
    first_turn: bool = True,
    mode: str = "double_diamond",
) -> DeliberationSession:
    """An active session with participants and a pending turn 1."""
    async with factory() as db:
        session = DeliberationSession(
            topic_id=topic.id,
            status=status,
            max_turns=max_turns,
            mode=mode,
            participant_count=len(agents),
            started_at=NOW,
        )
        db.add(session)
        await db.flush()
        for agent in agents:
            db.add(SessionParticipant(session_id=session.id, agent_id=agent.id, joined_at=NOW))
        if first_turn:
            db.add(Turn(session_id=session.id, turn_number=1, status=TurnStatus.PENDING.value))
        await db.commit()
        return session


async def add_turn(
    factory, session_id: str, number: int, status: str, started_at: Optional[datetime] = None,
) -> Turn:
    async with factory() as db:
        turn = Turn(session_id=session_id, turn_number=number, status=status, started_at=started_at)
        db.add(turn)
        await db.commit()
        return turn


async def add_statement(factory, turn_id: str, agent_id: str, content: str) -> Statement:
    async with factory() as db:
        statement = Statement(turn_id=turn_id, agent_id=agent_id, content=content)
        db.add(statement)
        await db.commit()
        return statement


# ============================================================================
# Readers (fresh session each time, so no stale identity map)
# ============================================================================


async def get_row(factory, model, row_id: str):
    async with factory() as db:
        return await db.get(model, row_id)


async def turns_of(factory, session_id: str) -> list[Turn]:
    async with factory() as db:
        result = await db.execute(
            select(Turn).where(Turn.session_id == session_id).order_by(Turn.turn_number)
        )
        return list(result.scalars().all())


async def statements_of(factory, turn_id: str) -> list[Statement]:
    async with factory() as db:
        result = await db.execute(select(Statement).where(Statement.turn_id == turn_id))
        return list(result.scalars().all())


async def count_rows(factory, model, *where) -> int:
    async with factory() as db:
        result = await db.execute(select(model).where(*where))
        return len(result.scalars().all())


def minutes_ago(minutes: int) -> datetime:
    return NOW - timedelta(minutes=minutes)
