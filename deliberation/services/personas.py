"""
Persona evolution and session strategies.

Both read owner feedback and ask the LLM for a revision; both treat the
output as untrusted and either validate it completely or raise
DocumentParseError.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.errors import DocumentParseError, EntityNotFoundError
from ..models.agent import Agent, PersonaChange
from ..models.feedback import SessionStrategy
from ..scheduler import state
from .documents import Persona, extract_json_object, load_persona, validate_document
from .prompts import persona_update_prompts, strategy_prompts

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-z]*", re.IGNORECASE)


# ── Persona ──────────────────────────────────────────────────────────

def _dedupe(items: Sequence[str]) -> list[str]:
    seen = []
    for item in items:
        item = item.strip()
        if item and item not in seen:
            seen.append(item)
    return seen


def revise_persona(current: Persona, text: str) -> Persona:
    """
    Validate an LLM persona revision against the current persona.

    The version always becomes current.version + 1 regardless of what the
    LLM wrote. core_values are clamped to the configured range, topping up
    from the current persona when the revision drops too many. Unknown keys
    on the current persona are carried over; unknown keys in the revision
    are dropped.
    """
    settings = get_settings()
    data = extract_json_object(text)
    if data is None:
        raise DocumentParseError("persona", "no JSON object in response", raw=text or "")
    data.pop("version", None)
    revised = validate_document(data, Persona, "persona", raw=text)

    core_values = _dedupe(revised.core_values)[: settings.core_values_max]
    for value in current.core_values:
        if len(core_values) >= settings.core_values_min:
            break
        if value not in core_values:
            core_values.append(value)
    if len(core_values) < settings.core_values_min:
        raise DocumentParseError(
            "persona", f"core_values has {len(core_values)} items, need {settings.core_values_min}",
        )

    known = {
        "core_values": core_values,
        "thinking_style": revised.thinking_style.strip()[: settings.thinking_style_max_length],
        "personality_traits": _dedupe(revised.personality_traits)[: settings.persona_traits_max],
        "background": revised.background.strip()[: settings.background_max_length],
        "version": current.version + 1,
    }
    try:
        return Persona.model_validate({**(current.model_extra or {}), **known})
    except ValidationError as e:
        raise DocumentParseError("persona", f"revision is invalid ({e.error_count()} errors)", raw=text)


async def update_persona(client, current: Persona, feedback_texts: Sequence[str]) -> Persona:
    """One LLM call: current persona + feedback backlog in, next persona version out."""
    system_prompt, user_prompt = persona_update_prompts(current, feedback_texts)
    text = await client.complete(system_prompt, user_prompt, get_settings().persona_max_tokens)
    return revise_persona(current, text)


async def apply_feedback_backlog(
    db: AsyncSession, client, agent_id: str, now: datetime
) -> Optional[Persona]:
    """
    Revise one agent's persona from all of its unapplied feedback.

    Returns the new persona, or None when there was nothing to apply. The
    persona, the history row and the applied_at stamps are written together.
    """
    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise EntityNotFoundError("agent", agent_id)

    backlog = await state.unapplied_feedback(db, agent_id)
    if not backlog:
        return None

    current = load_persona(agent.persona)
    revised = await update_persona(client, current, [f.content for f in backlog])

    before = current.model_dump()
    after = revised.model_dump()
    agent.persona = after
    db.add(PersonaChange(
        agent_id=agent_id,
        persona_before=before,
        persona_after=after,
        feedback_ids=[f.id for f in backlog],
    ))
    for feedback in backlog:
        feedback.applied_at = now
    await db.commit()

    logger.info("Persona for %s updated to v%d (%d feedback)", agent.name, revised.version, len(backlog))
    return revised


async def update_participant_personas(
    session_factory: async_sessionmaker[AsyncSession],
    client,
    agent_ids: Sequence[str],
    now: datetime,
) -> int:
    """Apply feedback backlogs for many agents concurrently. Returns how many changed."""

    async def _run_one(agent_id: str) -> bool:
        try:
            async with session_factory() as db:
                return await apply_feedback_backlog(db, client, agent_id, now) is not None
        except Exception as e:
            logger.warning("Persona update for %s failed: %s: %s", agent_id, type(e).__name__, e)
            return False

    results = await asyncio.gather(*[_run_one(a) for a in agent_ids])
    return sum(1 for updated in results if updated)


# ── Strategy ─────────────────────────────────────────────────────────

def clean_strategy(text: str) -> str:
    settings = get_settings()
    strategy = _FENCE_RE.sub("", text or "").strip().strip('"').strip()
    if not strategy:
        raise DocumentParseError("strategy", "empty response")
    return strategy[: settings.strategy_max_length]


async def synthesize_strategy(
    client, persona: Persona, feedback_text: str, own_statements: Sequence
) -> str:
    system_prompt, user_prompt = strategy_prompts(persona, feedback_text, own_statements)
    text = await client.complete(system_prompt, user_prompt, get_settings().strategy_max_tokens)
    return clean_strategy(text)


async def prepare_session_strategy(
    db: AsyncSession, client, agent_id: str, session_id: str
) -> Optional[SessionStrategy]:
    """
    Write a strategy for a returning participant.

    Only agents whose most recent completed session carries unapplied
    feedback get one; everyone else starts without a strategy.
    """
    prior_session_id = await state.last_completed_session_id(db, agent_id, exclude_session_id=session_id)
    if prior_session_id is None:
        return None

    feedback = await state.session_feedback(db, agent_id, prior_session_id)
    if feedback is None:
        return None

    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise EntityNotFoundError("agent", agent_id)

    own_statements = await state.load_transcript(db, prior_session_id, agent_id=agent_id)
    text = await synthesize_strategy(client, load_persona(agent.persona), feedback.content, own_statements)

    strategy = SessionStrategy(
        agent_id=agent_id,
        session_id=session_id,
        feedback_id=feedback.id,
        strategy=text,
    )
    db.add(strategy)
    await db.commit()
    logger.info("Strategy prepared for %s in session %s", agent.name, session_id)
    return strategy
