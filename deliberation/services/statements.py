"""
Statement generation for one turn.

Each participant gets one generation call. Calls run concurrently and are
isolated: a timeout or transport error for one agent never touches another
agent's statement. Every task persists its own row in its own DB session.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import get_settings
from ..core.errors import GenerationError, GenerationTransportError
from ..models.session import Statement
from ..scheduler.state import AgentContext
from .prompts import statement_prompts

logger = logging.getLogger(__name__)

_THINKING_RE = re.compile(r"<thinking>(.*?)</thinking>", re.DOTALL | re.IGNORECASE)
_SUMMARY_RE = re.compile(r"<summary>(.*?)(?:</summary>|$)", re.DOTALL | re.IGNORECASE)
SUMMARY_MAX_LENGTH = 100


@dataclass
class ParsedStatement:
    content: str
    thinking_process: str
    summary: Optional[str] = None


@dataclass
class StatementOutcome:
    agent_id: str
    success: bool
    statement_id: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None


def parse_statement(text: str) -> ParsedStatement:
    """
    Split a completion into reasoning, statement and one-line summary.

    Without a <thinking> block the reasoning is empty and the whole remaining
    text is the statement.
    """
    text = text or ""

    thinking = ""
    match = _THINKING_RE.search(text)
    if match:
        thinking = match.group(1).strip()
        text = text[: match.start()] + text[match.end():]

    summary = None
    match = _SUMMARY_RE.search(text)
    if match:
        summary = match.group(1).strip()[:SUMMARY_MAX_LENGTH] or None
        text = text[: match.start()] + text[match.end():]

    return ParsedStatement(content=text.strip(), thinking_process=thinking, summary=summary)


async def generate_statement(
    client,
    context: AgentContext,
    topic_title: str,
    topic_description: str,
    transcript: Sequence,
    turn_number: int,
    max_turns: int,
    mode: Optional[str] = None,
) -> ParsedStatement:
    """One generation call for one agent. Raises GenerationError on failure."""
    system_prompt, user_prompt = statement_prompts(
        agent_name=context.agent_name,
        persona=context.persona,
        knowledge=context.knowledge,
        strategy=context.strategy,
        direction=context.direction,
        topic_title=topic_title,
        topic_description=topic_description,
        transcript=transcript,
        turn_number=turn_number,
        max_turns=max_turns,
        mode=mode,
    )
    text = await client.complete(system_prompt, user_prompt, get_settings().statement_max_tokens)
    parsed = parse_statement(text)
    if not parsed.content:
        raise GenerationTransportError("Completion contained no statement text")
    return parsed


async def generate_turn_statements(
    session_factory: async_sessionmaker[AsyncSession],
    client,
    turn_id: str,
    turn_number: int,
    max_turns: int,
    topic_title: str,
    topic_description: str,
    contexts: Sequence[AgentContext],
    transcript: Sequence,
    mode: Optional[str] = None,
) -> list[StatementOutcome]:
    """Fan out one statement per agent, wait for all of them, report each outcome."""

    async def _run_one(context: AgentContext) -> StatementOutcome:
        call_start = time.monotonic()
        try:
            parsed = await generate_statement(
                client, context, topic_title, topic_description,
                transcript, turn_number, max_turns, mode,
            )
            async with session_factory() as db:
                statement = Statement(
                    turn_id=turn_id,
                    agent_id=context.agent_id,
                    content=parsed.content,
                    thinking_process=parsed.thinking_process,
                    summary=parsed.summary,
                )
                db.add(statement)
                await db.commit()

            elapsed = time.monotonic() - call_start
            logger.info(
                "Statement by %s (turn %d) saved in %dms",
                context.agent_name, turn_number, int(elapsed * 1000),
            )
            return StatementOutcome(
                agent_id=context.agent_id, success=True, statement_id=statement.id,
            )

        except GenerationError as e:
            logger.warning("Statement by %s (turn %d) failed [%s]: %s",
                           context.agent_name, turn_number, e.kind, e)
            return StatementOutcome(
                agent_id=context.agent_id, success=False, error_kind=e.kind, error=str(e),
            )
        except IntegrityError:
            logger.warning("Statement by %s already exists for turn %d", context.agent_name, turn_number)
            return StatementOutcome(
                agent_id=context.agent_id, success=False,
                error_kind="duplicate", error="statement already exists",
            )
        except Exception as e:
            logger.error("Statement by %s (turn %d) crashed: %s: %s",
                         context.agent_name, turn_number, type(e).__name__, e)
            return StatementOutcome(
                agent_id=context.agent_id, success=False, error_kind="internal", error=str(e),
            )

    results = await asyncio.gather(*[_run_one(c) for c in contexts])
    return list(results)
