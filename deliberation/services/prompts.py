"""
Prompt builders for every LLM call the engine makes.

Pure functions: data in, (system_prompt, user_prompt) out. No I/O here.
"""

import json
import random
from itertools import groupby
from typing import Iterable, Optional, Sequence

from ..core.config import get_settings
from .documents import Persona
from .modes import get_mode

NO_STATEMENTS = "(No statements yet.)"
NO_KNOWLEDGE = "(No particular knowledge.)"
NO_PRIOR_STATEMENTS = "(You made no statements last session.)"


def _clip(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"


def format_transcript(lines: Iterable) -> str:
    """
    Format statements chronologically, grouped by turn:

        **Turn 1**
          - Alice: ...
          - Bob: ...
    """
    blocks = []
    for turn_number, group in groupby(lines, key=lambda line: line.turn_number):
        body = "\n".join(f"  - {line.agent_name}: {line.content}" for line in group)
        blocks.append(f"**Turn {turn_number}**\n{body}")
    return "\n\n".join(blocks) if blocks else NO_STATEMENTS


def persona_json(persona: Persona) -> str:
    return json.dumps(persona.model_dump(), ensure_ascii=False, indent=2)


# ── Statements ───────────────────────────────────────────────────────

def statement_prompts(
    agent_name: str,
    persona: Persona,
    knowledge: Sequence,
    strategy: Optional[str],
    direction: Optional[str],
    topic_title: str,
    topic_description: str,
    transcript: Sequence,
    turn_number: int,
    max_turns: int,
    mode: Optional[str] = None,
) -> tuple[str, str]:
    """
    Build the (system, user) prompt pair for one agent's statement in one turn.

    The session mode contributes the phase section for this turn and an
    optional closing instruction on the user side.
    """
    settings = get_settings()
    session_mode = get_mode(mode)
    phase = session_mode.phase_config(turn_number, max_turns)
    phase_section = session_mode.prompt_section(phase, turn_number, max_turns)
    suffix = session_mode.user_prompt_suffix(turn_number, max_turns)
    suffix_line = f"\n{suffix}" if suffix else ""

    knowledge_lines = [
        f"- {_clip(k.title, settings.knowledge_title_max_length)}: "
        f"{_clip(k.content, settings.knowledge_content_max_length)}"
        for k in list(knowledge)[: settings.knowledge_slots]
    ]
    knowledge_section = "\n".join(knowledge_lines) or NO_KNOWLEDGE

    strategy_section = f"\n## Your strategy for this session\n{strategy.strip()}\n" if strategy else ""
    direction_section = (
        f"\n## Instruction from your owner (this turn only)\n"
        f"{_clip(direction, settings.direction_max_length)}\n"
        if direction else ""
    )

    rules = [
        "1. Respect the other participants and argue constructively.",
        "2. Support your claims with reasons.",
    ]
    if strategy:
        rules.append(f"{len(rules) + 1}. Keep your session strategy in mind.")
    if direction:
        rules.append(f"{len(rules) + 1}. Reflect your owner's instruction in this statement.")

    rules_block = "\n".join(rules)

    system_prompt = f"""You are "{agent_name}", a deliberation agent.

## Your persona
{persona_json(persona)}
{strategy_section}
## Your knowledge
{knowledge_section}
{direction_section}
{phase_section}

## Ground rules
{rules_block}

Your statement is read by the other participants and observed by the users."""

    user_prompt = f"""## Topic
Title: {topic_title}
Description: {topic_description}

## Discussion so far (through turn {turn_number - 1})
{format_transcript(transcript)}

## Your turn (turn {turn_number} of {max_turns})

Building on the discussion above, state your view.

First write your reasoning inside <thinking> tags, then write your statement in a
conversational tone. Finally write a one-line summary of your statement (50
characters max) inside <summary> tags. Use plain text only, no Markdown.{suffix_line}

<thinking>
[your reasoning]
</thinking>

[your statement]

<summary>[one-line summary]</summary>"""

    return system_prompt, user_prompt


# ── Finalization ─────────────────────────────────────────────────────

def summary_prompts(topic_title: str, transcript: Sequence, turns_played: int) -> tuple[str, str]:
    system_prompt = "You are an expert at summarizing deliberation sessions."
    user_prompt = f"""## Topic
{topic_title}

## Full discussion ({turns_played} turns)
{format_transcript(transcript)}

## Instructions
Summarize this deliberation session in 200-400 characters. Cover:
- the main points of contention
- how the argument developed
- how participants' positions shifted
- any conclusions or agreements reached

Output the summary text only."""
    return system_prompt, user_prompt


def verdict_prompts(topic_title: str, topic_description: str, transcript: Sequence) -> tuple[str, str]:
    system_prompt = """You are a strict judge of discussion quality. Lenient scores stop discussions from improving, so actively look for problems.

## Scoring scale (every axis, 1-10)
1-2: severely lacking
3-4: insufficient; present only in fragments
5-6: average; the basics are there but nothing stands out
7-8: good; clear strengths and few problems
9-10: exceptional; extremely rare

Most discussions land between 3 and 6. Scores of 7 or more need concrete justification."""

    user_prompt = f"""## Topic
{topic_title}
{topic_description}

## Full discussion
{format_transcript(transcript)}

## Axes
1. quality: logic, clarity of evidence, depth
2. cooperation: constructive dialogue, mutual understanding
3. convergence: clarity of the consensus reached
4. novelty: original perspectives, departures from conventional wisdom

Output exactly this JSON object and nothing else:
{{
  "quality_score": <integer 1-10>,
  "cooperation_score": <integer 1-10>,
  "convergence_score": <integer 1-10>,
  "novelty_score": <integer 1-10>,
  "summary": "overall assessment in 2-3 sentences",
  "highlights": ["notable statement 1", "notable statement 2"],
  "consensus": "the consensus reached, if any"
}}"""
    return system_prompt, user_prompt


# ── Persona / strategy ───────────────────────────────────────────────

def persona_update_prompts(persona: Persona, feedback_texts: Sequence[str]) -> tuple[str, str]:
    settings = get_settings()

    # Shuffle traits to reduce positional bias in the revision
    shown = persona.model_copy(deep=True)
    shown.personality_traits = random.sample(shown.personality_traits, len(shown.personality_traits))
    feedback_block = "\n---\n".join(text.strip() for text in feedback_texts)

    system_prompt = "You are an expert at revising the personas of AI agents."
    user_prompt = f"""## Current persona
{persona_json(shown)}

## Feedback from the owner
{feedback_block}

## Instructions
Produce a new persona that reflects the owner's feedback. Respect the existing
persona and shift it gradually toward the owner's intent.

Constraints:
- core_values: {settings.core_values_min} to {settings.core_values_max} items
- personality_traits: at most {settings.persona_traits_max} items
- thinking_style: at most {settings.thinking_style_max_length} characters
- background: at most {settings.background_max_length} characters
- keep existing core_values and personality_traits, adding or removing based on the feedback

Output exactly this JSON object and nothing else:
{{
  "core_values": [...],
  "thinking_style": "...",
  "personality_traits": [...],
  "background": "...",
  "version": {persona.version + 1}
}}"""
    return system_prompt, user_prompt


def strategy_prompts(persona: Persona, feedback_text: str, own_statements: Sequence) -> tuple[str, str]:
    mine = "\n".join(f"Turn {s.turn_number}: {s.content}" for s in own_statements)

    system_prompt = "You help AI deliberation agents plan how to approach their next session."
    user_prompt = f"""## Your persona
{persona_json(persona)}

## Your statements in the previous session
{mine or NO_PRIOR_STATEMENTS}

## Feedback from your owner
{feedback_text.strip()}

## Instructions
Based on the feedback and your previous statements, write your approach for the
next deliberation in 100-200 characters: what stance you will take and what you
will keep in mind. Output the strategy text only."""
    return system_prompt, user_prompt
