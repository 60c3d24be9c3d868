"""
Session modes. A mode decides which phase each turn belongs to and what the
phase asks of the speakers.

  double_diamond   Introduction → Discover → Define → Develop → Deliver → Conclusion
  free_discussion  No phases, a light nudge on the first and last turn
  tutorial         Three short turns for first-time agents

Each phase adds role framing, an instruction, optional constraints and a
length range to the statement system prompt.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODE = "double_diamond"


@dataclass(frozen=True)
class PhaseConstraint:
    rule: str
    reason: str


@dataclass(frozen=True)
class PhaseConfig:
    phase: str
    label: str
    role_framing: str
    instruction: str
    constraints: tuple[PhaseConstraint, ...] = field(default_factory=tuple)
    char_min: int = 200
    char_max: int = 400


class SessionMode:
    """
    Base class for all modes. Subclass and implement phase_config().

    Attributes:
        name:              Stored in sessions.mode ("double_diamond")
        display_name:      Human-readable ("Double Diamond")
        description:       One line for the API
        default_max_turns: Session length when SESSION_MAX_TURNS is unset
    """

    name: str = ""
    display_name: str = ""
    description: str = ""
    default_max_turns: int = 10

    def phase_config(self, turn_number: int, max_turns: int) -> PhaseConfig:
        raise NotImplementedError

    def prompt_section(self, config: PhaseConfig, turn_number: int, max_turns: int) -> str:
        return (
            f"## {config.label}\n"
            f"{config.role_framing}\n\n"
            f"{config.instruction}\n\n"
            f"Strict length: {config.char_min}-{config.char_max} characters"
        )

    def user_prompt_suffix(self, turn_number: int, max_turns: int) -> str:
        return ""

    def describe(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "default_max_turns": self.default_max_turns,
        }


# ── Double Diamond ───────────────────────────────────────────────────

_DOUBLE_DIAMOND_PHASES = {
    "introduction": PhaseConfig(
        phase="introduction",
        label="Introduction",
        role_framing=(
            "You are introducing yourself as a participant and sharing your position on "
            "this topic and what draws you to it."
        ),
        instruction=(
            "State your basic position on the topic and what interests you about it. "
            "Explain why you think it matters and what experience or knowledge you bring."
        ),
        constraints=(
            PhaseConstraint(
                "Focus on conveying your own position and interests",
                "mutual understanding comes first and lays the ground for the discussion",
            ),
            PhaseConstraint(
                "Do not rush to a conclusion",
                "concluding on the first turn narrows the perspectives still to be explored",
            ),
        ),
        char_min=150,
        char_max=300,
    ),
    "discover": PhaseConfig(
        phase="discover",
        label="Discover (diverging)",
        role_framing=(
            "You are in the Discover phase. Explore the problem broadly and bring up "
            "a variety of perspectives and issues."
        ),
        instruction=(
            "Actively look for new angles, overlooked issues and views from other positions. "
            "Think in terms of \"there is also this way of seeing it\" and \"what about this aspect?\"."
        ),
        constraints=(
            PhaseConstraint(
                "Do not try to settle opinions early",
                "widening the range of ideas is the priority while diverging",
            ),
            PhaseConstraint(
                "Dig into doubts by asking questions rather than by rejecting",
                "questions deepen the discussion while keeping perspectives diverse",
            ),
            PhaseConstraint(
                "Explore perspectives outside your own expertise",
                "unexpected findings raise the quality of the discussion",
            ),
        ),
    ),
    "define": PhaseConfig(
        phase="define",
        label="Define (converging)",
        role_framing=(
            "You are in the Define phase. Organize the discussion so far and state the "
            "core problem clearly."
        ),
        instruction=(
            "Sort the perspectives raised so far and make clear what the essential problem "
            "is. Identify common ground and points of conflict, and narrow the focus."
        ),
        constraints=(
            PhaseConstraint(
                "Do not add new issues",
                "converging means structuring the issues already on the table",
            ),
            PhaseConstraint(
                "Express the heart of the problem in your own words",
                "your own framing, abstract or concrete, shows where the focus lies",
            ),
        ),
    ),
    "develop": PhaseConfig(
        phase="develop",
        label="Develop (diverging)",
        role_framing=(
            "You are in the Develop phase. Generate a variety of solutions and approaches "
            "to the problem as defined."
        ),
        instruction=(
            "Propose as many different solutions and ideas as you can for the problem "
            "defined in the previous phase. Creative ideas are welcome regardless of feasibility."
        ),
        constraints=(
            PhaseConstraint(
                "Do not narrow down to a single solution",
                "a diverse set of options matters most in this phase",
            ),
            PhaseConstraint(
                "Build on other participants' ideas",
                "combining ideas is where novel solutions come from",
            ),
            PhaseConstraint(
                "Share risks and concerns as ideas too",
                "cautious views add value and make ideas more realistic",
            ),
        ),
    ),
    "deliver": PhaseConfig(
        phase="deliver",
        label="Deliver (converging)",
        role_framing=(
            "You are in the Deliver phase. Evaluate and combine the proposed solutions "
            "into a workable proposal."
        ),
        instruction=(
            "Evaluate the solutions and ideas raised so far, then select and combine the "
            "most promising ones. Weigh feasibility, impact and trade-offs to form a concrete proposal."
        ),
        constraints=(
            PhaseConstraint(
                "Give your reasons when you set a solution aside",
                "judgments from intuition or experience count, but shared reasons let others respond",
            ),
            PhaseConstraint(
                "Make trade-offs explicit",
                "no solution is perfect, and agreeing on priorities is what builds consensus",
            ),
        ),
    ),
    "conclusion": PhaseConfig(
        phase="conclusion",
        label="Conclusion",
        role_framing=(
            "You are in the Conclusion phase. Look back over the whole discussion and "
            "state your final position."
        ),
        instruction=(
            "Describe how your thinking changed (or did not) during the discussion and state "
            "your final position clearly. Mention what you learned and what remains open."
        ),
        constraints=(
            PhaseConstraint(
                "Do not simply repeat your opening position",
                "deliberation is worth having because views deepen through mutual influence",
            ),
            PhaseConstraint(
                "Say openly what you noticed or reconsidered along the way",
                "sharing how your thinking moved makes the outcome of the deliberation visible",
            ),
        ),
    ),
}


class DoubleDiamondMode(SessionMode):
    name = "double_diamond"
    display_name = "Double Diamond"
    description = "Alternating divergence and convergence: Discover, Define, Develop, Deliver."
    default_max_turns = 10

    @staticmethod
    def phase_for_turn(turn_number: int, max_turns: int) -> str:
        """
        First turn introduces, last turn concludes. The turns in between are
        split into four equal quarters; with 10 turns that gives 2-3 discover,
        4-5 define, 6-7 develop, 8-9 deliver.
        """
        if turn_number <= 0 or max_turns <= 0:
            return "introduction"
        if turn_number >= max_turns:
            return "conclusion"
        if turn_number == 1:
            return "introduction"

        quarter = (max_turns - 2) / 4
        position = turn_number - 2
        if position < quarter:
            return "discover"
        if position < quarter * 2:
            return "define"
        if position < quarter * 3:
            return "develop"
        return "deliver"

    def phase_config(self, turn_number: int, max_turns: int) -> PhaseConfig:
        return _DOUBLE_DIAMOND_PHASES[self.phase_for_turn(turn_number, max_turns)]

    def prompt_section(self, config: PhaseConfig, turn_number: int, max_turns: int) -> str:
        constraints = "\n".join(f"- {c.rule}: {c.reason}" for c in config.constraints)
        return (
            f"## Current phase: {config.label} (turn {turn_number}/{max_turns})\n"
            f"{config.role_framing}\n\n"
            f"### Focus for this turn\n"
            f"{config.instruction}\n\n"
            f"### Constraints\n"
            f"{constraints}\n\n"
            f"Strict length: {config.char_min}-{config.char_max} characters"
        )

    def user_prompt_suffix(self, turn_number: int, max_turns: int) -> str:
        return (
            "End your statement by stating how confident you are in your view, "
            "in the form [Confidence: X/10]. It is natural for confidence to change "
            "over the course of the discussion."
        )


# ── Free discussion ──────────────────────────────────────────────────

class FreeDiscussionMode(SessionMode):
    name = "free_discussion"
    display_name = "Free Discussion"
    description = "No phase constraints. Watch how the agents play off each other."
    default_max_turns = 6

    def phase_config(self, turn_number: int, max_turns: int) -> PhaseConfig:
        if turn_number <= 1:
            return PhaseConfig(
                phase="open",
                label="Opening",
                role_framing="The free discussion begins. Say whatever you think about this topic.",
                instruction=(
                    "Share your honest thoughts and interests on the topic. "
                    "There is no required format."
                ),
                char_min=100,
                char_max=300,
            )
        if turn_number >= max_turns:
            return PhaseConfig(
                phase="open",
                label="Final turn",
                role_framing="This is your last statement. Say anything you have left to say.",
                instruction=(
                    "Talk about what the discussion made you feel, what changed in your "
                    "thinking, or what you still want to add. No need to sum up."
                ),
                char_min=100,
                char_max=300,
            )
        return PhaseConfig(
            phase="open",
            label=f"Free discussion (turn {turn_number}/{max_turns})",
            role_framing=(
                "You are in a free discussion. New threads, rebuttals, questions and "
                "digressions are all fine."
            ),
            instruction=(
                "Given the discussion so far, say what you most want to say right now. "
                "React to others or bring in something entirely new."
            ),
            char_min=100,
            char_max=300,
        )


# ── Tutorial ─────────────────────────────────────────────────────────

class TutorialMode(SessionMode):
    name = "tutorial"
    display_name = "Tutorial"
    description = "Three short turns that let a new agent experience the full loop."
    default_max_turns = 3

    def phase_config(self, turn_number: int, max_turns: int) -> PhaseConfig:
        if turn_number <= 1:
            return PhaseConfig(
                phase="introduction",
                label="Introduction: first impressions",
                role_framing=(
                    "This is your first discussion! Start with your honest first "
                    "impression of the topic."
                ),
                instruction=(
                    "Say what first came to mind when you heard the topic. "
                    "Keep it simple."
                ),
                char_min=80,
                char_max=250,
            )
        if turn_number == 2:
            return PhaseConfig(
                phase="discovery",
                label="Discovery: going deeper",
                role_framing=(
                    "Did the others give you anything new to think about? "
                    "Take your own view a step further."
                ),
                instruction=(
                    "Pick up points from the other participants that caught your attention, "
                    "or parts of your view that changed or deepened."
                ),
                char_min=80,
                char_max=250,
            )
        return PhaseConfig(
            phase="conclusion",
            label="Conclusion: wrap-up",
            role_framing="This is the last turn. Sum up what the discussion gave you.",
            instruction="Describe what you thought about, what you learned and where you stand now.",
            char_min=80,
            char_max=250,
        )


# ── Registry ─────────────────────────────────────────────────────────

class ModeRegistry:
    """Central registry for all session modes."""

    def __init__(self):
        self._modes: dict[str, SessionMode] = {}

    def register(self, mode: SessionMode) -> None:
        if mode.name in self._modes:
            logger.warning("Mode '%s' already registered, overwriting", mode.name)
        self._modes[mode.name] = mode

    def get(self, name: Optional[str]) -> SessionMode:
        """Look a mode up by name. Unknown names fall back to double_diamond."""
        mode = self._modes.get(name or DEFAULT_MODE)
        if mode is None:
            logger.warning("Unknown session mode '%s', using %s", name, DEFAULT_MODE)
            mode = self._modes[DEFAULT_MODE]
        return mode

    def list_modes(self) -> list[SessionMode]:
        return list(self._modes.values())


_registry: Optional[ModeRegistry] = None


def get_mode_registry() -> ModeRegistry:
    global _registry
    if _registry is None:
        _registry = ModeRegistry()
        for mode in (DoubleDiamondMode(), FreeDiscussionMode(), TutorialMode()):
            _registry.register(mode)
    return _registry


def get_mode(name: Optional[str]) -> SessionMode:
    return get_mode_registry().get(name)
