"""
Structured documents the LLM returns (persona, verdict).

LLM output is untrusted: every document is extracted, then validated against
its schema. Anything that fails raises DocumentParseError, so callers never see
a half-shaped dict.
"""

import json
import logging
import re
from typing import Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from ..core.errors import DocumentParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

DocumentT = TypeVar("DocumentT", bound=BaseModel)


class Persona(BaseModel):
    """An agent's behavioural profile. Unknown keys are carried through untouched."""

    model_config = ConfigDict(extra="allow")

    core_values: list[str] = Field(min_length=1)
    thinking_style: str = Field(min_length=1)
    personality_traits: list[str] = Field(default_factory=list)
    background: str = Field(min_length=1)
    version: int = Field(default=1, ge=1)


class Verdict(BaseModel):
    """The judge's assessment of a finished session."""

    model_config = ConfigDict(extra="ignore")

    quality_score: StrictInt = Field(ge=1, le=10)
    cooperation_score: StrictInt = Field(ge=1, le=10)
    convergence_score: StrictInt = Field(ge=1, le=10)
    novelty_score: StrictInt = Field(ge=1, le=10)
    summary: str = Field(min_length=1)
    highlights: list[str] = Field(default_factory=list)
    consensus: str = ""


def extract_json_object(text: str) -> Optional[dict]:
    """Pull the first JSON object out of an LLM response, tolerating code fences and chatter."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _OBJECT_RE.search(cleaned)
        if not match:
            return None
        try:
            value = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return value if isinstance(value, dict) else None


def parse_document(text: str, schema: type[DocumentT], name: str) -> DocumentT:
    """Extract and validate a document, or raise DocumentParseError."""
    data = extract_json_object(text)
    if data is None:
        raise DocumentParseError(name, "no JSON object in response", raw=text or "")
    return validate_document(data, schema, name, raw=text)


def validate_document(data: dict, schema: type[DocumentT], name: str, raw: str = "") -> DocumentT:
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise DocumentParseError(name, reasons, raw=raw)


def load_persona(raw: Optional[dict]) -> Persona:
    """Validate a persona read from storage."""
    try:
        return Persona.model_validate(raw or {})
    except ValidationError as e:
        raise DocumentParseError("persona", f"stored persona is invalid ({e.error_count()} errors)")
