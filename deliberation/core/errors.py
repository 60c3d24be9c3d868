"""
Exception hierarchy for the deliberation engine.

Three families matter to the schedulers:
  - GenerationError      → a single LLM call failed (isolated per agent)
  - DocumentParseError   → LLM output failed schema validation (fatal to one operation)
  - EntityNotFoundError  → an expected row is missing (fatal to one entity)
"""

from typing import Any, Optional


class DeliberationError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# ── Generation ───────────────────────────────────────────────────────

class GenerationError(DeliberationError):
    """A generation call did not produce a completion."""

    kind = "generation"


class GenerationTimeoutError(GenerationError):
    """The generation backend did not answer within the time budget."""

    kind = "timeout"

    def __init__(self, timeout_seconds: float):
        super().__init__(
            f"Generation timed out after {timeout_seconds}s",
            {"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class GenerationTransportError(GenerationError):
    """The generation backend answered with a non-success response or the connection failed."""

    kind = "transport"

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, details)
        self.status_code = status_code


# ── Documents ────────────────────────────────────────────────────────

class DocumentParseError(DeliberationError):
    """LLM output could not be parsed into the expected document."""

    def __init__(self, document: str, reason: str, raw: str = ""):
        super().__init__(
            f"Invalid {document} document: {reason}",
            {"document": document, "raw": raw[:200]} if raw else {"document": document},
        )
        self.document = document
        self.reason = reason


# ── Storage ──────────────────────────────────────────────────────────

class EntityNotFoundError(DeliberationError):
    """A row the scheduler expected to exist is missing."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(DeliberationError):
    """A status change would move an entity backwards in its lifecycle."""

    def __init__(self, entity: str, entity_id: str, current: str, target: str):
        super().__init__(
            f"{entity} {entity_id} cannot move from {current} to {target}",
            {"entity": entity, "id": entity_id, "from": current, "to": target},
        )
        self.current = current
        self.target = target
