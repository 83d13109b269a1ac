"""
Intent Schema

Structured result of intent resolution (Phase 1). Produced and consumed within
a single pipeline turn; never persisted.
"""

from typing import Any, Dict
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .session import Scope


class IntentAction(str, Enum):
    """What the user wants to do"""
    SEARCH = "SEARCH"  # "answer my english exam"
    FOCUS = "FOCUS"  # "the second one"
    AGGREGATE = "AGGREGATE"  # "total profit across these"
    ANSWER = "ANSWER"  # follow-up on the focused note
    BROWSE = "BROWSE"  # "show the options again"
    META_ANALYSIS = "META_ANALYSIS"  # "what did I just ask?"
    CLARIFY = "CLARIFY"  # gibberish / unrelated


class Explicitness(str, Enum):
    """How directly actionable the utterance is"""
    HIGH = "HIGH"  # executable command -> act without asking
    MEDIUM = "MEDIUM"  # clear goal, ambiguous scope
    LOW = "LOW"  # vague / exploratory


class Intent(BaseModel):
    """
    A validated, resolved user intention.

    ``target`` is a 0-based index into the session candidates and is only
    meaningful for FOCUS; -1 means "no usable target".
    """
    model_config = {"frozen": True}

    action: IntentAction
    target: int = -1
    query: str = ""
    scope: Scope = Scope.NONE
    explicitness: Explicitness = Explicitness.MEDIUM
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""  # for logs only, never shown to the user

    @field_validator("action", "scope", "explicitness", mode="before")
    @classmethod
    def _normalize_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            return max(0.0, min(1.0, float(value)))
        except (TypeError, ValueError):
            return 0.5

    @classmethod
    def from_llm_payload(cls, data: Dict[str, Any]) -> "Intent":
        """
        Build an Intent from the model's JSON object.

        The model numbers candidates from 1; the result is 0-based.
        Raises pydantic.ValidationError (a ValueError) on an unknown shape.
        """
        payload = dict(data)

        raw_target = payload.get("target")
        try:
            target = int(raw_target) if raw_target is not None else 0
        except (TypeError, ValueError):
            target = 0
        payload["target"] = target - 1 if target > 0 else -1

        if not payload.get("scope"):
            payload["scope"] = Scope.NONE
        if not payload.get("explicitness"):
            payload["explicitness"] = Explicitness.MEDIUM
        payload["query"] = str(payload.get("query") or "")
        payload["reasoning"] = str(payload.get("reasoning") or "")

        return cls.model_validate(payload)
