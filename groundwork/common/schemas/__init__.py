"""
Groundwork Schemas

Session state, documents, citations, and resolved intents.
"""

from .session import (
    AGGREGATED_TITLE,
    Citation,
    Document,
    PipelineMode,
    Route,
    Scope,
    Session,
    SessionState,
)
from .intent import Explicitness, Intent, IntentAction

__all__ = [
    "AGGREGATED_TITLE",
    "Citation",
    "Document",
    "PipelineMode",
    "Route",
    "Scope",
    "Session",
    "SessionState",
    "Explicitness",
    "Intent",
    "IntentAction",
]
