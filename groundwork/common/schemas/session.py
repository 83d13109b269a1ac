"""
Session Schema

Conversational state for one chat session.

Core principle: what the user was last shown (the candidates, or "waiting room")
and what answers are grounded on (the focus, or "workbench") must never disagree.
FOCUSED <=> a focused note exists. BROWSING => no focused note.
"""

from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Enums
# ============================================================================

class SessionState(str, Enum):
    """Whether the user is choosing between candidates or working on a focus"""
    BROWSING = "BROWSING"
    FOCUSED = "FOCUSED"


class PipelineMode(str, Enum):
    """Sticky pipeline mode of a session (BYPASS and NUANCE persist across turns)"""
    RAG = "RAG"
    BYPASS = "BYPASS"
    NUANCE = "NUANCE"


class Route(str, Enum):
    """Which executor answered a turn"""
    RAG = "RAG"
    RAG_NUANCE = "RAG_NUANCE"  # RAG with a nuance system prompt
    BYPASS = "BYPASS"  # plain chat, no notes
    BYPASS_NUANCE = "BYPASS_NUANCE"
    EXPLICIT = "EXPLICIT"  # user-referenced notes, no intent or search


class Scope(str, Enum):
    """How many documents an answer is grounded on"""
    ALL = "ALL"
    SINGLE = "SINGLE"
    NONE = "NONE"


# ============================================================================
# Models
# ============================================================================

class Document(BaseModel):
    """
    A note as seen by the pipeline.

    Content is hydrated progressively: a snippet at retrieval time, the full
    text only once the document is focused or aggregated (``hydrated=True``).
    """
    id: str
    title: str = ""
    content: str = ""
    score: float = 0.0  # similarity, 0..1
    metadata: Dict[str, Any] = Field(default_factory=dict)
    hydrated: bool = False


class Citation(BaseModel):
    """A document reference attached to a reply"""
    document_id: str
    title: str


AGGREGATED_TITLE = "All Notes"


class Session(BaseModel):
    """
    In-memory session state, keyed by chat session id.

    Aggregation is explicit: an aggregated focus has ``focus_scope == Scope.ALL``
    and a focused note whose body is the concatenation of every candidate.
    """
    id: str
    user_id: str
    state: SessionState = SessionState.BROWSING
    mode: PipelineMode = PipelineMode.RAG
    nuance_key: str = ""  # set with BYPASS (bypass+nuance) or NUANCE

    candidates: List[Document] = Field(default_factory=list)
    focused_note: Optional[Document] = None
    focus_scope: Optional[Scope] = None

    last_query: str = ""

    @model_validator(mode="after")
    def _check_focus_consistency(self) -> "Session":
        if self.state == SessionState.FOCUSED and self.focused_note is None:
            raise ValueError("FOCUSED session requires a focused note")
        if self.state == SessionState.BROWSING and self.focused_note is not None:
            raise ValueError("BROWSING session cannot have a focused note")
        if (self.focused_note is None) != (self.focus_scope is None):
            raise ValueError("focus_scope must be set exactly when a note is focused")
        return self

    @property
    def is_aggregated(self) -> bool:
        return self.focus_scope == Scope.ALL

    @property
    def has_single_focus(self) -> bool:
        return self.focused_note is not None and self.focus_scope == Scope.SINGLE

    @property
    def is_empty(self) -> bool:
        """No candidates and nothing focused (initial state)"""
        return not self.candidates and self.focused_note is None

    def candidate_index(self, document_id: str) -> int:
        """1-based position of a document among the candidates, 0 if absent"""
        for i, c in enumerate(self.candidates):
            if c.id == document_id:
                return i + 1
        return 0
