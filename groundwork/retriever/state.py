"""
Session State Manager

Pure transitions between BROWSING and FOCUSED. Each returns a new, validated
Session; the input session is never mutated.
"""

import logging
from typing import Optional, Sequence

from ..common.schemas import AGGREGATED_TITLE, Document, Scope, Session, SessionState

logger = logging.getLogger("groundwork.retriever.state")


def _replace(session: Session, **changes) -> Session:
    # model_copy(update=...) skips validation; rebuilding re-checks the focus invariant
    data = session.model_dump()
    data.update(changes)
    return Session(**data)


def to_focused(
    session: Session,
    document: Document,
    candidates: Optional[Sequence[Document]] = None,
) -> Session:
    """Focus a single document.

    Candidates are kept for later FOCUS turns unless a new list is given.
    """
    changes = {}
    if candidates is not None:
        changes["candidates"] = [c.model_copy() for c in candidates]
    updated = _replace(
        session,
        state=SessionState.FOCUSED,
        focused_note=document.model_copy(),
        focus_scope=Scope.SINGLE,
        **changes,
    )
    logger.info("[STATE] Transitioned to FOCUSED: %s", document.title)
    return updated


def to_browsing(session: Session, candidates: Sequence[Document]) -> Session:
    """Show a fresh candidate list and drop any focus."""
    updated = _replace(
        session,
        state=SessionState.BROWSING,
        candidates=[c.model_copy() for c in candidates],
        focused_note=None,
        focus_scope=None,
    )
    logger.info("[STATE] Transitioned to BROWSING: %d candidates", len(candidates))
    return updated


def to_aggregated(session: Session, candidates: Sequence[Document], aggregated_content: str) -> Session:
    """Focus every candidate at once.

    The focused note is a synthetic document holding the concatenated bodies;
    ``focus_scope == Scope.ALL`` is what marks it, never its id.
    """
    combined = Document(
        id=f"{session.id}:all",
        title=AGGREGATED_TITLE,
        content=aggregated_content,
        hydrated=True,
    )
    updated = _replace(
        session,
        state=SessionState.FOCUSED,
        candidates=[c.model_copy() for c in candidates],
        focused_note=combined,
        focus_scope=Scope.ALL,
    )
    logger.info("[STATE] Transitioned to AGGREGATED: %d notes combined", len(candidates))
    return updated
