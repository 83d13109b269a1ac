"""
Context Grounder (Phase 2)

Turns a resolved Intent into the exact set of notes an answer may use, or
decides not to answer yet and returns a conversational message instead.

The grounded context is the single source of truth for the answer; the
conversation history is not.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..common.config import SearchConfig
from ..common.document_store import DocumentStore
from ..common.llm_client import Message
from ..common.schemas import Document, Explicitness, Intent, IntentAction, Scope, Session
from .messenger import AdaptiveMessenger
from .relevance_filter import RelevanceFilter
from .search_orchestrator import SearchError, SearchOrchestrator
from .state import to_aggregated, to_browsing, to_focused

logger = logging.getLogger("groundwork.retriever.grounder")

LOAD_FAILED = "Sorry, an error occurred while loading the notes."


class GroundingError(RuntimeError):
    """Grounding could not run at all (e.g. the search backend failed)."""


@dataclass
class NoteContent:
    """Full text of one note handed to the generator"""
    id: str
    title: str
    content: str


@dataclass
class GroundedContext:
    """
    Everything the generator may use for one answer.

    ``candidates`` is what the user can see (titles only); ``notes`` is what
    the answer is grounded on; ``ids`` becomes the citations.
    """
    notes: List[NoteContent] = field(default_factory=list)
    candidates: List[Document] = field(default_factory=list)
    scope: Scope = Scope.NONE
    focused_id: Optional[str] = None  # None for aggregated and history-only contexts
    focus_index: int = 0  # 1-based position among candidates, 0 if unknown
    ids: List[str] = field(default_factory=list)


@dataclass
class GroundingResult:
    context: Optional[GroundedContext]
    session: Session
    should_answer: bool
    message: str = ""


def _metadata_only(candidates: Sequence[Document]) -> List[Document]:
    return [Document(id=c.id, title=c.title, score=c.score) for c in candidates]


def load_failure_message(title: str) -> str:
    return (
        f"I found the note '{title}' but encountered an error loading its full content. "
        "Please try searching for it specifically."
    )


class Grounder:
    """State machine: (Intent, Session) -> GroundingResult."""

    def __init__(
        self,
        search: SearchOrchestrator,
        relevance: RelevanceFilter,
        messenger: AdaptiveMessenger,
        store: DocumentStore,
        search_config: Optional[SearchConfig] = None,
    ):
        self._search = search
        self._relevance = relevance
        self._messenger = messenger
        self._store = store
        self._search_config = search_config

    def ground(
        self,
        intent: Intent,
        session: Session,
        user_id: str,
        history: Sequence[Message] = (),
    ) -> GroundingResult:
        """
        Ground an intent against the session.

        The returned session is a new object; ``session`` is left untouched.

        Raises:
            GroundingError: if a SEARCH could not be executed
        """
        action = intent.action
        logger.info("[PHASE 2] Grounding %s (state=%s)", action.value, session.state.value)

        if action == IntentAction.SEARCH:
            return self._ground_search(intent, session, user_id, history)
        if action == IntentAction.FOCUS:
            return self._ground_focus(intent, session, history)
        if action == IntentAction.AGGREGATE:
            return self._ground_aggregate(intent, session, user_id, history)
        if action == IntentAction.ANSWER:
            return self._ground_answer(session, history)
        if action == IntentAction.BROWSE:
            return self._ground_browse(session, history)
        if action == IntentAction.META_ANALYSIS:
            return self._ground_meta_analysis(session)
        return self._ground_clarify(session, history)

    # ------------------------------------------------------------------
    # SEARCH
    # ------------------------------------------------------------------

    def _ground_search(
        self,
        intent: Intent,
        session: Session,
        user_id: str,
        history: Sequence[Message],
    ) -> GroundingResult:
        query = intent.query.strip() or session.last_query.strip()
        if not query:
            return self._message(session, self._messenger.clarify(history, query=session.last_query))

        try:
            candidates = self._search.execute(query, user_id, self._search_config)
        except SearchError as e:
            raise GroundingError(f"search failed: {e}") from e

        if not candidates:
            return self._message(session, self._messenger.not_found(query, history))

        if len(candidates) == 1:
            return self._focus_single(session, candidates)

        candidates, outcome = self._apply_relevance(query, candidates)
        if outcome == "none":
            return self._message(session, self._messenger.not_found(query, history))
        if outcome == "single":
            logger.info("Relevance filter identified a single note: %s", candidates[0].title)
            return self._focus_single(session, candidates)

        if intent.explicitness == Explicitness.HIGH:
            logger.info("Explicit prompt (HIGH): auto-aggregating %d notes", len(candidates))
            return self._aggregate(session, candidates, history)

        logger.info(
            "Search found %d candidates, explicitness=%s: entering BROWSING",
            len(candidates), intent.explicitness.value,
        )
        updated = to_browsing(session, candidates)
        return self._message(updated, self._messenger.ambiguity(query, candidates, history))

    def _apply_relevance(self, query: str, candidates: List[Document]) -> Tuple[List[Document], str]:
        """Narrow candidates with the LLM filter. Outcome is none/single/many."""
        indices = self._relevance.filter_relevant(query, candidates)
        if len(indices) != len(candidates):
            logger.info("Relevance filter reduced candidates from %d to %d", len(candidates), len(indices))
        filtered = [candidates[i] for i in indices if 0 <= i < len(candidates)]

        if not filtered:
            return [], "none"
        if len(filtered) == 1:
            return filtered, "single"
        return filtered, "many"

    def _focus_single(self, session: Session, candidates: List[Document]) -> GroundingResult:
        """Auto-focus the only candidate and answer from it."""
        doc = candidates[0]
        if not doc.hydrated:
            try:
                doc = self._hydrate(doc)
            except LookupError as e:
                # Answer from the snippet rather than not at all
                logger.warning("Failed to load note content: %s", e)

        candidates = [doc]
        updated = to_focused(session, doc, candidates=candidates)
        context = GroundedContext(
            notes=[NoteContent(id=doc.id, title=doc.title, content=doc.content)],
            candidates=_metadata_only(candidates),
            scope=Scope.SINGLE,
            focused_id=doc.id,
            focus_index=1,
            ids=[doc.id],
        )
        return GroundingResult(context=context, session=updated, should_answer=True)

    # ------------------------------------------------------------------
    # FOCUS
    # ------------------------------------------------------------------

    def _ground_focus(self, intent: Intent, session: Session, history: Sequence[Message]) -> GroundingResult:
        target = intent.target
        if target < 0 or target >= len(session.candidates):
            logger.info("Invalid selection %d of %d candidates", target + 1, len(session.candidates))
            return self._message(
                session, self._messenger.invalid_selection(
                    len(session.candidates), history, query=session.last_query
                )
            )

        candidate = session.candidates[target]
        logger.info("Focusing on candidate %d (id=%s)", target + 1, candidate.id)

        try:
            doc = self._hydrate(candidate)
        except LookupError as e:
            logger.error("Failed to load full note content for %s: %s", candidate.id, e)
            return self._message(session, load_failure_message(candidate.title))

        updated = to_focused(session, doc)
        context = GroundedContext(
            notes=[NoteContent(id=doc.id, title=doc.title, content=doc.content)],
            candidates=_metadata_only(session.candidates),
            scope=Scope.SINGLE,
            focused_id=doc.id,
            focus_index=target + 1,
            ids=[doc.id],
        )
        return GroundingResult(context=context, session=updated, should_answer=True)

    # ------------------------------------------------------------------
    # AGGREGATE
    # ------------------------------------------------------------------

    def _ground_aggregate(
        self,
        intent: Intent,
        session: Session,
        user_id: str,
        history: Sequence[Message],
    ) -> GroundingResult:
        candidates = list(session.candidates)

        if not candidates:
            query = intent.query.strip() or intent.reasoning.strip() or session.last_query.strip()
            logger.info("AGGREGATE without candidates: searching for %r first", query)
            if not query:
                return self._message(session, self._messenger.nothing_to_aggregate(query, history))

            try:
                found = self._search.execute(query, user_id, self._search_config)
            except SearchError as e:
                logger.error("Search for aggregation failed: %s", e)
                found = []

            if found:
                found, outcome = self._apply_relevance(query, found)
                if outcome == "none":
                    logger.info("Relevance filter rejected every aggregation candidate")
            if not found:
                return self._message(session, self._messenger.nothing_to_aggregate(query, history))
            candidates = found

        return self._aggregate(session, candidates, history)

    def _aggregate(
        self,
        session: Session,
        candidates: List[Document],
        history: Sequence[Message],
    ) -> GroundingResult:
        """Hydrate every candidate and focus them all at once."""
        loaded = self._hydrate_all(candidates)
        if not loaded:
            logger.error("None of %d notes could be loaded for aggregation", len(candidates))
            updated = to_browsing(session, candidates)
            return self._message(updated, LOAD_FAILED)

        by_id = {d.id: d for d in loaded}
        # Keep what the user saw, with full text where it loaded
        hydrated_candidates = [by_id.get(c.id, c) for c in candidates]

        sections = []
        for i, doc in enumerate(hydrated_candidates, 1):
            if doc.id in by_id:
                sections.append(f"--- Note {i}: {doc.title} ---\n{doc.content}\n")
        updated = to_aggregated(session, hydrated_candidates, "\n".join(sections))

        logger.info("Aggregated %d of %d notes", len(loaded), len(candidates))
        context = GroundedContext(
            notes=[NoteContent(id=d.id, title=d.title, content=d.content) for d in loaded],
            candidates=_metadata_only(candidates),
            scope=Scope.ALL,
            focused_id=None,
            ids=[d.id for d in loaded],
        )
        return GroundingResult(context=context, session=updated, should_answer=True)

    # ------------------------------------------------------------------
    # ANSWER
    # ------------------------------------------------------------------

    def _ground_answer(self, session: Session, history: Sequence[Message]) -> GroundingResult:
        if session.focused_note is None:
            if session.candidates:
                logger.info("ANSWER without focus: showing candidates instead")
                return self._ground_browse(session, history)
            return self._message(
                session, self._messenger.lost_context(history, query=session.last_query)
            )

        if session.is_aggregated:
            # Expand back into the per-note list so citations stay per-document
            loaded = self._hydrate_all(session.candidates)
            if not loaded:
                return self._message(
                    session, self._messenger.lost_context(history, query=session.last_query)
                )
            context = GroundedContext(
                notes=[NoteContent(id=d.id, title=d.title, content=d.content) for d in loaded],
                candidates=_metadata_only(session.candidates),
                scope=Scope.ALL,
                focused_id=None,
                ids=[d.id for d in loaded],
            )
            return GroundingResult(context=context, session=session, should_answer=True)

        doc = session.focused_note
        updated = session
        if not doc.hydrated or not doc.content:
            try:
                doc = self._hydrate(doc)
                updated = to_focused(session, doc)
            except LookupError as e:
                logger.warning("Failed to reload focused note %s: %s", doc.id, e)
                if not doc.content:
                    return self._message(session, load_failure_message(doc.title))

        context = GroundedContext(
            notes=[NoteContent(id=doc.id, title=doc.title, content=doc.content)],
            candidates=_metadata_only(session.candidates),
            scope=Scope.SINGLE,
            focused_id=doc.id,
            focus_index=session.candidate_index(doc.id),
            ids=[doc.id],
        )
        return GroundingResult(context=context, session=updated, should_answer=True)

    # ------------------------------------------------------------------
    # BROWSE / META_ANALYSIS / CLARIFY
    # ------------------------------------------------------------------

    def _ground_browse(self, session: Session, history: Sequence[Message]) -> GroundingResult:
        if not session.candidates:
            return self._message(
                session, self._messenger.no_notes_loaded(history, query=session.last_query)
            )
        return self._message(
            session, self._messenger.browse(session.candidates, history, query=session.last_query)
        )

    def _ground_meta_analysis(self, session: Session) -> GroundingResult:
        # History-only answer: no note content, no citations
        context = GroundedContext(scope=Scope.NONE)
        return GroundingResult(context=context, session=session, should_answer=True)

    def _ground_clarify(self, session: Session, history: Sequence[Message]) -> GroundingResult:
        if session.candidates:
            return self._ground_browse(session, history)
        return self._message(session, self._messenger.clarify(history, query=session.last_query))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _message(session: Session, message: str) -> GroundingResult:
        return GroundingResult(context=None, session=session, should_answer=False, message=message)

    def _hydrate(self, doc: Document) -> Document:
        """Full text for one note, keeping its search score.

        Raises:
            LookupError: if the note cannot be loaded
        """
        try:
            found = self._store.find_by_ids([doc.id])
        except Exception as e:
            raise LookupError(f"note {doc.id} could not be loaded: {e}") from e
        if not found:
            raise LookupError(f"note {doc.id} not found")

        note = found[0]
        return Document(
            id=doc.id,
            title=note.title or doc.title,
            content=note.content,
            score=doc.score,
            metadata=dict(note.metadata),
            hydrated=True,
        )

    def _hydrate_all(self, candidates: Sequence[Document]) -> List[Document]:
        """Hydrate in order, skipping notes that fail to load."""
        loaded = []
        for c in candidates:
            if c.hydrated:
                loaded.append(c)
                continue
            try:
                loaded.append(self._hydrate(c))
            except LookupError as e:
                logger.warning("Skipping note %s: %s", c.id, e)
        return loaded
