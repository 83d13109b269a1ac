"""
Pipeline / Explicit Executors

PipelineExecutor runs one chat turn end-to-end:

    load-or-create session
    -> [PHASE 1] IntentResolver.resolve
    -> [PHASE 2] Grounder.ground
    -> persist session (always, even when not answering)
    -> [PHASE 3] ResponseGenerator (only if the grounder says so)
    -> citations

The whole sequence runs under the session's lock so that two turns of the
same conversation cannot interleave their read/ground/write steps.

ExplicitExecutor skips phases 1 and 2 when the user has pointed at specific
notes themselves. PromptRouter (router.py) chooses between these and the
BypassExecutor.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from ..common.config import GroundworkConfig, NuanceConfig
from ..common.document_store import DocumentStore
from ..common.embedding_service import EmbeddingProvider
from ..common.llm_client import LLMProvider
from ..common.schemas import Citation, Document, PipelineMode, Route, Scope, Session, SessionState
from ..common.session_store import SessionStore
from .generator import ResponseGenerator
from .grounder import LOAD_FAILED, GroundedContext, Grounder, GroundingError, GroundingResult, NoteContent
from .history import DEFAULT_LIMIT, HistoryItem, prepare_history
from .intent_resolver import IntentResolver
from .messenger import AdaptiveMessenger
from .references import (
    MAX_REFERENCES,
    ReferenceLimitError,
    ReferenceResolver,
    parse_references,
    summarize_unresolved,
    validate_references,
)
from .relevance_filter import RelevanceFilter
from .search_orchestrator import SearchOrchestrator

logger = logging.getLogger("groundwork.retriever.executor")

NO_VALID_NOTES = "No valid notes were found for the references you provided."
TOO_MANY_REFERENCES = f"Too many note references. Please reference at most {MAX_REFERENCES} notes per message."


@dataclass
class ExecutionResult:
    """What the chat-turn handler gets back"""
    reply: str
    citations: List[Citation] = field(default_factory=list)
    session_state: Optional[SessionState] = None
    route: Route = Route.RAG
    nuance_key: str = ""


def _truncate(text: str, max_len: int = 50) -> str:
    return text if len(text) <= max_len else text[:max_len] + "..."


def _citations_from_notes(notes: Iterable[NoteContent]) -> List[Citation]:
    return [Citation(document_id=n.id, title=n.title) for n in notes]


def build_citations(result: GroundingResult) -> List[Citation]:
    """Grounded notes when there is a context, otherwise the visible candidates."""
    if result.context is None:
        return [Citation(document_id=c.id, title=c.title) for c in result.session.candidates]
    return _citations_from_notes(result.context.notes)


def load_or_create_session(sessions: SessionStore, user_id: str, session_id: str) -> Session:
    """The stored session, or a fresh RAG session. Call with the session lock held."""
    session = sessions.get(session_id)
    if session is None:
        return Session(id=session_id, user_id=user_id)
    if session.user_id != user_id:
        raise PermissionError(f"session {session_id} belongs to another user")
    return session


class PipelineExecutor:
    """Three-phase conversational retrieval for one session at a time."""

    def __init__(
        self,
        resolver: IntentResolver,
        grounder: Grounder,
        generator: ResponseGenerator,
        sessions: SessionStore,
        history_limit: int = DEFAULT_LIMIT,
    ):
        self._resolver = resolver
        self._grounder = grounder
        self._generator = generator
        self._sessions = sessions
        self._history_limit = history_limit

    def execute(
        self,
        user_id: str,
        session_id: str,
        query: str,
        history: Sequence[HistoryItem] = (),
        nuance: Optional[NuanceConfig] = None,
    ) -> ExecutionResult:
        """
        Run one chat turn.

        With a nuance the session becomes NUANCE and the answer is generated
        under the nuance's system prompt; otherwise the session is RAG.
        Upstream failures never escape: they come back as an apologetic reply.

        Raises:
            PermissionError: if the session belongs to another user
        """
        route = Route.RAG_NUANCE if nuance else Route.RAG
        nuance_key = nuance.key if nuance else ""

        with self._sessions.lock(session_id):
            session = load_or_create_session(self._sessions, user_id, session_id)
            session = session.model_copy(update={
                "last_query": query,
                "mode": PipelineMode.NUANCE if nuance else PipelineMode.RAG,
                "nuance_key": nuance_key,
            })
            messages = prepare_history(history, session.mode, self._history_limit)

            logger.info("[PIPELINE] Starting three-phase execution for query: %s", _truncate(query))

            logger.info("[PHASE 1] Resolving intent...")
            intent = self._resolver.resolve(query, messages, session)

            try:
                result = self._grounder.ground(intent, session, user_id, messages)
            except GroundingError as e:
                logger.error("Context grounding failed: %s", e, exc_info=True)
                self._sessions.save(session)
                return ExecutionResult(
                    reply=LOAD_FAILED, session_state=session.state, route=route, nuance_key=nuance_key
                )

            self._sessions.save(result.session)
            citations = build_citations(result)

            if not result.should_answer:
                logger.info("[PHASE 2] Not answering: returning conversational message")
                return ExecutionResult(
                    reply=result.message,
                    citations=citations,
                    session_state=result.session.state,
                    route=route,
                    nuance_key=nuance_key,
                )

            logger.info(
                "[PHASE 2] Context grounded: %d notes (scope %s)",
                len(result.context.notes), result.context.scope.value,
            )
            logger.info("[PHASE 3] Generating answer from grounded context...")
            answer = self._generator.generate_from_grounded_context(
                query, result.context, messages, nuance=nuance
            )
            logger.info("[PHASE 3] Answer generated, %d citations", len(citations))

            return ExecutionResult(
                reply=answer,
                citations=citations,
                session_state=result.session.state,
                route=route,
                nuance_key=nuance_key,
            )


class ExplicitExecutor:
    """Generation from notes the user referenced directly (no intent, no search)."""

    def __init__(
        self,
        generator: ResponseGenerator,
        sessions: SessionStore,
        resolver: Optional[ReferenceResolver] = None,
        history_limit: int = DEFAULT_LIMIT,
    ):
        self._generator = generator
        self._sessions = sessions
        self._resolver = resolver
        self._history_limit = history_limit

    def execute_with_context(
        self,
        user_id: str,
        session_id: str,
        query: str,
        documents: Sequence[Document],
        history: Sequence[HistoryItem] = (),
    ) -> ExecutionResult:
        """Answer ``query`` from pre-resolved documents. The session mode is left as is."""
        with self._sessions.lock(session_id):
            session = load_or_create_session(self._sessions, user_id, session_id)
            session = session.model_copy(update={"last_query": query})
            self._sessions.save(session)

            logger.info("[EXPLICIT] Executing with %d pre-resolved notes", len(documents))
            if not documents:
                return ExecutionResult(
                    reply=NO_VALID_NOTES, session_state=session.state, route=Route.EXPLICIT
                )

            notes = [NoteContent(id=d.id, title=d.title, content=d.content) for d in documents]
            for i, note in enumerate(notes, 1):
                logger.debug("[EXPLICIT] Note %d: %r (%d chars)", i, note.title, len(note.content))

            context = GroundedContext(
                notes=notes,
                scope=Scope.SINGLE if len(notes) == 1 else Scope.ALL,
                focused_id=notes[0].id if len(notes) == 1 else None,
                ids=[n.id for n in notes],
            )

            messages = prepare_history(history, session.mode, self._history_limit)
            answer = self._generator.generate_from_grounded_context(query, context, messages)
            citations = _citations_from_notes(notes)
            logger.info("[EXPLICIT] Response generated with %d citations", len(citations))

            return ExecutionResult(
                reply=answer,
                citations=citations,
                session_state=session.state,
                route=Route.EXPLICIT,
            )

    def execute_for_prompt(
        self,
        user_id: str,
        session_id: str,
        prompt: str,
        history: Sequence[HistoryItem] = (),
    ) -> ExecutionResult:
        """Parse references out of ``prompt``, resolve them, and answer the rest."""
        if self._resolver is None:
            raise RuntimeError("ExplicitExecutor has no reference resolver")

        parsed = parse_references(prompt)
        try:
            validate_references(parsed.references)
        except ReferenceLimitError as e:
            logger.warning("Rejected prompt: %s", e)
            return ExecutionResult(reply=TOO_MANY_REFERENCES, route=Route.EXPLICIT)

        resolved = self._resolver.resolve(user_id, parsed.references)
        documents = [r.document for r in resolved if r.found]
        query = parsed.clean_prompt or prompt

        result = self.execute_with_context(user_id, session_id, query, documents, history)

        unresolved = summarize_unresolved(resolved)
        if unresolved:
            result.reply = f"{result.reply}\n\n{unresolved}"
        return result


def session_store_from_config(config: GroundworkConfig) -> SessionStore:
    return SessionStore(
        ttl_seconds=config.session.ttl_seconds,
        purge_interval_seconds=config.session.purge_interval_seconds,
    )


def build_executors(
    llm: Optional[LLMProvider],
    embedder: EmbeddingProvider,
    store: DocumentStore,
    config: Optional[GroundworkConfig] = None,
    sessions: Optional[SessionStore] = None,
) -> Tuple[PipelineExecutor, ExplicitExecutor]:
    """Wire both executors around one shared session store."""
    config = config or GroundworkConfig()
    sessions = sessions or session_store_from_config(config)

    messenger = AdaptiveMessenger(llm)
    generator = ResponseGenerator(llm)
    grounder = Grounder(
        search=SearchOrchestrator(embedder, store, config.search),
        relevance=RelevanceFilter(llm, model=config.llm.relevance_model),
        messenger=messenger,
        store=store,
    )

    pipeline = PipelineExecutor(
        IntentResolver(llm), grounder, generator, sessions, history_limit=config.history.limit
    )
    explicit = ExplicitExecutor(
        generator, sessions, ReferenceResolver(store), history_limit=config.history.limit
    )
    return pipeline, explicit
