"""
Bypass Executor

Plain chat with the LLM over the conversation history, without touching the
user's notes. Selected with the /bypass prefix, optionally with a nuance
(/bypass/nuance:<key>) whose system prompt and model are applied to the call.

The session's candidates and focus are kept, so a later RAG session sees
the same browsing state.
"""

import logging
from typing import Optional, Sequence

from ..common.config import NuanceConfig
from ..common.llm_client import LLMProvider, Message
from ..common.schemas import PipelineMode, Route
from ..common.session_store import SessionStore
from .executor import ExecutionResult, load_or_create_session
from .history import DEFAULT_LIMIT, HistoryItem, prepare_history

logger = logging.getLogger("groundwork.retriever.bypass")

BYPASS_FAILED = "Sorry, an error occurred while generating the response."


class BypassExecutor:
    """Pure LLM turns (no intent, no search, no citations)."""

    def __init__(
        self,
        llm: Optional[LLMProvider],
        sessions: SessionStore,
        history_limit: int = DEFAULT_LIMIT,
        max_tokens: int = 2048,
    ):
        self._llm = llm
        self._sessions = sessions
        self._history_limit = history_limit
        self._max_tokens = max_tokens

    def execute(
        self,
        user_id: str,
        session_id: str,
        query: str,
        history: Sequence[HistoryItem] = (),
        nuance: Optional[NuanceConfig] = None,
    ) -> ExecutionResult:
        """
        Answer ``query`` directly and mark the session BYPASS.

        RAG priming prompts are dropped from the history first. An LLM failure
        comes back as a fixed apology.

        Raises:
            PermissionError: if the session belongs to another user
        """
        route = Route.BYPASS_NUANCE if nuance else Route.BYPASS
        nuance_key = nuance.key if nuance else ""

        with self._sessions.lock(session_id):
            session = load_or_create_session(self._sessions, user_id, session_id)
            session = session.model_copy(update={
                "last_query": query,
                "mode": PipelineMode.BYPASS,
                "nuance_key": nuance_key,
            })
            self._sessions.save(session)

            messages = [
                *prepare_history(history, PipelineMode.BYPASS, self._history_limit),
                Message(role="user", content=query),
            ]
            logger.info("[BYPASS] Executing with %d messages (incl. history)", len(messages))

            reply = self._chat(messages, nuance)
            return ExecutionResult(
                reply=reply,
                session_state=session.state,
                route=route,
                nuance_key=nuance_key,
            )

    def _chat(self, messages: Sequence[Message], nuance: Optional[NuanceConfig]) -> str:
        if self._llm is None:
            logger.error("[BYPASS] No LLM configured")
            return BYPASS_FAILED

        system = None
        model = None
        if nuance is not None:
            logger.info("[BYPASS] Injecting nuance: %s", nuance.key)
            system = nuance.system_prompt
            if nuance.model:
                logger.info("[BYPASS] Overriding model: %s", nuance.model)
                model = nuance.model

        try:
            reply = self._llm.chat(messages, system=system, model=model, max_tokens=self._max_tokens)
        except Exception as e:
            logger.error("[BYPASS] LLM error: %s", e, exc_info=True)
            return BYPASS_FAILED

        logger.info("[BYPASS] Response generated")
        return reply
