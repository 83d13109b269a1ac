"""
Prompt Router

Picks the executor for a chat turn from the prompt prefix and the session's
sticky mode:

    /bypass/nuance:<key> <prompt>   plain chat with a nuance
    /bypass <prompt>                plain chat, no notes
    /nuance:<key> <prompt>          RAG with a nuance
    <prompt>                        RAG

Prompts that reference notes (@notes:..., [[Title]]) go to the explicit
executor whatever the mode. BYPASS and NUANCE stick to the session: later
turns without a prefix keep them. An explicit prefix always wins.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..common.config import GroundworkConfig, NuanceConfig
from ..common.document_store import DocumentStore
from ..common.embedding_service import EmbeddingProvider
from ..common.llm_client import LLMProvider
from ..common.schemas import PipelineMode, Route, Session
from ..common.session_store import SessionStore
from .bypass import BypassExecutor
from .executor import (
    ExecutionResult,
    ExplicitExecutor,
    PipelineExecutor,
    build_executors,
    session_store_from_config,
)
from .history import HistoryItem
from .references import parse_references

logger = logging.getLogger("groundwork.retriever.router")

# Longer prefix first
PREFIX_BYPASS_NUANCE = "/bypass/nuance:"
PREFIX_BYPASS = "/bypass"
PREFIX_NUANCE = "/nuance:"

_NUANCED = {Route.BYPASS_NUANCE: Route.BYPASS, Route.RAG_NUANCE: Route.RAG}


@dataclass
class ParsedPrompt:
    original: str
    clean_prompt: str
    route: Route
    nuance_key: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.clean_prompt.strip()

    @property
    def has_prefix(self) -> bool:
        return self.route != Route.RAG


def _split_key(rest: str) -> Tuple[str, str]:
    """'key prompt...' -> ('key', 'prompt...'); the key is lower-cased."""
    key, _, prompt = rest.partition(" ")
    return key.lower(), prompt.strip()


def parse_prompt(prompt: str) -> ParsedPrompt:
    """Extract the routing prefix, if any. Prefixes are case-insensitive."""
    trimmed = prompt.strip()
    lower = trimmed.lower()

    if lower.startswith(PREFIX_BYPASS_NUANCE):
        key, clean = _split_key(trimmed[len(PREFIX_BYPASS_NUANCE):])
        if key:
            return ParsedPrompt(prompt, clean, Route.BYPASS_NUANCE, key)

    if lower.startswith(PREFIX_BYPASS):
        rest = trimmed[len(PREFIX_BYPASS):]
        # "/bypassing" is an ordinary word
        if not rest or rest[0] == " ":
            return ParsedPrompt(prompt, rest.strip(), Route.BYPASS)

    if lower.startswith(PREFIX_NUANCE):
        key, clean = _split_key(trimmed[len(PREFIX_NUANCE):])
        if key:
            return ParsedPrompt(prompt, clean, Route.RAG_NUANCE, key)

    return ParsedPrompt(prompt, prompt, Route.RAG)


def sticky_route(session: Optional[Session]) -> Tuple[Route, str]:
    """Route (and nuance key) a session keeps when the prompt has no prefix."""
    if session is None:
        return Route.RAG, ""
    if session.mode == PipelineMode.BYPASS:
        return (Route.BYPASS_NUANCE if session.nuance_key else Route.BYPASS), session.nuance_key
    if session.mode == PipelineMode.NUANCE and session.nuance_key:
        return Route.RAG_NUANCE, session.nuance_key
    return Route.RAG, ""


def help_message(route: Route, nuance_key: str = "") -> str:
    """Reply to a bare prefix with nothing after it."""
    if route == Route.BYPASS:
        return (
            "Bypass mode is on. Type your question after /bypass to chat with the AI "
            "directly, without using your notes.\n\nExample: /bypass What is machine learning?"
        )
    if route == Route.BYPASS_NUANCE:
        return (
            f"Bypass mode with nuance '{nuance_key}' is on. The AI answers in that style "
            f"without using your notes.\n\nExample: /bypass/nuance:{nuance_key} Explain this concept."
        )
    if route == Route.RAG_NUANCE:
        return (
            f"Nuance '{nuance_key}' is on. The AI searches your notes and answers in that "
            f"style.\n\nExample: /nuance:{nuance_key} Explain this material."
        )
    return "Please type your question."


class PromptRouter:
    """Dispatches a raw chat prompt to the RAG, explicit or bypass executor."""

    def __init__(
        self,
        pipeline: PipelineExecutor,
        explicit: ExplicitExecutor,
        bypass: BypassExecutor,
        sessions: SessionStore,
        nuances: Optional[Dict[str, NuanceConfig]] = None,
    ):
        self._pipeline = pipeline
        self._explicit = explicit
        self._bypass = bypass
        self._sessions = sessions
        self._nuances = nuances or {}

    def execute(
        self,
        user_id: str,
        session_id: str,
        prompt: str,
        history: Sequence[HistoryItem] = (),
    ) -> ExecutionResult:
        """
        Route and run one chat turn.

        Raises:
            PermissionError: if the session belongs to another user
        """
        session = self._sessions.get(session_id)
        if session is not None and session.user_id != user_id:
            raise PermissionError(f"session {session_id} belongs to another user")

        parsed = parse_prompt(prompt)
        if parsed.has_prefix:
            route, nuance_key, query = parsed.route, parsed.nuance_key, parsed.clean_prompt
        else:
            route, nuance_key = sticky_route(session)
            query = prompt

        logger.info(
            "[ROUTER] Route: %s (session mode: %s)",
            route.value, session.mode.value if session else "new",
        )

        if route != Route.RAG and not query.strip():
            logger.info("[ROUTER] Empty prompt after prefix, returning help")
            return ExecutionResult(reply=help_message(route, nuance_key), route=route, nuance_key=nuance_key)

        if parse_references(query).has_references:
            return self._explicit.execute_for_prompt(user_id, session_id, query, history)

        nuance = self._resolve_nuance(nuance_key) if route in _NUANCED else None
        if route in _NUANCED and nuance is None:
            route = _NUANCED[route]

        if route in (Route.BYPASS, Route.BYPASS_NUANCE):
            return self._bypass.execute(user_id, session_id, query, history, nuance=nuance)
        return self._pipeline.execute(user_id, session_id, query, history, nuance=nuance)

    def _resolve_nuance(self, key: str) -> Optional[NuanceConfig]:
        nuance = self._nuances.get(key)
        if nuance is None:
            logger.warning("[ROUTER] Nuance %r not configured, proceeding without it", key)
        else:
            logger.info("[ROUTER] Nuance %r resolved: %s", key, nuance.name or key)
        return nuance


def build_router(
    llm: Optional[LLMProvider],
    embedder: EmbeddingProvider,
    store: DocumentStore,
    config: Optional[GroundworkConfig] = None,
    sessions: Optional[SessionStore] = None,
) -> PromptRouter:
    """Wire every executor around one shared session store."""
    config = config or GroundworkConfig()
    sessions = sessions or session_store_from_config(config)
    pipeline, explicit = build_executors(llm, embedder, store, config, sessions)
    bypass = BypassExecutor(llm, sessions, history_limit=config.history.limit)
    return PromptRouter(pipeline, explicit, bypass, sessions, config.nuances)
