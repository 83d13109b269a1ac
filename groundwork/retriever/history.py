"""
Conversation history preparation.

Caller-supplied history is trimmed to the most recent turns, normalised to
user/assistant roles, and, for non-RAG sessions, stripped of RAG priming
prompts so they cannot leak into a plain conversation.
"""

from typing import Any, Iterable, List, Mapping, Union

from ..common.llm_client import Message
from ..common.schemas import PipelineMode

DEFAULT_LIMIT = 10

# Content fingerprints of RAG priming prompts
RAG_PROMPT_FINGERPRINTS = (
    "pattern-based logic",
    "query pattern matching",
    "according to [note_title]",
    "citation format",
    "notes database",
    "pattern matching internally",
    "cite sources naturally",
)

_ASSISTANT_ROLES = {"assistant", "model", "ai", "bot"}

HistoryItem = Union[Message, Mapping[str, Any]]


def is_rag_system_prompt(content: str) -> bool:
    lowered = content.lower()
    return any(fp in lowered for fp in RAG_PROMPT_FINGERPRINTS)


def _normalize(item: HistoryItem) -> Message:
    if isinstance(item, Message):
        role, content = item.role, item.content
    else:
        role, content = item.get("role", "user"), item.get("content", "")
    role = "assistant" if str(role).lower() in _ASSISTANT_ROLES else "user"
    return Message(role=role, content=str(content or ""))


def prepare_history(
    messages: Iterable[HistoryItem],
    mode: PipelineMode = PipelineMode.RAG,
    limit: int = DEFAULT_LIMIT,
) -> List[Message]:
    """
    Most recent ``limit`` messages, oldest first.

    Accepts ``Message`` objects or ``{"role", "content"}`` mappings. Empty
    messages are dropped.
    """
    recent = list(messages)[-limit:] if limit > 0 else []

    prepared = []
    for item in recent:
        message = _normalize(item)
        if not message.content.strip():
            continue
        if mode == PipelineMode.BYPASS and is_rag_system_prompt(message.content):
            continue
        prepared.append(message)
    return prepared
