"""
Semantic relevance filter.

Vector search casts a wide net (logic threshold 0.35). Before the user is
asked to choose between candidates, a single LLM call drops the ones that only
share a keyword with the query by coincidence.
"""

import logging
import re
from typing import List, Optional, Sequence

from ..common.content import parse_content
from ..common.llm_client import LLMProvider
from ..common.llm_utils import parse_index_list
from ..common.schemas import Document

logger = logging.getLogger("groundwork.retriever.relevance_filter")

PREVIEW_CHARS = 1000

RELEVANCE_PROMPT = """Analyze the relevance of the following notes to the query: "{query}"

Notes:
{notes}
Identify which notes are semantically relevant to the user's request.
Relevance Criteria:
1. The note MUST be about the query topic.
2. Exclude notes that are clearly off-topic or only share a keyword by coincidence (e.g. mentions "exam" but is about a "class fund").
3. Include notes that are likely relevant.

Respond with ONLY a comma-separated list of the relevant note numbers (e.g., "1, 3").
If none are relevant, respond with "0"."""

_EMPTY_ANSWERS = {"0", "none"}


class RelevanceFilter:
    """
    LLM classifier over candidate titles and previews.

    Any failure (no client, call error, unreadable answer) keeps every
    candidate; the filter only ever narrows.
    """

    def __init__(self, llm: Optional[LLMProvider], model: Optional[str] = None):
        self._llm = llm
        self._model = model or None

    def filter_relevant(self, query: str, candidates: Sequence[Document]) -> List[int]:
        """Return the 0-based indices of the relevant candidates, in order."""
        keep_all = list(range(len(candidates)))
        if not candidates or self._llm is None:
            return keep_all

        prompt = RELEVANCE_PROMPT.format(query=query, notes=self._format_notes(candidates))
        logger.debug("Relevance prompt:\n%s", prompt)

        try:
            raw = self._llm.generate(prompt, temperature=0.0, model=self._model, max_tokens=64)
        except Exception as e:
            logger.warning("Relevance filter failed, keeping all candidates: %s", e)
            return keep_all

        logger.debug("Relevance response for %r: %r", query, raw)

        answer = (raw or "").strip().strip(".").strip().lower()
        if answer not in _EMPTY_ANSWERS and not re.search(r"\d", answer):
            logger.warning("Unreadable relevance answer %r, keeping all candidates", raw)
            return keep_all

        return parse_index_list(raw, len(candidates))

    @staticmethod
    def _format_notes(candidates: Sequence[Document]) -> str:
        lines = []
        for i, c in enumerate(candidates, 1):
            preview = parse_content(c.content)
            if len(preview) > PREVIEW_CHARS:
                preview = preview[:PREVIEW_CHARS] + "..."
            preview = preview.replace("\n", " ")
            lines.append(f"{i}. Title: {c.title}\n   Preview: {preview}\n")
        return "".join(lines)
