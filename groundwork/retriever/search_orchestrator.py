"""
Search Orchestrator

Embedding-based retrieval with threshold filtering and deduplication.

Pipeline:
1. Embed the query
2. Vector search (topK, index-side threshold)
3. Drop hits below the logic threshold
4. Deduplicate by document id (first hit wins; hits arrive best-first)
5. Hydrate titles, and full content when exactly one candidate survives
"""

import logging
from typing import List, Optional

from ..common.config import SearchConfig
from ..common.content import parse_content
from ..common.document_store import DocumentStore, ScoredDocument
from ..common.embedding_service import TASK_QUERY, EmbeddingProvider
from ..common.schemas import Document

logger = logging.getLogger("groundwork.retriever.search_orchestrator")

UNTITLED = "Untitled Note"


class SearchError(RuntimeError):
    """Embedding or vector retrieval failed."""


class SearchOrchestrator:
    """Runs vector search and returns filtered, hydrated candidates."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: DocumentStore,
        config: Optional[SearchConfig] = None,
    ):
        self._embedder = embedder
        self._store = store
        self.config = config or SearchConfig()

    def execute(
        self,
        query: str,
        user_id: str,
        config: Optional[SearchConfig] = None,
    ) -> List[Document]:
        """
        Search a user's notes.

        Args:
            query: Free-text query
            user_id: Owner whose notes are searched
            config: Per-call override of the orchestrator's thresholds

        Returns:
            Candidates in descending similarity order; [] when nothing matches

        Raises:
            SearchError: if embedding or retrieval fails
        """
        cfg = config or self.config

        try:
            vector = self._embedder.embed_single(query, TASK_QUERY)
        except Exception as e:
            raise SearchError(f"embedding generation failed: {e}") from e

        try:
            results = self._store.search_similar_with_score(
                vector, cfg.topk, user_id, cfg.db_threshold
            )
        except Exception as e:
            logger.error("Vector search failed: %s", e)
            raise SearchError(f"vector search failed: {e}") from e

        logger.debug("Raw search results: %d documents", len(results))

        candidates = self._filter_and_deduplicate(results, cfg.logic_threshold)
        logger.debug("Filtered candidates: %d documents", len(candidates))

        self._hydrate(candidates)
        return candidates

    def _filter_and_deduplicate(
        self,
        results: List[ScoredDocument],
        threshold: float,
    ) -> List[Document]:
        candidates: List[Document] = []
        seen_ids = set()

        for i, hit in enumerate(results, 1):
            if hit.similarity < threshold:
                logger.debug("Candidate %d: score=%.4f [FILTERED]", i, hit.similarity)
                continue

            doc_id = hit.document.id
            if doc_id in seen_ids:
                continue
            seen_ids.add(doc_id)

            candidates.append(Document(
                id=doc_id,
                title=hit.document.title,
                content=parse_content(hit.document.content),
                score=hit.similarity,
                metadata=dict(hit.document.metadata),
            ))
            logger.debug("Candidate %d: score=%.4f [KEEP]", i, hit.similarity)

        return candidates

    def _hydrate(self, candidates: List[Document]) -> None:
        """Fill in titles in place; full content for a lone candidate."""
        if not candidates:
            return

        try:
            notes = self._store.find_by_ids([c.id for c in candidates])
        except Exception as e:
            # Snippets without titles are still usable
            logger.warning("Failed to hydrate candidates: %s", e)
            for c in candidates:
                c.title = c.title or UNTITLED
            return

        by_id = {n.id: n for n in notes}
        single = len(candidates) == 1

        for c in candidates:
            note = by_id.get(c.id)
            if note is None:
                c.title = c.title or UNTITLED
                continue
            c.title = note.title or UNTITLED
            if single:
                c.content = note.content
                c.hydrated = True
