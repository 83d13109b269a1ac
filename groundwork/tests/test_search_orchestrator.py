"""Tests for SearchOrchestrator: thresholds, dedup, hydration, failures."""

import pytest
from unittest.mock import Mock

from groundwork.common.config import SearchConfig
from groundwork.common.document_store import ScoredDocument
from groundwork.common.schemas import Document
from groundwork.retriever.search_orchestrator import UNTITLED, SearchError, SearchOrchestrator


def _hit(doc_id, similarity, content="snippet"):
    return ScoredDocument(document=Document(id=doc_id, content=content, score=similarity), similarity=similarity)


def _note(doc_id, title, content="full text"):
    return Document(id=doc_id, title=title, content=content, metadata={"user_id": "u1"}, hydrated=True)


@pytest.fixture
def embedder():
    embedder = Mock()
    embedder.embed_single.return_value = [0.1, 0.2]
    return embedder


@pytest.fixture
def store():
    store = Mock()
    store.find_by_ids.side_effect = lambda ids: [
        _note(i, f"Title {i}", f"full text of {i}") for i in ids
    ]
    return store


class TestThresholdFiltering:
    def test_keeps_only_scores_at_or_above_logic_threshold(self, embedder, store):
        store.search_similar_with_score.return_value = [_hit("a", 0.5), _hit("c", 0.36), _hit("b", 0.34)]
        orchestrator = SearchOrchestrator(embedder, store, SearchConfig(logic_threshold=0.35))

        results = orchestrator.execute("english exam", "u1")

        assert [r.id for r in results] == ["a", "c"]
        assert [r.score for r in results] == [0.5, 0.36]

    def test_boundary_score_is_kept(self, embedder, store):
        store.search_similar_with_score.return_value = [_hit("a", 0.35)]
        results = SearchOrchestrator(embedder, store).execute("q", "u1")
        assert [r.id for r in results] == ["a"]

    def test_config_passed_to_store(self, embedder, store):
        store.search_similar_with_score.return_value = []
        SearchOrchestrator(embedder, store).execute("q", "u1", SearchConfig(db_threshold=0.2, topk=3))

        store.search_similar_with_score.assert_called_once_with([0.1, 0.2], 3, "u1", 0.2)

    def test_empty_result_is_not_an_error(self, embedder, store):
        store.search_similar_with_score.return_value = []
        assert SearchOrchestrator(embedder, store).execute("q", "u1") == []
        store.find_by_ids.assert_not_called()


class TestDeduplication:
    def test_first_chunk_per_document_wins(self, embedder, store):
        store.search_similar_with_score.return_value = [
            _hit("a", 0.9, "best chunk"),
            _hit("b", 0.8),
            _hit("a", 0.7, "worse chunk"),
        ]

        results = SearchOrchestrator(embedder, store).execute("q", "u1")

        assert [r.id for r in results] == ["a", "b"]
        assert results[0].score == 0.9
        assert results[0].content == "best chunk"


class TestHydration:
    def test_titles_for_all_content_only_for_single(self, embedder, store):
        store.search_similar_with_score.return_value = [_hit("a", 0.9), _hit("b", 0.8)]

        results = SearchOrchestrator(embedder, store).execute("q", "u1")

        assert [r.title for r in results] == ["Title a", "Title b"]
        assert all(not r.hydrated for r in results)
        assert results[0].content == "snippet"

    def test_single_candidate_gets_full_content(self, embedder, store):
        store.search_similar_with_score.return_value = [_hit("a", 0.9), _hit("b", 0.2)]

        results = SearchOrchestrator(embedder, store).execute("q", "u1")

        assert len(results) == 1
        assert results[0].hydrated is True
        assert results[0].content == "full text of a"

    def test_hydration_failure_keeps_snippets(self, embedder, store, caplog):
        import logging
        store.search_similar_with_score.return_value = [_hit("a", 0.9)]
        store.find_by_ids.side_effect = IOError("store down")

        with caplog.at_level(logging.WARNING, logger="groundwork.retriever.search_orchestrator"):
            results = SearchOrchestrator(embedder, store).execute("q", "u1")

        assert results[0].title == UNTITLED
        assert results[0].hydrated is False
        assert "Failed to hydrate" in caplog.text

    def test_lexical_snippets_normalised(self, embedder, store):
        lexical = '{"root": {"type": "root", "children": [{"type": "paragraph", "children": [{"type": "text", "text": "plain"}]}]}}'
        store.search_similar_with_score.return_value = [_hit("a", 0.9, lexical), _hit("b", 0.8)]

        results = SearchOrchestrator(embedder, store).execute("q", "u1")

        assert results[0].content == "plain"


class TestFailures:
    def test_embedding_failure_raises_search_error(self, embedder, store):
        embedder.embed_single.side_effect = RuntimeError("model missing")

        with pytest.raises(SearchError, match="embedding"):
            SearchOrchestrator(embedder, store).execute("q", "u1")

    def test_store_failure_raises_search_error(self, embedder, store):
        store.search_similar_with_score.side_effect = ConnectionError("down")

        with pytest.raises(SearchError) as exc_info:
            SearchOrchestrator(embedder, store).execute("q", "u1")
        assert isinstance(exc_info.value.__cause__, ConnectionError)
