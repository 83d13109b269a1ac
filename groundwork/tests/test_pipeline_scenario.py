"""
Conversation Scenario Tests

Drives whole conversations through the real pipeline (resolver, grounder,
messenger, generator, executors) over an InMemoryDocumentStore. Only the LLM
and the embedding model are faked:

  Turn 1: "answer my english exam"   -> SEARCH, 3 candidates, ask which one
  Turn 2: "the second one"           -> FOCUS #2, answer from that note
  Turn 3: "use all of them"          -> AGGREGATE, answer from all three
  Turn 4: "what is the total?"       -> ANSWER, still grounded on all three
"""

import json

import pytest

from groundwork.common.schemas import PipelineMode, Route, Scope, SessionState
from groundwork.common.session_store import SessionStore
from groundwork.retriever.executor import build_executors

from conftest import ScriptedLLM


def _intent(action, **fields):
    return json.dumps({"action": action, "confidence": 0.9, "reasoning": "scripted", **fields})


@pytest.fixture
def notes(store):
    return {
        "grammar": store.add_document("u1", "English Exam Grammar", "english exam grammar"),
        "vocabulary": store.add_document("u1", "English Exam Vocabulary", "english exam vocabulary words"),
        "listening": store.add_document("u1", "English Exam Listening", "english exam listening practice"),
        "fund": store.add_document("u1", "Class Fund", "class fund budget"),
        "recipe": store.add_document("u1", "Pasta Recipe", "recipe for dinner"),
    }


@pytest.fixture
def sessions():
    return SessionStore()


def _pipeline(llm, embedder, store, sessions):
    pipeline, explicit = build_executors(llm, embedder, store, sessions=sessions)
    return pipeline


class TestEnglishExamConversation:
    def test_full_conversation(self, embedder, store, notes, sessions):
        llm = ScriptedLLM(
            intents=[
                _intent("SEARCH", query="english exam", scope="NONE", explicitness="MEDIUM"),
                _intent("FOCUS", target=2, scope="SINGLE", explicitness="HIGH"),
                _intent("AGGREGATE", scope="ALL", explicitness="HIGH"),
                _intent("ANSWER", scope="ALL", explicitness="MEDIUM"),
            ],
            relevance="1, 2, 3",
        )
        pipeline = _pipeline(llm, embedder, store, sessions)
        english_ids = {notes["grammar"].id, notes["vocabulary"].id, notes["listening"].id}

        # Turn 1: ambiguous search
        first = pipeline.execute("u1", "chat-1", "answer my english exam", [])

        session = sessions.get("chat-1")
        assert first.session_state == SessionState.BROWSING
        assert session.state == SessionState.BROWSING
        assert session.focused_note is None
        assert {c.id for c in session.candidates} == english_ids
        for i, candidate in enumerate(session.candidates, 1):
            assert f"{i}. {candidate.title}" in first.reply
        assert [c.document_id for c in first.citations] == [c.id for c in session.candidates]
        shown = [c.id for c in session.candidates]

        # Turn 2: pick the second
        second = pipeline.execute("u1", "chat-1", "the second one", [])

        assert second.reply == "Grounded answer."
        assert [c.document_id for c in second.citations] == [shown[1]]
        assert "SYSTEM CONFIRMATION: The user selected Item #2." in llm.prompts[-1]
        session = sessions.get("chat-1")
        assert session.state == SessionState.FOCUSED
        assert session.focused_note.id == shown[1]
        assert [c.id for c in session.candidates] == shown

        # Turn 3: combine everything that was shown
        third = pipeline.execute("u1", "chat-1", "use all of them", [])

        assert [c.document_id for c in third.citations] == shown
        session = sessions.get("chat-1")
        assert session.is_aggregated
        for title in ("English Exam Grammar", "English Exam Vocabulary", "English Exam Listening"):
            assert f"--- CONTENT OF: {title} ---" in llm.prompts[-1]

        # Turn 4: follow-up stays grounded on all three documents
        fourth = pipeline.execute("u1", "chat-1", "what is the total?", [])

        assert [c.document_id for c in fourth.citations] == shown
        assert "Class Fund" not in llm.prompts[-1]

    def test_unrelated_notes_never_candidates(self, embedder, store, notes, sessions):
        llm = ScriptedLLM(intents=[_intent("SEARCH", query="english exam")], relevance="1, 2, 3")

        _pipeline(llm, embedder, store, sessions).execute("u1", "chat-1", "answer my english exam", [])

        candidate_ids = {c.id for c in sessions.get("chat-1").candidates}
        assert notes["fund"].id not in candidate_ids
        assert notes["recipe"].id not in candidate_ids


class TestDegradedLLM:
    def test_intent_failure_on_fresh_session_still_searches(self, embedder, store, notes, sessions):
        # No scripted intents: every intent call raises
        llm = ScriptedLLM(relevance="1, 2, 3")

        result = _pipeline(llm, embedder, store, sessions).execute(
            "u1", "chat-1", "answer my english exam", []
        )

        assert result.session_state == SessionState.BROWSING
        assert len(sessions.get("chat-1").candidates) == 3

    def test_single_match_answers_immediately(self, embedder, store, notes, sessions):
        llm = ScriptedLLM()

        result = _pipeline(llm, embedder, store, sessions).execute(
            "u1", "chat-1", "class fund budget", []
        )

        assert result.reply == "Grounded answer."
        assert [c.document_id for c in result.citations] == [notes["fund"].id]
        session = sessions.get("chat-1")
        assert session.focus_scope == Scope.SINGLE
        assert session.focused_note.hydrated is True

    def test_no_llm_at_all(self, embedder, store, notes, sessions):
        result = _pipeline(None, embedder, store, sessions).execute(
            "u1", "chat-1", "class fund budget", []
        )

        assert result.reply == "Sorry, an error occurred while generating the answer."
        assert [c.document_id for c in result.citations] == [notes["fund"].id]

    def test_other_users_notes_invisible(self, embedder, store, notes, sessions):
        store.add_document("u2", "Class Fund", "class fund budget")
        llm = ScriptedLLM()

        result = _pipeline(llm, embedder, store, sessions).execute(
            "u1", "chat-1", "class fund budget", []
        )

        assert [c.document_id for c in result.citations] == [notes["fund"].id]


class TestExplicitReferences:
    def test_referenced_notes_bypass_search(self, embedder, store, notes, sessions):
        llm = ScriptedLLM()
        _, explicit = build_executors(llm, embedder, store, sessions=sessions)

        result = explicit.execute_for_prompt(
            "u1", "chat-2", "compare [[Class Fund]] with [[Pasta Recipe]]", []
        )

        assert [c.document_id for c in result.citations] == [notes["fund"].id, notes["recipe"].id]
        assert result.route == Route.EXPLICIT
        assert sessions.get("chat-2").mode == PipelineMode.RAG
        assert not any("<intent_definitions>" in p for p in llm.prompts)
