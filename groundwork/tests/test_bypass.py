"""Tests for BypassExecutor (plain LLM chat, no notes)."""

import logging

import pytest

from groundwork.common.config import NuanceConfig
from groundwork.common.llm_client import Message
from groundwork.common.schemas import Document, PipelineMode, Route, Session, SessionState
from groundwork.common.session_store import SessionStore
from groundwork.retriever.bypass import BYPASS_FAILED, BypassExecutor
from groundwork.retriever.state import to_browsing

from conftest import ScriptedLLM


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def llm():
    return ScriptedLLM(message="Plain answer.")


@pytest.fixture
def bypass(llm, sessions):
    return BypassExecutor(llm, sessions)


class TestBypassExecutor:
    def test_plain_chat_without_system_prompt(self, bypass, llm):
        result = bypass.execute("u1", "s1", "What is machine learning?")

        assert result.reply == "Plain answer."
        assert result.route == Route.BYPASS
        assert result.citations == []
        call = llm.chat_calls[-1]
        assert call["messages"] == [Message(role="user", content="What is machine learning?")]
        assert call["system"] is None
        assert call["model"] is None

    def test_no_intent_or_relevance_calls(self, bypass, llm):
        bypass.execute("u1", "s1", "hello")

        assert llm.prompts == ["hello"]

    def test_nuance_sets_system_prompt_and_model(self, bypass, llm):
        tutor = NuanceConfig(key="tutor", system_prompt="Explain like a tutor.", model="gpt-4o")

        result = bypass.execute("u1", "s1", "explain recursion", nuance=tutor)

        assert result.route == Route.BYPASS_NUANCE
        assert result.nuance_key == "tutor"
        assert llm.chat_calls[-1]["system"] == "Explain like a tutor."
        assert llm.chat_calls[-1]["model"] == "gpt-4o"

    def test_nuance_without_model_keeps_default(self, bypass, llm):
        bypass.execute("u1", "s1", "q", nuance=NuanceConfig(key="poet", system_prompt="Answer in verse."))

        assert llm.chat_calls[-1]["model"] is None

    def test_history_drops_rag_priming(self, bypass, llm):
        history = [
            {"role": "user", "content": "You have access to a NOTES DATABASE. CITATION FORMAT: ..."},
            {"role": "user", "content": "earlier question"},
            {"role": "model", "content": "earlier answer"},
        ]

        bypass.execute("u1", "s1", "follow up", history)

        assert llm.chat_calls[-1]["messages"] == [
            Message(role="user", content="earlier question"),
            Message(role="assistant", content="earlier answer"),
            Message(role="user", content="follow up"),
        ]

    def test_session_marked_bypass(self, bypass, sessions):
        bypass.execute("u1", "s1", "q", nuance=NuanceConfig(key="tutor", system_prompt="x"))

        saved = sessions.get("s1")
        assert saved.user_id == "u1"
        assert saved.mode == PipelineMode.BYPASS
        assert saved.nuance_key == "tutor"
        assert saved.last_query == "q"

    def test_browsing_state_kept(self, bypass, sessions):
        docs = [Document(id=i, title=f"Title {i}") for i in ("a", "b")]
        sessions.save(to_browsing(Session(id="s1", user_id="u1"), docs))

        result = bypass.execute("u1", "s1", "unrelated chat")

        saved = sessions.get("s1")
        assert result.session_state == SessionState.BROWSING
        assert [c.id for c in saved.candidates] == ["a", "b"]

    def test_llm_failure_apologises(self, sessions, caplog):
        bypass = BypassExecutor(ScriptedLLM(message=None), sessions)

        with caplog.at_level(logging.ERROR, logger="groundwork.retriever.bypass"):
            result = bypass.execute("u1", "s1", "q")

        assert result.reply == BYPASS_FAILED
        assert "[BYPASS] LLM error" in caplog.text
        assert sessions.get("s1").mode == PipelineMode.BYPASS

    def test_no_llm_apologises(self, sessions):
        result = BypassExecutor(None, sessions).execute("u1", "s1", "q")

        assert result.reply == BYPASS_FAILED

    def test_other_users_session_rejected(self, bypass, sessions):
        sessions.save(Session(id="s1", user_id="someone-else"))

        with pytest.raises(PermissionError):
            bypass.execute("u1", "s1", "q")
