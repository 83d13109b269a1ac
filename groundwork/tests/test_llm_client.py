"""Tests for LLMClient provider abstraction."""

import logging

import pytest
from unittest.mock import MagicMock

from groundwork.common.llm_client import LLMClient, Message


class TestLLMClientInit:
    @pytest.mark.parametrize("provider", ["anthropic", "openai", "google"])
    def test_missing_key_logs_info(self, provider, caplog):
        with caplog.at_level(logging.INFO, logger="groundwork.common.llm_client"):
            client = LLMClient(provider=provider)
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="groundwork.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_from_config_picks_provider_model(self):
        from groundwork.common.config import LLMConfig
        cfg = LLMConfig(provider="openai", openai_model="gpt-4o", timeout=12.0)

        client = LLMClient.from_config(cfg)

        assert client.provider == "openai"
        assert client.model == "gpt-4o"
        assert client.timeout == 12.0


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate("test")

    def test_chat_raises_when_unavailable(self):
        client = LLMClient(provider="openai")
        with pytest.raises(RuntimeError, match="not available"):
            client.chat([Message(role="user", content="hi")])

    def test_anthropic_chat_passes_options(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        fake = MagicMock()
        fake.messages.create.return_value.content = [MagicMock(text="  answer  ")]
        client._client = fake

        reply = client.chat(
            [Message(role="user", content="q1"), Message(role="assistant", content="a1"),
             Message(role="user", content="q2")],
            system="be brief",
            temperature=0.0,
            max_tokens=50,
        )

        assert reply == "answer"
        kwargs = fake.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "be brief"
        assert kwargs["temperature"] == 0.0
        assert kwargs["max_tokens"] == 50
        assert [m["role"] for m in kwargs["messages"]] == ["user", "assistant", "user"]

    def test_openai_generate_model_override(self):
        client = LLMClient(provider="openai", model="gpt-4o-mini")
        fake = MagicMock()
        fake.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content="1, 2"))
        ]
        client._client = fake

        reply = client.generate("which?", system="sys", model="gpt-4o")

        assert reply == "1, 2"
        kwargs = fake.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1] == {"role": "user", "content": "which?"}
        assert "temperature" not in kwargs

    def test_provider_errors_propagate(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        fake = MagicMock()
        fake.messages.create.side_effect = ConnectionError("down")
        client._client = fake

        with pytest.raises(ConnectionError):
            client.generate("hello")

    def test_google_chat_maps_assistant_role(self):
        client = LLMClient(provider="google", model="gemini-test")
        genai = MagicMock()
        genai.GenerativeModel.return_value.generate_content.return_value.text = "ok"
        client._client = genai
        client._google_models = {}

        reply = client.chat(
            [Message(role="user", content="q"), Message(role="assistant", content="a")],
            system="sys",
        )

        assert reply == "ok"
        genai.GenerativeModel.assert_called_once_with(model_name="gemini-test", system_instruction="sys")
        contents = genai.GenerativeModel.return_value.generate_content.call_args.args[0]
        assert [c["role"] for c in contents] == ["user", "model"]

        # Same model + system prompt reuses the cached model
        client.chat([Message(role="user", content="again")], system="sys")
        assert genai.GenerativeModel.call_count == 1
