"""
Provider-agnostic LLM client for Groundwork pipelines.

Supports Anthropic, OpenAI, and Google Gemini with a shared interface:
single-prompt generation and multi-turn chat, with temperature and model
overrides per call.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

logger = logging.getLogger("groundwork.common.llm_client")


@dataclass(frozen=True)
class Message:
    """One conversation turn"""
    role: str  # "user" | "assistant"
    content: str


class LLMProvider(Protocol):
    """What the pipeline needs from a language model."""

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        max_tokens: int = 512,
    ) -> str: ...

    def chat(
        self,
        messages: Sequence[Message],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
    ) -> str: ...


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self.timeout = timeout
        self._client = None

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
                self._google_models = {}  # Cache models by (model, system prompt)
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client for the configured provider."""
        provider = (llm_config.provider or "anthropic").lower()
        model = {
            "anthropic": llm_config.anthropic_model,
            "openai": llm_config.openai_model,
            "google": llm_config.google_model,
        }.get(provider, "")
        return cls(
            provider=provider,
            model=model,
            anthropic_api_key=llm_config.anthropic_api_key,
            openai_api_key=llm_config.openai_api_key,
            google_api_key=llm_config.google_api_key,
            timeout=llm_config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        max_tokens: int = 512,
    ) -> str:
        """Single-prompt completion."""
        return self.chat(
            [Message(role="user", content=prompt)],
            system=system,
            temperature=temperature,
            model=model,
            max_tokens=max_tokens,
        )

    def chat(
        self,
        messages: Sequence[Message],
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
    ) -> str:
        """Multi-turn completion over a user/assistant message history."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        model_name = model or self.model

        if self.provider == "anthropic":
            kwargs = {
                "model": model_name,
                "max_tokens": max_tokens,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "timeout": self.timeout,
            }
            if system:
                kwargs["system"] = system
            if temperature is not None:
                kwargs["temperature"] = temperature
            response = self._client.messages.create(**kwargs)
            return response.content[0].text.strip()

        if self.provider == "openai":
            payload = []
            if system:
                payload.append({"role": "system", "content": system})
            payload.extend({"role": m.role, "content": m.content} for m in messages)
            kwargs = {
                "model": model_name,
                "max_tokens": max_tokens,
                "messages": payload,
                "timeout": self.timeout,
            }
            if temperature is not None:
                kwargs["temperature"] = temperature
            response = self._client.chat.completions.create(**kwargs)
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            cache_key = hashlib.md5(f"{model_name}\x00{system or ''}".encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": model_name}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            gemini = self._google_models[cache_key]

            generation_config = {"max_output_tokens": max_tokens}
            if temperature is not None:
                generation_config["temperature"] = temperature
            response = gemini.generate_content(
                _to_gemini_contents(messages),
                generation_config=generation_config,
                request_options={"timeout": self.timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")


def _to_gemini_contents(messages: Sequence[Message]) -> List[dict]:
    # Gemini calls the assistant role "model"
    return [
        {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
        for m in messages
    ]
