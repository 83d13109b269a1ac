"""Shared fakes: no network, no model downloads."""

import re
from typing import List, Optional, Sequence

import pytest

from groundwork.common.document_store import InMemoryDocumentStore

VOCABULARY = (
    "english", "exam", "grammar", "vocabulary", "math", "budget", "profit",
    "fund", "class", "trip", "recipe", "travel", "sales", "q1", "q2",
)


class KeywordEmbedder:
    """Bag-of-keywords vectors; texts sharing keywords are similar."""

    def __init__(self, vocabulary: Sequence[str] = VOCABULARY):
        self.vocabulary = list(vocabulary)
        self.calls = 0

    def _vector(self, text: str) -> List[float]:
        words = re.findall(r"[a-z0-9]+", text.lower())
        vec = [float(words.count(term)) for term in self.vocabulary]
        vec.append(0.1)  # never all-zero
        return vec

    def embed(self, texts, task_type="RETRIEVAL_DOCUMENT"):
        self.calls += 1
        return [self._vector(t) for t in texts]

    def embed_single(self, text, task_type="RETRIEVAL_QUERY"):
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return self._vector(text)


class ScriptedLLM:
    """
    Answers by prompt kind.

    Intent prompts pop ``intents`` in order; relevance prompts return
    ``relevance``; grounded/meta prompts return ``answer``; anything else
    (adaptive messages) returns ``message``, or raises when it is None so the
    English fallback is used. Bypass turns (plain prompts) get ``message`` too.
    """

    def __init__(
        self,
        intents: Sequence[str] = (),
        relevance: str = "",
        answer: str = "Grounded answer.",
        message: Optional[str] = None,
    ):
        self.intents = list(intents)
        self.relevance = relevance
        self.answer = answer
        self.message = message
        self.prompts: List[str] = []
        self.chat_calls: List[dict] = []

    def generate(self, prompt, *, system=None, temperature=None, model=None, max_tokens=512):
        self.prompts.append(prompt)
        if "<intent_definitions>" in prompt:
            if not self.intents:
                raise RuntimeError("no scripted intent left")
            return self.intents.pop(0)
        if "Analyze the relevance" in prompt:
            return self.relevance
        return ""

    def chat(self, messages, *, system=None, temperature=None, model=None, max_tokens=1024):
        prompt = messages[-1].content
        self.prompts.append(prompt)
        self.chat_calls.append({"messages": list(messages), "system": system, "model": model})
        if "<grounded_reference_material>" in prompt or "CONVERSATION HISTORY" in prompt:
            return self.answer
        if self.message is None:
            raise RuntimeError("scripted messenger failure")
        return self.message


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def store(embedder):
    return InMemoryDocumentStore(embedder)
