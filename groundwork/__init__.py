"""
Groundwork

Conversational retrieval over a personal notes corpus.

Philosophy:
- Every answer is grounded on an explicit set of notes, never on chat history
- Citations come from the grounded notes, not from the model's output
- Ambiguity is resolved with the user before answering
- Session state moves only through explicit transitions

Usage:
    from groundwork.common import load_config, LLMClient, EmbeddingService
    from groundwork.common import InMemoryDocumentStore, SessionStore
    from groundwork.retriever import build_executors
"""

__version__ = "0.1.0"
