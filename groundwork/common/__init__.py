"""
Groundwork Common Module

Shared infrastructure for the retrieval pipeline.
"""

from .config import GroundworkConfig, load_config
from .document_store import DocumentStore, InMemoryDocumentStore
from .embedding_service import EmbeddingService
from .llm_client import LLMClient, Message
from .session_store import SessionStore

__all__ = [
    "GroundworkConfig",
    "load_config",
    "DocumentStore",
    "InMemoryDocumentStore",
    "EmbeddingService",
    "LLMClient",
    "Message",
    "SessionStore",
]
