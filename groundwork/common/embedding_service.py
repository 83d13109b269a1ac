"""
Embedding Service

On-device embedding generation using fastembed.
Vectors are L2-normalized so a dot product equals cosine similarity.
"""

import logging
from typing import List, Protocol

import numpy as np

from .config import DEFAULT_EMBEDDING_MODEL

logger = logging.getLogger("groundwork.common.embedding_service")


# Task types understood by embed_single; anything else is treated as a passage
TASK_QUERY = "RETRIEVAL_QUERY"
TASK_DOCUMENT = "RETRIEVAL_DOCUMENT"


class EmbeddingProvider(Protocol):
    """What the pipeline needs from an embedding model."""

    def embed_single(self, text: str, task_type: str = TASK_QUERY) -> List[float]: ...


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class EmbeddingService:
    """
    Embedding service backed by fastembed.

    The model is loaded lazily on first use so that constructing the service
    (e.g. for a CLI --help) never downloads weights.
    """

    def __init__(self, mode: str = "femb", model: str = DEFAULT_EMBEDDING_MODEL):
        if mode != "femb":
            raise ValueError(f"Unsupported embedding mode: {mode}")
        self._mode = mode
        self._model_name = model
        self._model = None

    def _get_model(self):
        if self._model is None:
            from fastembed import TextEmbedding

            self._model = TextEmbedding(model_name=self._model_name)
            logger.info("Initialized embeddings with mode=%s, model=%s", self._mode, self._model_name)
        return self._model

    def embed(self, texts: List[str], task_type: str = TASK_DOCUMENT) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed
            task_type: TASK_QUERY for search queries, TASK_DOCUMENT for stored text

        Returns:
            List of embedding vectors (L2 normalized)
        """
        if not texts:
            return []

        model = self._get_model()
        if task_type == TASK_QUERY:
            vectors = list(model.query_embed(texts))
        else:
            vectors = list(model.passage_embed(texts))

        return _normalize(np.array(vectors, dtype=np.float32)).tolist()

    def embed_single(self, text: str, task_type: str = TASK_QUERY) -> List[float]:
        """
        Generate embedding for a single text.

        Raises:
            ValueError: on empty text
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return self.embed([text], task_type=task_type)[0]


def batch_cosine_similarity(query_vec: List[float], matrix: np.ndarray) -> np.ndarray:
    """
    Similarity between a query and every row of an L2-normalized matrix.
    """
    if matrix.size == 0:
        return np.zeros(0)

    query = _normalize(np.asarray(query_vec, dtype=np.float32))
    similarities = matrix @ query
    return np.clip(similarities, 0.0, 1.0)
