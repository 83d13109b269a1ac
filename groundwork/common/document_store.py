"""
Document Store

Read-path contract the pipeline needs from note storage, plus a process-local
implementation backed by numpy for the CLI and tests.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import numpy as np

from .content import parse_content
from .embedding_service import TASK_DOCUMENT, batch_cosine_similarity
from .schemas import Document

logger = logging.getLogger("groundwork.common.document_store")

CHUNK_SIZE = 1500
CHUNK_OVERLAP = 200


@dataclass
class ScoredDocument:
    """One similarity hit. ``document.content`` is the matching chunk only."""
    document: Document
    similarity: float


class DocumentStore(Protocol):
    """Note storage as seen by the retrieval pipeline."""

    def find_by_ids(self, ids: Sequence[str]) -> List[Document]: ...

    def search_similar_with_score(
        self,
        vector: Sequence[float],
        top_k: int,
        user_id: str,
        min_score: float = 0.0,
    ) -> List[ScoredDocument]: ...

    def find_by_title(self, user_id: str, title: str) -> Optional[Document]: ...

    def search_titles(self, user_id: str, fragment: str, limit: int = 5) -> List[Document]: ...


def split_text(text: str, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> List[str]:
    """Character windows of ``chunk_size`` with ``overlap`` shared characters."""
    if len(text) <= chunk_size:
        return [text]

    step = chunk_size - overlap
    if step <= 0:
        step = chunk_size

    chunks = []
    for start in range(0, len(text), step):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
    return chunks


@dataclass
class _StoredNote:
    id: str
    user_id: str
    title: str
    content: str
    metadata: Dict[str, Any]


class InMemoryDocumentStore:
    """
    User-scoped notes with chunk embeddings held in memory.

    Every note is split into overlapping chunks; each chunk is embedded with
    its note title prepended and scored independently, so one note can yield
    several hits for a query.
    """

    def __init__(self, embedder, chunk_size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP):
        self._embedder = embedder
        self._chunk_size = chunk_size
        self._overlap = overlap
        self._lock = threading.RLock()
        self._notes: Dict[str, _StoredNote] = {}
        self._chunk_owner: List[str] = []  # note id per chunk row
        self._chunk_text: List[str] = []
        self._matrix = np.zeros((0, 0), dtype=np.float32)

    def __len__(self) -> int:
        return len(self._notes)

    def add_document(
        self,
        user_id: str,
        title: str,
        content: str,
        *,
        document_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Document:
        """Store a note and index its chunks. Returns the stored document."""
        note_id = document_id or str(uuid.uuid4())
        text = parse_content(content)
        chunks = [c for c in split_text(text, self._chunk_size, self._overlap) if c.strip()] or [title]

        vectors = self._embedder.embed([f"{title}\n\n{c}" for c in chunks], task_type=TASK_DOCUMENT)
        rows = np.asarray(vectors, dtype=np.float32)
        norms = np.linalg.norm(rows, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        rows = rows / norms

        with self._lock:
            if note_id in self._notes:
                self._remove_chunks(note_id)
            self._notes[note_id] = _StoredNote(
                id=note_id,
                user_id=user_id,
                title=title,
                content=content,
                metadata=dict(metadata or {}),
            )
            self._chunk_owner.extend([note_id] * len(chunks))
            self._chunk_text.extend(chunks)
            self._matrix = rows if self._matrix.size == 0 else np.vstack([self._matrix, rows])

        logger.debug("Indexed note %s (%s) as %d chunk(s)", note_id, title, len(chunks))
        return self._to_document(self._notes[note_id])

    def _remove_chunks(self, note_id: str) -> None:
        keep = [i for i, owner in enumerate(self._chunk_owner) if owner != note_id]
        self._chunk_owner = [self._chunk_owner[i] for i in keep]
        self._chunk_text = [self._chunk_text[i] for i in keep]
        self._matrix = self._matrix[keep] if keep else np.zeros((0, 0), dtype=np.float32)

    def _to_document(self, note: _StoredNote) -> Document:
        return Document(
            id=note.id,
            title=note.title,
            content=parse_content(note.content),
            metadata={**note.metadata, "user_id": note.user_id},
            hydrated=True,
        )

    def find_by_ids(self, ids: Sequence[str]) -> List[Document]:
        """Full documents for the ids that exist, in request order."""
        with self._lock:
            return [self._to_document(self._notes[i]) for i in ids if i in self._notes]

    def search_similar_with_score(
        self,
        vector: Sequence[float],
        top_k: int,
        user_id: str,
        min_score: float = 0.0,
    ) -> List[ScoredDocument]:
        """
        Chunk-level similarity search scoped to one user.

        Returns at most ``top_k`` hits sorted by descending similarity. The
        same note may appear more than once.
        """
        with self._lock:
            if self._matrix.size == 0:
                return []
            scores = batch_cosine_similarity(vector, self._matrix)
            owners = list(self._chunk_owner)
            texts = list(self._chunk_text)

        order = np.argsort(-scores, kind="stable")
        hits: List[ScoredDocument] = []
        for row in order:
            note = self._notes.get(owners[row])
            if note is None or note.user_id != user_id:
                continue
            similarity = float(scores[row])
            if similarity < min_score:
                break
            hits.append(ScoredDocument(
                document=Document(id=note.id, content=texts[row], score=similarity),
                similarity=similarity,
            ))
            if len(hits) >= top_k:
                break
        return hits

    def find_by_title(self, user_id: str, title: str) -> Optional[Document]:
        """Exact (case-insensitive) title match."""
        wanted = title.strip().lower()
        with self._lock:
            for note in self._notes.values():
                if note.user_id == user_id and note.title.strip().lower() == wanted:
                    return self._to_document(note)
        return None

    def search_titles(self, user_id: str, fragment: str, limit: int = 5) -> List[Document]:
        """Notes whose title contains ``fragment`` (case-insensitive)."""
        needle = fragment.strip().lower()
        if not needle:
            return []
        with self._lock:
            matches = [
                self._to_document(note)
                for note in self._notes.values()
                if note.user_id == user_id and needle in note.title.lower()
            ]
        return matches[:limit]
