"""
Explicit note references.

Users can point at notes directly inside a prompt:

    @notes:"Quoted Title"   title reference
    @notes:<uuid>           id reference
    @notes:word             partial title reference
    [[Wiki Title]]          title reference

Referenced notes skip intent resolution and search entirely (see
ExplicitExecutor).
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..common.content import parse_content
from ..common.document_store import DocumentStore
from ..common.schemas import Document

logger = logging.getLogger("groundwork.retriever.references")

MAX_REFERENCES = 5

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_AT_NOTES_QUOTED_RE = re.compile(r'@notes:"([^"]+)"')
_AT_NOTES_PLAIN_RE = re.compile(r"@notes:(\S+)")
_WIKI_LINK_RE = re.compile(r"\[\[([^\]]+)\]\]")
_WHITESPACE_RE = re.compile(r"\s+")


class ReferenceType(str, Enum):
    ID = "id"
    TITLE = "title"
    PARTIAL = "partial"


class ReferenceLimitError(ValueError):
    """More note references than a single prompt may carry."""

    def __init__(self, count: int):
        super().__init__(f"too many note references: maximum {MAX_REFERENCES} allowed, got {count}")
        self.count = count


@dataclass(frozen=True)
class ParsedReference:
    type: ReferenceType
    value: str
    syntax: str  # "@notes:" or "[[]]"
    raw: str


@dataclass
class ReferenceParseResult:
    references: List[ParsedReference] = field(default_factory=list)
    clean_prompt: str = ""

    @property
    def has_references(self) -> bool:
        return bool(self.references)


@dataclass
class ResolvedReference:
    reference: ParsedReference
    document: Optional[Document] = None
    error: str = ""

    @property
    def found(self) -> bool:
        return self.document is not None


def parse_references(prompt: str) -> ReferenceParseResult:
    """Extract references (quoted, then plain @notes:, then wiki links) and the cleaned prompt."""
    references: List[ParsedReference] = []

    for match in _AT_NOTES_QUOTED_RE.finditer(prompt):
        references.append(ParsedReference(ReferenceType.TITLE, match.group(1), "@notes:", match.group(0)))

    # Quoted forms would otherwise also match the plain pattern
    remaining = _AT_NOTES_QUOTED_RE.sub("", prompt)
    for match in _AT_NOTES_PLAIN_RE.finditer(remaining):
        value = match.group(1)
        ref_type = ReferenceType.ID if _UUID_RE.match(value) else ReferenceType.PARTIAL
        references.append(ParsedReference(ref_type, value, "@notes:", match.group(0)))

    for match in _WIKI_LINK_RE.finditer(prompt):
        references.append(ParsedReference(ReferenceType.TITLE, match.group(1), "[[]]", match.group(0)))

    clean = prompt
    for ref in references:
        clean = clean.replace(ref.raw, "", 1)
    clean = _WHITESPACE_RE.sub(" ", clean).strip()

    return ReferenceParseResult(references=references, clean_prompt=clean)


def validate_references(references: Sequence[ParsedReference]) -> None:
    """Raises ReferenceLimitError above MAX_REFERENCES."""
    if len(references) > MAX_REFERENCES:
        raise ReferenceLimitError(len(references))


def summarize_unresolved(resolved: Sequence[ResolvedReference]) -> str:
    missing = [r.reference.value for r in resolved if not r.found]
    if not missing:
        return ""
    return "Could not find: " + ", ".join(missing)


class ReferenceResolver:
    """Resolves parsed references to a user's notes, de-duplicated by id."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def resolve(self, user_id: str, references: Sequence[ParsedReference]) -> List[ResolvedReference]:
        resolved: List[ResolvedReference] = []
        seen_ids = set()

        for ref in references:
            try:
                doc = self._lookup(user_id, ref)
            except Exception as e:
                logger.warning("Failed to resolve reference %r: %s", ref.value, e)
                resolved.append(ResolvedReference(reference=ref, error=str(e)))
                continue

            if doc is None:
                resolved.append(ResolvedReference(reference=ref, error="note not found"))
                continue
            if doc.id in seen_ids:
                continue
            seen_ids.add(doc.id)

            resolved.append(ResolvedReference(
                reference=ref,
                document=Document(
                    id=doc.id,
                    title=doc.title,
                    content=parse_content(doc.content),
                    metadata=dict(doc.metadata),
                    hydrated=True,
                ),
            ))

        logger.info(
            "Resolved %d of %d reference(s)",
            sum(1 for r in resolved if r.found), len(references),
        )
        return resolved

    def _lookup(self, user_id: str, ref: ParsedReference) -> Optional[Document]:
        if ref.type == ReferenceType.ID:
            found = self._store.find_by_ids([ref.value])
            # Ids are global; only the owner may reference a note
            owned = [d for d in found if d.metadata.get("user_id") == user_id]
            return owned[0] if owned else None

        if ref.type == ReferenceType.TITLE:
            doc = self._store.find_by_title(user_id, ref.value)
            if doc is not None:
                return doc

        matches = self._store.search_titles(user_id, ref.value, limit=1)
        return matches[0] if matches else None
