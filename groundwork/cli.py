"""
Groundwork interactive chat.

Loads a notes file into an in-memory store and runs the retrieval pipeline
over stdin. Lines containing explicit references (@notes:..., [[Title]]) go
straight to the explicit pipeline. Prefix a line with /bypass to chat without
the notes, or with /nuance:<key> (/bypass/nuance:<key>) to apply a nuance from
the "nuances" section of config.json. Bypass and nuance modes stay on for the
session until another prefix changes them.

Usage:
    groundwork chat --notes notes.json [--user USER] [--session SESSION]

notes.json is a list of {"title": ..., "content": ..., "id": optional}.
"""

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from .common.config import load_config
from .common.document_store import InMemoryDocumentStore
from .common.embedding_service import EmbeddingService
from .common.llm_client import LLMClient, Message
from .common.schemas import Route
from .retriever.router import build_router

logger = logging.getLogger("groundwork.cli")


def load_notes(store: InMemoryDocumentStore, path: Path, user_id: str) -> int:
    """Index every note in ``path`` for ``user_id``. Returns how many were loaded."""
    with open(path, encoding="utf-8") as f:
        notes = json.load(f)
    if not isinstance(notes, list):
        raise ValueError(f"{path} must contain a JSON list of notes")

    loaded = 0
    for note in notes:
        title = str(note.get("title") or "").strip()
        content = str(note.get("content") or "")
        if not title and not content.strip():
            logger.warning("Skipping empty note entry: %r", note)
            continue
        store.add_document(user_id, title, content, document_id=note.get("id"))
        loaded += 1
    return loaded


def run_chat(args: argparse.Namespace) -> int:
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    llm = LLMClient.from_config(config.llm)
    if not llm.is_available:
        print("[Groundwork] WARNING: LLM not configured, using rule-based fallbacks only")

    embedder = EmbeddingService(mode=config.embedding.mode, model=config.embedding.model)
    store = InMemoryDocumentStore(embedder)

    print(f"[Groundwork] Indexing notes from {args.notes} (model: {config.embedding.model})...")
    try:
        count = load_notes(store, Path(args.notes), args.user)
    except (OSError, ValueError) as e:
        print(f"[Groundwork] ERROR: Failed to load notes: {e}")
        return 1
    print(f"[Groundwork] {count} notes loaded. Type your question, or 'exit' to quit.")

    router = build_router(llm if llm.is_available else None, embedder, store, config)
    session_id = args.session or str(uuid.uuid4())
    history: List[Message] = []

    while True:
        try:
            line = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not line:
            continue
        if line.lower() in ("exit", "quit"):
            break

        result = router.execute(args.user, session_id, line, history)

        if result.route != Route.RAG:
            print(f"[{result.route.value}]")
        print(result.reply)
        if result.citations:
            print("\nSources:")
            for citation in result.citations:
                print(f"  - {citation.title} ({citation.document_id})")
        print()

        history.append(Message(role="user", content=line))
        history.append(Message(role="assistant", content=result.reply))

    return 0


def main(argv=None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Conversational retrieval over your notes")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Chat with a notes file")
    chat.add_argument("--notes", required=True, help="Path to a JSON list of notes")
    chat.add_argument("--user", default="local", help="User id owning the notes")
    chat.add_argument("--session", default=None, help="Chat session id (default: random)")

    args = parser.parse_args(argv)
    if args.command == "chat":
        return run_chat(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
