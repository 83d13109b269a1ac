"""
Adaptive Messenger

Every non-answer reply (ambiguity menus, not-found, invalid selection, lost
context, clarification) is written by the LLM so it follows the user's
language. The hardcoded English strings below are only used when the LLM
call fails or returns an empty reply, never to correct a language mismatch.
"""

import logging
from typing import Optional, Sequence

from ..common.language import detect_conversation_language, language_instruction
from ..common.llm_client import LLMProvider, Message
from ..common.schemas import Document

logger = logging.getLogger("groundwork.retriever.messenger")

FALLBACK_NOT_FOUND = "I couldn't find any notes matching your search. Try different keywords."
FALLBACK_CLARIFY = "Could you provide more details about what you're looking for?"
FALLBACK_LOST_CONTEXT = "I seem to have lost the context. Could you please search again?"
FALLBACK_NO_NOTES = "No notes are available. Please search for something first."
FALLBACK_NO_AGGREGATE = "No relevant notes found for aggregation."


def numbered_titles(candidates: Sequence[Document]) -> str:
    return "".join(f"{i}. {c.title}\n" for i, c in enumerate(candidates, 1))


def fallback_ambiguity(candidates: Sequence[Document]) -> str:
    return (
        "I found several relevant notes. Which one would you like to focus on?\n"
        + numbered_titles(candidates)
        + "\nOr say 'all' to get information from all of them."
    )


def fallback_browse(candidates: Sequence[Document]) -> str:
    return "Here are the available notes:\n" + numbered_titles(candidates)


def fallback_invalid_selection(max_options: int) -> str:
    return f"Invalid selection. Please choose a number between 1 and {max_options}."


class AdaptiveMessenger:
    """Short, templated LLM prompts for conversational (non-answer) replies."""

    def __init__(self, llm: Optional[LLMProvider]):
        self._llm = llm

    def _generate(
        self,
        kind: str,
        instructions: str,
        history: Sequence[Message],
        query: str,
        fallback: str,
    ) -> str:
        """
        Ask the LLM for one conversational message.

        The current utterance is quoted in the prompt and drives language
        detection. An empty reply counts as a failed call: both return
        ``fallback``.
        """
        if self._llm is None:
            return fallback

        language = detect_conversation_language(query, history)
        utterance = f'The user\'s latest message: "{query.strip()}"\n\n' if query.strip() else ""
        prompt = (
            f"{instructions}\n\n"
            f"{utterance}"
            f"{language_instruction(language)}\n"
            "Respond with ONLY the message:"
        )
        try:
            reply = self._llm.chat([*history, Message(role="user", content=prompt)], max_tokens=400)
            if not reply or not reply.strip():
                raise ValueError("empty reply")
        except Exception as e:
            logger.warning("LLM %s message failed, using fallback: %s", kind, e)
            return fallback

        return reply.strip()

    def ambiguity(self, query: str, candidates: Sequence[Document], history: Sequence[Message] = ()) -> str:
        instructions = (
            f'Generate a brief clarification message. The user searched for "{query}" '
            f"and {len(candidates)} notes were found.\n\n"
            f"Notes found:\n{numbered_titles(candidates)}\n"
            "Requirements:\n"
            "1. Match the user's language\n"
            "2. Be concise (2-3 sentences max before the list)\n"
            "3. Ask them to pick one or confirm \"all\"\n"
            "4. Keep the numbered list format and the titles unchanged"
        )
        return self._generate("ambiguity", instructions, history, query, fallback_ambiguity(candidates))

    def not_found(self, query: str, history: Sequence[Message] = ()) -> str:
        instructions = (
            f'Generate a brief "not found" message. The user searched for "{query}" '
            "but no notes were found.\n\n"
            "Requirements:\n"
            "1. Match the user's language (detect from the query)\n"
            "2. Be helpful and suggest trying different keywords\n"
            "3. Keep it to 1-2 sentences max"
        )
        return self._generate("not-found", instructions, history, query, FALLBACK_NOT_FOUND)

    def invalid_selection(self, max_options: int, history: Sequence[Message] = (), query: str = "") -> str:
        if max_options <= 0:
            instructions = (
                'Generate a brief message saying there is no list to choose from yet '
                "and the user should search for something first.\n\n"
                "Requirements:\n"
                "1. Match the conversation language\n"
                "2. Keep it to 1 sentence"
            )
            return self._generate("invalid-selection", instructions, history, query, FALLBACK_NO_NOTES)

        instructions = (
            f'Generate a brief "invalid selection" message. Valid options are 1 to {max_options}.\n\n'
            "Requirements:\n"
            "1. Match the conversation language\n"
            "2. Be helpful, not scolding\n"
            "3. Keep it to 1 sentence"
        )
        return self._generate(
            "invalid-selection", instructions, history, query, fallback_invalid_selection(max_options)
        )

    def browse(self, candidates: Sequence[Document], history: Sequence[Message] = (), query: str = "") -> str:
        instructions = (
            "Generate a brief message listing the available notes.\n\n"
            f"Notes:\n{numbered_titles(candidates)}\n"
            "Requirements:\n"
            "1. Match the conversation language\n"
            "2. Be concise (1 sentence intro)\n"
            "3. Keep the numbered list format and the titles unchanged"
        )
        return self._generate("browse", instructions, history, query, fallback_browse(candidates))

    def clarify(self, history: Sequence[Message] = (), query: str = "") -> str:
        instructions = (
            "Generate a brief clarification request asking the user to provide more details "
            "about which notes they are looking for.\n\n"
            "Requirements:\n"
            "1. Match the conversation language\n"
            "2. Be polite and helpful\n"
            "3. Keep it to 1 sentence"
        )
        return self._generate("clarify", instructions, history, query, FALLBACK_CLARIFY)

    def lost_context(self, history: Sequence[Message] = (), query: str = "") -> str:
        instructions = (
            "Generate a brief message saying you no longer know which note the user means "
            "and asking them to search again.\n\n"
            "Requirements:\n"
            "1. Match the conversation language\n"
            "2. Keep it to 1 sentence"
        )
        return self._generate("lost-context", instructions, history, query, FALLBACK_LOST_CONTEXT)

    def no_notes_loaded(self, history: Sequence[Message] = (), query: str = "") -> str:
        instructions = (
            "Generate a brief message saying no notes are loaded yet and the user should "
            "search for a topic first.\n\n"
            "Requirements:\n"
            "1. Match the conversation language\n"
            "2. Keep it to 1 sentence"
        )
        return self._generate("no-notes", instructions, history, query, FALLBACK_NO_NOTES)

    def nothing_to_aggregate(self, query: str, history: Sequence[Message] = ()) -> str:
        instructions = (
            f'Generate a brief message saying no relevant notes were found to combine for "{query}".\n\n'
            "Requirements:\n"
            "1. Match the user's language\n"
            "2. Suggest trying different keywords\n"
            "3. Keep it to 1 sentence"
        )
        return self._generate("aggregate-not-found", instructions, history, query, FALLBACK_NO_AGGREGATE)
