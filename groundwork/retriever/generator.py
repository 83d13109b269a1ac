"""
Response Generator (Phase 3)

Builds a strict, source-bounded prompt from a GroundedContext and asks the
chat model for the answer.

Key principle: the grounded notes are the ONLY data source. Citations are
attached by the caller from ``context.ids``; the model never writes them.
"""

import logging
from typing import Optional, Sequence

from ..common.config import NuanceConfig
from ..common.language import detect_conversation_language, language_instruction
from ..common.llm_client import LLMProvider, Message
from ..common.schemas import Scope
from .grounder import GroundedContext

logger = logging.getLogger("groundwork.retriever.generator")

GENERATION_FAILED = "Sorry, an error occurred while generating the answer."
NO_CONTEXT = "Sorry, no context is available to answer your question."

META_ANALYSIS_PROMPT = """<task>
Answer the user's question about the CONVERSATION HISTORY above.
Do NOT look for new information.
{language_instruction}
</task>

Question: {query}"""

TASK_INSTRUCTIONS = """<task_instructions>
You are a diligent assistant answering based on the provided content.

EXECUTION RULES (MUST FOLLOW):
1. ANSWER DIRECTLY if sufficient data exists. Never ask 'Do you want me to...'.
2. Extract ALL relevant values from ALL provided notes.
3. Show your work step-by-step for any calculations.
4. Always provide a FINAL concrete answer (e.g., 'Profit = $14,000').

RESPONSE STYLE:
1. Match your tone and format to the user's question style.
2. For direct note references (the user explicitly mentions a note), use 'According to [Title]...'.
3. For exploratory questions (e.g., 'I think I have notes about...'), be conversational and confirmatory.
4. DO NOT use [N1], [1], or similar citation markers. Citations are handled separately by the system.

GROUNDING RULES:
1. Answer ONLY using the text in <grounded_reference_material>.
2. If the user asks for 'all' or 'every', be EXHAUSTIVE.
3. For counting, list items explicitly and count what is visible.

FORMATTING:
1. Use Markdown: ## for sections, **bold** for answers and key terms, tables for comparisons.
2. Use numbered lists for sequential steps and bullet points otherwise.
3. Keep paragraphs short and lead with the most relevant information.

{language_instruction}
</task_instructions>"""


class ResponseGenerator:
    """Phase 3: GroundedContext -> answer text."""

    def __init__(self, llm: Optional[LLMProvider], max_tokens: int = 2048):
        self._llm = llm
        self._max_tokens = max_tokens

    def generate_from_grounded_context(
        self,
        query: str,
        context: Optional[GroundedContext],
        history: Sequence[Message] = (),
        nuance: Optional[NuanceConfig] = None,
    ) -> str:
        """
        Generate the answer for one turn.

        A nuance adds its system prompt (and model, if set) to the call.
        Never raises: an LLM failure returns a fixed apology, with no retry.
        """
        language = detect_conversation_language(query, history)

        if context is not None and context.scope == Scope.NONE:
            logger.info("[PHASE 3] Meta-analysis requested (scope NONE)")
            prompt = META_ANALYSIS_PROMPT.format(
                query=query, language_instruction=language_instruction(language)
            )
            return self._chat(history, prompt, nuance)

        if context is None or not context.notes:
            logger.error("Cannot generate: no grounded context")
            return NO_CONTEXT

        prompt = self.build_grounded_prompt(query, context, language_instruction(language))
        answer = self._chat(history, prompt, nuance)
        if answer != GENERATION_FAILED:
            logger.info(
                "[PHASE 3] Answer generated from %d notes (scope %s)",
                len(context.notes), context.scope.value,
            )
        return answer

    def _chat(self, history: Sequence[Message], prompt: str, nuance: Optional[NuanceConfig] = None) -> str:
        if self._llm is None:
            logger.error("LLM generation failed: no LLM configured")
            return GENERATION_FAILED
        if nuance is not None:
            logger.info("[PHASE 3] Applying nuance %r", nuance.key)
        try:
            return self._llm.chat(
                [*history, Message(role="user", content=prompt)],
                system=nuance.system_prompt if nuance else None,
                model=(nuance.model or None) if nuance else None,
                max_tokens=self._max_tokens,
            )
        except Exception as e:
            logger.error("LLM generation failed: %s", e, exc_info=True)
            return GENERATION_FAILED

    def build_grounded_prompt(
        self,
        query: str,
        context: GroundedContext,
        language_line: str = "",
    ) -> str:
        parts = []

        # What the user sees, and which item they picked
        if context.candidates:
            menu = "".join(f"{i}. {c.title}\n" for i, c in enumerate(context.candidates, 1))
            parts.append(
                "<context_menu>\n"
                "The user is viewing the following list of documents:\n"
                f"{menu}"
                "</context_menu>"
            )
            if context.focus_index > 0:
                parts.append(
                    f"SYSTEM CONFIRMATION: The user selected Item #{context.focus_index}. "
                    f"The content below belongs to Item #{context.focus_index}."
                )

        notes = []
        for note in context.notes:
            logger.debug("Grounding note %r (%d characters)", note.title, len(note.content))
            notes.append(
                f"\n--- CONTENT OF: {note.title} ---\n"
                f"{note.content}\n"
                f"--- END OF: {note.title} ---\n"
            )
        parts.append(
            "<grounded_reference_material>\n"
            "CRITICAL: This is the ONLY data source. Do NOT use outside knowledge.\n"
            "Structure: Each note is separated by headers. Treat them as distinct sources.\n"
            + "".join(notes)
            + "</grounded_reference_material>"
        )

        parts.append(TASK_INSTRUCTIONS.format(language_instruction=language_line))
        parts.append(f"<user_question>\n{query}\n</user_question>")
        parts.append("Answer:")
        return "\n\n".join(parts)
