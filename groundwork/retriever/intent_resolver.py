"""
Intent Resolver (Phase 1)

Pure LLM classification of what the user wants to DO, aware of the session
state. No retrieval happens here.

One call at temperature 0; anything that goes wrong (call failure, no JSON,
unknown action) degrades to a rule-based intent so the pipeline always makes
progress.
"""

import logging
from typing import Optional, Sequence

from pydantic import ValidationError

from ..common.llm_client import LLMProvider, Message
from ..common.llm_utils import parse_llm_json
from ..common.schemas import Intent, IntentAction, Scope, Session

logger = logging.getLogger("groundwork.retriever.intent_resolver")

HISTORY_TURNS = 4
HISTORY_CHARS = 300

INTENT_DEFINITIONS = """<intent_definitions>
Choose ONE intent that best matches what the user wants:

SEARCH: User wants to find notes on a NEW topic or START a new search
  - Use when: User introduces a new subject (e.g. 'answer my english exam', 'search for biology')
  - Use when: 'INITIAL_STATE' is active (No notes loaded yet)
  - Requires: query (what to search for)

FOCUS: User wants to select ONE specific item from the list
  - Use when: User targets a SINGLE file (e.g. 'first one', 'file 2', 'English Exam')
  - Use when: User targets CONTENT within a SINGLE file (e.g. 'read all questions in the third file', 'summarize file 1')
  - Rule: If the target is singular ('third file'), intent MUST be FOCUS.
  - Requires: target (1-indexed)

AGGREGATE: User wants information derived from MULTIPLE notes or ALL available data
  - Use when: User asks for a 'Profit', 'Total', 'Summary', 'Count', or 'Compare'
  - Use when: The answer requires combining data from different files (e.g. 'calculate business profit')
  - Use when: User asks about the collection as a whole (e.g. 'what are these files about?', 'all of them')
  - Rule: If the target is plural or group-wise ('these', 'all', 'both'), intent MUST be AGGREGATE.

ANSWER: User asks a follow-up on the CURRENTLY focused note or the PREVIOUS answer
  - Use when: A note IS ALREADY focused (see <session_state>) and the user asks a follow-up
  - Use when: User asks 'are you sure?', 'why is that?', 'explain more' (context is the previous answer)
  - INVALID if 'INITIAL_STATE' (no context yet). Use SEARCH.
  - INVALID if the user explicitly targets a DIFFERENT file (use FOCUS)

BROWSE: User wants to see the list of options again
  - Use when: 'show options', 'what are my choices', 'list them'

META_ANALYSIS: User asks about the conversation itself
  - Use when: 'what did I just ask?', 'summarize our chat', 'report on previous answers'
  - Scope: NONE (does not require note content)

CLARIFY: Cannot determine intent with confidence
  - Use only if the query is gibberish or completely unrelated to notes/chat.
</intent_definitions>

<explicitness_assessment>
Assess how EXPLICIT the user's instruction is:

HIGH: A clear, actionable command that can be executed immediately
  - 'Answer all the questions in this exam'
  - 'Calculate my total profit'
  - 'Summarize this document'

MEDIUM: The intent is clear but the scope or target is ambiguous
  - 'Tell me about the exam' (which exam?)
  - 'What's in my notes?' (all notes?)

LOW: The request is vague or exploratory
  - 'Something about costs'
  - 'Help me with this'

Rule: If Explicitness is HIGH, the system executes directly without asking.
      If Explicitness is LOW, the system may browse or ask for clarification.
</explicitness_assessment>

<output_format>
Respond with ONLY valid JSON:
{
  "action": "SEARCH|FOCUS|AGGREGATE|ANSWER|BROWSE|META_ANALYSIS|CLARIFY",
  "target": 1,
  "query": "search terms if SEARCH, otherwise empty",
  "scope": "ALL|SINGLE|NONE",
  "explicitness": "HIGH|MEDIUM|LOW",
  "confidence": 0.95,
  "reasoning": "Brief explanation"
}
</output_format>"""


def describe_session(session: Session) -> str:
    """The <session_state> block: what the user is looking at right now."""
    lines = ["<session_state>"]
    if session.has_single_focus:
        lines.append(f'FOCUSED_NOTE: "{session.focused_note.title}"')
        lines.append("User is currently viewing a specific note.")
    elif session.candidates:
        if session.is_aggregated:
            lines.append("AGGREGATED: The answer so far combined ALL of these notes:")
        else:
            lines.append("BROWSING_MODE: User was shown a list of options:")
        for i, c in enumerate(session.candidates, 1):
            lines.append(f'  {i}. "{c.title}"')
        if not session.is_aggregated:
            lines.append("NO note is currently focused. User must SELECT one first.")
    else:
        lines.append("INITIAL_STATE: No notes loaded yet.")
    lines.append("</session_state>")
    return "\n".join(lines)


def fallback_intent(query: str, session: Session) -> Intent:
    """Rule-based intent used whenever the LLM cannot be trusted."""
    if session.is_empty:
        return Intent(
            action=IntentAction.SEARCH,
            query=query,
            scope=Scope.NONE,
            reasoning="Fallback: no context available, defaulting to search",
        )

    if session.has_single_focus:
        return Intent(
            action=IntentAction.ANSWER,
            scope=Scope.SINGLE,
            reasoning="Fallback: note is focused, assuming follow-up question",
        )

    return Intent(
        action=IntentAction.BROWSE,
        scope=Scope.NONE,
        reasoning="Fallback: in browsing mode, showing options",
    )


class IntentResolver:
    """Phase 1: utterance + session -> Intent."""

    def __init__(self, llm: Optional[LLMProvider]):
        self._llm = llm

    def resolve(self, query: str, history: Sequence[Message], session: Session) -> Intent:
        """
        Classify the user's utterance.

        Never raises: failures produce ``fallback_intent(query, session)``.
        """
        if self._llm is None:
            return fallback_intent(query, session)

        prompt = self.build_prompt(query, history, session)

        try:
            raw = self._llm.generate(prompt, temperature=0.0, max_tokens=300)
        except Exception as e:
            logger.warning("Intent resolution failed, using fallback: %s", e)
            return fallback_intent(query, session)

        data = parse_llm_json(raw)
        if not data:
            logger.warning("Intent response had no JSON object, using fallback: %r", raw[:200] if raw else raw)
            return fallback_intent(query, session)

        try:
            intent = Intent.from_llm_payload(data)
        except ValidationError as e:
            logger.warning("Intent validation failed, using fallback: %s", e.errors()[:1])
            return fallback_intent(query, session)

        logger.info(
            "Resolved: %s (target=%d, scope=%s, explicitness=%s, confidence=%.2f) - %s",
            intent.action.value, intent.target, intent.scope.value,
            intent.explicitness.value, intent.confidence, intent.reasoning,
        )
        return intent

    def build_prompt(self, query: str, history: Sequence[Message], session: Session) -> str:
        parts = [
            "<system>\n"
            "You are an intent analyzer. Your ONLY job is to understand what the user wants to DO.\n"
            "You do NOT answer questions. You only classify intent.\n"
            "</system>",
            describe_session(session),
        ]

        recent = list(history)[-HISTORY_TURNS:]
        if recent:
            turns = "\n".join(f"{m.role}: {m.content[:HISTORY_CHARS]}" for m in recent)
            parts.append(f"<recent_conversation>\n{turns}\n</recent_conversation>")

        parts.append(f"<user_query>\n{query}\n</user_query>")
        parts.append(INTENT_DEFINITIONS)
        return "\n\n".join(parts)
