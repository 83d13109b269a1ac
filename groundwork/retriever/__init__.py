"""
Retriever - Conversational Note Retrieval

Answers questions about a user's notes across a multi-turn conversation.

Key Components:
- IntentResolver: Classifies the turn (search, focus, aggregate, answer, ...)
- Grounder: Decides which notes an answer may use, or asks the user first
- ResponseGenerator: Source-bounded answer generation
- PipelineExecutor / ExplicitExecutor: One chat turn end-to-end
- BypassExecutor: Plain LLM chat without the notes (/bypass)
- PromptRouter: Picks the executor from the prompt prefix and session mode

Pipeline:
1. Resolve intent from the query, recent history, and session state
2. Ground: search, filter, focus or aggregate, and move the session state
3. Generate the answer from the grounded notes only
4. Attach citations from the grounded note ids
"""

from .bypass import BypassExecutor
from .executor import ExecutionResult, ExplicitExecutor, PipelineExecutor, build_executors
from .generator import ResponseGenerator
from .grounder import GroundedContext, Grounder, GroundingError, GroundingResult
from .intent_resolver import IntentResolver
from .references import ReferenceResolver, parse_references
from .router import PromptRouter, build_router, parse_prompt

__all__ = [
    "BypassExecutor",
    "ExecutionResult",
    "ExplicitExecutor",
    "PipelineExecutor",
    "build_executors",
    "ResponseGenerator",
    "GroundedContext",
    "Grounder",
    "GroundingError",
    "GroundingResult",
    "IntentResolver",
    "ReferenceResolver",
    "parse_references",
    "PromptRouter",
    "build_router",
    "parse_prompt",
]
