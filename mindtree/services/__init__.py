"""Services over the note graph: queries, search, context and the assistant."""

from .llm import LLMClient
from .obsidian_service import ObsidianService
from .rag import RagService
from .scoring import KEYWORD_WEIGHTS, SEARCH_WEIGHTS, ScoringWeights, score_nodes
from .subprompts import SubpromptService

__all__ = [
    "LLMClient",
    "ObsidianService",
    "RagService",
    "ScoringWeights",
    "KEYWORD_WEIGHTS",
    "SEARCH_WEIGHTS",
    "score_nodes",
    "SubpromptService"
]
