"""
Relevance scoring for keyword search over nodes.

One scoring function serves both the keyword lookup used by the assistant
and the free-text search; they differ only in their field weights.
"""

import re
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from ..models import ObsidianNode


class ScoringWeights(BaseModel):
    """
    Points awarded per query term for each node field.
    """

    title: float = Field(..., description="Term appears in the title")
    content: float = Field(..., description="Per occurrence of the term in the content")
    content_cap: Optional[int] = Field(None, description="Max occurrences counted per term, None for no cap")
    tag: float = Field(..., description="Per tag containing the term")
    path: float = Field(0.0, description="Term appears in the path")
    phrase_bonus: float = Field(0.0, description="Whole query phrase appears in title or content")


KEYWORD_WEIGHTS = ScoringWeights(title=3, content=1, tag=2)
SEARCH_WEIGHTS = ScoringWeights(title=10, content=1, content_cap=10, tag=5, path=2, phrase_bonus=20)

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def tokenize_query(query: str, min_length: int = 3) -> List[str]:
    """Lower-cased distinct words of a query, skipping very short ones."""
    words = [w for w in TOKEN_PATTERN.findall((query or "").lower()) if len(w) >= min_length]
    return list(dict.fromkeys(words))


def score_node(node: ObsidianNode, terms: Sequence[str], weights: ScoringWeights, phrase: Optional[str] = None) -> float:
    title = node.title.lower()
    content = (node.content or "").lower()
    path = node.path.lower()
    tags = [tag.lower() for tag in node.tags]

    score = 0.0
    for term in terms:
        term = term.lower()
        if not term:
            continue
        if term in title:
            score += weights.title
        occurrences = content.count(term)
        if weights.content_cap is not None:
            occurrences = min(occurrences, weights.content_cap)
        score += occurrences * weights.content
        score += sum(weights.tag for tag in tags if term in tag)
        if weights.path and term in path:
            score += weights.path

    if phrase and weights.phrase_bonus:
        phrase = phrase.strip().lower()
        if phrase and (phrase in title or phrase in content):
            score += weights.phrase_bonus
    return score


def score_nodes(
    nodes: Sequence[ObsidianNode],
    terms: Sequence[str],
    weights: ScoringWeights,
    phrase: Optional[str] = None
) -> List[Tuple[ObsidianNode, float]]:
    """
    Score every node and keep the positive ones, best first.

    Ties keep the input order.
    """
    scored = [(node, score_node(node, terms, weights, phrase)) for node in nodes]
    scored = [item for item in scored if item[1] > 0]
    return sorted(scored, key=lambda item: -item[1])
