"""
Reranking Module

Blends the semantic score with keyword (Jaccard) overlap so that exact
terminology such as prices and proper nouns is not under-weighted.
"""

from typing import List, Optional, Set
from dataclasses import dataclass, replace

from .retrieve import ScoredChunk
from .text import extract_keywords, SHORT_TOKEN_MAX_LENGTH


@dataclass
class RerankConfig:
    """Configuration for hybrid reranking. Weights are not normalized."""
    enabled: bool = True
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    short_token_max_length: int = SHORT_TOKEN_MAX_LENGTH


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    """|A & B| / |A | B|, or 0.0 when both are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class HybridReranker:
    """Semantic + keyword reranker."""

    def __init__(self, config: Optional[RerankConfig] = None):
        self.config = config or RerankConfig()

    def rerank(
        self,
        query: str,
        chunks: List[ScoredChunk],
        config: Optional[RerankConfig] = None
    ) -> List[ScoredChunk]:
        """
        Rerank chunks by blended score.

        Args:
            query: Search query
            chunks: Candidates carrying a semantic score
            config: Per-call weights (overrides the instance config)

        Returns:
            New list, best blended score first; ties keep input order
        """
        config = config or self.config
        query_keywords = extract_keywords(query, config.short_token_max_length)

        rescored = []
        for chunk in chunks:
            keyword_score = jaccard_similarity(
                query_keywords,
                extract_keywords(chunk.text, config.short_token_max_length)
            )
            blended = (
                config.semantic_weight * chunk.semantic_score
                + config.keyword_weight * keyword_score
            )
            rescored.append(replace(chunk, keyword_score=keyword_score, blended_score=blended))

        # sorted() is stable with reverse=True
        return sorted(rescored, key=lambda c: c.blended_score, reverse=True)

