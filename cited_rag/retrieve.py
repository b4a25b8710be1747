"""
Retrieval Module

Scores every stored chunk against the query embedding, drops candidates
under the relevance floor and optionally hands the rest to a reranker.
"""

import logging
from typing import List, Optional, Sequence, Protocol
from dataclasses import dataclass, field

import numpy as np

from .embed import Embedder
from .index import VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredChunk:
    """A retrieved chunk with the scores of each stage that touched it."""
    chunk_id: str
    source: str
    text: str
    semantic_score: float
    keyword_score: Optional[float] = None
    blended_score: Optional[float] = None

    @property
    def score(self) -> float:
        """Score of the latest stage: blended if reranked, else semantic."""
        if self.blended_score is not None:
            return self.blended_score
        return self.semantic_score


@dataclass
class RetrievalConfig:
    """Configuration for retrieval."""
    top_k: int = 3
    min_similarity_score: float = 0.3

    def __post_init__(self):
        if self.top_k <= 0:
            raise ValueError("top_k must be a positive integer")


@dataclass
class RetrievalResult:
    """Final top-K chunks plus counts from before the cut."""
    chunks: List[ScoredChunk]
    total_found: int
    filtered_out: int
    reranked: bool = False
    metadata: dict = field(default_factory=dict)

    def __iter__(self):
        return iter(self.chunks)

    def __len__(self):
        return len(self.chunks)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| |b|); 0.0 when either vector is all zero."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vector length mismatch: {a.shape[0]} != {b.shape[0]}")

    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of `query` with every row of `matrix`."""
    query = np.asarray(query, dtype=np.float64)
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    if matrix.shape[1] != query.shape[0]:
        raise ValueError(f"Vector length mismatch: {query.shape[0]} != {matrix.shape[1]}")

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    scores = np.zeros_like(dots)
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / norms[nonzero]
    return np.clip(scores, -1.0, 1.0)


def filter_by_threshold(chunks: List[ScoredChunk], min_score: float) -> List[ScoredChunk]:
    """Keep chunks scoring at least `min_score`, in their original order."""
    return [chunk for chunk in chunks if chunk.score >= min_score]


class Scorer(Protocol):
    def score(self, query_vector: Sequence[float]) -> List[ScoredChunk]:
        ...


class ExhaustiveScorer:
    """Full scan of a vector store. Output order follows the store."""

    def __init__(self, store: VectorStore):
        self.store = store

    def score(self, query_vector: Sequence[float]) -> List[ScoredChunk]:
        scores = cosine_similarities(query_vector, self.store.matrix)
        return [
            ScoredChunk(
                chunk_id=record.id,
                source=record.source,
                text=record.text,
                semantic_score=float(score)
            )
            for record, score in zip(self.store, scores)
        ]


class Retriever:
    """Embed, score, sort, filter, rerank, cut to top-K."""

    def __init__(
        self,
        embedder: Embedder,
        scorer: Scorer,
        config: Optional[RetrievalConfig] = None,
        reranker=None
    ):
        self.embedder = embedder
        self.scorer = scorer
        self.config = config or RetrievalConfig()
        self.reranker = reranker

    def rank(self, query_vector: Sequence[float]) -> List[ScoredChunk]:
        """All chunks, best semantic score first (ties keep store order)."""
        scored = self.scorer.score(query_vector)
        return sorted(scored, key=lambda c: c.semantic_score, reverse=True)

    def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        use_reranking: Optional[bool] = None
    ) -> RetrievalResult:
        """
        Retrieve the chunks relevant to a query.

        Args:
            query: Question text
            top_k: Number of results (overrides config)
            min_score: Relevance floor on the semantic score (overrides config)
            use_reranking: Apply the reranker; defaults to whether one is set

        Returns:
            RetrievalResult with the final chunks and filtering counts
        """
        top_k = top_k if top_k is not None else self.config.top_k
        if top_k <= 0:
            raise ValueError("top_k must be a positive integer")
        min_score = min_score if min_score is not None else self.config.min_similarity_score
        if use_reranking is None:
            use_reranking = self.reranker is not None
        if use_reranking and self.reranker is None:
            raise RuntimeError("Reranking requested but no reranker configured")

        query_vector = self.embedder.embed(query)
        ranked = self.rank(query_vector)
        filtered = filter_by_threshold(ranked, min_score)

        final = self.reranker.rerank(query, filtered) if use_reranking else filtered

        logger.debug(
            "Retrieved %d chunks, %d above %.2f, keeping top %d",
            len(ranked), len(filtered), min_score, top_k
        )

        return RetrievalResult(
            chunks=final[:top_k],
            total_found=len(ranked),
            filtered_out=len(ranked) - len(filtered),
            reranked=use_reranking,
            metadata={"min_score": min_score, "top_k": top_k}
        )
