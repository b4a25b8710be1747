"""
Unit Tests for similarity scoring, threshold filtering and reranking

Run with: pytest tests/ -v
"""

import numpy as np
import pytest

from cited_rag.retrieve import (
    ScoredChunk,
    Retriever,
    RetrievalConfig,
    ExhaustiveScorer,
    cosine_similarity,
    cosine_similarities,
    filter_by_threshold,
)
from cited_rag.rerank import HybridReranker, RerankConfig, jaccard_similarity
from cited_rag.text import extract_keywords, split_sentences, tokenize

from conftest import PRICE_QUESTION


def make_chunk(chunk_id, score, text="filler words"):
    return ScoredChunk(chunk_id=chunk_id, source=f"{chunk_id}.txt", text=text, semantic_score=score)


class TestCosineSimilarity:
    """Tests for the similarity measure."""

    def test_self_similarity(self):
        v = [0.3, -1.2, 4.0]
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_symmetric_and_bounded(self):
        rng = np.random.default_rng(0)
        for _ in range(20):
            a, b = rng.normal(size=8), rng.normal(size=8)
            score = cosine_similarity(a, b)
            assert score == pytest.approx(cosine_similarity(b, a))
            assert -1.0 <= score <= 1.0

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_vectorized_matches_scalar(self):
        matrix = np.array([[1.0, 0.0], [0.0, 0.0], [1.0, 1.0]])
        scores = cosine_similarities([1.0, 0.0], matrix)
        assert scores.tolist() == pytest.approx([1.0, 0.0, cosine_similarity([1.0, 0.0], [1.0, 1.0])])


class TestThresholdFilter:
    """Tests for the relevance floor."""

    def test_zero_threshold_is_identity(self):
        chunks = [make_chunk("a", 0.2), make_chunk("b", 0.9), make_chunk("c", 0.0)]
        assert filter_by_threshold(chunks, 0) == chunks

    def test_boundary_score_kept(self):
        chunks = [make_chunk("a", 0.3), make_chunk("b", 0.29), make_chunk("c", 0.8)]
        assert [c.chunk_id for c in filter_by_threshold(chunks, 0.3)] == ["a", "c"]


class TestRetriever:
    """Tests for the retrieve stage."""

    def test_ranked_filtered_and_counted(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store))
        result = retriever.retrieve(PRICE_QUESTION)

        assert [c.chunk_id for c in result] == ["prices.txt-chunk-0"]
        assert result.total_found == 3
        assert result.filtered_out == 2
        assert result.reranked is False

    def test_no_floor_returns_top_k(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store), RetrievalConfig(top_k=2))
        result = retriever.retrieve(PRICE_QUESTION, min_score=0.0)

        assert [c.chunk_id for c in result] == ["prices.txt-chunk-0", "delivery.txt-chunk-0"]
        assert result.chunks[0].semantic_score > result.chunks[1].semantic_score

    def test_ties_keep_store_order(self, store):
        from conftest import FakeEmbedder
        embedder = FakeEmbedder({"q": [1.0, 1.0, 1.0]})
        retriever = Retriever(embedder, ExhaustiveScorer(store))
        result = retriever.retrieve("q")

        assert [c.chunk_id for c in result] == [
            "prices.txt-chunk-0", "delivery.txt-chunk-0", "history.txt-chunk-0"
        ]

    def test_unknown_query_finds_nothing(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store))
        assert len(retriever.retrieve("something unrelated")) == 0

    def test_rerank_without_reranker(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store))
        with pytest.raises(RuntimeError):
            retriever.retrieve(PRICE_QUESTION, use_reranking=True)

    def test_invalid_top_k(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store))
        with pytest.raises(ValueError):
            retriever.retrieve(PRICE_QUESTION, top_k=0)
        with pytest.raises(ValueError):
            RetrievalConfig(top_k=-1)

    def test_reranked_result(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store), reranker=HybridReranker())
        result = retriever.retrieve(PRICE_QUESTION)

        assert result.reranked is True
        assert result.chunks[0].blended_score is not None


class TestHybridReranker:
    """Tests for semantic + keyword reranking."""

    def test_jaccard(self):
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_similarity(set(), set()) == 0.0

    def test_zero_keyword_weight_keeps_semantic_order(self):
        chunks = [
            make_chunk("a", 0.9, "nothing relevant"),
            make_chunk("b", 0.6, "price list for plans"),
            make_chunk("c", 0.6, "price list"),
            make_chunk("d", 0.4, "price list"),
        ]
        config = RerankConfig(semantic_weight=1.0, keyword_weight=0.0)
        reranked = HybridReranker(config).rerank("price list", chunks)
        assert [c.chunk_id for c in reranked] == ["a", "b", "c", "d"]

    def test_keyword_overlap_promotes_chunk(self):
        chunks = [
            make_chunk("semantic", 0.55, "unrelated words entirely"),
            make_chunk("keyword", 0.5, "price list"),
        ]
        reranked = HybridReranker().rerank("price list", chunks)

        assert [c.chunk_id for c in reranked] == ["keyword", "semantic"]
        assert reranked[0].keyword_score == pytest.approx(1.0)
        assert reranked[0].blended_score == pytest.approx(0.7 * 0.5 + 0.3 * 1.0)
        assert reranked[0].score == reranked[0].blended_score
        assert reranked[0].semantic_score == 0.5

    def test_input_not_mutated(self):
        chunks = [make_chunk("a", 0.5, "price list")]
        HybridReranker().rerank("price list", chunks)
        assert chunks[0].blended_score is None
        assert chunks[0].score == 0.5

    def test_per_call_config(self):
        chunks = [make_chunk("a", 0.5, "price list")]
        reranked = HybridReranker().rerank(
            "price list", chunks, RerankConfig(semantic_weight=0.0, keyword_weight=1.0)
        )
        assert reranked[0].blended_score == pytest.approx(1.0)

    def test_disabled_rerank_passes_filtered_chunks(self, store, embedder):
        retriever = Retriever(embedder, ExhaustiveScorer(store), reranker=HybridReranker())
        result = retriever.retrieve(PRICE_QUESTION, min_score=0.0, use_reranking=False)

        assert result.reranked is False
        assert [c.chunk_id for c in result] == [
            "prices.txt-chunk-0", "delivery.txt-chunk-0", "history.txt-chunk-0"
        ]
        assert all(c.blended_score is None for c in result)


class TestText:
    """Tests for the shared text helpers."""

    def test_keywords_drop_short_tokens_and_stopwords(self):
        assert extract_keywords("The price is 100 USD per month, ok?") == {"price", "100", "usd", "per", "month"}

    def test_tokenize_unicode(self):
        assert tokenize("Цена: 100 руб.") == ["цена", "100", "руб"]

    def test_split_sentences(self):
        assert split_sentences("One. Two!! Three? four") == ["One", "Two", "Three", "four"]
        assert split_sentences("...") == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
