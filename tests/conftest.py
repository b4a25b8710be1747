"""Shared fixtures: an in-memory index and embedders that never touch the network."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from cited_rag.errors import ProviderError
from cited_rag.index import IndexRecord, VectorStore
from cited_rag.generate import MockGenerator
from cited_rag.pipeline import RAGPipeline, PipelineConfig


PRICE_QUESTION = "How much does the basic plan cost?"
DELIVERY_QUESTION = "How long does delivery take?"


class FakeEmbedder:
    """Looks vectors up by exact text; unknown text embeds to the zero vector."""

    def __init__(self, vectors, dimension=3):
        self.vectors = vectors
        self.dimension = dimension
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        return list(self.vectors.get(text, [0.0] * self.dimension))


class FailingEmbedder:
    def embed(self, text):
        raise ProviderError("connection refused", provider="ollama")


@pytest.fixture
def records():
    return [
        IndexRecord(
            id="prices.txt-chunk-0",
            source="prices.txt",
            text="The basic plan costs 100 USD per month. Support is included.",
            embedding=(1.0, 0.0, 0.0)
        ),
        IndexRecord(
            id="delivery.txt-chunk-0",
            source="delivery.txt",
            text="Delivery takes 5 days within the country.",
            embedding=(0.0, 1.0, 0.0)
        ),
        IndexRecord(
            id="history.txt-chunk-0",
            source="history.txt",
            text="The company was founded by two engineers.",
            embedding=(0.0, 0.0, 1.0)
        ),
    ]


@pytest.fixture
def store(records):
    return VectorStore(records)


@pytest.fixture
def embedder():
    return FakeEmbedder({
        PRICE_QUESTION: [1.0, 0.1, 0.0],
        DELIVERY_QUESTION: [0.0, 1.0, 0.2],
    })


@pytest.fixture
def make_pipeline(store, embedder):
    """Build a pipeline over the fixture index answering with `answer`."""
    def _make(answer, config=None):
        generator = MockGenerator(answer)
        pipeline = RAGPipeline(
            config=config or PipelineConfig(),
            store=store,
            embedder=embedder,
            generator=generator
        )
        return pipeline, generator
    return _make
