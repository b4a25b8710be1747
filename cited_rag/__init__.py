"""
Cited RAG: Retrieval & Grounding Engine

Answers questions from a local document collection with verifiable
citations:
- Fixed-window chunking and an in-memory vector index
- Cosine retrieval with a relevance floor
- Hybrid semantic + keyword reranking
- Citation-demanding generation with per-source fragments
- Heuristic grounding validation
"""

__version__ = "0.1.0"

from .errors import ProviderError
from .index import VectorStore
from .retrieve import Retriever, ScoredChunk
from .rerank import HybridReranker
from .generate import Generator, MockGenerator
from .citations import CitationSource, parse_citations, extract_relevant_fragment
from .verify import GroundingValidator
from .pipeline import RAGPipeline, PipelineConfig, AnswerWithSources

__all__ = [
    "ProviderError",
    "VectorStore",
    "Retriever",
    "ScoredChunk",
    "HybridReranker",
    "Generator",
    "MockGenerator",
    "CitationSource",
    "parse_citations",
    "extract_relevant_fragment",
    "GroundingValidator",
    "RAGPipeline",
    "PipelineConfig",
    "AnswerWithSources",
]
