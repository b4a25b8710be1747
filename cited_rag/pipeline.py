"""
End-to-End RAG Pipeline

Integrates all components: retrieval, reranking, generation, citation
parsing and grounding validation.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple
from dataclasses import dataclass, field, asdict

import yaml

from .ingest import ChunkingConfig
from .embed import Embedder, EmbeddingConfig, build_embedder
from .index import VectorStore
from .retrieve import Retriever, RetrievalConfig, RetrievalResult, ExhaustiveScorer, Scorer
from .rerank import HybridReranker, RerankConfig
from .generate import (
    Generator,
    GenerationConfig,
    NO_INFORMATION_ANSWER,
    build_prompt,
    build_baseline_prompt,
)
from .citations import CitationSource, parse_citations, build_sources
from .verify import GroundingValidator, VerificationConfig

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""
    index_path: str = "data/index.json"

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    rerank: RerankConfig = field(default_factory=RerankConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)

    def __post_init__(self):
        if self.chunking.overlap >= self.chunking.size:
            raise ValueError("chunking.overlap must be smaller than chunking.size")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "PipelineConfig":
        return cls(
            index_path=config_dict.get('index', {}).get('path', "data/index.json"),
            chunking=ChunkingConfig(**config_dict.get('chunking', {})),
            embedding=EmbeddingConfig(**config_dict.get('embedding', {})),
            retrieval=RetrievalConfig(**config_dict.get('retrieval', {})),
            rerank=RerankConfig(**config_dict.get('rerank', {})),
            generation=GenerationConfig(**config_dict.get('generation', {})),
            verification=VerificationConfig(**config_dict.get('verification', {}))
        )

    @classmethod
    def from_config_file(cls, config_path: str) -> "PipelineConfig":
        """Load from YAML; a `_base_` key names a file to inherit from."""
        with open(config_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        if '_base_' in config_dict:
            base_path = Path(config_path).parent / config_dict.pop('_base_')
            with open(base_path, 'r') as f:
                base_config = yaml.safe_load(f) or {}
            # Child sections override parent sections key by key
            for section, values in config_dict.items():
                if isinstance(values, dict) and isinstance(base_config.get(section), dict):
                    base_config[section].update(values)
                else:
                    base_config[section] = values
            config_dict = base_config

        return cls.from_dict(config_dict)

    def to_dict(self) -> Dict[str, Any]:
        verification = asdict(self.verification)
        verification['refusal_phrases'] = list(self.verification.refusal_phrases)
        return {
            'index': {'path': self.index_path},
            'chunking': asdict(self.chunking),
            'embedding': asdict(self.embedding),
            'retrieval': asdict(self.retrieval),
            'rerank': asdict(self.rerank),
            'generation': asdict(self.generation),
            'verification': verification,
        }

    def save(self, path: str):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)


@dataclass(frozen=True)
class AnswerWithSources:
    """An answer with its numbered sources and audit findings."""
    answer: str
    sources: Tuple[CitationSource, ...]
    found_citations: Tuple[str, ...]
    has_all_citations: bool
    hallucinations: Tuple[str, ...]
    latency_ms: Dict[str, float] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
            "found_citations": list(self.found_citations),
            "has_all_citations": self.has_all_citations,
            "hallucinations": list(self.hallucinations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnswerWithSources":
        return cls(
            answer=data["answer"],
            sources=tuple(CitationSource(**s) for s in data.get("sources", [])),
            found_citations=tuple(data.get("found_citations", [])),
            has_all_citations=data.get("has_all_citations", False),
            hallucinations=tuple(data.get("hallucinations", []))
        )


def no_information_result() -> AnswerWithSources:
    return AnswerWithSources(
        answer=NO_INFORMATION_ANSWER,
        sources=(),
        found_citations=(),
        has_all_citations=False,
        hallucinations=()
    )


class RAGPipeline:
    """
    Complete cited RAG pipeline.

    Implements: Retrieve → Filter → Rerank → Generate → Cite → Validate
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        store: Optional[VectorStore] = None,
        embedder: Optional[Embedder] = None,
        generator=None,
        scorer: Optional[Scorer] = None
    ):
        self.config = config or PipelineConfig()

        # Components are created on first use
        self._store = store
        self._embedder = embedder
        self._generator = generator
        self._scorer = scorer
        self._retriever: Optional[Retriever] = None
        self._validator: Optional[GroundingValidator] = None

    @classmethod
    def from_config_file(cls, config_path: str) -> "RAGPipeline":
        return cls(PipelineConfig.from_config_file(config_path))

    @property
    def store(self) -> VectorStore:
        if self._store is None:
            if not Path(self.config.index_path).exists():
                raise RuntimeError(
                    f"No index at {self.config.index_path}. Build one with `python -m cited_rag.index`."
                )
            self._store = VectorStore.load(self.config.index_path)
        return self._store

    @property
    def embedder(self) -> Embedder:
        if self._embedder is None:
            self._embedder = build_embedder(self.config.embedding)
        return self._embedder

    @property
    def retriever(self) -> Retriever:
        if self._retriever is None:
            self._retriever = Retriever(
                embedder=self.embedder,
                scorer=self._scorer or ExhaustiveScorer(self.store),
                config=self.config.retrieval,
                reranker=HybridReranker(self.config.rerank)
            )
        return self._retriever

    @property
    def generator(self) -> Generator:
        if self._generator is None:
            self._generator = Generator(self.config.generation)
        return self._generator

    @property
    def validator(self) -> GroundingValidator:
        if self._validator is None:
            self._validator = GroundingValidator(self.config.verification)
        return self._validator

    def find_relevant_chunks(
        self,
        question: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        use_reranking: Optional[bool] = None
    ) -> RetrievalResult:
        """Final chunk set with counts of what existed before filtering."""
        if use_reranking is None:
            use_reranking = self.config.rerank.enabled
        return self.retriever.retrieve(
            question,
            top_k=top_k,
            min_score=min_score,
            use_reranking=use_reranking
        )

    def query(
        self,
        question: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        use_reranking: Optional[bool] = None,
        conversation_context: Optional[str] = None
    ) -> AnswerWithSources:
        """
        Answer a question from the indexed documents, with citations.

        Args:
            question: User question
            top_k: Number of chunks given to the generator (overrides config)
            min_score: Relevance floor (overrides config)
            use_reranking: Enable/disable hybrid reranking (overrides config)
            conversation_context: Earlier turns to include in the prompt

        Returns:
            AnswerWithSources

        Raises:
            ProviderError: the embedding or generation call failed
        """
        latency = {}

        # Step 1: Retrieve
        t0 = time.time()
        retrieval = self.find_relevant_chunks(question, top_k, min_score, use_reranking)
        latency['retrieval'] = (time.time() - t0) * 1000

        chunks = retrieval.chunks
        if not chunks:
            logger.info("No chunks above threshold for question: %s", question)
            return no_information_result()

        # Step 2: Generate
        t0 = time.time()
        prompt = build_prompt(question, chunks, conversation_context)
        answer = self.generator.generate(prompt)
        latency['generation'] = (time.time() - t0) * 1000

        # Step 3: Citations and validation
        t0 = time.time()
        citations = parse_citations(answer, len(chunks))
        sources = build_sources(answer, chunks)
        hallucinations = ()
        if self.config.verification.enabled:
            validation = self.validator.validate(
                answer,
                [chunk.text for chunk in chunks],
                question
            )
            hallucinations = tuple(validation.messages)
        latency['validation'] = (time.time() - t0) * 1000

        if hallucinations:
            logger.debug("Grounding issues: %s", hallucinations)

        return AnswerWithSources(
            answer=answer,
            sources=tuple(sources),
            found_citations=tuple(citations.found_citations),
            has_all_citations=citations.has_all_citations,
            hallucinations=hallucinations,
            latency_ms=latency
        )

    def answer_without_context(self, question: str) -> str:
        """Baseline: the generator answers from its own knowledge."""
        return self.generator.generate(build_baseline_prompt(question))

    def batch_query(
        self,
        questions: List[str],
        max_workers: int = 4,
        **kwargs
    ) -> List[AnswerWithSources]:
        """Answer independent questions concurrently; results keep input order."""
        # Build shared components before the workers race for them
        _ = self.retriever, self.generator, self.validator

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self.query, q, **kwargs) for q in questions]
            return [future.result() for future in futures]


def format_answer_with_sources(result: AnswerWithSources) -> str:
    """Answer, sources, citation status and warnings as display text."""
    lines = [result.answer.strip()]

    if result.sources:
        lines += ["", "SOURCES:", "-" * 80]
        for source in result.sources:
            lines.append(f"{source.id} {source.file} ({source.chunk_id})")
            lines.append(f"   Score: {source.score:.4f}")
            lines.append(f'   "{source.preview}"')
            lines.append("")

    lines += ["CITATION STATUS:", "-" * 80]
    lines.append(f"Citations found: {', '.join(result.found_citations) or 'none'}")
    lines.append(f"All sources cited: {'yes' if result.has_all_citations else 'NO'}")

    if result.hallucinations:
        lines += ["", "POSSIBLE HALLUCINATIONS:", "-" * 80]
        lines.extend(result.hallucinations)
    else:
        lines += ["", "No hallucinations detected"]

    return "\n".join(lines)


def main():
    """CLI for asking a question."""
    import argparse

    parser = argparse.ArgumentParser(description="Answer a question from the indexed documents")
    parser.add_argument("--config", "-c", help="Config file path")
    parser.add_argument("--query", "-q", required=True, help="Question to ask")
    parser.add_argument("--top-k", "-k", type=int)
    parser.add_argument("--min-score", type=float)
    parser.add_argument("--no-rerank", action="store_true", help="Skip hybrid reranking")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    config = PipelineConfig.from_config_file(args.config) if args.config else PipelineConfig()
    pipeline = RAGPipeline(config)

    result = pipeline.query(
        args.query,
        top_k=args.top_k,
        min_score=args.min_score,
        use_reranking=False if args.no_rerank else None
    )

    print(f"\n{'='*60}")
    print(f"Question: {args.query}\n")
    print(format_answer_with_sources(result))
    if result.latency_ms:
        print("\nLatency breakdown:")
        for step, ms in result.latency_ms.items():
            print(f"  {step}: {ms:.1f}ms")


if __name__ == "__main__":
    main()
