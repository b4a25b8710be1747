"""
Vector Store Module

In-memory collection of embedded chunks, persisted as a JSON array of
records with explicit field names.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple, Iterator
from dataclasses import dataclass

import numpy as np
from tqdm import tqdm

from .ingest import Chunk, DocumentIngestor
from .embed import Embedder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexRecord:
    """A chunk together with its embedding."""
    id: str
    source: str
    text: str
    embedding: Tuple[float, ...]

    @property
    def chunk(self) -> Chunk:
        return Chunk(id=self.id, source=self.source, text=self.text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "chunk": self.text,
            "embedding": list(self.embedding),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexRecord":
        return cls(
            id=data["id"],
            source=data["source"],
            text=data["chunk"],
            embedding=tuple(float(x) for x in data["embedding"]),
        )


class VectorStore:
    """Read-only (after build/load) store of index records."""

    def __init__(self, records: Optional[List[IndexRecord]] = None):
        self._records: List[IndexRecord] = []
        self._matrix: Optional[np.ndarray] = None
        if records:
            self._set_records(records)

    def _set_records(self, records: List[IndexRecord]):
        dimensions = {len(r.embedding) for r in records}
        if len(dimensions) > 1:
            raise ValueError(f"Embeddings have mixed lengths: {sorted(dimensions)}")
        if 0 in dimensions:
            raise ValueError("Empty embedding in index")
        self._records = list(records)
        self._matrix = None

    @property
    def records(self) -> List[IndexRecord]:
        return list(self._records)

    @property
    def dimension(self) -> Optional[int]:
        if not self._records:
            return None
        return len(self._records[0].embedding)

    @property
    def matrix(self) -> np.ndarray:
        """Embeddings as a (n_records, L) float matrix, built once."""
        if self._matrix is None:
            if self._records:
                matrix = np.array([r.embedding for r in self._records], dtype=np.float64)
            else:
                matrix = np.zeros((0, 0), dtype=np.float64)
            matrix.setflags(write=False)
            self._matrix = matrix
        return self._matrix

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[IndexRecord]:
        return iter(self._records)

    def build(self, chunks: List[Chunk], embedder: Embedder, show_progress: bool = True):
        """Embed every chunk and replace the store's contents."""
        if not chunks:
            raise ValueError("No chunks provided")

        records = []
        for chunk in tqdm(chunks, desc="Embedding chunks", disable=not show_progress):
            embedding = embedder.embed(chunk.text)
            records.append(IndexRecord(
                id=chunk.id,
                source=chunk.source,
                text=chunk.text,
                embedding=tuple(embedding)
            ))

        self._set_records(records)
        logger.info("Index built with %d records (dimension %s)", len(records), self.dimension)

    def save(self, path: str):
        """Write the store as a JSON array."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump([r.to_dict() for r in self._records], f, ensure_ascii=False, indent=2)

        logger.info("Index saved to %s", path)

    @classmethod
    def load(cls, path: str) -> "VectorStore":
        """Read the whole JSON array into memory."""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, list):
            raise ValueError(f"Index file {path} must contain a JSON array")

        store = cls([IndexRecord.from_dict(item) for item in data])
        logger.info("Index loaded from %s (%d records)", path, len(store))
        return store


def main():
    """CLI for building the vector index."""
    import argparse
    from .embed import EmbeddingConfig, build_embedder

    parser = argparse.ArgumentParser(description="Build the vector index")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--chunks", "-c", help="Path to chunks JSONL")
    source.add_argument("--docs", "-d", help="Document file or directory to ingest")
    parser.add_argument("--output", "-o", default="data/index.json", help="Output index file")
    parser.add_argument("--provider", default="ollama", choices=["ollama", "local"])
    parser.add_argument("--model", default="nomic-embed-text")
    parser.add_argument("--base-url", default="http://localhost:11434")
    parser.add_argument("--chunk-size", type=int, default=400)
    parser.add_argument("--chunk-overlap", type=int, default=100)

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.chunks:
        chunks = DocumentIngestor.load_chunks(args.chunks)
    else:
        ingestor = DocumentIngestor(chunk_size=args.chunk_size, chunk_overlap=args.chunk_overlap)
        chunks = ingestor.process_path(args.docs)
    print(f"Loaded {len(chunks)} chunks")

    embedder = build_embedder(EmbeddingConfig(
        provider=args.provider,
        model=args.model,
        base_url=args.base_url
    ))

    store = VectorStore()
    store.build(chunks, embedder)
    store.save(args.output)
    print(f"Index saved to {args.output} ({len(store)} records)")


if __name__ == "__main__":
    main()
