"""
Document Ingestion Module

Loads source documents and splits them into overlapping fixed-size
character windows with stable ids.
"""

import json
import logging
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import List, Dict, Any

from tqdm import tqdm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chunk:
    """A window of a source document's text."""
    id: str
    source: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chunk":
        return cls(id=data["id"], source=data["source"], text=data["text"])


@dataclass
class Document:
    """A loaded source document; `id` doubles as the chunk source name."""
    id: str
    path: str
    text: str


@dataclass
class ChunkingConfig:
    """Window size and overlap, in characters."""
    size: int = 400
    overlap: int = 100


class TextSplitter:
    """Fixed-size character windows with overlap."""

    def __init__(self, chunk_size: int = 400, chunk_overlap: int = 100):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap must be non-negative")
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @classmethod
    def from_config(cls, config: ChunkingConfig) -> "TextSplitter":
        return cls(chunk_size=config.size, chunk_overlap=config.overlap)

    def split_text(self, text: str) -> List[str]:
        """Split text into trimmed windows, skipping blank ones."""
        windows = []
        step = self.chunk_size - self.chunk_overlap

        for start in range(0, len(text), step):
            window = text[start:start + self.chunk_size].strip()
            if window:
                windows.append(window)

        return windows

    def chunk(self, text: str, source: str) -> List[Chunk]:
        """Split text into chunks numbered sequentially per source."""
        return [
            Chunk(id=f"{source}-chunk-{index}", source=source, text=window)
            for index, window in enumerate(self.split_text(text))
        ]


class DocumentIngestor:
    """Loads documents from disk and turns them into chunks."""

    TEXT_FORMATS = {'.txt', '.md'}
    SUPPORTED_FORMATS = TEXT_FORMATS | {'.json', '.jsonl'}

    def __init__(self, chunk_size: int = 400, chunk_overlap: int = 100):
        self.splitter = TextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)

    @classmethod
    def from_config(cls, config: ChunkingConfig) -> "DocumentIngestor":
        return cls(chunk_size=config.size, chunk_overlap=config.overlap)

    def load_file(self, filepath: str) -> List[Document]:
        """Load document(s) from a single file."""
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        suffix = filepath.suffix.lower()
        if suffix not in self.SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported format: {filepath.suffix}")

        if suffix in self.TEXT_FORMATS:
            with open(filepath, 'r', encoding='utf-8') as f:
                text = f.read()
            return [Document(id=filepath.name, path=str(filepath), text=text)]

        if suffix == '.jsonl':
            records = []
            with open(filepath, 'r', encoding='utf-8') as f:
                for line in f:
                    if line.strip():
                        records.append(json.loads(line))
        else:
            with open(filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
            records = data if isinstance(data, list) else [data]

        return [
            self._json_to_document(record, filepath, position)
            for position, record in enumerate(records)
        ]

    def load_directory(self, dirpath: str, recursive: bool = False) -> List[Document]:
        """Load every supported file in a directory, in name order."""
        dirpath = Path(dirpath)

        if not dirpath.exists():
            raise FileNotFoundError(f"Directory not found: {dirpath}")

        pattern = "**/*" if recursive else "*"
        documents = []

        for filepath in sorted(p for p in dirpath.glob(pattern) if p.is_file()):
            if filepath.suffix.lower() not in self.SUPPORTED_FORMATS:
                logger.warning("Skipping unsupported file: %s", filepath.name)
                continue
            documents.extend(self.load_file(str(filepath)))

        return documents

    def _json_to_document(self, data: Dict[str, Any], filepath: Path, position: int) -> Document:
        text = data.get('text') or data.get('content') or ''
        doc_id = data.get('id') or data.get('title') or f"{filepath.name}#{position}"
        return Document(id=str(doc_id), path=str(filepath), text=text)

    def chunk_documents(self, documents: List[Document], show_progress: bool = True) -> List[Chunk]:
        """Chunk all documents, preserving document order."""
        chunks = []
        for doc in tqdm(documents, desc="Chunking documents", disable=not show_progress):
            doc_chunks = self.splitter.chunk(doc.text, doc.id)
            logger.debug("%s: %d chunks", doc.id, len(doc_chunks))
            chunks.extend(doc_chunks)
        return chunks

    def process_path(self, path: str, recursive: bool = False, show_progress: bool = True) -> List[Chunk]:
        """Load and chunk a file or directory."""
        path = Path(path)
        if path.is_dir():
            documents = self.load_directory(str(path), recursive=recursive)
        else:
            documents = self.load_file(str(path))
        return self.chunk_documents(documents, show_progress=show_progress)

    @staticmethod
    def save_chunks(chunks: List[Chunk], output_path: str):
        """Save chunks to a JSONL file."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            for chunk in chunks:
                f.write(json.dumps(chunk.to_dict(), ensure_ascii=False) + '\n')

        logger.info("Saved %d chunks to %s", len(chunks), output_path)

    @staticmethod
    def load_chunks(input_path: str) -> List[Chunk]:
        """Load chunks from a JSONL file."""
        chunks = []
        with open(input_path, 'r', encoding='utf-8') as f:
            for line in f:
                if line.strip():
                    chunks.append(Chunk.from_dict(json.loads(line)))
        return chunks


def main():
    """CLI for document ingestion."""
    import argparse

    parser = argparse.ArgumentParser(description="Split documents into chunks")
    parser.add_argument("--input", "-i", required=True, help="Input file or directory")
    parser.add_argument("--output", "-o", required=True, help="Output JSONL file")
    parser.add_argument("--chunk-size", type=int, default=400)
    parser.add_argument("--chunk-overlap", type=int, default=100)
    parser.add_argument("--recursive", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    ingestor = DocumentIngestor(
        chunk_size=args.chunk_size,
        chunk_overlap=args.chunk_overlap
    )
    chunks = ingestor.process_path(args.input, recursive=args.recursive)
    ingestor.save_chunks(chunks, args.output)
    print(f"Ingestion complete: {len(chunks)} chunks created")


if __name__ == "__main__":
    main()
