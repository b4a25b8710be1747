"""
Citation Module

Parses [n] citation markers out of generated answers and attaches to
every source a human-checkable excerpt of the chunk it points to.
"""

import re
from pathlib import Path
from typing import List, Optional
from dataclasses import dataclass, asdict

from .retrieve import ScoredChunk
from .text import SENTENCE_TERMINATORS, extract_keywords, split_sentences, strip_citation_markers

MAX_FRAGMENT_LENGTH = 250
PREVIEW_LENGTH = 150
CONTEXT_AFTER = 50
MIN_EXACT_FRAGMENT_LENGTH = 10
ELLIPSIS = "..."


@dataclass(frozen=True)
class CitationSource:
    """One retrieved chunk as presented to the reader."""
    id: str  # "[1]", "[2]", ...
    file: str
    chunk_id: str
    preview: str
    score: float

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class CitationParseResult:
    found_citations: List[str]
    has_all_citations: bool


def parse_citations(text: str, total_sources: int) -> CitationParseResult:
    """
    Collect the distinct valid [n] markers in `text`.

    Indices outside 1..total_sources are ignored. `has_all_citations` is
    true only when every source index was cited at least once.
    """
    found = {
        int(m) for m in re.findall(r'\[(\d+)\]', text)
        if 1 <= int(m) <= total_sources
    }
    return CitationParseResult(
        found_citations=[f"[{n}]" for n in sorted(found)],
        has_all_citations=len(found) == total_sources
    )


def citation_snippet(answer: str, citation_num: int) -> str:
    """
    The sentence of `answer` holding the first [n] marker, markers removed.

    The sentence runs from just after the previous terminator to the next
    terminator (inclusive) or the end of the text. Empty when the marker
    is absent.
    """
    marker = f"[{citation_num}]"
    position = answer.find(marker)
    if position == -1:
        return ""

    start = 0
    for i in range(position - 1, -1, -1):
        if answer[i] in SENTENCE_TERMINATORS:
            start = i + 1
            break

    end = len(answer)
    for i in range(position + len(marker), len(answer)):
        if answer[i] in SENTENCE_TERMINATORS:
            end = i + 1
            break

    return strip_citation_markers(answer[start:end]).strip()


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def _chunk_prefix(chunk_text: str) -> str:
    return _truncate(chunk_text.strip(), PREVIEW_LENGTH) or ELLIPSIS


def extract_relevant_fragment(chunk_text: str, snippet: str) -> str:
    """
    Find the part of `chunk_text` that best matches `snippet`.

    Strategies, in order:
    1. Case-insensitive exact match, widened back to the start of its
       sentence and forward to the next sentence end within CONTEXT_AFTER
       characters.
    2. The chunk sentence containing the most snippet keywords
       (first sentence wins ties).
    3. The first PREVIEW_LENGTH characters of the chunk.

    Never returns an empty string; results are capped at
    MAX_FRAGMENT_LENGTH characters plus an ellipsis.
    """
    snippet = snippet.strip()
    if not snippet or not chunk_text.strip():
        return _chunk_prefix(chunk_text)

    match = re.search(re.escape(snippet), chunk_text, re.IGNORECASE)
    if match:
        start = 0
        for i in range(match.start() - 1, -1, -1):
            if chunk_text[i] in SENTENCE_TERMINATORS:
                start = i + 1
                break

        end = min(len(chunk_text), match.end() + CONTEXT_AFTER)
        for i in range(match.end(), end):
            if chunk_text[i] in SENTENCE_TERMINATORS:
                end = i + 1
                break

        fragment = chunk_text[start:end].strip()
        if len(fragment) > MIN_EXACT_FRAGMENT_LENGTH:
            return _truncate(fragment, MAX_FRAGMENT_LENGTH)

    keywords = extract_keywords(snippet)
    if not keywords:
        return _chunk_prefix(chunk_text)

    best_sentence: Optional[str] = None
    max_matches = 0
    for sentence in split_sentences(chunk_text):
        sentence_lower = sentence.lower()
        matches = sum(1 for keyword in keywords if keyword in sentence_lower)
        if matches > max_matches:
            max_matches = matches
            best_sentence = sentence

    if best_sentence is None:
        return _chunk_prefix(chunk_text)

    return _truncate(best_sentence, MAX_FRAGMENT_LENGTH)


def fragment_for_citation(answer: str, citation_num: int, chunk: ScoredChunk) -> str:
    """Excerpt of `chunk` for the answer sentence citing it, or for its file name."""
    snippet = citation_snippet(answer, citation_num)
    if not snippet:
        snippet = Path(chunk.source).stem
    return extract_relevant_fragment(chunk.text, snippet)


def build_sources(answer: str, chunks: List[ScoredChunk]) -> List[CitationSource]:
    """One CitationSource per chunk, numbered in top-K order."""
    return [
        CitationSource(
            id=f"[{num}]",
            file=chunk.source,
            chunk_id=chunk.chunk_id,
            preview=fragment_for_citation(answer, num, chunk),
            score=chunk.score
        )
        for num, chunk in enumerate(chunks, 1)
    ]
