"""
Text Utilities

Keyword tokenization and sentence splitting shared by the reranker,
the fragment extractor and the grounding validator.

Sentences end at exactly three marks: '.', '!' and '?'.
"""

import re
from typing import List, Set


SENTENCE_TERMINATORS = frozenset(".!?")

# Tokens of this length or shorter never count as keywords
SHORT_TOKEN_MAX_LENGTH = 2

STOPWORDS = frozenset({
    # English
    'a', 'an', 'the', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'from', 'is', 'are', 'was', 'were', 'be', 'been',
    'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would',
    'could', 'should', 'may', 'might', 'must', 'shall', 'can', 'this',
    'that', 'these', 'those', 'it', 'its', 'as', 'if', 'when', 'where',
    'what', 'which', 'who', 'whom', 'how', 'why', 'all', 'each', 'every',
    'both', 'few', 'more', 'most', 'other', 'some', 'such', 'no', 'not',
    'only', 'same', 'so', 'than', 'too', 'very', 'just', 'also', 'there',
    'their', 'they', 'into', 'about', 'any', 'after', 'before',
    # Russian
    'это', 'что', 'как', 'для', 'его', 'она', 'так', 'был', 'была', 'было',
    'были', 'быть', 'есть', 'чтобы', 'если', 'когда', 'где', 'куда',
    'почему', 'или', 'все', 'при', 'после', 'является', 'являются',
})

_TOKEN_PATTERN = re.compile(r'[^\W_]+')
_CITATION_MARKER = re.compile(r'\[\d+\]')


def tokenize(text: str) -> List[str]:
    """Lowercase alphanumeric tokens, in order, repeats kept."""
    return _TOKEN_PATTERN.findall(text.lower())


def keyword_tokens(
    text: str,
    short_token_max_length: int = SHORT_TOKEN_MAX_LENGTH,
    stopwords: Set[str] = STOPWORDS
) -> List[str]:
    """Tokens that survive the length and stop-word filters, repeats kept."""
    return [
        token for token in tokenize(text)
        if len(token) > short_token_max_length and token not in stopwords
    ]


def extract_keywords(
    text: str,
    short_token_max_length: int = SHORT_TOKEN_MAX_LENGTH,
    stopwords: Set[str] = STOPWORDS
) -> Set[str]:
    """Distinct keywords of a text."""
    return set(keyword_tokens(text, short_token_max_length, stopwords))


def split_sentences(text: str) -> List[str]:
    """Split on runs of terminators, dropping empty pieces."""
    sentences = []
    current = []

    for char in text:
        if char in SENTENCE_TERMINATORS:
            sentence = "".join(current).strip()
            if sentence:
                sentences.append(sentence)
            current = []
        else:
            current.append(char)

    tail = "".join(current).strip()
    if tail:
        sentences.append(tail)

    return sentences


def strip_citation_markers(text: str) -> str:
    """Remove every [n] marker."""
    return _CITATION_MARKER.sub('', text)


def find_citation_markers(text: str) -> List[int]:
    """All bracketed integers in order of appearance."""
    return [int(m) for m in re.findall(r'\[(\d+)\]', text)]
