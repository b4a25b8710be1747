"""
Grounding Validation Module

Heuristic audit of a generated answer against the chunks it was given.
Every rule is independent; all that fire are reported. Findings are
advisory and never abort the pipeline.

Rules:
1. Refusal exemption: an answer saying there is no information skips
   all other checks
2. Missing citations (critical): no [n] marker at all
3. Low grounding (caution): too few answer keywords occur in the sources
4. Ungrounded numbers (caution): digit runs absent from the sources
5. Question relevance (caution): too few question keywords in the answer
"""

import re
from enum import Enum
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

from .text import SHORT_TOKEN_MAX_LENGTH, keyword_tokens, strip_citation_markers


class Severity(Enum):
    CRITICAL = "critical"
    CAUTION = "caution"


@dataclass(frozen=True)
class GroundingIssue:
    """A single finding of the validator."""
    severity: Severity
    rule: str
    message: str

    def __str__(self) -> str:
        return f"[{self.severity.value.upper()}] {self.message}"


@dataclass
class VerificationConfig:
    """Thresholds for the grounding rules.

    The 40% / 30% overlap floors are empirical, not derived.
    """
    enabled: bool = True
    refusal_phrases: Tuple[str, ...] = (
        "no information",
        "do not contain relevant information",
        "нет информации",
        "из документов нет",
    )
    min_grounded_fraction: float = 0.4
    min_answer_keywords: int = 5
    min_number_digits: int = 2
    min_question_overlap: float = 0.3
    min_question_keywords: int = 2
    short_token_max_length: int = SHORT_TOKEN_MAX_LENGTH
    # Off: digits inside [n] markers are checked like any other number
    ignore_citation_markers: bool = False

    def __post_init__(self):
        # YAML hands us lists
        self.refusal_phrases = tuple(self.refusal_phrases)


@dataclass
class ValidationResult:
    issues: List[GroundingIssue] = field(default_factory=list)

    @property
    def has_hallucinations(self) -> bool:
        return bool(self.issues)

    @property
    def has_critical(self) -> bool:
        return any(issue.severity == Severity.CRITICAL for issue in self.issues)

    @property
    def messages(self) -> List[str]:
        return [str(issue) for issue in self.issues]


class GroundingValidator:
    """Flags answers that may contain unsupported content."""

    def __init__(self, config: Optional[VerificationConfig] = None):
        self.config = config or VerificationConfig()

    def is_refusal(self, answer: str) -> bool:
        answer_lower = answer.lower()
        return any(phrase.lower() in answer_lower for phrase in self.config.refusal_phrases)

    def _keywords(self, text: str) -> List[str]:
        return keyword_tokens(text, self.config.short_token_max_length)

    def check_citations(self, answer: str) -> List[GroundingIssue]:
        if re.search(r'\[\d+\]', answer):
            return []
        return [GroundingIssue(
            Severity.CRITICAL,
            "missing_citations",
            "No citations in the answer; high risk of hallucination"
        )]

    def check_grounding(self, answer_keywords: List[str], sources_lower: str) -> List[GroundingIssue]:
        if len(answer_keywords) <= self.config.min_answer_keywords:
            return []

        matched = sum(1 for word in answer_keywords if word in sources_lower)
        fraction = matched / len(answer_keywords)
        if fraction >= self.config.min_grounded_fraction:
            return []

        return [GroundingIssue(
            Severity.CAUTION,
            "low_grounding",
            f"Only {fraction:.0%} of the answer's keywords were found in the sources "
            f"(minimum {self.config.min_grounded_fraction:.0%})"
        )]

    def check_numbers(self, answer: str, sources: str) -> List[GroundingIssue]:
        pattern = r'\d{%d,}' % self.config.min_number_digits
        text = strip_citation_markers(answer) if self.config.ignore_citation_markers else answer
        numbers = re.findall(pattern, text)

        issues = []
        for number in dict.fromkeys(numbers):
            if number not in sources:
                issues.append(GroundingIssue(
                    Severity.CAUTION,
                    "ungrounded_number",
                    f'Number "{number}" not found in the sources'
                ))
        return issues

    def check_relevance(self, question: str, answer_keywords: List[str]) -> List[GroundingIssue]:
        question_keywords = self._keywords(question)
        if len(question_keywords) <= self.config.min_question_keywords:
            return []

        answer_set = set(answer_keywords)
        matched = sum(1 for word in question_keywords if word in answer_set)
        fraction = matched / len(question_keywords)
        if fraction >= self.config.min_question_overlap:
            return []

        return [GroundingIssue(
            Severity.CAUTION,
            "low_relevance",
            f"The answer barely addresses the question "
            f"({fraction:.0%} of question keywords matched)"
        )]

    def validate(
        self,
        answer: str,
        chunk_texts: List[str],
        question: Optional[str] = None
    ) -> ValidationResult:
        """
        Run all rules over an answer.

        Args:
            answer: Generated answer text
            chunk_texts: Texts of the chunks the answer was generated from
            question: Original question, enables the relevance rule

        Returns:
            ValidationResult; no issues means no detected risk
        """
        if self.is_refusal(answer):
            return ValidationResult()

        sources = " ".join(chunk_texts)
        answer_keywords = self._keywords(answer)

        issues = []
        issues.extend(self.check_citations(answer))
        issues.extend(self.check_grounding(answer_keywords, sources.lower()))
        issues.extend(self.check_numbers(answer, sources))
        if question:
            issues.extend(self.check_relevance(question, answer_keywords))

        return ValidationResult(issues=issues)
