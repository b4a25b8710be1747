"""
Mode Comparison Module

Runs questions through the pipeline with retrieval stages switched on
and off, and summarises citation status and grounding flags.
"""

import logging
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field

from .errors import ProviderError
from .pipeline import RAGPipeline, PipelineConfig, AnswerWithSources, format_answer_with_sources
from .verify import VerificationConfig

logger = logging.getLogger(__name__)


@dataclass
class RetrievalMode:
    name: str
    min_score: Optional[float]
    use_reranking: bool


def default_modes(min_score: float) -> List[RetrievalMode]:
    return [
        RetrievalMode("no filter, no rerank", 0.0, False),
        RetrievalMode(f"filter (score >= {min_score}), no rerank", min_score, False),
        RetrievalMode("filter + rerank", min_score, True),
    ]


@dataclass
class QuestionReport:
    question: str
    baseline_answer: Optional[str] = None
    results: Dict[str, AnswerWithSources] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)


def classify_result(result: Optional[AnswerWithSources], config: Optional[VerificationConfig] = None) -> Dict[str, str]:
    """
    Status and flag level of one answer.

    status: refusal, cited, uncited or error
    flag: critical, caution or ok
    """
    if result is None:
        return {"status": "error", "flag": "critical"}

    config = config or VerificationConfig()
    answer_lower = result.answer.lower()

    if any(phrase.lower() in answer_lower for phrase in config.refusal_phrases):
        status = "refusal"
    elif result.found_citations:
        status = "cited"
    else:
        status = "uncited"

    if any(h.startswith("[CRITICAL]") for h in result.hallucinations):
        flag = "critical"
    elif result.hallucinations:
        flag = "caution"
    else:
        flag = "ok"

    return {"status": status, "flag": flag}


def summarize(results: List[Optional[AnswerWithSources]]) -> Dict[str, Any]:
    """Count statuses and flags over a batch of answers."""
    summary = {"total": len(results), "successful": 0, "critical": 0, "caution": 0, "ok": 0}
    for result in results:
        classification = classify_result(result)
        if classification["status"] in ("refusal", "cited"):
            summary["successful"] += 1
        summary[classification["flag"]] += 1
    return summary


def compare_question(
    pipeline: RAGPipeline,
    question: str,
    modes: Optional[List[RetrievalMode]] = None,
    include_baseline: bool = True
) -> QuestionReport:
    """Answer one question in every mode; provider errors are recorded per mode."""
    modes = modes or default_modes(pipeline.config.retrieval.min_similarity_score)
    report = QuestionReport(question=question)

    if include_baseline:
        try:
            report.baseline_answer = pipeline.answer_without_context(question)
        except ProviderError as exc:
            report.errors["baseline"] = str(exc)

    for mode in modes:
        try:
            report.results[mode.name] = pipeline.query(
                question,
                min_score=mode.min_score,
                use_reranking=mode.use_reranking
            )
        except ProviderError as exc:
            logger.error("Mode '%s' failed: %s", mode.name, exc)
            report.errors[mode.name] = str(exc)

    return report


def format_report(report: QuestionReport) -> str:
    lines = ["=" * 80, f"QUESTION: {report.question}", "=" * 80]

    if report.baseline_answer is not None or "baseline" in report.errors:
        lines += ["", "MODE: no retrieval (baseline)", "-" * 80]
        lines.append(report.errors.get("baseline") or report.baseline_answer.strip())

    for name, result in report.results.items():
        lines += ["", f"MODE: {name}", "-" * 80, format_answer_with_sources(result)]
    for name, error in report.errors.items():
        if name != "baseline":
            lines += ["", f"MODE: {name}", "-" * 80, f"Error: {error}"]

    return "\n".join(lines)


def main():
    """CLI for comparing retrieval modes."""
    import argparse

    parser = argparse.ArgumentParser(description="Compare answers across retrieval modes")
    parser.add_argument("--config", "-c", help="Config file path")
    parser.add_argument("--questions", "-q", nargs="+", required=True)
    parser.add_argument("--no-baseline", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    config = PipelineConfig.from_config_file(args.config) if args.config else PipelineConfig()
    pipeline = RAGPipeline(config)

    final_results = []
    for question in args.questions:
        report = compare_question(pipeline, question, include_baseline=not args.no_baseline)
        print(format_report(report))
        final_results.append(report.results.get("filter + rerank"))

    summary = summarize(final_results)
    print("\nSUMMARY (filter + rerank):")
    print(f"  Successful answers: {summary['successful']}/{summary['total']}")
    print(f"  Critical flags: {summary['critical']}")
    print(f"  Caution flags:  {summary['caution']}")


if __name__ == "__main__":
    main()
