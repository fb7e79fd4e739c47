"""Evaluation harness for intent classifier implementations.

Runs a labeled dataset through the parsing service and reports:
- Accuracy (overall and per category)
- Per-intent precision / recall
- Most frequent confusion pairs
- Mean classification latency
"""

import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

import yaml

from .config import settings
from .errors import IntentEngineError
from .models import ParseOptions
from .service import IntentParsingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationCase:
    """One labeled message."""

    text: str
    intent: str
    category: str = "general"
    highlighted_text: Optional[str] = None


@dataclass
class CaseResult:
    """Outcome of classifying one case."""

    case: EvaluationCase
    predicted: Optional[str] = None
    confidence: float = 0.0
    parser: Optional[str] = None
    low_confidence: bool = False
    latency_ms: float = 0.0
    error: Optional[str] = None

    @property
    def correct(self) -> bool:
        return self.error is None and self.predicted == self.case.intent


@dataclass
class IntentStats:
    """Confusion counts for one intent."""

    intent: str
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0

    @property
    def precision(self) -> float:
        predicted = self.true_positives + self.false_positives
        return self.true_positives / predicted if predicted else 0.0

    @property
    def recall(self) -> float:
        actual = self.true_positives + self.false_negatives
        return self.true_positives / actual if actual else 0.0

    @property
    def support(self) -> int:
        return self.true_positives + self.false_negatives


@dataclass
class EvaluationReport:
    """Aggregated results of one evaluation run."""

    parser: str
    dataset_version: str
    results: list[CaseResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def correct(self) -> int:
        return sum(1 for r in self.results if r.correct)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.error)

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    @property
    def mean_latency_ms(self) -> float:
        timed = [r.latency_ms for r in self.results if r.error is None]
        return sum(timed) / len(timed) if timed else 0.0

    @property
    def parsers_used(self) -> list[str]:
        """Implementations that actually answered (differs from ``parser`` after fallback)."""
        return sorted({r.parser for r in self.results if r.parser})

    def per_intent(self) -> dict[str, IntentStats]:
        stats: dict[str, IntentStats] = {}

        def _get(intent: str) -> IntentStats:
            if intent not in stats:
                stats[intent] = IntentStats(intent=intent)
            return stats[intent]

        for r in self.results:
            expected = _get(r.case.intent)
            if r.correct:
                expected.true_positives += 1
                continue
            expected.false_negatives += 1
            if r.predicted is not None:
                _get(r.predicted).false_positives += 1
        return dict(sorted(stats.items()))

    def confusion_pairs(self, top: Optional[int] = None) -> list[tuple[str, str, int]]:
        """(expected, predicted, count) for misclassifications, most frequent first."""
        counts = Counter(
            (r.case.intent, r.predicted)
            for r in self.results
            if r.error is None and not r.correct
        )
        pairs = [(expected, predicted, n) for (expected, predicted), n in counts.most_common()]
        return pairs[:top] if top else pairs

    def accuracy_by_category(self) -> dict[str, float]:
        totals: Counter = Counter()
        hits: Counter = Counter()
        for r in self.results:
            totals[r.case.category] += 1
            if r.correct:
                hits[r.case.category] += 1
        return {category: hits[category] / n for category, n in sorted(totals.items())}

    def misclassified(self) -> list[CaseResult]:
        return [r for r in self.results if not r.correct]

    def get_summary(self) -> dict:
        return {
            "parser": self.parser,
            "parsers_used": self.parsers_used,
            "dataset_version": self.dataset_version,
            "total_cases": self.total,
            "correct": self.correct,
            "errors": self.errors,
            "accuracy": round(self.accuracy, 4),
            "mean_latency_ms": round(self.mean_latency_ms, 2),
            "per_intent": {
                intent: {
                    "precision": round(s.precision, 4),
                    "recall": round(s.recall, 4),
                    "support": s.support,
                }
                for intent, s in self.per_intent().items()
            },
            "by_category": {k: round(v, 4) for k, v in self.accuracy_by_category().items()},
            "confusion_pairs": [
                {"expected": e, "predicted": p, "count": n} for e, p, n in self.confusion_pairs()
            ],
        }

    def export_results(self, output_path: Path) -> None:
        """Export the summary and every case result to a JSON file."""
        export_data = {
            "summary": self.get_summary(),
            "results": [
                {**asdict(r.case), **{k: v for k, v in asdict(r).items() if k != "case"}}
                for r in self.results
            ],
        }
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(export_data, f, indent=2, ensure_ascii=False)
        logger.info(f"Evaluation results exported to {output_path}")


def load_evaluation_set(path: Optional[Path] = None) -> tuple[str, list[EvaluationCase]]:
    """Load labeled cases from YAML.

    Returns:
        (dataset version, cases)

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a case lacks ``text`` or ``intent``.
    """
    path = Path(path) if path is not None else settings.resolve_path(settings.evaluation_dataset_path)
    if not path.exists():
        raise FileNotFoundError(f"Evaluation dataset not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    cases = []
    for i, raw in enumerate(data.get("cases") or []):
        if not raw or not raw.get("text") or not raw.get("intent"):
            raise ValueError(f"Evaluation case #{i} in {path.name} needs 'text' and 'intent'")
        cases.append(EvaluationCase(
            text=str(raw["text"]),
            intent=str(raw["intent"]),
            category=str(raw.get("category", "general")),
            highlighted_text=raw.get("highlighted_text"),
        ))

    version = str((data.get("_meta") or {}).get("version", "unversioned"))
    logger.info(f"Loaded evaluation set {version}: {len(cases)} cases")
    return version, cases


class IntentEvaluator:
    """Run labeled cases through an ``IntentParsingService``."""

    def __init__(
        self,
        service: IntentParsingService,
        cases: list[EvaluationCase],
        dataset_version: str = "inline",
    ):
        self.service = service
        self.cases = cases
        self.dataset_version = dataset_version

    async def run_case(self, case: EvaluationCase, parser: Optional[str] = None) -> CaseResult:
        options = ParseOptions(include_suggested_response=False, highlighted_text=case.highlighted_text)
        t0 = time.perf_counter()
        try:
            result = await self.service.parse_intent(case.text, options, parser=parser)
        except IntentEngineError as e:
            logger.error(f"Evaluation case failed ({case.text[:40]!r}): {e}")
            return CaseResult(case=case, error=str(e))

        return CaseResult(
            case=case,
            predicted=result.intent,
            confidence=result.confidence,
            parser=result.parser,
            low_confidence=result.low_confidence,
            latency_ms=(time.perf_counter() - t0) * 1000,
        )

    async def run(
        self,
        parser: Optional[str] = None,
        categories: Optional[list[str]] = None,
    ) -> EvaluationReport:
        """Classify every case sequentially (latency is measured per case)."""
        cases = self.cases
        if categories:
            cases = [c for c in cases if c.category in categories]

        report = EvaluationReport(
            parser=parser or self.service.selector.default,
            dataset_version=self.dataset_version,
        )
        logger.info(f"Running {len(cases)} evaluation cases with parser={report.parser}")
        for case in cases:
            report.results.append(await self.run_case(case, parser))

        logger.info(
            f"Evaluation done: accuracy={report.accuracy:.1%} "
            f"({report.correct}/{report.total}), mean latency {report.mean_latency_ms:.1f}ms"
        )
        return report
