"""Observability for the intent engine: in-process metrics and structured logs.

Metrics live in one process-wide ``MetricsRegistry``:
- labeled counters (classifications, low confidence, failures, fallbacks)
- a bucketed latency histogram for end-to-end classification

Both export as JSON or Prometheus text (``intent-engine evaluate --metrics``).

Usage:
    from intent_engine.observability import metrics, get_logger

    metrics.increment("classification_total", labels={"intent": "greeting", "parser": "lexical"})

    log = get_logger("selector", request_id="req-abc123")
    log.info("implementation_fallback", requested="semantic", used="lexical")
"""

import bisect
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

LabelKey = tuple[tuple[str, str], ...]

# Seconds. Classification is embedding-bound: sub-millisecond for the keyword
# classifier, tens of milliseconds for local models, up to the timeout remotely.
LATENCY_BUCKETS: tuple[float, ...] = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

DEFAULT_COUNTERS: tuple[tuple[str, str], ...] = (
    ("classification_total", "Classified messages by intent and parser"),
    ("low_confidence_total", "Classifications that fell back to the default intent"),
    ("embedding_failure_total", "Requests that failed because the embedding call failed or timed out"),
    ("entity_extraction_failure_total", "Entity extraction failures degraded to an empty entity list"),
    ("implementation_fallback_total", "Times the selector fell back to another classifier implementation"),
    ("initialization_failure_total", "Classifier implementations that failed to initialize"),
)

DEFAULT_HISTOGRAMS: tuple[tuple[str, str], ...] = (
    ("classification_duration_seconds", "End-to-end classification latency"),
)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _label_key(labels: Optional[dict[str, str]]) -> LabelKey:
    return tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


def _prometheus_labels(key: LabelKey, extra: Optional[tuple[str, str]] = None) -> str:
    pairs = list(key) + ([extra] if extra else [])
    if not pairs:
        return ""
    escaped = (v.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") for _, v in pairs)
    return "{" + ",".join(f'{k}="{v}"' for (k, _), v in zip(pairs, escaped)) + "}"


# =============================================================================
# Metric types
# =============================================================================

@dataclass
class Counter:
    """Monotonic counter, one value per label set."""
    name: str
    help_text: str
    values: dict[LabelKey, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, labels: Optional[dict[str, str]] = None, value: int = 1) -> None:
        key = _label_key(labels)
        with self._lock:
            self.values[key] = self.values.get(key, 0) + value

    def get(self, labels: Optional[dict[str, str]] = None) -> int:
        return self.values.get(_label_key(labels), 0)

    def total(self) -> int:
        with self._lock:
            return sum(self.values.values())

    def samples(self) -> list[tuple[LabelKey, int]]:
        """(label key, value) pairs in label order."""
        with self._lock:
            return sorted(self.values.items())

    def reset(self) -> None:
        with self._lock:
            self.values.clear()


@dataclass
class Histogram:
    """Latency histogram. Keeps raw observations for percentiles and
    per-bucket counts for Prometheus export."""
    name: str
    help_text: str
    buckets: tuple[float, ...] = LATENCY_BUCKETS
    values: list[float] = field(default_factory=list)
    _bucket_counts: list[int] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.buckets = tuple(sorted(self.buckets))
        self._bucket_counts = [0] * len(self.buckets)

    def observe(self, value: float) -> None:
        idx = bisect.bisect_left(self.buckets, value)
        with self._lock:
            self.values.append(value)
            if idx < len(self._bucket_counts):
                self._bucket_counts[idx] += 1

    @property
    def count(self) -> int:
        return len(self.values)

    @property
    def sum(self) -> float:
        return sum(self.values)

    def cumulative_buckets(self) -> list[tuple[float, int]]:
        """(upper bound, observations <= bound); the last entry is +Inf."""
        with self._lock:
            running, out = 0, []
            for bound, n in zip(self.buckets, self._bucket_counts):
                running += n
                out.append((bound, running))
            out.append((float("inf"), len(self.values)))
        return out

    def get_percentile(self, percentile: float) -> float:
        """Nearest-rank percentile (e.g. 0.95 for p95); 0.0 when empty."""
        if not self.values:
            return 0.0
        ordered = sorted(self.values)
        return ordered[min(int(len(ordered) * percentile), len(ordered) - 1)]

    def reset(self) -> None:
        with self._lock:
            self.values.clear()
            self._bucket_counts = [0] * len(self.buckets)


# =============================================================================
# Registry
# =============================================================================

class MetricsRegistry:
    """Process-wide metrics. Recording to an unregistered name is a no-op."""

    def __init__(self):
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()
        for name, help_text in DEFAULT_COUNTERS:
            self.register_counter(name, help_text)
        for name, help_text in DEFAULT_HISTOGRAMS:
            self.register_histogram(name, help_text)

    def register_counter(self, name: str, help_text: str) -> Counter:
        with self._lock:
            return self._counters.setdefault(name, Counter(name=name, help_text=help_text))

    def register_histogram(self, name: str, help_text: str) -> Histogram:
        with self._lock:
            return self._histograms.setdefault(name, Histogram(name=name, help_text=help_text))

    def increment(self, name: str, labels: Optional[dict[str, str]] = None, value: int = 1) -> None:
        counter = self._counters.get(name)
        if counter is not None:
            counter.increment(labels, value)

    def observe(self, name: str, value: float) -> None:
        histogram = self._histograms.get(name)
        if histogram is not None:
            histogram.observe(value)

    def get_counter(self, name: str) -> Optional[Counter]:
        return self._counters.get(name)

    def get_histogram(self, name: str) -> Optional[Histogram]:
        return self._histograms.get(name)

    def to_json(self) -> dict[str, Any]:
        """Snapshot of every metric as a JSON-serializable dict."""
        return {
            "timestamp": _utc_timestamp(),
            "counters": {
                name: [{"labels": dict(key), "value": value} for key, value in counter.samples()]
                for name, counter in self._counters.items()
            },
            "histograms": {
                name: {
                    "count": h.count,
                    "sum": round(h.sum, 6),
                    "p50": h.get_percentile(0.50),
                    "p95": h.get_percentile(0.95),
                    "p99": h.get_percentile(0.99),
                }
                for name, h in self._histograms.items()
            },
        }

    def to_prometheus(self) -> str:
        """Prometheus text exposition format."""
        lines = []
        for name, counter in self._counters.items():
            lines += [f"# HELP {name} {counter.help_text}", f"# TYPE {name} counter"]
            samples = counter.samples()
            if not samples:
                lines.append(f"{name} 0")
            for key, value in samples:
                lines.append(f"{name}{_prometheus_labels(key)} {value}")

        for name, h in self._histograms.items():
            lines += [f"# HELP {name} {h.help_text}", f"# TYPE {name} histogram"]
            for bound, n in h.cumulative_buckets():
                le = "+Inf" if bound == float("inf") else repr(bound)
                lines.append(f"{name}_bucket{_prometheus_labels((), ('le', le))} {n}")
            lines.append(f"{name}_sum {h.sum:.6f}")
            lines.append(f"{name}_count {h.count}")
        return "\n".join(lines)

    def reset_all(self) -> None:
        """Zero every metric (tests, or between evaluation runs)."""
        for counter in self._counters.values():
            counter.reset()
        for histogram in self._histograms.values():
            histogram.reset()


metrics = MetricsRegistry()


# =============================================================================
# Structured Logging
# =============================================================================

class StructuredLogger:
    """Emit one JSON object per event under ``intent_engine.<component>``.

    ``request_id`` and any fields passed to ``bind`` are added to every event.
    """

    def __init__(self, component: str, request_id: Optional[str] = None, **context: Any):
        self.component = component
        self.request_id = request_id
        self.context = context
        self._logger = logging.getLogger(f"intent_engine.{component}")

    def bind(self, **context: Any) -> "StructuredLogger":
        return StructuredLogger(self.component, self.request_id, **{**self.context, **context})

    def _emit(self, level: int, label: str, event: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        entry: dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": label,
            "component": self.component,
            "event": event,
        }
        if self.request_id:
            entry["request_id"] = self.request_id
        entry.update(self.context)
        entry.update(fields)
        self._logger.log(level, json.dumps(entry, default=str))

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, "DEBUG", event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, "INFO", event, fields)

    def warn(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, "WARN", event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, "ERROR", event, fields)


def get_logger(component: str, request_id: Optional[str] = None) -> StructuredLogger:
    """Structured logger for ``component``, optionally tagged with a request id."""
    return StructuredLogger(component, request_id)
