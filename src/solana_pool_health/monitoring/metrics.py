"""Process-wide counters, gauges and latency summaries for pool queries."""

from __future__ import annotations

import math
import re
import threading
from collections import deque
from typing import Deque, Dict, List, Tuple

NAMESPACE = "solana_pool_health"
QUANTILES: Tuple[float, ...] = (0.5, 0.9, 0.99)

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def exposition_name(name: str) -> str:
    """Map a dotted metric name such as ``source.Orca.Timeout`` to a Prometheus name."""

    return f"{NAMESPACE}_{_INVALID_CHARS.sub('_', name)}"


class _Summary:
    """Bounded window of observations plus running totals."""

    def __init__(self, window: int) -> None:
        self.samples: Deque[float] = deque(maxlen=window)
        self.count = 0
        self.total = 0.0

    def add(self, value: float) -> None:
        self.samples.append(value)
        self.count += 1
        self.total += value

    def quantile(self, q: float) -> float:
        # Nearest-rank over the retained window.
        ordered = sorted(self.samples)
        if not ordered:
            return 0.0
        rank = max(math.ceil(q * len(ordered)), 1)
        return ordered[rank - 1]

    def describe(self) -> Dict[str, float]:
        stats = {"count": float(self.count), "sum": self.total}
        for q in QUANTILES:
            stats[f"q{q:g}"] = self.quantile(q)
        return stats


class MetricsRegistry:
    """Thread-safe in-memory metrics, exported in the Prometheus text format.

    Adapters record ``source.<tag>.*`` series and the aggregator records
    ``aggregation.*`` series; the command line prints the export with ``--metrics``.
    """

    def __init__(self, *, window: int = 1024) -> None:
        self._lock = threading.Lock()
        self._window = window
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._summaries: Dict[str, _Summary] = {}

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def get_gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            summary = self._summaries.get(name)
            if summary is None:
                summary = self._summaries[name] = _Summary(self._window)
            summary.add(float(value))

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {
                    name: summary.describe() for name, summary in self._summaries.items()
                },
            }

    def export_prometheus(self) -> str:
        snap = self.snapshot()
        lines: List[str] = []
        for kind, series in (("counter", snap["counters"]), ("gauge", snap["gauges"])):
            for name in sorted(series):
                metric = exposition_name(name)
                lines.append(f"# TYPE {metric} {kind}")
                lines.append(f"{metric} {series[name]}")
        histograms = snap["histograms"]
        for name in sorted(histograms):
            stats = histograms[name]
            metric = exposition_name(name)
            lines.append(f"# TYPE {metric} summary")
            for q in QUANTILES:
                lines.append(f'{metric}{{quantile="{q:g}"}} {stats[f"q{q:g}"]}')
            lines.append(f"{metric}_sum {stats['sum']}")
            lines.append(f"{metric}_count {stats['count']}")
        return "\n".join(lines) + "\n" if lines else ""

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._summaries.clear()


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry", "exposition_name"]
