"""
Latency metrics collection and analysis.

Tracks:
- P50, P95, P99 latencies
- Per-component latencies (query embedding, card store)
- Search mode per request
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional

COMPONENTS = ("embedding", "store")


@dataclass
class LatencyMetrics:
    """Latency metrics for a single search."""

    total_ms: float
    embedding_ms: Optional[float] = None
    store_ms: Optional[float] = None
    mode: Optional[str] = None
    request_id: Optional[str] = None


class LatencyCollector:
    """
    Collect and analyze latency metrics.

    Maintains rolling windows for percentile calculations.
    """

    def __init__(self, window_size: int = 1000):
        """
        Args:
            window_size: Number of recent requests to keep for percentiles
        """
        self.window_size = window_size
        self.metrics: deque = deque(maxlen=window_size)
        self._component_metrics: Dict[str, deque] = {
            name: deque(maxlen=window_size) for name in COMPONENTS
        }
        self._mode_counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def record(self, metrics: LatencyMetrics):
        """Record a latency measurement."""
        with self._lock:
            self.metrics.append(metrics.total_ms)

            if metrics.embedding_ms is not None:
                self._component_metrics["embedding"].append(metrics.embedding_ms)
            if metrics.store_ms is not None:
                self._component_metrics["store"].append(metrics.store_ms)
            if metrics.mode:
                self._mode_counts[metrics.mode] = self._mode_counts.get(metrics.mode, 0) + 1

    def get_percentiles(self, component: Optional[str] = None) -> Dict[str, float]:
        """
        Get latency percentiles.

        Args:
            component: Component name (embedding, store) or None for total
                latency

        Returns:
            Dict with p50, p95, p99, mean, min and max values
        """
        with self._lock:
            if component:
                values = list(self._component_metrics.get(component, []))
            else:
                values = list(self.metrics)

        if not values:
            return {"p50": 0.0, "p95": 0.0, "p99": 0.0}

        sorted_values = sorted(values)
        n = len(sorted_values)

        return {
            "p50": sorted_values[int(n * 0.50)],
            "p95": sorted_values[int(n * 0.95)],
            "p99": sorted_values[int(n * 0.99)],
            "mean": sum(sorted_values) / n,
            "min": sorted_values[0],
            "max": sorted_values[-1],
        }

    def get_summary(self) -> Dict:
        """Get comprehensive latency summary."""
        summary = {
            "total": self.get_percentiles(),
            "components": {},
            "modes": dict(self._mode_counts),
        }

        for component in COMPONENTS:
            if self._component_metrics[component]:
                summary["components"][component] = self.get_percentiles(component)

        return summary

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            self.metrics.clear()
            for component in self._component_metrics:
                self._component_metrics[component].clear()
            self._mode_counts.clear()
