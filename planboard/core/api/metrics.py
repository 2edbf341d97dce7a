"""In-memory metrics store for the Planboard API.

Thread-safe counters and latency tracking -- process lifetime only, no persistence.
Exposes Prometheus-style plaintext via format_metrics().
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple


class LatencyHistogram:
    """Simple latency histogram with percentile calculation.

    Stores latencies in a ring buffer (fixed size) to limit memory.
    """

    def __init__(self, max_samples: int = 10000) -> None:
        self._samples: Deque[float] = deque(maxlen=max_samples)
        self._lock = threading.Lock()

    def record(self, latency_ms: float) -> None:
        with self._lock:
            self._samples.append(latency_ms)

    def percentile(self, p: float) -> Optional[float]:
        """Calculate percentile (0-100)."""
        with self._lock:
            if not self._samples:
                return None
            sorted_samples = sorted(self._samples)
            idx = int(len(sorted_samples) * p / 100)
            return sorted_samples[min(idx, len(sorted_samples) - 1)]

    def count(self) -> int:
        with self._lock:
            return len(self._samples)

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()


class RouteMetrics:
    """Per-route request and error counts plus latency."""

    def __init__(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.latency = LatencyHistogram()

    def record_request(self, latency_ms: float, is_error: bool = False) -> None:
        self.request_count += 1
        self.latency.record(latency_ms)
        if is_error:
            self.error_count += 1


_QUANTILES = (("0.5", 50), ("0.95", 95), ("0.99", 99))


class MetricsStore:
    """Thread-safe in-memory counter store with latency tracking."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests_total: int = 0
        self._requests_inflight: int = 0
        # Keyed by (route template, method) so ids do not explode cardinality.
        self._routes: Dict[Tuple[str, str], RouteMetrics] = {}
        # Error envelopes by type (AUTH_ERROR, FORBIDDEN, ...).
        self._errors_by_type: Dict[str, int] = {}
        self._global_latency = LatencyHistogram()

    def inc_requests_total(self) -> None:
        with self._lock:
            self._requests_total += 1

    def inc_inflight(self) -> None:
        with self._lock:
            self._requests_inflight += 1

    def dec_inflight(self) -> None:
        with self._lock:
            self._requests_inflight = max(0, self._requests_inflight - 1)

    def record_route_request(
        self, route: str, method: str, latency_ms: float, is_error: bool = False
    ) -> None:
        key = (route, method)
        with self._lock:
            if key not in self._routes:
                self._routes[key] = RouteMetrics()
            self._routes[key].record_request(latency_ms, is_error)
            self._global_latency.record(latency_ms)

    def record_error(self, error_type: str) -> None:
        with self._lock:
            self._errors_by_type[error_type] = self._errors_by_type.get(error_type, 0) + 1

    def snapshot(self) -> Dict[str, object]:
        """Plain counters, for tests and the health endpoint."""
        with self._lock:
            return {
                "requests_total": self._requests_total,
                "requests_inflight": self._requests_inflight,
                "errors_by_type": dict(self._errors_by_type),
                "routes": {f"{m} {r}": rm.request_count for (r, m), rm in self._routes.items()},
            }

    def format_metrics(self) -> str:
        """Return Prometheus-style plaintext metrics."""
        lines: List[str] = []

        with self._lock:
            lines.append("# HELP planboard_requests_total Total API requests")
            lines.append("# TYPE planboard_requests_total counter")
            lines.append(f"planboard_requests_total {self._requests_total}")

            lines.append("# HELP planboard_requests_inflight Inflight requests")
            lines.append("# TYPE planboard_requests_inflight gauge")
            lines.append(f"planboard_requests_inflight {self._requests_inflight}")

            lines.append("# HELP planboard_route_requests_total Requests per route")
            lines.append("# TYPE planboard_route_requests_total counter")
            for (route, method), rm in sorted(self._routes.items()):
                lines.append(
                    f'planboard_route_requests_total{{route="{route}",method="{method}"}} {rm.request_count}'
                )

            lines.append("# HELP planboard_route_errors_total Error responses per route")
            lines.append("# TYPE planboard_route_errors_total counter")
            for (route, method), rm in sorted(self._routes.items()):
                if rm.error_count > 0:
                    lines.append(
                        f'planboard_route_errors_total{{route="{route}",method="{method}"}} {rm.error_count}'
                    )

            lines.append("# HELP planboard_route_latency_ms Route latency in milliseconds")
            lines.append("# TYPE planboard_route_latency_ms summary")
            for (route, method), rm in sorted(self._routes.items()):
                for label, p in _QUANTILES:
                    value = rm.latency.percentile(p)
                    if value is not None:
                        lines.append(
                            f'planboard_route_latency_ms{{route="{route}",method="{method}",quantile="{label}"}} {value:.3f}'
                        )

            lines.append("# HELP planboard_errors_total Error envelopes by type")
            lines.append("# TYPE planboard_errors_total counter")
            for error_type, count in sorted(self._errors_by_type.items()):
                lines.append(f'planboard_errors_total{{type="{error_type}"}} {count}')

            lines.append("# HELP planboard_latency_ms Latency in milliseconds")
            lines.append("# TYPE planboard_latency_ms summary")
            for label, p in _QUANTILES:
                value = self._global_latency.percentile(p)
                if value is not None:
                    lines.append(f'planboard_latency_ms{{quantile="{label}"}} {value:.3f}')

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        with self._lock:
            self._requests_total = 0
            self._requests_inflight = 0
            self._routes.clear()
            self._errors_by_type.clear()
            self._global_latency.reset()


# Singleton instance -- one per process.
metrics = MetricsStore()
