"""In-memory metrics store for the usage gateway.

Thread-safe counters and latency tracking, process lifetime only.
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
            ordered = sorted(self._samples)
            idx = int(len(ordered) * p / 100)
            return ordered[min(idx, len(ordered) - 1)]

    def count(self) -> int:
        with self._lock:
            return len(self._samples)

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()


class EndpointMetrics:
    """Per-endpoint request and error counts plus latency."""

    def __init__(self) -> None:
        self.request_count = 0
        self.error_count = 0
        self.latency = LatencyHistogram()

    def record_request(self, latency_ms: float, is_error: bool = False) -> None:
        self.request_count += 1
        self.latency.record(latency_ms)
        if is_error:
            self.error_count += 1

    def error_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.error_count / self.request_count


class MetricsStore:
    """Thread-safe in-memory counter store with latency tracking."""

    _QUANTILES = (("0.5", 50), ("0.95", 95), ("0.99", 99))

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests_total: int = 0
        self._requests_inflight: int = 0
        self._endpoint_metrics: Dict[Tuple[str, str], EndpointMetrics] = {}
        # Keyed by upstream status; 0 means no response arrived.
        self._upstream_errors: Dict[int, int] = {}
        self._global_latency = LatencyHistogram()

    def inc_inflight(self) -> None:
        with self._lock:
            self._requests_inflight += 1

    def dec_inflight(self) -> None:
        with self._lock:
            self._requests_inflight = max(0, self._requests_inflight - 1)

    def record_endpoint_request(
        self,
        path: str,
        method: str,
        latency_ms: float,
        is_error: bool = False,
    ) -> None:
        """Record one finished request with its latency."""
        key = (path, method)
        with self._lock:
            self._requests_total += 1
            if key not in self._endpoint_metrics:
                self._endpoint_metrics[key] = EndpointMetrics()
            self._endpoint_metrics[key].record_request(latency_ms, is_error)
        self._global_latency.record(latency_ms)

    def inc_upstream_error(self, status_code: int) -> None:
        with self._lock:
            self._upstream_errors[status_code] = self._upstream_errors.get(status_code, 0) + 1

    @property
    def requests_total(self) -> int:
        with self._lock:
            return self._requests_total

    def upstream_errors(self) -> Dict[int, int]:
        with self._lock:
            return dict(self._upstream_errors)

    def format_metrics(self) -> str:
        """Return Prometheus-style plaintext metrics."""
        lines: List[str] = []

        with self._lock:
            lines.append("# HELP usage_gateway_requests_total Total API requests")
            lines.append("# TYPE usage_gateway_requests_total counter")
            lines.append(f"usage_gateway_requests_total {self._requests_total}")

            lines.append("# HELP usage_gateway_requests_inflight Inflight requests")
            lines.append("# TYPE usage_gateway_requests_inflight gauge")
            lines.append(f"usage_gateway_requests_inflight {self._requests_inflight}")

            lines.append("# HELP usage_gateway_endpoint_requests_total Requests per endpoint")
            lines.append("# TYPE usage_gateway_endpoint_requests_total counter")
            for (path, method), em in sorted(self._endpoint_metrics.items()):
                lines.append(
                    f'usage_gateway_endpoint_requests_total{{path="{path}",method="{method}"}} '
                    f"{em.request_count}"
                )

            lines.append("# HELP usage_gateway_endpoint_errors_total Errors per endpoint")
            lines.append("# TYPE usage_gateway_endpoint_errors_total counter")
            for (path, method), em in sorted(self._endpoint_metrics.items()):
                if em.error_count > 0:
                    lines.append(
                        f'usage_gateway_endpoint_errors_total{{path="{path}",method="{method}"}} '
                        f"{em.error_count}"
                    )

            lines.append("# HELP usage_gateway_endpoint_latency_ms Endpoint latency in milliseconds")
            lines.append("# TYPE usage_gateway_endpoint_latency_ms summary")
            for (path, method), em in sorted(self._endpoint_metrics.items()):
                for label, p in self._QUANTILES:
                    value = em.latency.percentile(p)
                    if value is not None:
                        lines.append(
                            f'usage_gateway_endpoint_latency_ms{{path="{path}",method="{method}",'
                            f'quantile="{label}"}} {value:.3f}'
                        )

            lines.append("# HELP usage_gateway_upstream_errors_total Failed admin API calls by status")
            lines.append("# TYPE usage_gateway_upstream_errors_total counter")
            for status, count in sorted(self._upstream_errors.items()):
                lines.append(f'usage_gateway_upstream_errors_total{{status="{status}"}} {count}')

        lines.append("# HELP usage_gateway_latency_ms Latency in milliseconds")
        lines.append("# TYPE usage_gateway_latency_ms summary")
        for label, p in self._QUANTILES:
            value = self._global_latency.percentile(p)
            if value is not None:
                lines.append(f'usage_gateway_latency_ms{{quantile="{label}"}} {value:.3f}')

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        with self._lock:
            self._requests_total = 0
            self._requests_inflight = 0
            self._endpoint_metrics.clear()
            self._upstream_errors.clear()
        self._global_latency.reset()


# Singleton instance, one per process.
metrics = MetricsStore()
