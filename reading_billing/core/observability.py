from __future__ import annotations

import os
import threading
from collections import defaultdict

BUSINESS_COUNTERS: dict[str, str] = {
    "settlements_total": "Settlements applied by kind.",
    "settlement_failures_total": "Session settlements that failed by reason.",
    "payouts_total": "Payout units processed by outcome.",
    "webhook_events_total": "Payment processor events by type and outcome.",
}


def _format_labels(labels: tuple[tuple[str, str], ...]) -> str:
    return ",".join(f'{name}="{value}"' for name, value in labels)


class PrometheusMetrics:
    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled
        self._lock = threading.Lock()
        self._request_count: dict[tuple[str, str], int] = defaultdict(int)
        self._request_latency_sum: dict[tuple[str, str], float] = defaultdict(float)
        self._counters: dict[str, dict[tuple[tuple[str, str], ...], int]] = defaultdict(lambda: defaultdict(int))

    @classmethod
    def from_env(cls) -> "PrometheusMetrics":
        raw = os.getenv("ENABLE_PROMETHEUS_METRICS", "false").strip().lower()
        return cls(enabled=raw in {"1", "true", "yes", "on"})

    def observe_http_request(self, path: str, method: str, elapsed_seconds: float) -> None:
        if not self.enabled:
            return
        key = (path, method)
        with self._lock:
            self._request_count[key] += 1
            self._request_latency_sum[key] += elapsed_seconds

    def increment(self, name: str, **labels: str) -> None:
        if not self.enabled:
            return
        if name not in BUSINESS_COUNTERS:
            raise KeyError(f"unknown counter {name}")
        key = tuple(sorted(labels.items()))
        with self._lock:
            self._counters[name][key] += 1

    def counter_value(self, name: str, **labels: str) -> int:
        key = tuple(sorted(labels.items()))
        with self._lock:
            return self._counters[name].get(key, 0)

    def render(self) -> str:
        if not self.enabled:
            return "# metrics disabled\n"

        lines = [
            "# HELP http_requests_total Total HTTP requests by path and method.",
            "# TYPE http_requests_total counter",
        ]
        with self._lock:
            for (path, method), count in sorted(self._request_count.items()):
                lines.append(f'http_requests_total{{path="{path}",method="{method}"}} {count}')

            lines.extend(
                [
                    "# HELP http_request_duration_seconds_sum Total request latency in seconds by path and method.",
                    "# TYPE http_request_duration_seconds_sum counter",
                ]
            )
            for (path, method), total in sorted(self._request_latency_sum.items()):
                lines.append(
                    f'http_request_duration_seconds_sum{{path="{path}",method="{method}"}} {total:.6f}'
                )

            for name, help_text in BUSINESS_COUNTERS.items():
                series = self._counters.get(name)
                if not series:
                    continue
                lines.extend([f"# HELP {name} {help_text}", f"# TYPE {name} counter"])
                for labels, count in sorted(series.items()):
                    lines.append(f"{name}{{{_format_labels(labels)}}} {count}")
        lines.append("")
        return "\n".join(lines)


metrics = PrometheusMetrics.from_env()
