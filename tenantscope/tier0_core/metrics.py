"""
tenantscope.tier0_core.metrics
───────────────────────────────
Counters and histograms with standard naming and labels, exported through
the default prometheus-client registry. The host application decides how
to expose the registry (ASGI app, push gateway, /metrics endpoint).

Every series carries `service` (APP_NAME) and `env` (APP_ENV) labels,
resolved from config when the series is first touched.

Minimal stack: prometheus-client
"""
from __future__ import annotations

from typing import Callable

from prometheus_client import Counter, Histogram

from tenantscope.tier0_core.config import get_config

# Standard labels applied to every metric
_DEFAULT_LABELS = ["service", "env"]


def _default_label_values() -> dict[str, str]:
    config = get_config()
    return {"service": config.app_name, "env": config.environment}


def counter(name: str, description: str, labels: list[str] | None = None) -> Callable:
    """
    Create a counter with standard labels.

    Usage:
        transactions_total = counter("tenantscope_transactions_total", "...", ["kind"])
        transactions_total(kind="tenant").inc()
    """
    c = Counter(name, description, _DEFAULT_LABELS + (labels or []))

    def _counter(**extra_labels: str) -> Counter:
        return c.labels(**_default_label_values(), **extra_labels)

    return _counter


def histogram(
    name: str,
    description: str,
    labels: list[str] | None = None,
    buckets: tuple = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
) -> Callable:
    """
    Create a histogram with standard labels.

    Usage:
        duration = histogram("tenantscope_transaction_duration_seconds", "...", ["kind"])
        duration(kind="tenant").observe(elapsed)
    """
    h = Histogram(name, description, _DEFAULT_LABELS + (labels or []), buckets=buckets)

    def _histogram(**extra_labels: str) -> Histogram:
        return h.labels(**_default_label_values(), **extra_labels)

    return _histogram


__all__ = ["counter", "histogram"]
