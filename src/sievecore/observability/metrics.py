"""
Defines Prometheus metrics for the extraction pipeline.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Importing this module more than once (e.g. under pytest) must not register
# the same collector twice.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, reuse the collector that won.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "documents_parsed": Counter(
            "sievecore_documents_parsed_total",
            "Total number of HTML documents parsed",
        ),
        "fields_extracted": Counter(
            "sievecore_fields_extracted_total",
            "Fields successfully extracted, per schema",
            ["schema"],
        ),
        "fields_failed": Counter(
            "sievecore_fields_failed_total",
            "Fields that failed extraction, per schema",
            ["schema"],
        ),
        "pipeline_steps": Counter(
            "sievecore_pipeline_steps_total",
            "Transformation pipeline steps executed, per step type",
            ["step_type"],
        ),
        "batch_items": Counter(
            "sievecore_batch_items_total",
            "Batch items by final status",
            ["status"],
        ),
        "batch_duration_seconds": Histogram(
            "sievecore_batch_duration_seconds",
            "Wall-clock duration of batch runs",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()
