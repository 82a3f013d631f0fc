"""
Apply resolved metrics to an execution report.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from buildmetrics.metrics.base import Metric
from buildmetrics.metrics.sources import MetricContext
from buildmetrics.models import ExecutionReport

logger = logging.getLogger(__name__)


@dataclass
class CollectionResult:
    """What happened to each metric during one collection pass."""

    assigned: list[str] = field(default_factory=list)
    absent: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failed


class MetricsCollector:
    """
    Runs every metric against the context and records the values in the report.

    A metric that raises is logged and skipped; the remaining metrics still run.

    Example:
        collector = MetricsCollector(registry.resolve())
        result = collector.collect(MetricContext(build=build_context), report)
    """

    def __init__(self, metrics: Iterable[Metric[Any, Any]]) -> None:
        self._metrics = tuple(metrics)

    @property
    def metrics(self) -> tuple[Metric[Any, Any], ...]:
        return self._metrics

    def collect(self, context: MetricContext, report: ExecutionReport) -> CollectionResult:
        t0 = time.monotonic()
        result = CollectionResult()

        for metric in self._metrics:
            try:
                if metric.apply(context, report):
                    result.assigned.append(metric.name)
                else:
                    result.absent.append(metric.name)
            except Exception as e:
                logger.error("Metric '%s' failed: %s", metric.name, e, exc_info=True)
                result.failed[metric.name] = str(e)

        result.duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.debug(
            "Collected %d metrics (%d absent, %d failed) in %.1fms",
            len(result.assigned),
            len(result.absent),
            len(result.failed),
            result.duration_ms,
        )
        return result
