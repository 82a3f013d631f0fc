"""
Base classes for metrics.

A metric reads one data source out of the :class:`MetricContext`, provides a
value from it and assigns that value into the :class:`ExecutionReport`. Metrics
are stateless and never read each other's output, so the order they are applied
in only matters for diagnostics.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import ClassVar, Generic, TypeVar

from buildmetrics.metrics.sources import BuildContext, EnvironmentProbe, GitProbe, MetricContext
from buildmetrics.models import ExecutionReport

S = TypeVar("S")
V = TypeVar("V")


class Metric(ABC, Generic[S, V]):
    """Abstract base for every metric, built-in or custom."""

    category: ClassVar[str] = "custom"

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def source(self, context: MetricContext) -> S:
        """Select the data source this metric reads from."""

    @abstractmethod
    def provide(self, source: S) -> V | None: ...

    @abstractmethod
    def assign(self, report: ExecutionReport, value: V) -> None: ...

    def apply(self, context: MetricContext, report: ExecutionReport) -> bool:
        """Provide and assign. Returns False when the source had no value."""
        value = self.provide(self.source(context))
        if value is None:
            return False
        self.assign(report, value)
        return True

    def __repr__(self) -> str:
        return f"<{self.name}>"


# ---------------------------------------------------------------------------
# Source categories
# ---------------------------------------------------------------------------


class BuildMetric(Metric[BuildContext, V]):
    category = "build"

    def source(self, context: MetricContext) -> BuildContext:
        return context.build


class EnvironmentMetric(Metric[EnvironmentProbe, V]):
    category = "environment"

    def source(self, context: MetricContext) -> EnvironmentProbe:
        return context.environment


class GitMetric(Metric[GitProbe, V]):
    category = "git"

    def source(self, context: MetricContext) -> GitProbe:
        return context.git


class ContextMetric(Metric[MetricContext, V]):
    """Metric reading from the whole context, the usual base for custom metrics."""

    category = "context"

    def source(self, context: MetricContext) -> MetricContext:
        return context


class SimpleMetric(ContextMetric[V]):
    """
    Metric assembled from a provider and an assigner callable.

    Example:
        SimpleMetric(
            provider=lambda ctx: "release",
            assigner=lambda report, value: report.custom_properties.build_properties.update(
                buildType=value
            ),
            name="buildType",
        )
    """

    def __init__(
        self,
        provider: Callable[[MetricContext], V | None],
        assigner: Callable[[ExecutionReport, V], None],
        name: str | None = None,
    ) -> None:
        self._provider = provider
        self._assigner = assigner
        self._name = name

    @property
    def name(self) -> str:
        return self._name or super().name

    def provide(self, source: MetricContext) -> V | None:
        return self._provider(source)

    def assign(self, report: ExecutionReport, value: V) -> None:
        self._assigner(report, value)
