"""
Metric definitions, registry and flattening.

Architecture:
- sources.py: data sources metrics read from (build context, host, git)
- base.py: Metric base class, source categories, SimpleMetric
- builtin.py: built-in metrics grouped into presets
- registry.py: MetricRegistry deciding what gets measured
- collector.py: applies resolved metrics to a report
- provider.py: flattens a report into key/value pairs

Usage:
    from buildmetrics.metrics import MetricContext, MetricRegistry, MetricsCollector

    registry = MetricRegistry()
    registry.add_custom_build_property("buildType", "release")
    MetricsCollector(registry.resolve()).collect(MetricContext(build=ctx), report)
"""

from .base import (
    BuildMetric,
    ContextMetric,
    EnvironmentMetric,
    GitMetric,
    Metric,
    SimpleMetric,
)
from .builtin import PRESETS, BuildIdMetric, Preset
from .collector import CollectionResult, MetricsCollector
from .provider import MetricsProvider
from .registry import MetricRegistry
from .sources import BuildContext, EnvironmentProbe, GitProbe, MetricContext

__all__ = [
    "BuildContext",
    "BuildIdMetric",
    "BuildMetric",
    "CollectionResult",
    "ContextMetric",
    "EnvironmentMetric",
    "EnvironmentProbe",
    "GitMetric",
    "GitProbe",
    "Metric",
    "MetricContext",
    "MetricRegistry",
    "MetricsCollector",
    "MetricsProvider",
    "PRESETS",
    "Preset",
    "SimpleMetric",
]
