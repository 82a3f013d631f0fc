"""
buildmetrics - collect build and task metrics and publish them to storage backends.

Public API:
    from buildmetrics import ExecutionReport, MetricRegistry, MetricsProvider
    from buildmetrics import PublisherOrchestrator, load_config
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from .config import BuildMetricsConfig, load_config
from .errors import (
    BuildMetricsError,
    ConfigurationError,
    ConnectivityError,
    DataQualityError,
    PublishError,
    SchemaError,
    WriteError,
)
from .metrics import (
    BuildContext,
    Metric,
    MetricContext,
    MetricRegistry,
    MetricsCollector,
    MetricsProvider,
    Preset,
    SimpleMetric,
)
from .models import (
    CustomProperties,
    Environment,
    ExecutionReport,
    MetricValue,
    Switches,
    TaskLength,
    TaskMessageState,
)
from .publishers import PublishOutcome, PublishState, Publisher, PublisherOrchestrator

try:
    __version__ = version("buildmetrics")
except PackageNotFoundError:
    # Source tree that was never installed
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "BuildContext",
    "BuildMetricsConfig",
    "BuildMetricsError",
    "ConfigurationError",
    "ConnectivityError",
    "CustomProperties",
    "DataQualityError",
    "Environment",
    "ExecutionReport",
    "Metric",
    "MetricContext",
    "MetricRegistry",
    "MetricValue",
    "MetricsCollector",
    "MetricsProvider",
    "Preset",
    "PublishError",
    "PublishOutcome",
    "PublishState",
    "Publisher",
    "PublisherOrchestrator",
    "SchemaError",
    "SimpleMetric",
    "Switches",
    "TaskLength",
    "TaskMessageState",
    "WriteError",
    "load_config",
]
