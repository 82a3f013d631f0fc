"""
Registry deciding which metrics are collected for a build.

Usage:
    registry = MetricRegistry()
    registry.git().performance()
    registry.add_custom_build_property("buildType", "release")
    registry.add_custom_task_property({"team": "core"})

    metrics = registry.resolve()  # once, when the build finishes
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from buildmetrics.errors import ConfigurationError
from buildmetrics.metrics.base import Metric, SimpleMetric
from buildmetrics.metrics.builtin import DEFAULT_BUNDLE, PRESETS, BuildIdMetric, Preset
from buildmetrics.metrics.provider import BUILD_KEYS, TASK_KEYS
from buildmetrics.models import ExecutionReport

logger = logging.getLogger(__name__)

AnyMetric = Metric[Any, Any]


def _coerce_preset(name: Preset | str) -> Preset:
    try:
        return Preset(name)
    except ValueError:
        valid = ", ".join(p.value for p in Preset)
        raise ConfigurationError(
            f"Unknown metric preset '{name}'. Expected one of: {valid}"
        ) from None


def _property_pairs(
    args: tuple[Any, ...], kwargs: Mapping[str, Any], reserved: frozenset[str]
) -> list[tuple[str, str]]:
    """Normalize the accepted call shapes into ``(key, value)`` pairs.

    Accepted: ``("k", "v")`` positional strings, any number of 2-tuples, any
    number of mappings, and keyword arguments.
    """
    if len(args) == 2 and all(isinstance(a, str) for a in args):
        args = ((args[0], args[1]),)

    pairs: list[tuple[str, str]] = []
    for arg in args:
        if isinstance(arg, Mapping):
            pairs.extend((str(k), str(v)) for k, v in arg.items())
        elif isinstance(arg, tuple) and len(arg) == 2:
            pairs.append((str(arg[0]), str(arg[1])))
        else:
            raise ConfigurationError(
                f"Custom property must be a (key, value) pair or a mapping, got {arg!r}"
            )
    pairs.extend((k, str(v)) for k, v in kwargs.items())

    for key, _ in pairs:
        if not key:
            raise ConfigurationError("Custom property keys must not be empty")
        if key in reserved:
            raise ConfigurationError(f"Custom property key '{key}' is a built-in metric key")
    return pairs


def _build_property_metric(key: str, value: str) -> SimpleMetric[str]:
    def assign(report: ExecutionReport, provided: str) -> None:
        report.custom_properties.build_properties[key] = provided

    return SimpleMetric(provider=lambda _ctx: value, assigner=assign, name=f"buildProperty[{key}]")


def _task_property_metric(key: str, value: str) -> SimpleMetric[str]:
    def assign(report: ExecutionReport, provided: str) -> None:
        report.custom_properties.task_properties[key] = provided

    return SimpleMetric(provider=lambda _ctx: value, assigner=assign, name=f"taskProperty[{key}]")


class MetricRegistry:
    """Ordered, mutable list of metrics, frozen by :meth:`resolve`."""

    def __init__(self, generate_build_id: bool = False) -> None:
        self.generate_build_id = generate_build_id
        self._metrics: list[AnyMetric] = []
        # Presets or custom metrics were added; custom properties alone don't count.
        self._customized = False
        self._resolved: tuple[AnyMetric, ...] | None = None

    @property
    def is_resolved(self) -> bool:
        return self._resolved is not None

    def _check_mutable(self) -> None:
        if self._resolved is not None:
            raise ConfigurationError("Metric registry is already resolved; metrics can't be added")

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    def add_preset(self, name: Preset | str) -> MetricRegistry:
        """Append the built-in metrics of a preset, skipping ones already present."""
        self._check_mutable()
        preset = _coerce_preset(name)
        present = {type(m) for m in self._metrics}
        for metric_cls in PRESETS[preset]:
            if metric_cls not in present:
                self._metrics.append(metric_cls())
        self._customized = True
        return self

    def default(self) -> MetricRegistry:
        return self.add_preset(Preset.DEFAULT)

    def git(self) -> MetricRegistry:
        return self.add_preset(Preset.GIT)

    def environment(self) -> MetricRegistry:
        return self.add_preset(Preset.ENVIRONMENT)

    def performance(self) -> MetricRegistry:
        return self.add_preset(Preset.PERFORMANCE)

    def switches(self) -> MetricRegistry:
        return self.add_preset(Preset.SWITCHES)

    # ------------------------------------------------------------------
    # Custom metrics
    # ------------------------------------------------------------------

    def add_custom_metric(self, *metrics: AnyMetric) -> MetricRegistry:
        self._check_mutable()
        for metric in metrics:
            if not isinstance(metric, Metric):
                raise ConfigurationError(f"Custom metric must be a Metric, got {metric!r}")
            self._metrics.append(metric)
        self._customized = True
        return self

    def add_custom_build_property(self, *args: Any, **kwargs: Any) -> MetricRegistry:
        """Record literal key/value pairs in ``custom_properties.build_properties``."""
        self._check_mutable()
        for key, value in _property_pairs(args, kwargs, BUILD_KEYS):
            self._metrics.append(_build_property_metric(key, value))
        return self

    def add_custom_task_property(self, *args: Any, **kwargs: Any) -> MetricRegistry:
        """Record literal key/value pairs in ``custom_properties.task_properties``."""
        self._check_mutable()
        for key, value in _property_pairs(args, kwargs, TASK_KEYS):
            self._metrics.append(_task_property_metric(key, value))
        return self

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self) -> tuple[AnyMetric, ...]:
        """Freeze the registry and return the metrics to apply, in order.

        An uncustomized registry falls back to the full default bundle. Custom
        properties are kept alongside it.
        """
        if self._resolved is not None:
            return self._resolved

        metrics: list[AnyMetric] = []
        if not self._customized:
            for preset in DEFAULT_BUNDLE:
                metrics.extend(metric_cls() for metric_cls in PRESETS[preset])
        metrics.extend(self._metrics)

        if self.generate_build_id:
            metrics.append(BuildIdMetric())

        self._resolved = tuple(metrics)
        logger.debug("Resolved %d metrics", len(self._resolved))
        return self._resolved
