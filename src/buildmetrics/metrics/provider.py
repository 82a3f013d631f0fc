"""
Flatten an execution report into an ordered key/value metric stream.

Every backend consumes the same sequence, so key names, value types and the
zero defaults for the two duration keys stay identical across sinks.

Order:
    1. custom build properties
    2. duration, configuration, success
    3. environment facts, then build-tool switches
    4. cacheRatio, start, rootProject, requestedTasks, scanLink, buildId

Custom property keys may not reuse a built-in key. A report carrying one
anyway has that property skipped and recorded as a data-quality error.
"""

from __future__ import annotations

import logging
from typing import Any

from buildmetrics.errors import DataQualityError
from buildmetrics.models import ExecutionReport, MetricValue

logger = logging.getLogger(__name__)

# (key, environment field, integer-like)
ENVIRONMENT_KEYS: tuple[tuple[str, str, bool], ...] = (
    ("osVersion", "os_version", False),
    ("maxWorkers", "max_workers", True),
    ("javaRuntime", "java_runtime", False),
    ("javaVmName", "java_vm_name", False),
    ("javaXmsBytes", "java_xms_bytes", True),
    ("javaXmxBytes", "java_xmx_bytes", True),
    ("javaMaxPermSize", "java_max_perm_size", True),
    ("totalRamAvailableBytes", "total_ram_available_bytes", True),
    ("cpuCount", "cpu_count", True),
    ("locale", "locale", False),
    ("username", "username", False),
    ("publicIp", "public_ip", False),
    ("defaultCharset", "default_charset", False),
    ("ideVersion", "ide_version", False),
    ("buildToolVersion", "build_tool_version", False),
    ("gitBranch", "git_branch", False),
    ("gitUser", "git_user", False),
    ("hostname", "hostname", False),
    ("osManufacturer", "os_manufacturer", False),
    ("cacheMode", "cache_mode", False),
    ("cachePushEnabled", "cache_push_enabled", False),
)

SWITCH_KEYS: tuple[tuple[str, str], ...] = (
    ("switch.buildCache", "build_cache"),
    ("switch.buildScan", "build_scan"),
    ("switch.parallel", "parallel"),
    ("switch.configureOnDemand", "configure_on_demand"),
    ("switch.dryRun", "dry_run"),
    ("switch.refreshDependencies", "refresh_dependencies"),
    ("switch.rerunTasks", "rerun_tasks"),
    ("switch.daemon", "daemon"),
)


# Keys the flattened build row and task rows own; custom properties may not reuse them
BUILD_KEYS: frozenset[str] = frozenset(
    {
        "duration",
        "configuration",
        "success",
        *(key for key, _, _ in ENVIRONMENT_KEYS),
        *(key for key, _ in SWITCH_KEYS),
        "cacheRatio",
        "start",
        "rootProject",
        "requestedTasks",
        "scanLink",
        "buildId",
        "time",
    }
)

TASK_KEYS: frozenset[str] = frozenset(
    {"state", "module", "rootNode", "task", "workerId", "critical", "value", "time"}
)


def parse_int(key: str, raw: str) -> int:
    """Parse an integer-like stored value, raising DataQualityError when it isn't one."""
    try:
        return int(raw.strip())
    except (ValueError, AttributeError):
        raise DataQualityError(key, raw) from None


class MetricsProvider:
    """
    Flattens one report. Pure: the same report always yields the same sequence.

    Example:
        for key, value in MetricsProvider(report).get():
            ...
    """

    def __init__(self, report: ExecutionReport) -> None:
        self._report = report
        self.data_quality_errors: list[DataQualityError] = []

    def _shadowed(self, key: str, value: str) -> None:
        error = DataQualityError(
            key, value, message=f"Custom property '{key}' collides with a built-in key"
        )
        logger.warning("Skipping custom property: %s", error)
        self.data_quality_errors.append(error)

    def _custom(self, properties: dict[str, str], reserved: frozenset[str]) -> dict[str, str]:
        custom: dict[str, str] = {}
        for key, value in properties.items():
            if key in reserved:
                self._shadowed(key, value)
            else:
                custom[key] = value
        return custom

    def get(self) -> list[tuple[str, MetricValue]]:
        report = self._report
        self.data_quality_errors = []
        metrics: list[tuple[str, MetricValue]] = list(
            self._custom(report.custom_properties.build_properties, BUILD_KEYS).items()
        )

        metrics.append(("duration", report.duration_ms or 0))
        metrics.append(("configuration", report.configuration_duration_ms or 0))
        metrics.append(("success", report.success))

        env = report.environment
        for key, field_name, integer_like in ENVIRONMENT_KEYS:
            raw = getattr(env, field_name)
            if raw is None:
                continue
            if not integer_like:
                metrics.append((key, raw))
                continue
            try:
                metrics.append((key, parse_int(key, raw)))
            except DataQualityError as e:
                logger.warning("Skipping metric: %s", e)
                self.data_quality_errors.append(e)

        for key, switch in SWITCH_KEYS:
            value = getattr(env.switches, switch)
            if value is not None:
                metrics.append((key, value))

        if report.cache_ratio is not None:
            metrics.append(("cacheRatio", float(report.cache_ratio)))
        if report.begin_ms is not None:
            metrics.append(("start", float(report.begin_ms)))
        if report.root_project is not None:
            metrics.append(("rootProject", report.root_project))
        if report.requested_tasks is not None:
            metrics.append(("requestedTasks", report.requested_tasks))
        if report.scan_link is not None:
            metrics.append(("scanLink", report.scan_link))
        if report.build_id is not None:
            metrics.append(("buildId", report.build_id))

        return metrics

    def as_dict(self) -> dict[str, MetricValue]:
        return dict(self.get())

    def task_rows(self, now_ms: int) -> list[dict[str, Any]]:
        """One row per task, carrying the task custom properties that do not collide."""
        report = self._report
        custom = self._custom(report.custom_properties.task_properties, TASK_KEYS)
        rows: list[dict[str, Any]] = []
        for task in report.tasks or []:
            row: dict[str, Any] = dict(custom)
            row.update(
                {
                    "state": task.state.value,
                    "module": task.module,
                    "rootNode": str(task.root_node).lower(),
                    "task": task.task_path,
                    "workerId": task.worker_id,
                    "critical": str(task.critical).lower(),
                    "value": task.ms,
                    "time": now_ms,
                }
            )
            rows.append(row)
        return rows
