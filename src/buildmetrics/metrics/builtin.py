"""
Built-in metrics, grouped into the presets a registry can enable.

Presets:
    default      root project, requested tasks, build tool version, cache mode,
                 cache push, scan link
    git          git user and branch
    environment  OS manufacturer, hostname, IP address, default charset
    performance  user, OS, processors, RAM, JVM name, locale, max workers,
                 JVM heap sizes
    switches     build-tool command line switches
"""

from __future__ import annotations

import re
import uuid
from enum import StrEnum
from typing import Any, ClassVar

from buildmetrics.metrics.base import (
    BuildMetric,
    ContextMetric,
    EnvironmentMetric,
    GitMetric,
    Metric,
)
from buildmetrics.metrics.sources import BuildContext, EnvironmentProbe, GitProbe, MetricContext
from buildmetrics.models import ExecutionReport


class Preset(StrEnum):
    DEFAULT = "default"
    GIT = "git"
    ENVIRONMENT = "environment"
    PERFORMANCE = "performance"
    SWITCHES = "switches"


_MEMORY_RE = re.compile(r"^(\d+)([kKmMgGtT]?)$")
_MEMORY_UNITS = {"": 1, "k": 1024, "m": 1024**2, "g": 1024**3, "t": 1024**4}


def parse_memory_size(raw: str | None) -> int | None:
    """Convert a JVM memory size such as ``512m`` or ``2g`` into bytes."""
    if not raw:
        return None
    match = _MEMORY_RE.match(raw.strip())
    if not match:
        return None
    amount, unit = match.groups()
    return int(amount) * _MEMORY_UNITS[unit.lower()]


class _AssignsEnvironment:
    """Store the provided value on ``report.environment.<field_name>`` as a string."""

    field_name: ClassVar[str]

    def assign(self, report: ExecutionReport, value: Any) -> None:
        if isinstance(value, bool):
            value = str(value).lower()
        setattr(report.environment, self.field_name, str(value))


# =============================================================================
# default
# =============================================================================


class RootProjectNameMetric(BuildMetric[str]):
    def provide(self, source: BuildContext) -> str | None:
        return source.root_project

    def assign(self, report: ExecutionReport, value: str) -> None:
        report.root_project = value


class RequestedTasksMetric(BuildMetric[str]):
    def provide(self, source: BuildContext) -> str | None:
        return " ".join(source.requested_tasks) or None

    def assign(self, report: ExecutionReport, value: str) -> None:
        report.requested_tasks = value


class BuildToolVersionMetric(_AssignsEnvironment, BuildMetric[str]):
    field_name = "build_tool_version"

    def provide(self, source: BuildContext) -> str | None:
        return source.build_tool_version


class BuildCacheModeMetric(_AssignsEnvironment, BuildMetric[str]):
    field_name = "cache_mode"

    def provide(self, source: BuildContext) -> str | None:
        return source.cache_mode


class BuildCachePushEnabledMetric(_AssignsEnvironment, BuildMetric[bool]):
    field_name = "cache_push_enabled"

    def provide(self, source: BuildContext) -> bool | None:
        return source.cache_push_enabled


class ScanLinkMetric(BuildMetric[str]):
    def provide(self, source: BuildContext) -> str | None:
        return source.scan_link

    def assign(self, report: ExecutionReport, value: str) -> None:
        report.scan_link = value


# =============================================================================
# git
# =============================================================================


class GitUserMetric(_AssignsEnvironment, GitMetric[str]):
    field_name = "git_user"

    def provide(self, source: GitProbe) -> str | None:
        return source.user()


class GitBranchMetric(_AssignsEnvironment, GitMetric[str]):
    field_name = "git_branch"

    def provide(self, source: GitProbe) -> str | None:
        return source.branch()


# =============================================================================
# environment
# =============================================================================


class OsManufacturerMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "os_manufacturer"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.os_manufacturer()


class HostnameMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "hostname"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.hostname()


class PublicIpMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "public_ip"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.ip_address()


class DefaultCharsetMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "default_charset"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.default_charset()


# =============================================================================
# performance
# =============================================================================


class UserMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "username"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.username()


class OsMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "os_version"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.os_version()


class ProcessorCountMetric(_AssignsEnvironment, EnvironmentMetric[int]):
    field_name = "cpu_count"

    def provide(self, source: EnvironmentProbe) -> int | None:
        return source.cpu_count()


class RamAvailableMetric(_AssignsEnvironment, EnvironmentMetric[int]):
    field_name = "total_ram_available_bytes"

    def provide(self, source: EnvironmentProbe) -> int | None:
        return source.total_ram_bytes()


class LocaleMetric(_AssignsEnvironment, EnvironmentMetric[str]):
    field_name = "locale"

    def provide(self, source: EnvironmentProbe) -> str | None:
        return source.locale()


class JavaVmNameMetric(_AssignsEnvironment, BuildMetric[str]):
    field_name = "java_vm_name"

    def provide(self, source: BuildContext) -> str | None:
        return source.system_properties.get("java.vm.name")


class MaxWorkersMetric(_AssignsEnvironment, BuildMetric[int]):
    field_name = "max_workers"

    def provide(self, source: BuildContext) -> int | None:
        return source.max_workers


class JvmXmsMetric(_AssignsEnvironment, BuildMetric[int]):
    field_name = "java_xms_bytes"

    def provide(self, source: BuildContext) -> int | None:
        return parse_memory_size(source.jvm_option("-Xms"))


class JvmXmxMetric(_AssignsEnvironment, BuildMetric[int]):
    field_name = "java_xmx_bytes"

    def provide(self, source: BuildContext) -> int | None:
        return parse_memory_size(source.jvm_option("-Xmx"))


class JvmMaxPermSizeMetric(_AssignsEnvironment, BuildMetric[int]):
    field_name = "java_max_perm_size"

    def provide(self, source: BuildContext) -> int | None:
        return parse_memory_size(source.jvm_option("-XX:MaxPermSize="))


# =============================================================================
# switches
# =============================================================================


class _SwitchMetric(BuildMetric[bool]):
    switch: ClassVar[str]

    def provide(self, source: BuildContext) -> bool | None:
        value: bool | None = getattr(source.switches, self.switch)
        return value

    def assign(self, report: ExecutionReport, value: bool) -> None:
        setattr(report.environment.switches, self.switch, value)


class SwitchBuildCacheMetric(_SwitchMetric):
    switch = "build_cache"


class SwitchBuildScanMetric(_SwitchMetric):
    switch = "build_scan"


class SwitchParallelMetric(_SwitchMetric):
    switch = "parallel"


class SwitchConfigureOnDemandMetric(_SwitchMetric):
    switch = "configure_on_demand"


class SwitchDryRunMetric(_SwitchMetric):
    switch = "dry_run"


class SwitchRefreshDependenciesMetric(_SwitchMetric):
    switch = "refresh_dependencies"


class SwitchRerunTasksMetric(_SwitchMetric):
    switch = "rerun_tasks"


class SwitchDaemonMetric(_SwitchMetric):
    switch = "daemon"


# =============================================================================
# build id
# =============================================================================


class BuildIdMetric(ContextMetric[str]):
    """Assign a fresh unique identifier to the build.

    Off by default: one tag value per build is a cardinality problem for most
    time-series setups.
    """

    def provide(self, source: MetricContext) -> str | None:
        return uuid.uuid4().hex

    def assign(self, report: ExecutionReport, value: str) -> None:
        report.build_id = value


PRESETS: dict[Preset, tuple[type[Metric[Any, Any]], ...]] = {
    Preset.DEFAULT: (
        RootProjectNameMetric,
        RequestedTasksMetric,
        BuildToolVersionMetric,
        BuildCacheModeMetric,
        BuildCachePushEnabledMetric,
        ScanLinkMetric,
    ),
    Preset.GIT: (
        GitUserMetric,
        GitBranchMetric,
    ),
    Preset.ENVIRONMENT: (
        OsManufacturerMetric,
        HostnameMetric,
        PublicIpMetric,
        DefaultCharsetMetric,
    ),
    Preset.PERFORMANCE: (
        UserMetric,
        OsMetric,
        ProcessorCountMetric,
        RamAvailableMetric,
        JavaVmNameMetric,
        LocaleMetric,
        MaxWorkersMetric,
        JvmXmsMetric,
        JvmXmxMetric,
        JvmMaxPermSizeMetric,
    ),
    Preset.SWITCHES: (
        SwitchBuildCacheMetric,
        SwitchBuildScanMetric,
        SwitchParallelMetric,
        SwitchConfigureOnDemandMetric,
        SwitchDryRunMetric,
        SwitchRefreshDependenciesMetric,
        SwitchRerunTasksMetric,
        SwitchDaemonMetric,
    ),
}

# Bundle used when a registry was never customized.
DEFAULT_BUNDLE: tuple[Preset, ...] = (
    Preset.DEFAULT,
    Preset.PERFORMANCE,
    Preset.SWITCHES,
    Preset.GIT,
    Preset.ENVIRONMENT,
)
