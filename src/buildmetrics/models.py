"""
Pydantic models for the build execution report.

The report is the one mutable aggregate in the pipeline: the build driver fills
it in while the build runs and metrics assign into it at finalization. Once it
is handed to the publishers it is only read, through a deep-copied snapshot.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# Closed set of scalar types a flattened metric can carry.
MetricValue = str | int | float | bool

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TaskMessageState(StrEnum):
    EXECUTED = "EXECUTED"
    UP_TO_DATE = "UP_TO_DATE"
    FROM_CACHE = "FROM_CACHE"
    SKIPPED = "SKIPPED"
    NO_SOURCE = "NO_SOURCE"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Report parts
# ---------------------------------------------------------------------------


class Switches(BaseModel):
    """Build-tool command line switches in effect for the build."""

    build_cache: bool | None = None
    build_scan: bool | None = None
    parallel: bool | None = None
    configure_on_demand: bool | None = None
    dry_run: bool | None = None
    refresh_dependencies: bool | None = None
    rerun_tasks: bool | None = None
    daemon: bool | None = None

    model_config = ConfigDict(validate_assignment=True)


class Environment(BaseModel):
    """Flat bag of environment facts.

    Values are stored the way the probes report them, as strings. Integer-like
    fields are parsed when the report is flattened.
    """

    os_version: str | None = None
    os_manufacturer: str | None = None
    max_workers: str | None = None
    java_runtime: str | None = None
    java_vm_name: str | None = None
    java_xms_bytes: str | None = None
    java_xmx_bytes: str | None = None
    java_max_perm_size: str | None = None
    total_ram_available_bytes: str | None = None
    cpu_count: str | None = None
    locale: str | None = None
    username: str | None = None
    public_ip: str | None = None
    default_charset: str | None = None
    ide_version: str | None = None
    build_tool_version: str | None = None
    git_branch: str | None = None
    git_user: str | None = None
    hostname: str | None = None
    cache_mode: str | None = None
    cache_push_enabled: str | None = None
    switches: Switches = Field(default_factory=Switches)

    model_config = ConfigDict(validate_assignment=True)


class CustomProperties(BaseModel):
    """User-defined key/value bags; the last write for a key wins."""

    build_properties: dict[str, str] = Field(default_factory=dict)
    task_properties: dict[str, str] = Field(default_factory=dict)


class TaskLength(BaseModel):
    """Timing of a single task in the build."""

    ms: int
    task_name: str
    task_path: str
    state: TaskMessageState = TaskMessageState.EXECUTED
    root_node: bool = False
    module: str = ""
    dependencies: list[str] = Field(default_factory=list)
    worker_id: str = ""
    critical: bool = False


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------


class ExecutionReport(BaseModel):
    requested_tasks: str | None = None
    root_project: str | None = None
    scan_link: str | None = None
    build_id: str | None = None
    begin_ms: int | None = None
    end_ms: int | None = None
    duration_ms: int | None = None
    configuration_duration_ms: int | None = None
    success: bool = False
    cache_ratio: float | None = None
    environment: Environment = Field(default_factory=Environment)
    custom_properties: CustomProperties = Field(default_factory=CustomProperties)
    tasks: list[TaskLength] | None = None

    model_config = ConfigDict(validate_assignment=True)

    def executed_tasks(self) -> list[TaskLength]:
        """Tasks that actually ran, excluding cached and skipped ones."""
        return [t for t in self.tasks or [] if t.state == TaskMessageState.EXECUTED]

    def critical_path(self) -> list[TaskLength]:
        return [t for t in self.tasks or [] if t.critical]

    def snapshot(self) -> ExecutionReport:
        """Deep copy handed to publishers so the driver's copy can't leak into them."""
        return self.model_copy(deep=True)
