"""
Configuration values for metrics and publishers.

All models are frozen: a configuration is assembled once and read by the
publisher at call time. ``load_config`` reads them from ``buildmetrics.toml``:

    [metrics]
    presets = ["default", "git"]
    generate_build_id = false

    [metrics.build_properties]
    buildType = "release"

    [publishers.influxdb]
    url = "http://localhost:8086"
    database_name = "tracking"
    password_env = "INFLUX_PASSWORD"

    [publishers.influxdb.retention_policy]
    name = "rpBuilds"
    duration = "14d"

    [publishers.rethinkdb]
    url = "http://localhost:28015"
    database_name = "tracking"
    build_table_name = "build"
    task_table_name = "task"
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from buildmetrics.errors import ConfigurationError
from buildmetrics.metrics.builtin import Preset
from buildmetrics.metrics.registry import MetricRegistry

DEFAULT_CONFIG_FILE = "buildmetrics.toml"


class _Credentials(BaseModel):
    username: str = ""
    password: str = ""
    # Name of an environment variable holding the password
    password_env: str | None = None

    model_config = ConfigDict(frozen=True)

    def resolved_password(self) -> str:
        if self.password_env:
            return os.environ.get(self.password_env, "")
        return self.password

    def has_credentials(self) -> bool:
        return bool(self.username.strip() or self.resolved_password().strip())


# =============================================================================
# Time-series store
# =============================================================================


class RetentionPolicyConfig(BaseModel):
    name: str = "rpTalaiot"
    duration: str = "30d"
    shard_duration: str = "30m"
    replication_factor: int = 2
    is_default: bool = False

    model_config = ConfigDict(frozen=True)


class InfluxDbPublisherConfig(_Credentials):
    """InfluxDB publisher options. The database is created when missing."""

    url: str = ""
    database_name: str = ""
    build_measurement_name: str = "build"
    task_measurement_name: str = "task"
    # Large projects can skip per-task points to keep series cardinality down
    publish_only_build_metrics: bool = False
    retention_policy: RetentionPolicyConfig = Field(default_factory=RetentionPolicyConfig)
    timeout: float | None = 10.0


# =============================================================================
# Document store
# =============================================================================


class RethinkDbPublisherConfig(_Credentials):
    url: str = ""
    database_name: str = ""
    build_table_name: str = ""
    task_table_name: str = ""
    publish_build_metrics: bool = True
    publish_task_metrics: bool = True


# =============================================================================
# Local publishers
# =============================================================================


class JsonPublisherConfig(BaseModel):
    output_dir: Path = Path("build/reports/buildmetrics")
    file_name: str = "report.json"
    indent: int | None = 2

    model_config = ConfigDict(frozen=True)


class OutputPublisherConfig(BaseModel):
    order: Literal["asc", "desc"] = "desc"
    limit: int | None = None

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Top level
# =============================================================================


class MetricsConfig(BaseModel):
    presets: list[Preset] = Field(default_factory=list)
    generate_build_id: bool = False
    build_properties: dict[str, str] = Field(default_factory=dict)
    task_properties: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def registry(self) -> MetricRegistry:
        """Build an unresolved registry from this configuration."""
        registry = MetricRegistry(generate_build_id=self.generate_build_id)
        for preset in self.presets:
            registry.add_preset(preset)
        if self.build_properties:
            registry.add_custom_build_property(self.build_properties)
        if self.task_properties:
            registry.add_custom_task_property(self.task_properties)
        return registry


class PublishersConfig(BaseModel):
    influxdb: InfluxDbPublisherConfig | None = None
    rethinkdb: RethinkDbPublisherConfig | None = None
    json_file: JsonPublisherConfig | None = Field(default=None, alias="json")
    output: OutputPublisherConfig | None = None

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class BuildMetricsConfig(BaseModel):
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    publishers: PublishersConfig = Field(default_factory=PublishersConfig)
    max_workers: int = Field(default=4, ge=1)

    model_config = ConfigDict(frozen=True)


def parse_config(data: dict[str, Any]) -> BuildMetricsConfig:
    try:
        return BuildMetricsConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: Path) -> BuildMetricsConfig:
    """Load configuration from a TOML file."""
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
    return parse_config(data)
