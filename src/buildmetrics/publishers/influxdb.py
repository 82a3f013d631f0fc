"""
Time-series publisher writing to an InfluxDB 1.x HTTP API.

Schema bootstrap creates the database and the retention policy when missing.
Measurements need no bootstrap: InfluxDB creates them on first write.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from concurrent.futures import Executor
from contextlib import contextmanager
from typing import Any

import httpx

from buildmetrics.config import InfluxDbPublisherConfig
from buildmetrics.errors import (
    ConnectivityError,
    PublishError,
    SchemaError,
    WriteError,
    is_already_exists,
)
from buildmetrics.metrics.provider import MetricsProvider
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers.base import Batch, Publisher, require
from buildmetrics.publishers.line_protocol import Point, encode

logger = logging.getLogger(__name__)

# Task row keys that are not tags
_TASK_FIELD_KEYS = {"value", "time"}


def quote_ident(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        if body.get("error"):
            return str(body["error"])
        for result in body.get("results", []):
            if result.get("error"):
                return str(result["error"])
    return f"HTTP {response.status_code}"


def _check(response: httpx.Response, error_type: type[PublishError], action: str) -> None:
    """Raise ``error_type`` when the response or any statement in it failed."""
    failed = response.status_code >= 400
    if not failed and response.headers.get("content-type", "").startswith("application/json"):
        body = response.json()
        failed = isinstance(body, dict) and (
            "error" in body or any("error" in r for r in body.get("results", []))
        )
    if failed:
        raise error_type(f"{action} failed: {_error_message(response)}", InfluxDbPublisher.name)


def _first_column(response: httpx.Response) -> list[str]:
    names: list[str] = []
    for result in response.json().get("results", []):
        for series in result.get("series", []):
            names.extend(str(row[0]) for row in series.get("values", []) if row)
    return names


class InfluxDbPublisher(Publisher[httpx.Client]):
    """
    Publishes task points and a build point to InfluxDB.

    Example:
        config = InfluxDbPublisherConfig(url="http://localhost:8086", database_name="tracking")
        InfluxDbPublisher(config, executor).publish(report)
    """

    name = "InfluxDbPublisher"

    def __init__(
        self,
        config: InfluxDbPublisherConfig,
        executor: Executor,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(executor)
        self.config = config
        self._transport = transport

    def validate(self) -> None:
        require(
            self.name,
            url=self.config.url,
            database_name=self.config.database_name,
            build_measurement_name=self.config.build_measurement_name,
            task_measurement_name=self.config.task_measurement_name,
        )

    def feature_flags(self) -> dict[str, Any]:
        return {
            "publishOnlyBuildMetrics": self.config.publish_only_build_metrics,
            "retentionPolicy": self.config.retention_policy.name,
        }

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def build_batches(self, report: ExecutionReport) -> list[Batch]:
        now_ms = int(time.time() * 1000)
        provider = MetricsProvider(report)
        batches: list[Batch] = []

        if not self.config.publish_only_build_metrics:
            batches.append(
                Batch(
                    target=self.config.task_measurement_name,
                    rows=provider.task_rows(now_ms),
                    kind="task",
                )
            )

        build_row: dict[str, Any] = dict(provider.get())
        build_row["time"] = now_ms
        batches.append(Batch(target=self.config.build_measurement_name, rows=[build_row]))
        return batches

    def to_points(self, batch: Batch) -> list[Point]:
        points = []
        for row in batch.rows:
            time_ms = row.get("time")
            if batch.kind == "task":
                tags = {k: str(v) for k, v in row.items() if k not in _TASK_FIELD_KEYS}
                fields = {"value": row["value"]}
            else:
                tags = {}
                fields = {k: v for k, v in row.items() if k != "time"}
            points.append(Point(batch.target, fields=fields, tags=tags, time_ms=time_ms))
        return points

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    @contextmanager
    def connect(self) -> Iterator[httpx.Client]:
        cfg = self.config
        auth = (cfg.username, cfg.resolved_password()) if cfg.has_credentials() else None
        client = httpx.Client(
            base_url=cfg.url.rstrip("/"),
            auth=auth,
            timeout=cfg.timeout,
            transport=self._transport,
        )
        try:
            _check(client.get("/ping"), ConnectivityError, "Ping")
            yield client
        finally:
            client.close()

    def _query(self, client: httpx.Client, statement: str, *, read: bool = False) -> httpx.Response:
        if read:
            return client.get("/query", params={"q": statement})
        return client.post("/query", data={"q": statement})

    def bootstrap(self, session: httpx.Client, batches: list[Batch]) -> None:
        db = self.config.database_name
        rp = self.config.retention_policy

        response = self._query(session, "SHOW DATABASES", read=True)
        _check(response, SchemaError, "SHOW DATABASES")
        if db not in _first_column(response):
            logger.info("%s: creating database %s", self.name, db)
            self._create(session, f"CREATE DATABASE {quote_ident(db)}")

        response = self._query(session, f"SHOW RETENTION POLICIES ON {quote_ident(db)}", read=True)
        _check(response, SchemaError, "SHOW RETENTION POLICIES")
        if rp.name not in _first_column(response):
            logger.info("%s: creating retention policy %s", self.name, rp.name)
            statement = (
                f"CREATE RETENTION POLICY {quote_ident(rp.name)} ON {quote_ident(db)} "
                f"DURATION {rp.duration} REPLICATION {rp.replication_factor} "
                f"SHARD DURATION {rp.shard_duration}"
            )
            if rp.is_default:
                statement += " DEFAULT"
            self._create(session, statement)

    def _create(self, session: httpx.Client, statement: str) -> None:
        try:
            _check(self._query(session, statement), SchemaError, statement)
        except SchemaError as e:
            # Lost a race with another bootstrap creating the same object
            if not is_already_exists(e):
                raise
            logger.debug("%s: %s", self.name, e.message)

    def write(self, session: httpx.Client, batch: Batch) -> int:
        points = self.to_points(batch)
        response = session.post(
            "/write",
            params={
                "db": self.config.database_name,
                "rp": self.config.retention_policy.name,
                "precision": "ms",
            },
            content=encode(points).encode("utf-8"),
        )
        _check(response, WriteError, f"Write to {batch.target}")
        return len(points)
