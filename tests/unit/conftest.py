"""Shared fixtures for buildmetrics unit tests."""

from __future__ import annotations

import re
from collections.abc import Callable
from concurrent.futures import Executor, Future
from typing import Any
from unittest.mock import MagicMock
from urllib.parse import parse_qs

import httpx
import pytest

from buildmetrics.errors import WriteError
from buildmetrics.metrics import BuildContext, EnvironmentProbe, GitProbe, MetricContext
from buildmetrics.models import (
    CustomProperties,
    Environment,
    ExecutionReport,
    TaskLength,
    TaskMessageState,
)


class ImmediateExecutor(Executor):
    """Executor running each submitted callable on the caller's thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        self.submitted += 1
        future: Future[Any] = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


def make_task(
    task_path: str = ":app:compile",
    ms: int = 1200,
    state: TaskMessageState = TaskMessageState.EXECUTED,
    module: str = "app",
    **kwargs: Any,
) -> TaskLength:
    return TaskLength(
        ms=ms,
        task_name=task_path.rsplit(":", 1)[-1],
        task_path=task_path,
        state=state,
        module=module,
        **kwargs,
    )


def make_report(**overrides: Any) -> ExecutionReport:
    data: dict[str, Any] = {
        "requested_tasks": "assemble",
        "root_project": "sample",
        "begin_ms": 1_700_000_000_000,
        "duration_ms": 4200,
        "configuration_duration_ms": 300,
        "success": True,
        "environment": Environment(cpu_count="12", max_workers="4", git_branch="main"),
        "custom_properties": CustomProperties(
            build_properties={"buildType": "release"},
            task_properties={"team": "core"},
        ),
        "tasks": [make_task(worker_id="w1")],
    }
    data.update(overrides)
    return ExecutionReport(**data)


_ENVIRONMENT_PROBES = (
    "os_version",
    "os_manufacturer",
    "cpu_count",
    "total_ram_bytes",
    "username",
    "locale",
    "default_charset",
    "hostname",
    "ip_address",
)


def make_context(
    build: BuildContext | None = None,
    environment: dict[str, Any] | None = None,
    git: dict[str, Any] | None = None,
) -> MetricContext:
    """MetricContext whose host and git probes return the given facts, else None."""
    env_probe = MagicMock(spec=EnvironmentProbe)
    for name in _ENVIRONMENT_PROBES:
        getattr(env_probe, name).return_value = (environment or {}).get(name)
    git_probe = MagicMock(spec=GitProbe)
    git_probe.user.return_value = (git or {}).get("user")
    git_probe.branch.return_value = (git or {}).get("branch")
    return MetricContext(build=build or BuildContext(), environment=env_probe, git=git_probe)


class FakeInflux:
    """In-memory InfluxDB 1.x HTTP API for httpx.MockTransport."""

    def __init__(
        self,
        databases: set[str] | None = None,
        write_status: int = 204,
        ping_status: int = 204,
        hide_existing: bool = False,
    ) -> None:
        self.databases = set(databases or {"_internal"})
        self.policies: dict[str, set[str]] = {db: {"autogen"} for db in self.databases}
        self.write_status = write_status
        self.ping_status = ping_status
        # Report nothing from SHOW queries, as if another client created it meanwhile
        self.hide_existing = hide_existing
        self.requests: list[httpx.Request] = []
        self.statements: list[str] = []
        self.writes: list[tuple[dict[str, str], str]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/ping":
            return httpx.Response(self.ping_status)
        if path == "/query":
            if request.method == "GET":
                statement = request.url.params["q"]
            else:
                statement = parse_qs(request.read().decode())["q"][0]
            self.statements.append(statement)
            return httpx.Response(200, json={"results": [self._query(statement)]})
        if path == "/write":
            if self.write_status >= 400:
                return httpx.Response(self.write_status, json={"error": "engine: write refused"})
            self.writes.append((dict(request.url.params), request.read().decode()))
            return httpx.Response(204)
        return httpx.Response(404, text="not found")

    def created(self) -> list[str]:
        return [s for s in self.statements if s.startswith("CREATE")]

    def _query(self, statement: str) -> dict[str, Any]:
        if statement == "SHOW DATABASES":
            names = [] if self.hide_existing else sorted(self.databases)
            return _series("databases", names)
        if statement.startswith("CREATE DATABASE"):
            db = _idents(statement)[0]
            if db in self.databases:
                return {"statement_id": 0, "error": f"database {db} already exists"}
            self.databases.add(db)
            self.policies[db] = {"autogen"}
            return {"statement_id": 0}
        if statement.startswith("SHOW RETENTION POLICIES"):
            db = _idents(statement)[0]
            if db not in self.databases:
                return {"statement_id": 0, "error": f"database not found: {db}"}
            names = [] if self.hide_existing else sorted(self.policies[db])
            return _series("", names)
        if statement.startswith("CREATE RETENTION POLICY"):
            name, db = _idents(statement)
            if name in self.policies[db]:
                return {"statement_id": 0, "error": "retention policy already exists"}
            self.policies[db].add(name)
            return {"statement_id": 0}
        return {"statement_id": 0, "error": f"unsupported statement: {statement}"}


def _idents(statement: str) -> list[str]:
    return re.findall(r'"([^"]+)"', statement)


def _series(name: str, values: list[str]) -> dict[str, Any]:
    return {
        "statement_id": 0,
        "series": [{"name": name, "columns": ["name"], "values": [[v] for v in values]}],
    }


class FakeDocumentStore:
    def __init__(self, race: bool = False, fail_insert: bool = False) -> None:
        self.tables: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self.created: list[str] = []
        self.closed = False
        # Existence checks report False while creates find the object already there
        self.race = race
        self.fail_insert = fail_insert

    def database_exists(self, database: str) -> bool:
        return not self.race and database in self.tables

    def create_database(self, database: str) -> None:
        if database in self.tables:
            raise RuntimeError(f"Database `{database}` already exists.")
        self.tables[database] = {}
        self.created.append(database)

    def table_exists(self, database: str, table: str) -> bool:
        return not self.race and table in self.tables.get(database, {})

    def create_table(self, database: str, table: str) -> None:
        if table in self.tables[database]:
            raise RuntimeError(f"Table `{database}.{table}` already exists.")
        self.tables[database][table] = []
        self.created.append(f"{database}.{table}")

    def insert(self, database: str, table: str, documents: list[dict[str, Any]]) -> int:
        if self.fail_insert:
            raise WriteError("1 documents rejected: disk full", "RethinkDbPublisher")
        self.tables[database][table].extend(documents)
        return len(documents)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def executor() -> ImmediateExecutor:
    return ImmediateExecutor()


@pytest.fixture
def report() -> ExecutionReport:
    return make_report()
