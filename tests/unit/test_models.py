"""Tests for the execution report models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from buildmetrics.models import (
    Environment,
    ExecutionReport,
    Switches,
    TaskMessageState,
)

from .conftest import make_report, make_task


class TestExecutionReport:
    def test_defaults(self) -> None:
        report = ExecutionReport()
        assert report.success is False
        assert report.tasks is None
        assert report.duration_ms is None
        assert report.custom_properties.build_properties == {}
        assert report.environment.switches == Switches()

    def test_executed_tasks_excludes_cached_and_skipped(self) -> None:
        report = make_report(
            tasks=[
                make_task(":a:compile"),
                make_task(":a:test", state=TaskMessageState.FROM_CACHE),
                make_task(":a:lint", state=TaskMessageState.UP_TO_DATE),
                make_task(":a:jar", state=TaskMessageState.SKIPPED),
            ]
        )
        assert [t.task_path for t in report.executed_tasks()] == [":a:compile"]

    def test_executed_tasks_without_tasks(self) -> None:
        assert make_report(tasks=None).executed_tasks() == []

    def test_critical_path(self) -> None:
        report = make_report(
            tasks=[make_task(":a"), make_task(":b", critical=True), make_task(":c", critical=True)]
        )
        assert [t.task_path for t in report.critical_path()] == [":b", ":c"]

    def test_snapshot_is_independent(self) -> None:
        report = make_report()
        snapshot = report.snapshot()

        report.custom_properties.build_properties["buildType"] = "debug"
        report.environment.cpu_count = "64"
        assert report.tasks is not None
        report.tasks.append(make_task(":late"))

        assert snapshot.custom_properties.build_properties["buildType"] == "release"
        assert snapshot.environment.cpu_count == "12"
        assert snapshot.tasks is not None
        assert len(snapshot.tasks) == 1

    def test_json_round_trip(self) -> None:
        report = make_report(scan_link="https://scans.example/s/1", cache_ratio=0.5)
        restored = ExecutionReport.model_validate_json(report.model_dump_json())
        assert restored == report

    def test_custom_property_last_write_wins(self) -> None:
        report = ExecutionReport()
        report.custom_properties.build_properties["k"] = "1"
        report.custom_properties.build_properties["k"] = "2"
        assert report.custom_properties.build_properties == {"k": "2"}


class TestEnvironment:
    def test_assignment_is_validated(self) -> None:
        env = Environment()
        with pytest.raises(ValidationError):
            env.cpu_count = ["not", "a", "string"]  # type: ignore[assignment]

    def test_switches_accept_none(self) -> None:
        switches = Switches(parallel=True)
        assert switches.parallel is True
        assert switches.daemon is None


class TestTaskLength:
    def test_defaults(self) -> None:
        task = make_task(":app:compile")
        assert task.task_name == "compile"
        assert task.state == TaskMessageState.EXECUTED
        assert task.root_node is False
        assert task.dependencies == []

    def test_state_from_string(self) -> None:
        task = make_task(":x", state="FROM_CACHE")  # type: ignore[arg-type]
        assert task.state is TaskMessageState.FROM_CACHE
