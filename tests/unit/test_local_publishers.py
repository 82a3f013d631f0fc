"""Tests for the JSON file and log output publishers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from buildmetrics.config import JsonPublisherConfig, OutputPublisherConfig
from buildmetrics.publishers import JsonPublisher, OutputPublisher, PublishState

from .conftest import ImmediateExecutor, make_report, make_task


class TestJsonPublisher:
    def test_writes_report_and_metrics(self, tmp_path: Path, executor: ImmediateExecutor) -> None:
        out = tmp_path / "reports" / "nested"
        publisher = JsonPublisher(JsonPublisherConfig(output_dir=out), executor)

        future = publisher.publish(make_report())

        assert future.result().state == PublishState.DONE
        document = json.loads((out / "report.json").read_text())
        assert document["report"]["root_project"] == "sample"
        assert document["report"]["tasks"][0]["task_path"] == ":app:compile"
        assert document["metrics"]["buildType"] == "release"
        assert document["metrics"]["cpuCount"] == 12

    def test_custom_file_name(self, tmp_path: Path, executor: ImmediateExecutor) -> None:
        config = JsonPublisherConfig(output_dir=tmp_path, file_name="build-42.json", indent=None)
        JsonPublisher(config, executor).run(make_report())

        assert "\n" not in (tmp_path / "build-42.json").read_text()

    def test_empty_file_name_rejected(self, tmp_path: Path, executor: ImmediateExecutor) -> None:
        config = JsonPublisherConfig(output_dir=tmp_path, file_name="")
        future = JsonPublisher(config, executor).publish(make_report())

        assert future.result().state == PublishState.REJECTED
        assert executor.submitted == 0
        assert list(tmp_path.iterdir()) == []

    def test_unwritable_directory(self, tmp_path: Path, executor: ImmediateExecutor) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        config = JsonPublisherConfig(output_dir=blocker / "sub")

        outcome = JsonPublisher(config, executor).run(make_report())

        assert outcome.state == PublishState.BOOTSTRAP_FAILED


class TestOutputPublisher:
    def _report(self):
        return make_report(
            tasks=[make_task(":a", ms=10), make_task(":b", ms=300), make_task(":c", ms=50)]
        )

    def _lines(self, config: OutputPublisherConfig, executor: ImmediateExecutor) -> list[str]:
        batches = OutputPublisher(config, executor).build_batches(self._report())
        return [row["line"] for row in batches[0].rows]

    def test_slowest_first(self, executor: ImmediateExecutor) -> None:
        lines = self._lines(OutputPublisherConfig(), executor)
        assert [line.split()[0] for line in lines[:3]] == [":b", ":c", ":a"]
        assert lines[-1] == "Build SUCCESS in 4200ms (3 tasks)"

    def test_ascending_with_limit(self, executor: ImmediateExecutor) -> None:
        lines = self._lines(OutputPublisherConfig(order="asc", limit=2), executor)
        assert [line.split()[0] for line in lines[:-1]] == [":a", ":c"]

    def test_logs_lines(
        self, executor: ImmediateExecutor, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="buildmetrics.publishers.output"):
            outcome = OutputPublisher(OutputPublisherConfig(), executor).run(
                make_report(success=False)
            )

        assert outcome.rows_written == 2
        assert "Build FAILURE in 4200ms (1 tasks)" in caplog.text

    def test_invalid_limit(self, executor: ImmediateExecutor) -> None:
        publisher = OutputPublisher(OutputPublisherConfig(limit=0), executor)
        outcome = publisher.publish(make_report()).result()

        assert outcome.state == PublishState.REJECTED
        assert "limit" in outcome.error
        assert executor.submitted == 0
