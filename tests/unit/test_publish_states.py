"""Tests for the Publisher state machine shared by all backends."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from buildmetrics.config import InfluxDbPublisherConfig
from buildmetrics.errors import ConfigurationError
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers import Batch, InfluxDbPublisher, Publisher, PublishState
from buildmetrics.publishers.base import require

from .conftest import ImmediateExecutor, make_report


class RecordingPublisher(Publisher[list[str]]):
    """Publisher recording each phase, optionally failing one of them."""

    name = "RecordingPublisher"

    def __init__(self, executor, fail_in: str | None = None, invalid: bool = False) -> None:
        super().__init__(executor)
        self.fail_in = fail_in
        self.invalid = invalid
        self.events: list[str] = []

    def _step(self, event: str) -> None:
        self.events.append(event)
        if event == self.fail_in:
            raise RuntimeError(f"{event} exploded")

    def validate(self) -> None:
        if self.invalid:
            raise ConfigurationError("missing required option(s): url", self.name)

    def build_batches(self, report: ExecutionReport) -> list[Batch]:
        self._step("batches")
        return [
            Batch(target="task", rows=[{"value": t.ms} for t in report.tasks or []], kind="task"),
            Batch(target="build", rows=[{"duration": report.duration_ms}]),
        ]

    @contextmanager
    def connect(self) -> Iterator[list[str]]:
        self._step("connect")
        try:
            yield self.events
        finally:
            self.events.append("close")

    def bootstrap(self, session: list[str], batches: list[Batch]) -> None:
        self._step("bootstrap")
        session.append("targets:" + ",".join(b.target for b in batches))

    def write(self, session: list[str], batch: Batch) -> int:
        self._step(f"write:{batch.target}")
        return len(batch)


class TestPublishStates:
    def test_happy_path_order(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor)
        outcome = publisher.run(make_report())

        assert outcome.state == PublishState.DONE
        assert outcome.succeeded
        assert outcome.rows_written == 2
        assert publisher.events == [
            "batches",
            "connect",
            "bootstrap",
            "targets:task,build",
            "write:task",
            "write:build",
            "close",
        ]

    def test_empty_batches_dropped_before_bootstrap(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor)
        publisher.run(make_report(tasks=None))

        assert "targets:build" in publisher.events
        assert "write:task" not in publisher.events

    @pytest.mark.parametrize(
        ("fail_in", "state"),
        [
            ("connect", PublishState.CONNECT_FAILED),
            ("bootstrap", PublishState.BOOTSTRAP_FAILED),
            ("write:task", PublishState.WRITE_FAILED),
            ("batches", PublishState.WRITE_FAILED),
        ],
    )
    def test_failure_states(
        self, fail_in: str, state: PublishState, executor: ImmediateExecutor
    ) -> None:
        publisher = RecordingPublisher(executor, fail_in=fail_in)
        outcome = publisher.run(make_report())

        assert outcome.state == state
        assert outcome.error == f"{fail_in} exploded"
        assert not outcome.succeeded

    def test_no_write_after_bootstrap_failure(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor, fail_in="bootstrap")
        publisher.run(make_report())

        assert not any(e.startswith("write") for e in publisher.events)
        assert publisher.events[-1] == "close"

    def test_rows_counted_until_failure(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor, fail_in="write:build")
        outcome = publisher.run(make_report())

        assert outcome.state == PublishState.WRITE_FAILED
        assert outcome.rows_written == 1

    def test_rejected_is_not_scheduled(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor, invalid=True)

        future = publisher.publish(make_report())

        assert future.done()
        outcome = future.result()
        assert outcome.state == PublishState.REJECTED
        assert outcome.publisher == "RecordingPublisher"
        assert outcome.error == "missing required option(s): url"
        assert not outcome.succeeded
        assert executor.submitted == 0
        assert publisher.events == []

    def test_default_influx_config_rejected(self, executor: ImmediateExecutor) -> None:
        publisher = InfluxDbPublisher(InfluxDbPublisherConfig(), executor)

        outcome = publisher.publish(make_report()).result()

        assert outcome.state == PublishState.REJECTED
        assert publisher.state == PublishState.REJECTED
        assert executor.submitted == 0

    def test_state_follows_the_latest_call(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor)
        seen: list[PublishState] = []
        publisher.validate = lambda: seen.append(publisher.state)
        assert publisher.state == PublishState.CONFIGURED

        publisher.publish(make_report())

        assert seen == [PublishState.VALIDATING]
        assert publisher.state == PublishState.DONE

    def test_failed_phase_is_the_latest_state(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor, fail_in="bootstrap")
        publisher.run(make_report())

        assert publisher.state == PublishState.BOOTSTRAP_FAILED

    def test_publish_never_raises(self, executor: ImmediateExecutor) -> None:
        publisher = RecordingPublisher(executor, fail_in="connect")
        future = publisher.publish(make_report())

        assert future.result().state == PublishState.CONNECT_FAILED


class TestRequire:
    def test_lists_every_missing_field(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            require("Backend", url="", database_name=" ", table="t")
        assert exc_info.value.message == "missing required option(s): url, database_name"
        assert str(exc_info.value).startswith("[Backend] ")

    def test_passes_when_present(self) -> None:
        require("Backend", url="http://x")
