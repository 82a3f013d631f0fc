"""
Publisher logging task durations and the build summary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from concurrent.futures import Executor
from contextlib import contextmanager
from typing import Any

from buildmetrics.config import OutputPublisherConfig
from buildmetrics.errors import ConfigurationError
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers.base import Batch, Publisher

logger = logging.getLogger(__name__)


class OutputPublisher(Publisher[logging.Logger]):
    name = "OutputPublisher"

    def __init__(self, config: OutputPublisherConfig, executor: Executor) -> None:
        super().__init__(executor)
        self.config = config

    def validate(self) -> None:
        if self.config.limit is not None and self.config.limit < 1:
            raise ConfigurationError("limit must be a positive number", self.name)

    def feature_flags(self) -> dict[str, Any]:
        return {"order": self.config.order, "limit": self.config.limit}

    def build_batches(self, report: ExecutionReport) -> list[Batch]:
        tasks = sorted(
            report.tasks or [],
            key=lambda t: t.ms,
            reverse=self.config.order == "desc",
        )
        if self.config.limit is not None:
            tasks = tasks[: self.config.limit]

        width = max((len(t.task_path) for t in tasks), default=0)
        rows = [
            {"line": f"{t.task_path:<{width}}  {t.ms:>8}ms  {t.state.value}"} for t in tasks
        ]
        status = "SUCCESS" if report.success else "FAILURE"
        total = len(report.tasks or [])
        rows.append({"line": f"Build {status} in {report.duration_ms or 0}ms ({total} tasks)"})
        return [Batch(target="log", rows=rows)]

    @contextmanager
    def connect(self) -> Iterator[logging.Logger]:
        yield logger

    def bootstrap(self, session: logging.Logger, batches: list[Batch]) -> None:
        pass

    def write(self, session: logging.Logger, batch: Batch) -> int:
        for row in batch.rows:
            session.info("%s", row["line"])
        return len(batch.rows)
