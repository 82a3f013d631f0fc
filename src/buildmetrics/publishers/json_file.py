"""
Publisher writing the report and its flattened metrics to a JSON file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from concurrent.futures import Executor
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from buildmetrics.config import JsonPublisherConfig
from buildmetrics.metrics.provider import MetricsProvider
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers.base import Batch, Publisher, require

logger = logging.getLogger(__name__)


class JsonPublisher(Publisher[Path]):
    """Writes ``{"report": ..., "metrics": ...}`` to ``output_dir / file_name``."""

    name = "JsonPublisher"

    def __init__(self, config: JsonPublisherConfig, executor: Executor) -> None:
        super().__init__(executor)
        self.config = config

    def validate(self) -> None:
        require(self.name, output_dir=str(self.config.output_dir), file_name=self.config.file_name)

    def build_batches(self, report: ExecutionReport) -> list[Batch]:
        document: dict[str, Any] = {
            "report": report.model_dump(mode="json"),
            "metrics": MetricsProvider(report).as_dict(),
        }
        return [Batch(target=self.config.file_name, rows=[document])]

    @contextmanager
    def connect(self) -> Iterator[Path]:
        yield self.config.output_dir

    def bootstrap(self, session: Path, batches: list[Batch]) -> None:
        session.mkdir(parents=True, exist_ok=True)

    def write(self, session: Path, batch: Batch) -> int:
        path = session / batch.target
        path.write_text(json.dumps(batch.rows[0], indent=self.config.indent), encoding="utf-8")
        logger.info("%s: report written to %s", self.name, path)
        return len(batch.rows)
