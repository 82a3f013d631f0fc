"""
Fan a finished report out to every configured publisher.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Iterable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from types import TracebackType
from typing import Any

from buildmetrics.config import PublishersConfig
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers.base import PublishOutcome, Publisher
from buildmetrics.publishers.influxdb import InfluxDbPublisher
from buildmetrics.publishers.json_file import JsonPublisher
from buildmetrics.publishers.output import OutputPublisher
from buildmetrics.publishers.rethinkdb import RethinkDbPublisher

logger = logging.getLogger(__name__)

AnyPublisher = Publisher[Any]


def build_publishers(config: PublishersConfig, executor: Executor) -> list[AnyPublisher]:
    """Instantiate a publisher for every configured backend."""
    publishers: list[AnyPublisher] = []
    if config.output is not None:
        publishers.append(OutputPublisher(config.output, executor))
    if config.influxdb is not None:
        publishers.append(InfluxDbPublisher(config.influxdb, executor))
    if config.rethinkdb is not None:
        publishers.append(RethinkDbPublisher(config.rethinkdb, executor))
    if config.json_file is not None:
        publishers.append(JsonPublisher(config.json_file, executor))
    return publishers


class PublisherOrchestrator:
    """
    Invoke every publisher independently on a shared worker pool.

    No publisher's failure or latency affects another: each one validates on
    its own, runs as its own unit of work and reports its own outcome.

    Usage:
        with PublisherOrchestrator.from_config(config.publishers) as orchestrator:
            orchestrator.publish(report)
    """

    def __init__(
        self,
        publishers: Iterable[AnyPublisher],
        executor: Executor | None = None,
        max_workers: int = 4,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="buildmetrics-publish"
        )
        self._publishers = list(publishers)
        # Future -> publisher name, until wait() collects it
        self._pending: dict[Future[PublishOutcome], str] = {}

    @classmethod
    def from_config(
        cls,
        config: PublishersConfig,
        executor: Executor | None = None,
        max_workers: int = 4,
    ) -> PublisherOrchestrator:
        pool = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="buildmetrics-publish"
        )
        orchestrator = cls(build_publishers(config, pool), executor=pool)
        orchestrator._owns_executor = executor is None
        return orchestrator

    @property
    def publishers(self) -> list[AnyPublisher]:
        return list(self._publishers)

    @property
    def executor(self) -> Executor:
        return self._executor

    def publish(self, report: ExecutionReport) -> list[Future[PublishOutcome]]:
        """Schedule every publisher against one read-only snapshot of ``report``."""
        snapshot = report.snapshot()
        futures: list[Future[PublishOutcome]] = []
        for publisher in self._publishers:
            try:
                future = publisher.publish(snapshot)
            except Exception as e:
                logger.error("%s failed to schedule: %s", publisher.name, e, exc_info=True)
                continue
            futures.append(future)
            self._pending[future] = publisher.name
        logger.debug("Scheduled %d of %d publishers", len(futures), len(self._publishers))
        return futures

    def wait(self, timeout: float | None = None) -> list[PublishOutcome]:
        """Block until scheduled publishers finish and return their outcomes.

        Publishing never requires this; it exists for callers such as the CLI
        that must not exit before the writes complete.
        Futures that have not finished within ``timeout`` stay pending and are
        named by :meth:`running`.
        """
        done, not_done = concurrent.futures.wait(list(self._pending), timeout=timeout)
        if not_done:
            names = ", ".join(self._pending[f] for f in self._pending if f in not_done)
            logger.warning("Publishers still running after %ss: %s", timeout, names)

        outcomes: list[PublishOutcome] = []
        for future, name in self._pending.items():
            if future not in done:
                continue
            error = future.exception()
            if error is not None:
                logger.error("%s unit of work raised: %s", name, error)
                continue
            outcomes.append(future.result())
        self._pending = {f: name for f, name in self._pending.items() if f in not_done}
        return outcomes

    def running(self) -> list[str]:
        """Names of the publishers whose unit of work has not been collected yet."""
        return list(self._pending.values())

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> PublisherOrchestrator:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown(wait=True)
