"""
Document-store publisher writing to RethinkDB.

The publisher talks to the database through :class:`DocumentStoreClient`, so
the wire driver stays a replaceable collaborator. The default client wraps the
official ``rethinkdb`` driver (``pip install buildmetrics[rethinkdb]``).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from concurrent.futures import Executor
from contextlib import contextmanager
from typing import Any, Protocol
from urllib.parse import urlsplit

from buildmetrics.config import RethinkDbPublisherConfig
from buildmetrics.errors import ConnectivityError, WriteError, is_already_exists
from buildmetrics.metrics.provider import MetricsProvider
from buildmetrics.models import ExecutionReport
from buildmetrics.publishers.base import Batch, Publisher, require

logger = logging.getLogger(__name__)

DEFAULT_PORT = 28015


class DocumentStoreClient(Protocol):
    def database_exists(self, database: str) -> bool: ...

    def create_database(self, database: str) -> None: ...

    def table_exists(self, database: str, table: str) -> bool: ...

    def create_table(self, database: str, table: str) -> None: ...

    def insert(self, database: str, table: str, documents: list[dict[str, Any]]) -> int: ...

    def close(self) -> None: ...


Connector = Callable[[RethinkDbPublisherConfig], DocumentStoreClient]


class RethinkDbClient:
    """DocumentStoreClient over the ``rethinkdb`` driver."""

    def __init__(
        self, host: str, port: int, user: str | None = None, password: str | None = None
    ) -> None:
        try:
            from rethinkdb import RethinkDB
        except ImportError:
            raise ConnectivityError(
                "rethinkdb driver not installed - run: pip install buildmetrics[rethinkdb]",
                RethinkDbPublisher.name,
            ) from None

        self._r = RethinkDB()
        options: dict[str, Any] = {"host": host, "port": port}
        if user or password:
            options["user"] = user or "admin"
            options["password"] = password or ""
        self._conn = self._r.connect(**options)

    def database_exists(self, database: str) -> bool:
        return bool(self._r.db_list().contains(database).run(self._conn))

    def create_database(self, database: str) -> None:
        self._r.db_create(database).run(self._conn)

    def table_exists(self, database: str, table: str) -> bool:
        return bool(self._r.db(database).table_list().contains(table).run(self._conn))

    def create_table(self, database: str, table: str) -> None:
        self._r.db(database).table_create(table).run(self._conn)

    def insert(self, database: str, table: str, documents: list[dict[str, Any]]) -> int:
        result = self._r.db(database).table(table).insert(documents).run(self._conn)
        if result.get("errors"):
            raise WriteError(
                f"{result['errors']} documents rejected: {result.get('first_error', '')}",
                RethinkDbPublisher.name,
            )
        return int(result.get("inserted", 0))

    def close(self) -> None:
        self._conn.close()


def connect_rethinkdb(config: RethinkDbPublisherConfig) -> DocumentStoreClient:
    url = urlsplit(config.url if "//" in config.url else f"//{config.url}")
    host = url.hostname or "localhost"
    port = url.port or DEFAULT_PORT
    if config.has_credentials():
        return RethinkDbClient(host, port, config.username, config.resolved_password())
    return RethinkDbClient(host, port)


class RethinkDbPublisher(Publisher[DocumentStoreClient]):
    """
    Publishes one document per task and one document of build metrics.

    Example:
        config = RethinkDbPublisherConfig(
            url="http://localhost:28015",
            database_name="tracking",
            build_table_name="build",
            task_table_name="task",
        )
        RethinkDbPublisher(config, executor).publish(report)
    """

    name = "RethinkDbPublisher"

    def __init__(
        self,
        config: RethinkDbPublisherConfig,
        executor: Executor,
        connector: Connector = connect_rethinkdb,
    ) -> None:
        super().__init__(executor)
        self.config = config
        self._connector = connector

    def validate(self) -> None:
        require(
            self.name,
            url=self.config.url,
            database_name=self.config.database_name,
            task_table_name=self.config.task_table_name,
            build_table_name=self.config.build_table_name,
        )

    def feature_flags(self) -> dict[str, Any]:
        return {
            "publishBuildMetrics": self.config.publish_build_metrics,
            "publishTaskMetrics": self.config.publish_task_metrics,
        }

    def build_batches(self, report: ExecutionReport) -> list[Batch]:
        provider = MetricsProvider(report)
        batches: list[Batch] = []
        if self.config.publish_task_metrics:
            now_ms = int(time.time() * 1000)
            batches.append(
                Batch(
                    target=self.config.task_table_name,
                    rows=provider.task_rows(now_ms),
                    kind="task",
                )
            )
        if self.config.publish_build_metrics:
            batches.append(Batch(target=self.config.build_table_name, rows=[provider.as_dict()]))
        return batches

    @contextmanager
    def connect(self) -> Iterator[DocumentStoreClient]:
        client = self._connector(self.config)
        try:
            yield client
        finally:
            client.close()

    def bootstrap(self, session: DocumentStoreClient, batches: list[Batch]) -> None:
        db = self.config.database_name
        if not session.database_exists(db):
            logger.info("%s: creating database %s", self.name, db)
            self._tolerate_existing(lambda: session.create_database(db))
        for batch in batches:
            if not session.table_exists(db, batch.target):
                logger.info("%s: creating table %s.%s", self.name, db, batch.target)
                self._tolerate_existing(lambda t=batch.target: session.create_table(db, t))

    def _tolerate_existing(self, create: Callable[[], None]) -> None:
        try:
            create()
        except Exception as e:
            # Lost a race with another bootstrap creating the same object
            if not is_already_exists(e):
                raise
            logger.debug("%s: %s", self.name, e)

    def write(self, session: DocumentStoreClient, batch: Batch) -> int:
        return session.insert(self.config.database_name, batch.target, batch.rows)
