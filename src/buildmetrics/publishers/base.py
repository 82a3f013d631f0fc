"""
Publisher contract shared by every storage backend.

``publish`` validates the configuration on the caller's thread and hands the
rest to the executor. The unit of work walks a fixed state machine::

    CONFIGURED -> VALIDATING -> (REJECTED | CONNECTING)
               -> (CONNECT_FAILED | SCHEMA_BOOTSTRAPPING)
               -> (BOOTSTRAP_FAILED | WRITING)
               -> (WRITE_FAILED | DONE)

Every failed state is terminal for that call only: it is logged with the
backend name and returned in the :class:`PublishOutcome`, never raised.
A rejected configuration still yields a future, already completed with a
``REJECTED`` outcome, so callers collect it like any other result.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from buildmetrics.errors import (
    ConfigurationError,
    ConnectivityError,
    PublishError,
    SchemaError,
    WriteError,
)
from buildmetrics.models import ExecutionReport

logger = logging.getLogger(__name__)

SessionT = TypeVar("SessionT")


class PublishState(StrEnum):
    CONFIGURED = "configured"
    VALIDATING = "validating"
    REJECTED = "rejected"
    CONNECTING = "connecting"
    CONNECT_FAILED = "connect_failed"
    SCHEMA_BOOTSTRAPPING = "schema_bootstrapping"
    BOOTSTRAP_FAILED = "bootstrap_failed"
    WRITING = "writing"
    WRITE_FAILED = "write_failed"
    DONE = "done"


# Phase in progress -> terminal state and error type when it fails
_FAILURES: dict[PublishState, tuple[PublishState, type[PublishError]]] = {
    PublishState.CONNECTING: (PublishState.CONNECT_FAILED, ConnectivityError),
    PublishState.SCHEMA_BOOTSTRAPPING: (PublishState.BOOTSTRAP_FAILED, SchemaError),
    PublishState.WRITING: (PublishState.WRITE_FAILED, WriteError),
}


class PublishOutcome(BaseModel):
    publisher: str
    state: PublishState
    rows_written: int = 0
    error: str | None = None
    duration_ms: float = 0.0

    model_config = ConfigDict(frozen=True)

    @property
    def succeeded(self) -> bool:
        return self.state == PublishState.DONE


@dataclass(frozen=True)
class Batch:
    """Rows bound for one table or measurement."""

    target: str
    rows: list[dict[str, Any]] = field(default_factory=list)
    # Build rows are one row of flattened metrics, task rows one row per task.
    kind: str = "build"

    def __len__(self) -> int:
        return len(self.rows)


class Publisher(ABC, Generic[SessionT]):
    """Abstract base for all publishers.

    Subclasses supply validation, batch building and the three I/O phases;
    the base class owns scheduling, phase bookkeeping and failure isolation.
    """

    name: ClassVar[str] = "publisher"

    def __init__(self, executor: Executor) -> None:
        self._executor = executor
        # Latest state reached by the most recent publish call
        self.state = PublishState.CONFIGURED

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def validate(self) -> None:
        """Raise ConfigurationError when a required option is missing."""

    @abstractmethod
    def build_batches(self, report: ExecutionReport) -> list[Batch]:
        """Turn the report into batches, already gated by the feature flags."""

    @abstractmethod
    def connect(self) -> AbstractContextManager[SessionT]:
        """Open a session that is released on every exit path."""

    @abstractmethod
    def bootstrap(self, session: SessionT, batches: list[Batch]) -> None:
        """Create the database and the targets of ``batches`` when missing."""

    @abstractmethod
    def write(self, session: SessionT, batch: Batch) -> int:
        """Write one batch, returning the number of rows written."""

    def feature_flags(self) -> dict[str, Any]:
        return {}

    # ------------------------------------------------------------------
    # Protocol
    # ------------------------------------------------------------------

    def publish(self, report: ExecutionReport) -> Future[PublishOutcome]:
        """Schedule publication of ``report``.

        Returns the future of the unit of work. When the configuration is
        rejected nothing is submitted and the returned future already holds a
        ``REJECTED`` outcome. Callers are not required to wait on the future.
        """
        self.state = PublishState.VALIDATING
        try:
            self.validate()
        except ConfigurationError as e:
            logger.error("%s not executed: %s", self.name, e.message)
            self.state = PublishState.REJECTED
            rejected: Future[PublishOutcome] = Future()
            rejected.set_result(
                PublishOutcome(publisher=self.name, state=PublishState.REJECTED, error=e.message)
            )
            return rejected
        return self._executor.submit(self.run, report)

    def run(self, report: ExecutionReport) -> PublishOutcome:
        """The unit of work: connect, bootstrap the schema, write."""
        t0 = time.monotonic()
        flags = ", ".join(f"{k}={v}" for k, v in self.feature_flags().items())
        logger.info("%s: publishing%s", self.name, f" ({flags})" if flags else "")

        try:
            batches = [b for b in self.build_batches(report) if b.rows]
        except Exception as e:
            return self._failed(PublishState.WRITING, e, t0)

        self.state = PublishState.CONNECTING
        rows = 0
        try:
            with self.connect() as session:
                self.state = PublishState.SCHEMA_BOOTSTRAPPING
                self.bootstrap(session, batches)
                self.state = PublishState.WRITING
                for batch in batches:
                    rows += self.write(session, batch)
                    logger.debug("%s: wrote %d rows to %s", self.name, len(batch), batch.target)
        except Exception as e:
            return self._failed(self.state, e, t0, rows)

        self.state = PublishState.DONE
        outcome = PublishOutcome(
            publisher=self.name,
            state=PublishState.DONE,
            rows_written=rows,
            duration_ms=_elapsed(t0),
        )
        logger.info("%s: published %d rows in %.1fms", self.name, rows, outcome.duration_ms)
        return outcome

    def _failed(
        self, phase: PublishState, exc: Exception, t0: float, rows: int = 0
    ) -> PublishOutcome:
        terminal, error_type = _FAILURES[phase]
        self.state = terminal
        error = exc if isinstance(exc, PublishError) else error_type(str(exc), backend=self.name)
        logger.error("%s: %s: %s", self.name, terminal.value, error.message)
        return PublishOutcome(
            publisher=self.name,
            state=terminal,
            rows_written=rows,
            error=error.message,
            duration_ms=_elapsed(t0),
        )


def _elapsed(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)


def require(backend: str, **fields: str) -> None:
    """Raise ConfigurationError naming every empty required field."""
    missing = [name for name, value in fields.items() if not value or not value.strip()]
    if missing:
        raise ConfigurationError(f"missing required option(s): {', '.join(missing)}", backend)
