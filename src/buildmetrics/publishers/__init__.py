"""
Publishers persisting build metrics to storage backends.

Public API:
    from buildmetrics.publishers import PublisherOrchestrator, InfluxDbPublisher
"""

from __future__ import annotations

from .base import Batch, PublishOutcome, PublishState, Publisher
from .influxdb import InfluxDbPublisher
from .json_file import JsonPublisher
from .orchestrator import PublisherOrchestrator, build_publishers
from .output import OutputPublisher
from .rethinkdb import DocumentStoreClient, RethinkDbClient, RethinkDbPublisher

__all__ = [
    "Batch",
    "DocumentStoreClient",
    "InfluxDbPublisher",
    "JsonPublisher",
    "OutputPublisher",
    "PublishOutcome",
    "PublishState",
    "Publisher",
    "PublisherOrchestrator",
    "RethinkDbClient",
    "RethinkDbPublisher",
    "build_publishers",
]
