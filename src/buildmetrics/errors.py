"""
Error types for metric collection and publishing.
"""

from __future__ import annotations


class BuildMetricsError(Exception):
    """Base exception for all buildmetrics errors."""

    def __init__(self, message: str, backend: str | None = None):
        self.message = message
        self.backend = backend
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with the backend name if available."""
        if self.backend:
            return f"[{self.backend}] {self.message}"
        return self.message


class ConfigurationError(BuildMetricsError):
    """
    Raised when a registry or publisher is configured incorrectly.

    Examples:
    - Publisher url or database name missing
    - Unknown metric preset
    - Metrics added after the registry was resolved
    """

    pass


class DataQualityError(BuildMetricsError):
    """
    Raised when a stored metric value can't be flattened as is.

    Examples:
    - Integer-like environment value that is not a number
    - Custom property reusing a built-in key

    The flattening step reports it and drops the single key.
    """

    def __init__(
        self,
        key: str,
        raw_value: object,
        expected: str = "integer",
        message: str | None = None,
    ):
        self.key = key
        self.raw_value = raw_value
        super().__init__(message or f"Metric '{key}' expected {expected}, got {raw_value!r}")


class PublishError(BuildMetricsError):
    """Base for failures inside a publisher's unit of work."""

    pass


class ConnectivityError(PublishError):
    """
    Raised when a backend is unreachable or rejects the credentials.
    """

    pass


class SchemaError(PublishError):
    """
    Raised when creating the database, table or retention policy fails.
    """

    pass


class WriteError(PublishError):
    """
    Raised when inserting a batch fails.
    """

    pass


def is_already_exists(exc: BaseException) -> bool:
    """True when a backend error reports that a schema object already exists.

    Two publishers bootstrapping the same schema concurrently can both pass the
    existence check; the loser sees this error and carries on.
    """
    return "already exists" in str(exc).lower()
