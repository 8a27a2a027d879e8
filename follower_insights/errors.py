"""
Error Taxonomy

Exceptions raised by the ingestion, analysis, persistence and query layers.
"""

from typing import Optional


class FollowerInsightsError(Exception):
    """Base class for all errors raised by this package."""


class ArchiveReadError(FollowerInsightsError):
    """The uploaded archive could not be opened at all. Fatal."""


class EmptyDatasetError(FollowerInsightsError):
    """No followers, following or pending records were found. Fatal."""


class MalformedRecordError(FollowerInsightsError):
    """A single export entry could not be decoded. Counted and dropped."""

    def __init__(self, message: str, entry: Optional[object] = None):
        super().__init__(message)
        self.entry = entry


class InvalidTimestampError(FollowerInsightsError):
    """An entry timestamp could not be parsed. Counted; processing time is used instead."""

    def __init__(self, value: object):
        super().__init__(f"Unparsable timestamp: {value!r}")
        self.value = value


class PersistenceError(FollowerInsightsError):
    """Writing a session failed. The whole session is rolled back."""


class SessionNotFoundError(FollowerInsightsError, LookupError):
    """The requested session does not exist."""


class QueryValidationError(FollowerInsightsError, ValueError):
    """Query parameters are out of range."""


class ConfigError(FollowerInsightsError):
    """Configuration file is invalid."""
