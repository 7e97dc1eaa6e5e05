"""
Custom exception classes for the TestRail synchronization tool.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for synchronization errors."""


class ConfigError(SyncError):
    """Raised when connection settings or credentials are missing."""


class TestRailAPIError(SyncError):
    """Raised when a TestRail API call fails."""

    __test__ = False  # keep pytest from collecting this class

    status_code: int | None

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchError(SyncError):
    """Raised when entities cannot be fetched from the source or destination."""

    entity_type: str
    side: str

    def __init__(self, entity_type: str, side: str, message: str) -> None:
        super().__init__(f"Failed to fetch {side} {entity_type}: {message}")
        self.entity_type = entity_type
        self.side = side


class FilterError(SyncError):
    """Raised when the deduplication stage cannot classify entities."""


class MappingLoadError(SyncError):
    """Raised when a mapping file cannot be read."""
