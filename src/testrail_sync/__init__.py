"""
TestRail Synchronization Tool

Copies suites, sections, shared steps and cases from one TestRail project/suite
to another without creating duplicates, and rewrites shared step references
in migrated cases.
"""

from __future__ import annotations

from .cli import main
from .context import MigrationContext
from .exceptions import ConfigError, FetchError, FilterError, MappingLoadError, SyncError, TestRailAPIError
from .mapping import MappingIndex
from .orchestrator import FullMigrationResult, StageResult, SyncOrchestrator
from .testrail_client import TestRailHTTPClient
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "FetchError",
    "FilterError",
    "FullMigrationResult",
    "MappingIndex",
    "MappingLoadError",
    "MigrationContext",
    "StageResult",
    "SyncError",
    "SyncOrchestrator",
    "TestRailAPIError",
    "TestRailHTTPClient",
    "main",
    "setup_logging",
]
