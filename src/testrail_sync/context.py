"""Per-run synchronization context.

A MigrationContext is created once per CLI invocation. It owns the mapping
index, the imported-item counter, and a per-run log file inside the log
directory. Close it (or use it as a context manager) to flush and detach the
log file when the run finishes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final, Self

from .mapping import MappingIndex
from .utils import LOG_FORMAT, timestamp

if TYPE_CHECKING:
    from types import TracebackType

    from .protocols import TestRailClient

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR: Final[Path] = Path(".testrail")
DEFAULT_COMPARE_FIELD: Final[str] = "title"
DEFAULT_WORKERS: Final[int] = 8

_PACKAGE_LOGGER: Final[str] = "testrail_sync"


@dataclass
class ImportState:
    """State shared by concurrent import tasks.

    ``lock`` must be held for every update of ``imported`` and of the mapping
    index during an import stage, and only around those in-memory updates.
    """

    lock: threading.RLock = field(default_factory=threading.RLock)
    imported: int = 0

    def record_import(self) -> None:
        with self.lock:
            self.imported += 1


class MigrationContext:
    """Connection, location IDs and shared state for one synchronization run."""

    client: TestRailClient
    src_project: int
    src_suite: int
    dst_project: int
    dst_suite: int
    compare_field: str
    log_dir: Path
    workers: int | None
    mapping: MappingIndex
    state: ImportState
    log_file: Path | None
    _log_handler: logging.Handler | None

    def __init__(
        self,
        client: TestRailClient,
        src_project: int,
        src_suite: int,
        dst_project: int,
        dst_suite: int,
        *,
        compare_field: str = DEFAULT_COMPARE_FIELD,
        log_dir: Path | str | None = DEFAULT_LOG_DIR,
        workers: int | None = DEFAULT_WORKERS,
    ) -> None:
        """Initialize the context.

        Args:
            client: API client used for every fetch and create call
            src_project: Source project ID
            src_suite: Source suite ID
            dst_project: Destination project ID
            dst_suite: Destination suite ID
            compare_field: Entity attribute used as the deduplication key
            log_dir: Directory for the per-run log file and exports; None disables the log file
            workers: Maximum concurrent create calls per import stage; None means one per item

        Raises:
            OSError: If the log directory or log file cannot be created
        """
        self.client = client
        self.src_project = src_project
        self.src_suite = src_suite
        self.dst_project = dst_project
        self.dst_suite = dst_suite
        self.compare_field = compare_field or DEFAULT_COMPARE_FIELD
        self.log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
        self.workers = workers
        self.mapping = MappingIndex(src_project, dst_project)
        self.state = ImportState(lock=self.mapping.lock)
        self.log_file = None
        self._log_handler = None

        if log_dir is not None:
            self._open_log_file()

        logger.info(
            f"Initialized synchronization {src_project}/{src_suite} -> {dst_project}/{dst_suite} "
            f"(compare field: {self.compare_field})"
        )

    def _open_log_file(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / f"migration_{timestamp()}.log"
        handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger = logging.getLogger(_PACKAGE_LOGGER)
        package_logger.addHandler(handler)
        if package_logger.getEffectiveLevel() > logging.DEBUG:
            package_logger.setLevel(logging.DEBUG)
        self._log_handler = handler

    @property
    def imported(self) -> int:
        """Number of entities created so far in this run."""
        with self.state.lock:
            return self.state.imported

    def load_mapping(self, path: Path) -> int:
        """Merge a previously saved mapping file into this run's index.

        Returns the number of pairs added.

        Raises:
            MappingLoadError: If the file cannot be loaded
        """
        loaded = MappingIndex.load(path)
        added = self.mapping.merge(loaded)
        logger.info(f"Merged {added} pairs from {path}")
        return added

    def close(self) -> None:
        """Flush and detach the per-run log file."""
        if self._log_handler is None:
            return
        self._log_handler.flush()
        logging.getLogger(_PACKAGE_LOGGER).removeHandler(self._log_handler)
        self._log_handler.close()
        self._log_handler = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
