"""Source-to-destination ID mapping shared by every synchronization stage.

TestRail numbers every entity type separately, so pairs are keyed by entity
type and source ID. Each pair records what happened to one source entity:

- ``existing``: a destination entity with the same key already existed
- ``created``: a new destination entity was created for it

The index doubles as the rewrite table for shared-step references found in
case steps, so it is persisted after a run and can be loaded by a later one.

File format (``mapping_<timestamp>.json``)::

    {
      "src_project_id": 30,
      "dst_project_id": 31,
      "created_at": "2026-01-15T10:30:45+00:00",
      "count": 2,
      "pairs": [
        {"entity_type": "shared_steps", "source_id": 5, "target_id": 105, "created_at": "...", "status": "created"},
        {"entity_type": "suites", "source_id": 10, "target_id": 200, "created_at": "...", "status": "existing"}
      ]
    }

A plain ``{"<source_id>": <target_id>}`` object is also accepted when loading;
its pairs are loaded as shared steps tagged ``existing``, since shared-step
references are what a later run rewrites.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Final, Literal

from .exceptions import MappingLoadError
from .utils import timestamp

logger: logging.Logger = logging.getLogger(__name__)

MappingStatus = Literal["existing", "created"]

STATUS_EXISTING: Final[MappingStatus] = "existing"
STATUS_CREATED: Final[MappingStatus] = "created"

# Entity type keys, matching the ``entity_type`` of the model classes
SUITES: Final = "suites"
SECTIONS: Final = "sections"
SHARED_STEPS: Final = "shared_steps"
CASES: Final = "cases"

MappingKey = tuple[str, int]


def _now() -> str:
    return dt.datetime.now(dt.UTC).isoformat(timespec="seconds")


@dataclass(frozen=True)
class MappingPair:
    """One source ID -> destination ID entry for a single entity type."""

    entity_type: str
    source_id: int
    target_id: int
    status: MappingStatus
    created_at: str = ""

    @property
    def key(self) -> MappingKey:
        return (self.entity_type, self.source_id)


class MappingIndex:
    """Thread-safe (entity type, source ID) -> destination ID table with a status per pair."""

    src_project_id: int
    dst_project_id: int
    created_at: str
    lock: threading.RLock
    _pairs: dict[MappingKey, MappingPair]

    def __init__(self, src_project_id: int = 0, dst_project_id: int = 0) -> None:
        self.src_project_id = src_project_id
        self.dst_project_id = dst_project_id
        self.created_at = _now()
        self.lock = threading.RLock()
        self._pairs = {}

    def __len__(self) -> int:
        with self.lock:
            return len(self._pairs)

    def __contains__(self, key: object) -> bool:
        """``(entity_type, source_id) in mapping``."""
        with self.lock:
            return key in self._pairs

    def add_pair(self, entity_type: str, source_id: int, target_id: int, status: MappingStatus) -> bool:
        """Record a pair, replacing any earlier one for the same entity type and source ID.

        Returns True if the source ID was not mapped before for that type.
        """
        key = (entity_type, source_id)
        with self.lock:
            previous = self._pairs.get(key)
            if previous is not None and previous.target_id != target_id:
                logger.debug(f"{entity_type} source ID {source_id} remapped from {previous.target_id} to {target_id}")
            self._pairs[key] = MappingPair(entity_type, source_id, target_id, status, _now())
            return previous is None

    def get_target(self, entity_type: str, source_id: int) -> int | None:
        with self.lock:
            pair = self._pairs.get((entity_type, source_id))
        return pair.target_id if pair else None

    def status_of(self, entity_type: str, source_id: int) -> MappingStatus | None:
        with self.lock:
            pair = self._pairs.get((entity_type, source_id))
        return pair.status if pair else None

    def pairs(self, entity_type: str | None = None) -> list[MappingPair]:
        """Return pairs sorted by entity type then source ID, optionally for one type only."""
        with self.lock:
            selected = [p for p in self._pairs.values() if entity_type is None or p.entity_type == entity_type]
        return sorted(selected, key=lambda p: p.key)

    def as_dict(self, entity_type: str | None = None) -> dict[int, int]:
        """Flattened read-only snapshot: source ID -> destination ID.

        Without ``entity_type`` every type is flattened into one dict, so a
        source ID used by two types keeps only one of its targets there.
        """
        return {pair.source_id: pair.target_id for pair in self.pairs(entity_type)}

    def counts(self) -> dict[str, int]:
        """Number of pairs per status."""
        result = {STATUS_EXISTING: 0, STATUS_CREATED: 0}
        for pair in self.pairs():
            result[pair.status] += 1
        return result

    def to_json(self) -> dict[str, Any]:
        pairs = self.pairs()
        return {
            "src_project_id": self.src_project_id,
            "dst_project_id": self.dst_project_id,
            "created_at": self.created_at,
            "count": len(pairs),
            "pairs": [asdict(p) for p in pairs],
        }

    def save(self, directory: Path) -> Path | None:
        """Write the index to ``directory/mapping_<timestamp>.json``.

        Returns the written path, or None when the index is empty.

        Raises:
            OSError: If the directory cannot be created or the file written
        """
        if len(self) == 0:
            logger.info("Mapping is empty, nothing to save")
            return None

        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"mapping_{timestamp()}.json"
        _ = path.write_text(json.dumps(self.to_json(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info(f"Mapping saved to {path} ({len(self)} pairs)")
        return path

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> MappingIndex:
        """Build an index from the full file shape (with ``pairs``).

        Pairs without an ``entity_type`` are read as shared steps.
        """
        index = cls(int(data.get("src_project_id") or 0), int(data.get("dst_project_id") or 0))
        index.created_at = str(data.get("created_at") or index.created_at)
        for raw in data["pairs"]:
            status: MappingStatus = STATUS_CREATED if raw.get("status") == STATUS_CREATED else STATUS_EXISTING
            pair = MappingPair(
                entity_type=str(raw.get("entity_type") or SHARED_STEPS),
                source_id=int(raw["source_id"]),
                target_id=int(raw["target_id"]),
                status=status,
                created_at=str(raw.get("created_at") or ""),
            )
            index._pairs[pair.key] = pair
        return index

    @classmethod
    def from_simple(cls, data: dict[str, Any], src_project_id: int = 0, dst_project_id: int = 0) -> MappingIndex:
        """Build an index of shared-step pairs from a plain ``{source_id: target_id}`` object."""
        index = cls(src_project_id, dst_project_id)
        for source_id, target_id in data.items():
            _ = index.add_pair(SHARED_STEPS, int(source_id), int(target_id), STATUS_EXISTING)
        return index

    @classmethod
    def load(cls, path: Path) -> MappingIndex:
        """Load a mapping file in either supported shape.

        Raises:
            MappingLoadError: If the file is unreadable, not JSON, or in neither shape
        """
        try:
            data: object = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            msg = f"Failed to read mapping file {path}: {e}"
            raise MappingLoadError(msg) from e

        if not isinstance(data, dict):
            msg = f"Mapping file {path} must contain a JSON object"
            raise MappingLoadError(msg)

        try:
            if isinstance(data.get("pairs"), list):
                index = cls.from_json(data)
            else:
                index = cls.from_simple(data)
        except (KeyError, TypeError, ValueError) as e:
            msg = f"Mapping file {path} has an unsupported layout: {e}"
            raise MappingLoadError(msg) from e

        if len(index) == 0:
            msg = f"Mapping file {path} contains no pairs"
            raise MappingLoadError(msg)

        logger.info(f"Loaded {len(index)} mapping pairs from {path}")
        return index

    def merge(self, other: MappingIndex) -> int:
        """Add every pair of ``other`` not yet present. Returns the number of pairs added."""
        added = 0
        for pair in other.pairs():
            with self.lock:
                if pair.key in self._pairs:
                    continue
                self._pairs[pair.key] = pair
                added += 1
        return added
