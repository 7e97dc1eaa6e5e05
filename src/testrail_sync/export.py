"""
Export stage: write entity snapshots and the mapping index to timestamped JSON files.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from .utils import timestamp

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .mapping import MappingIndex
    from .models import Case, Section, SharedStep, Suite

logger: logging.Logger = logging.getLogger(__name__)


class _Exportable(Protocol):
    def to_dict(self) -> dict[str, Any]: ...


def export_items(entity_type: str, items: Sequence[_Exportable], directory: Path, *, filtered: bool) -> Path | None:
    """Write ``items`` to ``directory/<entity_type>_<all|filtered>_<timestamp>.json``.

    Returns the written path, or None when there is nothing to export.

    Raises:
        OSError: If the directory cannot be created or the file written
        TypeError: If an item cannot be serialized
    """
    if not items:
        logger.info(f"No {entity_type} to export")
        return None

    directory.mkdir(parents=True, exist_ok=True)
    kind = "filtered" if filtered else "all"
    path = directory / f"{entity_type}_{kind}_{timestamp()}.json"
    content = json.dumps([item.to_dict() for item in items], indent=2, ensure_ascii=False)
    _ = path.write_text(content + "\n", encoding="utf-8")
    logger.info(f"Exported {len(items)} {kind} {entity_type} to {path}")
    return path


def export_suites(items: Sequence[Suite], directory: Path, *, filtered: bool) -> Path | None:
    return export_items("suites", items, directory, filtered=filtered)


def export_sections(items: Sequence[Section], directory: Path, *, filtered: bool) -> Path | None:
    return export_items("sections", items, directory, filtered=filtered)


def export_shared_steps(items: Sequence[SharedStep], directory: Path, *, filtered: bool) -> Path | None:
    return export_items("shared_steps", items, directory, filtered=filtered)


def export_cases(items: Sequence[Case], directory: Path, *, filtered: bool) -> Path | None:
    return export_items("cases", items, directory, filtered=filtered)


def export_mapping(mapping: MappingIndex, directory: Path) -> Path | None:
    """Write the mapping index to ``directory/mapping_<timestamp>.json`` (None when empty).

    Raises:
        OSError: If the directory cannot be created or the file written
    """
    return mapping.save(directory)


def write_run_summary(
    directory: Path,
    name: str,
    *,
    matches: int,
    filtered: int,
    errors: Sequence[str],
    mapping: dict[int, int],
) -> Path:
    """Write a ``<name>_<timestamp>.json`` summary of one synchronization run.

    Raises:
        OSError: If the directory cannot be created or the file written
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}_{timestamp()}.json"
    summary = {
        "timestamp": timestamp(),
        "matches": matches,
        "filtered": filtered,
        "errors": list(errors),
        "mapping": {str(k): v for k, v in sorted(mapping.items())},
    }
    _ = path.write_text(json.dumps(summary, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info(f"Run summary saved to {path}")
    return path
