"""Deduplication stage: split source entities into duplicates and import candidates.

A source entity is a duplicate when a destination entity of the same type has
the same key. The key is the value of the comparison field, normalized with
``normalize_key`` (surrounding whitespace stripped, case folded). Entities
with an empty key never match anything.

Duplicates are recorded in the mapping index with status ``existing`` and
dropped; everything else is returned as a novel item in source order. When
several destination entities share a key, the last one wins.

Suites and sections always compare on ``name``. Shared steps and cases compare
on the configured field (``title`` by default), which may also name a custom
field present in the raw API data.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Final, Protocol, TypeVar

from .exceptions import FilterError
from .mapping import CASES, SECTIONS, SHARED_STEPS, STATUS_EXISTING, SUITES

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .mapping import MappingIndex
    from .models import Case, Section, SharedStep, Suite

logger: logging.Logger = logging.getLogger(__name__)

NAME_FIELD: Final[str] = "name"
TITLE_FIELD: Final[str] = "title"


class _Entity(Protocol):
    id: int
    extra: dict[str, Any]


E = TypeVar("E", bound=_Entity)


def normalize_key(value: object) -> str:
    """Normalize a comparison-field value into a lookup key."""
    if value is None:
        return ""
    return str(value).strip().casefold()


def field_value(item: _Entity, field_name: str) -> object:
    """Value of ``field_name`` on a snapshot, falling back to its raw extra fields."""
    if field_name != "extra" and hasattr(item, field_name):
        return getattr(item, field_name)
    return item.extra.get(field_name)


def _check_field(items: Sequence[_Entity], field_name: str, entity_type: str) -> None:
    """Reject a comparison field that no snapshot of this type carries."""
    if not items:
        return
    known = {f.name for f in dataclasses.fields(items[0])} - {"extra"}  # pyright: ignore[reportArgumentType]
    if field_name in known or any(field_name in item.extra for item in items):
        return
    msg = f"Unknown comparison field '{field_name}' for {entity_type}"
    raise FilterError(msg)


def _build_lookup(destination: Iterable[_Entity], field_name: str) -> dict[str, int]:
    lookup: dict[str, int] = {}
    for item in destination:
        key = normalize_key(field_value(item, field_name))
        if key:
            lookup[key] = item.id
    return lookup


def _deduplicate(
    source: Sequence[E],
    destination: Sequence[E],
    field_name: str,
    mapping: MappingIndex,
    entity_type: str,
) -> list[E]:
    label = entity_type.replace("_", " ")
    _check_field([*source, *destination], field_name, label)
    lookup = _build_lookup(destination, field_name)

    novel: list[E] = []
    for item in source:
        value = field_value(item, field_name)
        existing_id = lookup.get(normalize_key(value))
        if existing_id is None:
            novel.append(item)
            continue
        _ = mapping.add_pair(entity_type, item.id, existing_id, STATUS_EXISTING)
        logger.debug(f"Duplicate {label} '{value}': {item.id} -> existing {existing_id}")

    logger.info(
        f"{len(source) - len(novel)} of {len(source)} {label} already exist, {len(novel)} ready to import"
    )
    return novel


def filter_suites(source: Sequence[Suite], destination: Sequence[Suite], *, mapping: MappingIndex) -> list[Suite]:
    """Return source suites with no same-named suite in the destination project.

    Raises:
        FilterError: If the entities cannot be compared
    """
    return _deduplicate(source, destination, NAME_FIELD, mapping, SUITES)


def filter_sections(
    source: Sequence[Section], destination: Sequence[Section], *, mapping: MappingIndex
) -> list[Section]:
    """Return source sections with no same-named section in the destination suite.

    Raises:
        FilterError: If the entities cannot be compared
    """
    return _deduplicate(source, destination, NAME_FIELD, mapping, SECTIONS)


def filter_cases(
    source: Sequence[Case],
    destination: Sequence[Case],
    *,
    mapping: MappingIndex,
    compare_field: str = TITLE_FIELD,
) -> list[Case]:
    """Return source cases with no matching case in the destination suite.

    Raises:
        FilterError: If ``compare_field`` is unknown for cases
    """
    return _deduplicate(source, destination, compare_field, mapping, CASES)


def is_used(shared_step: SharedStep, source_case_ids: set[int]) -> bool:
    """Whether any case still in the source suite references the shared step."""
    return any(case_id in source_case_ids for case_id in shared_step.case_ids)


def exclude_used_shared_steps(source: Sequence[SharedStep], source_case_ids: set[int]) -> list[SharedStep]:
    """Drop shared steps referenced by any case that is still in the source suite."""
    candidates = [step for step in source if not is_used(step, source_case_ids)]
    logger.info(
        f"{len(source) - len(candidates)} shared steps are used by source cases, {len(candidates)} candidates remain"
    )
    return candidates


def filter_shared_steps(
    source: Sequence[SharedStep],
    destination: Sequence[SharedStep],
    source_case_ids: set[int],
    *,
    mapping: MappingIndex,
    compare_field: str = TITLE_FIELD,
) -> list[SharedStep]:
    """Return shared steps to import: unused by source cases and absent from the destination.

    Shared steps still referenced by a source-suite case are excluded before
    duplicate matching, so they are neither imported nor mapped here.

    Raises:
        FilterError: If ``compare_field`` is unknown for shared steps
    """
    candidates = exclude_used_shared_steps(source, source_case_ids)
    return _deduplicate(candidates, destination, compare_field, mapping, SHARED_STEPS)


def match_sections_by_name(source: Sequence[Section], destination: Sequence[Section]) -> dict[int, int]:
    """Map source section IDs to destination section IDs by normalized name.

    Used to place cases whose section is not in the mapping index. Nothing is
    recorded in the index.
    """
    lookup = _build_lookup(destination, NAME_FIELD)
    matches: dict[int, int] = {}
    for section in source:
        target_id = lookup.get(normalize_key(section.name))
        if target_id is not None:
            matches[section.id] = target_id
    return matches
