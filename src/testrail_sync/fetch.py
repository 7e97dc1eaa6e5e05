"""
Fetch stage: read each entity collection from the source and destination locations.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, NamedTuple, TypeVar

from .exceptions import FetchError, TestRailAPIError

if TYPE_CHECKING:
    from collections.abc import Callable

    from .context import MigrationContext
    from .models import Case, Section, SharedStep, Suite

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchResult(NamedTuple, Generic[T]):
    """Source and destination collections of one entity type."""

    source: list[T]
    destination: list[T]


def _fetch_side(entity_type: str, side: str, call: Callable[[], list[T]]) -> list[T]:
    logger.info(f"Fetching {side} {entity_type}")
    try:
        items = call()
    except TestRailAPIError as e:
        logger.error(f"Failed to fetch {side} {entity_type}: {e}")
        raise FetchError(entity_type, side, str(e)) from e
    logger.info(f"Fetched {len(items)} {side} {entity_type}")
    return items


def fetch_suites(ctx: MigrationContext) -> FetchResult[Suite]:
    """Fetch suites of the source and destination projects.

    Raises:
        FetchError: If either side cannot be fetched
    """
    source = _fetch_side("suites", "source", lambda: ctx.client.get_suites(ctx.src_project))
    destination = _fetch_side("suites", "destination", lambda: ctx.client.get_suites(ctx.dst_project))
    return FetchResult(source, destination)


def fetch_sections(ctx: MigrationContext) -> FetchResult[Section]:
    """Fetch sections of the source and destination suites.

    Raises:
        FetchError: If either side cannot be fetched
    """
    source = _fetch_side("sections", "source", lambda: ctx.client.get_sections(ctx.src_project, ctx.src_suite))
    destination = _fetch_side(
        "sections", "destination", lambda: ctx.client.get_sections(ctx.dst_project, ctx.dst_suite)
    )
    return FetchResult(source, destination)


def fetch_shared_steps(ctx: MigrationContext) -> FetchResult[SharedStep]:
    """Fetch shared steps of the source and destination projects.

    Raises:
        FetchError: If either side cannot be fetched
    """
    source = _fetch_side("shared steps", "source", lambda: ctx.client.get_shared_steps(ctx.src_project))
    destination = _fetch_side("shared steps", "destination", lambda: ctx.client.get_shared_steps(ctx.dst_project))
    return FetchResult(source, destination)


def fetch_cases(ctx: MigrationContext) -> FetchResult[Case]:
    """Fetch cases of the source and destination suites.

    Raises:
        FetchError: If either side cannot be fetched
    """
    source = _fetch_side("cases", "source", lambda: ctx.client.get_cases(ctx.src_project, ctx.src_suite))
    destination = _fetch_side("cases", "destination", lambda: ctx.client.get_cases(ctx.dst_project, ctx.dst_suite))
    return FetchResult(source, destination)


def fetch_source_case_ids(ctx: MigrationContext) -> set[int]:
    """IDs of every case currently in the source suite (input to the shared-step usage filter).

    Raises:
        FetchError: If the source cases cannot be fetched
    """
    cases = _fetch_side("cases", "source", lambda: ctx.client.get_cases(ctx.src_project, ctx.src_suite))
    return {c.id for c in cases}
