"""Import stage: create novel entities in the destination concurrently.

Every novel item becomes one task on a bounded thread pool. A task builds its
own request payload (step lists are copied, never shared with the snapshot),
performs the create call, then records the result under the shared lock.
The lock is never held during the API call.

Tasks fail independently: an API error is logged and collected into the
ImportReport, and the remaining tasks carry on. Each import function returns
only after every task has finished.

Dry runs and empty candidate lists return immediately without touching the
API, the mapping index, or the imported counter.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from .exceptions import TestRailAPIError
from .mapping import CASES, SECTIONS, SHARED_STEPS, STATUS_CREATED, SUITES
from .models import AddCaseRequest, AddSectionRequest, AddSharedStepRequest, AddSuiteRequest

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .context import MigrationContext
    from .mapping import MappingIndex
    from .models import Case, Section, SharedStep, Step, Suite

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ImportReport:
    """Outcome of one import stage."""

    attempted: int = 0
    created_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False  # True for dry runs and empty candidate lists

    @property
    def imported(self) -> int:
        return len(self.created_ids)

    @property
    def failed(self) -> int:
        return len(self.errors)


def _should_skip(entity_type: str, items: Sequence[object], *, dry_run: bool) -> bool:
    if dry_run:
        logger.info(f"Dry run: skipping import of {len(items)} {entity_type}")
        return True
    if not items:
        logger.info(f"No {entity_type} to import")
        return True
    return False


def _run_tasks(items: Sequence[T], task: Callable[[T], None], workers: int | None) -> None:
    """Run ``task`` for every item on a thread pool and wait for all of them.

    ``workers`` caps the pool size; None gives each item its own thread.
    Exceptions other than the API errors handled inside ``task`` are re-raised
    once every task has finished.
    """
    max_workers = min(workers, len(items)) if workers else len(items)
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="testrail-import") as executor:
        futures = [executor.submit(task, item) for item in items]
    for future in futures:
        future.result()


def _record_failure(ctx: MigrationContext, report: ImportReport, message: str) -> None:
    logger.error(message)
    with ctx.state.lock:
        report.errors.append(message)


def _record_success(
    ctx: MigrationContext,
    report: ImportReport,
    mapping: MappingIndex | None,
    entity_type: str,
    source_id: int,
    target_id: int,
) -> None:
    with ctx.state.lock:
        if mapping is not None:
            _ = mapping.add_pair(entity_type, source_id, target_id, STATUS_CREATED)
        ctx.state.record_import()
        report.created_ids.append(target_id)


def import_suites(
    ctx: MigrationContext, items: Sequence[Suite], *, mapping: MappingIndex, dry_run: bool = False
) -> ImportReport:
    """Create every novel suite in the destination project."""
    if _should_skip("suites", items, dry_run=dry_run):
        return ImportReport(skipped=True)

    logger.info(f"Importing {len(items)} suites")
    report = ImportReport(attempted=len(items))

    def create(suite: Suite) -> None:
        try:
            created = ctx.client.add_suite(ctx.dst_project, AddSuiteRequest.from_suite(suite))
        except TestRailAPIError as e:
            _record_failure(ctx, report, f'suite "{suite.name}": {e}')
            return
        _record_success(ctx, report, mapping, SUITES, suite.id, created.id)
        logger.debug(f"Created suite '{suite.name}': {suite.id} -> {created.id}")

    _run_tasks(items, create, ctx.workers)
    logger.info(f"Imported {report.imported} of {len(items)} suites")
    return report


def _section_levels(items: Sequence[Section]) -> list[list[Section]]:
    """Group sections so that every novel parent is in an earlier level than its children."""
    pending = list(items)
    placed: set[int] = set()
    novel_ids = {s.id for s in items}
    levels: list[list[Section]] = []

    while pending:
        level = [s for s in pending if s.parent_id is None or s.parent_id not in novel_ids or s.parent_id in placed]
        if not level:
            # Parent cycle in the source data: create the rest without ordering guarantees
            level = pending
        levels.append(level)
        placed.update(s.id for s in level)
        level_ids = {s.id for s in level}
        pending = [s for s in pending if s.id not in level_ids]
    return levels


def import_sections(
    ctx: MigrationContext, items: Sequence[Section], *, mapping: MappingIndex, dry_run: bool = False
) -> ImportReport:
    """Create every novel section in the destination suite.

    Parent IDs are translated through the mapping index. Sections are created
    level by level so that a parent created in this stage is mapped before its
    children are submitted.
    """
    if _should_skip("sections", items, dry_run=dry_run):
        return ImportReport(skipped=True)

    logger.info(f"Importing {len(items)} sections")
    report = ImportReport(attempted=len(items))

    def create(section: Section) -> None:
        parent_id: int | None = None
        if section.parent_id is not None:
            parent_id = mapping.get_target(SECTIONS, section.parent_id)
            if parent_id is None:
                logger.warning(
                    f"Parent section {section.parent_id} of '{section.name}' is not mapped, creating it at top level"
                )
        request = AddSectionRequest(
            name=section.name,
            suite_id=ctx.dst_suite,
            description=section.description,
            parent_id=parent_id,
        )
        try:
            created = ctx.client.add_section(ctx.dst_project, request)
        except TestRailAPIError as e:
            _record_failure(ctx, report, f'section "{section.name}": {e}')
            return
        _record_success(ctx, report, mapping, SECTIONS, section.id, created.id)
        logger.debug(f"Created section '{section.name}': {section.id} -> {created.id}")

    for level in _section_levels(items):
        _run_tasks(level, create, ctx.workers)

    logger.info(f"Imported {report.imported} of {len(items)} sections")
    return report


def import_shared_steps(
    ctx: MigrationContext, items: Sequence[SharedStep], *, mapping: MappingIndex, dry_run: bool = False
) -> ImportReport:
    """Create every novel shared step in the destination project."""
    if _should_skip("shared steps", items, dry_run=dry_run):
        return ImportReport(skipped=True)

    logger.info(f"Importing {len(items)} shared steps")
    report = ImportReport(attempted=len(items))

    def create(shared_step: SharedStep) -> None:
        try:
            created = ctx.client.add_shared_step(ctx.dst_project, AddSharedStepRequest.from_shared_step(shared_step))
        except TestRailAPIError as e:
            _record_failure(ctx, report, f'shared step "{shared_step.title}": {e}')
            return
        _record_success(ctx, report, mapping, SHARED_STEPS, shared_step.id, created.id)
        logger.debug(f"Created shared step '{shared_step.title}': {shared_step.id} -> {created.id}")

    _run_tasks(items, create, ctx.workers)
    logger.info(f"Imported {report.imported} of {len(items)} shared steps")
    return report


def rewrite_shared_step_refs(steps: Sequence[Step], mapping: MappingIndex, case_title: str = "") -> None:
    """Point shared-step references at their destination IDs, in place.

    References missing from the mapping are left unchanged and logged.
    """
    for step in steps:
        if step.shared_step_id is None:
            continue
        target_id = mapping.get_target(SHARED_STEPS, step.shared_step_id)
        if target_id is None:
            logger.warning(f"Shared step {step.shared_step_id} used by case '{case_title}' is not in the mapping")
            continue
        logger.debug(f"Case '{case_title}': shared step {step.shared_step_id} -> {target_id}")
        step.shared_step_id = target_id


def resolve_case_section(case: Case, mapping: MappingIndex, sections: Mapping[int, int] | None = None) -> int | None:
    """Destination section for a case: its mapped section, else a same-named destination section.

    ``sections`` maps source section IDs to destination section IDs by name.
    Returns None when neither resolves.
    """
    if case.section_id is None:
        return None
    section_id = mapping.get_target(SECTIONS, case.section_id)
    if section_id is None and sections:
        section_id = sections.get(case.section_id)
        if section_id is not None:
            logger.debug(f"Section of case '{case.title}' matched by name: {case.section_id} -> {section_id}")
    return section_id


def build_case_request(case: Case, mapping: MappingIndex, sections: Mapping[int, int] | None = None) -> AddCaseRequest:
    """Create-case payload with the destination section and rewritten shared-step references.

    ``section_id`` is left as None when the case's section cannot be resolved.
    """
    request = AddCaseRequest.from_case(case)
    request.section_id = resolve_case_section(case, mapping, sections)
    rewrite_shared_step_refs(request.custom_steps_separated, mapping, case.title)
    return request


def import_cases(
    ctx: MigrationContext,
    items: Sequence[Case],
    *,
    mapping: MappingIndex,
    dry_run: bool = False,
    sections: Mapping[int, int] | None = None,
) -> ImportReport:
    """Create every novel case in the destination suite.

    Each case goes into its mapped destination section, or failing that the
    destination section with the same name (``sections``). A case whose section
    resolves to neither is reported as failed without an API call.

    Case IDs are not added to the mapping index; the report carries the
    created IDs and one message per failed case instead.
    """
    if _should_skip("cases", items, dry_run=dry_run):
        return ImportReport(skipped=True)

    logger.info(f"Importing {len(items)} cases")
    report = ImportReport(attempted=len(items))

    def create(case: Case) -> None:
        request = build_case_request(case, mapping, sections)
        if request.section_id is None:
            _record_failure(ctx, report, f'case "{case.title}": section {case.section_id} has no destination section')
            return
        try:
            created = ctx.client.add_case(request.section_id, request)
        except TestRailAPIError as e:
            _record_failure(ctx, report, f'case "{case.title}": {e}')
            return
        _record_success(ctx, report, None, CASES, case.id, created.id)
        logger.debug(f"Created case '{case.title}': {case.id} -> {created.id}")

    _run_tasks(items, create, ctx.workers)
    logger.info(f"Imported {report.imported} of {len(items)} cases")
    return report
