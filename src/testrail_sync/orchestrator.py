"""Synchronization orchestrator that sequences the stages for each entity type.

Single entity type
------------------
Every ``migrate_*`` call runs the same linear flow::

    fetch (source + destination)
      -> filter (duplicates recorded as ``existing`` in the mapping)
      -> [dry run: stop, counts are still reported]
      -> [confirmation callback: stop if declined]
      -> import (concurrent creates, ``created`` pairs in the mapping)
      -> [save mapping file]

Fetch and filter errors propagate unchanged to the caller. Per-item import
failures do not; they are collected in the stage's ImportReport.

Full migration
--------------
``migrate_full`` chains the entity types in dependency order::

    suites -> sections -> shared steps -> cases

The first fetch or filter error aborts the chain, so later entity types are
never attempted. In a dry run every stage still fetches and filters.

Mapping index
-------------
The orchestrator hands the mapping index explicitly to every filter and import
call. Cases read the pairs produced by the shared-step and section stages (or
loaded from a previous run's mapping file) to rewrite their references. A case
whose section is not mapped goes into the destination section of the same
name, looked up once per cases stage; with no such section the case fails.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from . import dedup, export, fetch, importer
from .exceptions import SyncError
from .importer import ImportReport

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from .context import MigrationContext
    from .mapping import MappingIndex
    from .models import Case

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Outcome of one entity-type migration."""

    entity_type: str
    source_count: int = 0
    destination_count: int = 0
    novel: list[Any] = field(default_factory=list)
    excluded: int = 0  # Shared steps still used by source cases
    report: ImportReport = field(default_factory=ImportReport)
    dry_run: bool = False
    cancelled: bool = False

    @property
    def duplicates(self) -> int:
        return self.source_count - self.excluded - len(self.novel)


@dataclass
class FullMigrationResult:
    """Outcome of the chained migration of all entity types."""

    stages: list[StageResult] = field(default_factory=list)
    mapping_file: Path | None = None

    @property
    def cancelled(self) -> bool:
        return any(stage.cancelled for stage in self.stages)

    @property
    def imported(self) -> int:
        return sum(stage.report.imported for stage in self.stages)

    @property
    def errors(self) -> list[str]:
        return [error for stage in self.stages for error in stage.report.errors]


ConfirmCallback = Callable[[StageResult], bool]


class SyncOrchestrator:
    """Runs fetch, filter, import and export for each entity type.

    Usage:
        with MigrationContext(client, 30, 20069, 31, 19859) as ctx:
            orchestrator = SyncOrchestrator(ctx, dry_run=False, save_mapping=True)
            result = orchestrator.migrate_full()
    """

    ctx: MigrationContext
    dry_run: bool
    confirm: ConfirmCallback | None
    export_snapshots: bool
    save_mapping: bool
    mapping_file: Path | None

    def __init__(
        self,
        ctx: MigrationContext,
        *,
        dry_run: bool = False,
        confirm: ConfirmCallback | None = None,
        export_snapshots: bool = False,
        save_mapping: bool = False,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            ctx: Context holding the client, location IDs and mapping index
            dry_run: Fetch and filter only, never create anything
            confirm: Called with the filter result before each import; returning False cancels it.
                None means imports proceed without asking.
            export_snapshots: Write the fetched and filtered collections to the log directory
            save_mapping: Write the mapping index to the log directory when done
        """
        self.ctx = ctx
        self.dry_run = dry_run
        self.confirm = confirm
        self.export_snapshots = export_snapshots
        self.save_mapping = save_mapping
        self.mapping_file = None

    @property
    def mapping_index(self) -> MappingIndex:
        return self.ctx.mapping

    def mapping(self) -> dict[int, int]:
        """Flattened snapshot of the mapping index: source ID -> destination ID."""
        return self.ctx.mapping.as_dict()

    def _export(self, entity_type: str, source: Sequence[Any], novel: Sequence[Any]) -> None:
        if not self.export_snapshots:
            return
        _ = export.export_items(entity_type, source, self.ctx.log_dir, filtered=False)
        _ = export.export_items(entity_type, novel, self.ctx.log_dir, filtered=True)

    def _gate(self, result: StageResult) -> bool:
        """Decide whether the import step of a stage runs."""
        if self.dry_run:
            result.dry_run = True
            logger.info(
                f"Dry run: {len(result.novel)} new and {result.duplicates} existing {result.entity_type}, "
                "nothing imported"
            )
            return False
        if result.novel and self.confirm is not None and not self.confirm(result):
            result.cancelled = True
            logger.info(f"Import of {len(result.novel)} {result.entity_type} cancelled")
            return False
        return True

    def _finish_stage(self, result: StageResult, import_stage: Callable[..., ImportReport]) -> StageResult:
        if self._gate(result):
            result.report = import_stage(self.ctx, result.novel, mapping=self.ctx.mapping, dry_run=self.dry_run)
        return result

    def _save_mapping(self) -> None:
        if self.save_mapping and not self.dry_run:
            self.mapping_file = export.export_mapping(self.ctx.mapping, self.ctx.log_dir)

    def _migrate_suites(self) -> StageResult:
        logger.info("Migrating suites")
        source, destination = fetch.fetch_suites(self.ctx)
        novel = dedup.filter_suites(source, destination, mapping=self.ctx.mapping)
        self._export("suites", source, novel)
        result = StageResult("suites", len(source), len(destination), novel)
        return self._finish_stage(result, importer.import_suites)

    def _migrate_sections(self) -> StageResult:
        logger.info("Migrating sections")
        source, destination = fetch.fetch_sections(self.ctx)
        novel = dedup.filter_sections(source, destination, mapping=self.ctx.mapping)
        self._export("sections", source, novel)
        result = StageResult("sections", len(source), len(destination), novel)
        return self._finish_stage(result, importer.import_sections)

    def _migrate_shared_steps(self) -> StageResult:
        logger.info("Migrating shared steps")
        source, destination = fetch.fetch_shared_steps(self.ctx)
        source_case_ids = fetch.fetch_source_case_ids(self.ctx)
        excluded = sum(1 for step in source if dedup.is_used(step, source_case_ids))
        novel = dedup.filter_shared_steps(
            source,
            destination,
            source_case_ids,
            mapping=self.ctx.mapping,
            compare_field=self.ctx.compare_field,
        )
        self._export("shared_steps", source, novel)
        result = StageResult("shared steps", len(source), len(destination), novel, excluded=excluded)
        return self._finish_stage(result, importer.import_shared_steps)

    def _migrate_cases(self) -> StageResult:
        logger.info("Migrating cases")
        source, destination = fetch.fetch_cases(self.ctx)
        novel = dedup.filter_cases(source, destination, mapping=self.ctx.mapping, compare_field=self.ctx.compare_field)
        self._export("cases", source, novel)
        result = StageResult("cases", len(source), len(destination), novel)
        return self._finish_stage(result, self._import_cases)

    def _import_cases(
        self, ctx: MigrationContext, items: Sequence[Case], *, mapping: MappingIndex, dry_run: bool = False
    ) -> ImportReport:
        """Import cases, placing those with unmapped sections by destination section name."""
        sections: dict[int, int] = {}
        if items and not dry_run:
            source_sections, destination_sections = fetch.fetch_sections(ctx)
            sections = dedup.match_sections_by_name(source_sections, destination_sections)
        return importer.import_cases(ctx, items, mapping=mapping, dry_run=dry_run, sections=sections)

    def migrate_suites(self) -> StageResult:
        """Copy suites missing from the destination project.

        Raises:
            FetchError: If suites cannot be fetched
            FilterError: If suites cannot be compared
        """
        result = self._migrate_suites()
        self._save_mapping()
        return result

    def migrate_sections(self) -> StageResult:
        """Copy sections missing from the destination suite.

        Raises:
            FetchError: If sections cannot be fetched
            FilterError: If sections cannot be compared
        """
        result = self._migrate_sections()
        self._save_mapping()
        return result

    def migrate_shared_steps(self) -> StageResult:
        """Copy shared steps that no source case uses and the destination lacks.

        Raises:
            FetchError: If shared steps or source cases cannot be fetched
            FilterError: If shared steps cannot be compared
        """
        result = self._migrate_shared_steps()
        self._save_mapping()
        return result

    def migrate_cases(self) -> StageResult:
        """Copy cases missing from the destination suite, rewriting shared-step references.

        Raises:
            FetchError: If cases, or the sections needed to place them, cannot be fetched
            FilterError: If cases cannot be compared
        """
        result = self._migrate_cases()
        self._save_mapping()
        return result

    def migrate_full(self) -> FullMigrationResult:
        """Migrate suites, sections, shared steps and cases, in that order.

        A declined confirmation stops the chain without an error.

        Raises:
            FetchError: If any stage cannot fetch; later stages are not attempted
            FilterError: If any stage cannot filter; later stages are not attempted
        """
        logger.info("Starting full migration")
        full = FullMigrationResult()
        stages: list[tuple[str, Callable[[], StageResult]]] = [
            ("suites", self._migrate_suites),
            ("sections", self._migrate_sections),
            ("shared steps", self._migrate_shared_steps),
            ("cases", self._migrate_cases),
        ]

        for name, run_stage in stages:
            try:
                stage = run_stage()
            except SyncError:
                logger.error(f"Migration of {name} failed, full migration aborted")
                raise
            full.stages.append(stage)
            if stage.cancelled:
                logger.info(f"Full migration stopped after {name}")
                break

        self._save_mapping()
        full.mapping_file = self.mapping_file
        logger.info(f"Full migration finished: {full.imported} created, {len(full.errors)} failed")
        return full
