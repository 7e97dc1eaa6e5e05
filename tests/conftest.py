"""
Pytest configuration and fixtures.

Provides an in-memory TestRail client that implements the client protocol,
records every create call, and can be told to fail selected calls.
"""

from __future__ import annotations

import itertools
import threading
import time
from typing import TYPE_CHECKING

import pytest

from testrail_sync.context import MigrationContext
from testrail_sync.exceptions import TestRailAPIError
from testrail_sync.models import Case, Section, SharedStep, Step, Suite

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path

    from testrail_sync.models import AddCaseRequest, AddSectionRequest, AddSharedStepRequest, AddSuiteRequest

SRC_PROJECT = 30
SRC_SUITE = 20069
DST_PROJECT = 31
DST_SUITE = 19859


class FakeTestRailClient:
    """In-memory client keyed by project (suites, shared steps) or (project, suite) (sections, cases)."""

    __test__ = False

    def __init__(self) -> None:
        self.suites: dict[int, list[Suite]] = {}
        self.sections: dict[tuple[int, int], list[Section]] = {}
        self.shared_steps: dict[int, list[SharedStep]] = {}
        self.cases: dict[tuple[int, int], list[Case]] = {}

        # Names/titles whose create call raises TestRailAPIError
        self.fail_titles: set[str] = set()
        # (method name, location) pairs whose fetch raises TestRailAPIError
        self.fail_fetches: set[tuple[str, object]] = set()
        # Seconds each create call sleeps, to make tasks overlap
        self.create_delay: float = 0.0

        self.fetch_calls: list[str] = []
        self.create_calls: list[tuple[str, int, object]] = []
        self._ids = itertools.count(1000)
        self._lock = threading.Lock()
        self._active = 0
        self.max_concurrent = 0

    def _check_fetch(self, method: str, location: object) -> None:
        with self._lock:
            self.fetch_calls.append(method)
        if (method, location) in self.fail_fetches:
            msg = f"{method} {location}: connection refused"
            raise TestRailAPIError(msg)

    def _create(self, kind: str, location: int, request: object, title: str) -> int:
        with self._lock:
            self.create_calls.append((kind, location, request))
            self._active += 1
            self.max_concurrent = max(self.max_concurrent, self._active)
        try:
            if self.create_delay:
                time.sleep(self.create_delay)
            if title in self.fail_titles:
                msg = f"400 Bad Request: cannot create {title}"
                raise TestRailAPIError(msg, status_code=400)
            with self._lock:
                return next(self._ids)
        finally:
            with self._lock:
                self._active -= 1

    def calls_of(self, kind: str) -> list[tuple[str, int, object]]:
        return [c for c in self.create_calls if c[0] == kind]

    def get_suites(self, project_id: int) -> list[Suite]:
        self._check_fetch("get_suites", project_id)
        return list(self.suites.get(project_id, []))

    def get_sections(self, project_id: int, suite_id: int) -> list[Section]:
        self._check_fetch("get_sections", (project_id, suite_id))
        return list(self.sections.get((project_id, suite_id), []))

    def get_shared_steps(self, project_id: int) -> list[SharedStep]:
        self._check_fetch("get_shared_steps", project_id)
        return list(self.shared_steps.get(project_id, []))

    def get_cases(self, project_id: int, suite_id: int) -> list[Case]:
        self._check_fetch("get_cases", (project_id, suite_id))
        return list(self.cases.get((project_id, suite_id), []))

    def add_suite(self, project_id: int, request: AddSuiteRequest) -> Suite:
        new_id = self._create("suite", project_id, request, request.name)
        return Suite(id=new_id, name=request.name, description=request.description, project_id=project_id)

    def add_section(self, project_id: int, request: AddSectionRequest) -> Section:
        new_id = self._create("section", project_id, request, request.name)
        return Section(id=new_id, name=request.name, suite_id=request.suite_id, parent_id=request.parent_id)

    def add_shared_step(self, project_id: int, request: AddSharedStepRequest) -> SharedStep:
        new_id = self._create("shared_step", project_id, request, request.title)
        return SharedStep(id=new_id, title=request.title, project_id=project_id)

    def add_case(self, section_id: int, request: AddCaseRequest) -> Case:
        new_id = self._create("case", section_id, request, request.title)
        return Case(id=new_id, title=request.title, section_id=section_id)


@pytest.fixture
def fake_client() -> FakeTestRailClient:
    return FakeTestRailClient()


@pytest.fixture
def ctx(fake_client: FakeTestRailClient, tmp_path: Path) -> Generator[MigrationContext, None, None]:
    context = MigrationContext(
        fake_client,
        SRC_PROJECT,
        SRC_SUITE,
        DST_PROJECT,
        DST_SUITE,
        log_dir=tmp_path / "logs",
        workers=4,
    )
    yield context
    context.close()


def make_case(case_id: int, title: str, *shared_step_ids: int, section_id: int | None = None) -> Case:
    """Case whose steps reference the given shared steps (plus one plain step)."""
    steps = [Step(content="Open the application", expected="Application is open")]
    steps.extend(Step(shared_step_id=s) for s in shared_step_ids)
    return Case(id=case_id, title=title, section_id=section_id, custom_steps_separated=steps)
