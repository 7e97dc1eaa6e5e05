"""Protocol defining the contract the synchronization engine needs from an API client.

The engine only ever lists and creates entities. Everything else the
TestRail API offers (updates, deletes, runs, results) is outside its reach,
which keeps the engine testable against a small in-memory implementation.

All calls are synchronous. Implementations raise TestRailAPIError on failure
and return complete collections (any pagination is handled internally).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import (
        AddCaseRequest,
        AddSectionRequest,
        AddSharedStepRequest,
        AddSuiteRequest,
        Case,
        Section,
        SharedStep,
        Suite,
    )


class TestRailClient(Protocol):
    """Capability set consumed by the fetch and import stages."""

    def get_suites(self, project_id: int) -> list[Suite]:
        """Return all suites of a project."""
        ...

    def get_sections(self, project_id: int, suite_id: int) -> list[Section]:
        """Return all sections of a suite."""
        ...

    def get_shared_steps(self, project_id: int) -> list[SharedStep]:
        """Return all shared steps of a project."""
        ...

    def get_cases(self, project_id: int, suite_id: int) -> list[Case]:
        """Return all cases of a suite."""
        ...

    def add_suite(self, project_id: int, request: AddSuiteRequest) -> Suite:
        """Create a suite and return it with its new ID."""
        ...

    def add_section(self, project_id: int, request: AddSectionRequest) -> Section:
        """Create a section and return it with its new ID."""
        ...

    def add_shared_step(self, project_id: int, request: AddSharedStepRequest) -> SharedStep:
        """Create a shared step and return it with its new ID."""
        ...

    def add_case(self, section_id: int, request: AddCaseRequest) -> Case:
        """Create a case inside a section and return it with its new ID."""
        ...
