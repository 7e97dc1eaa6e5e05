"""
Tests for the deduplication stage.
"""

import pytest

from testrail_sync.dedup import (
    exclude_used_shared_steps,
    filter_cases,
    filter_sections,
    filter_shared_steps,
    filter_suites,
    match_sections_by_name,
    normalize_key,
)
from testrail_sync.exceptions import FilterError
from testrail_sync.mapping import CASES, SECTIONS, SHARED_STEPS, STATUS_EXISTING, SUITES, MappingIndex
from testrail_sync.models import Case, Section, SharedStep, Suite


@pytest.mark.unit
class TestNormalizeKey:
    def test_strips_and_casefolds(self) -> None:
        assert normalize_key("  Login Page ") == "login page"
        assert normalize_key("STRASSE") == normalize_key("straße")

    def test_none_is_empty(self) -> None:
        assert normalize_key(None) == ""


@pytest.mark.unit
class TestFilterSuitesAndSections:
    def test_duplicate_suite_is_mapped_and_dropped(self) -> None:
        mapping = MappingIndex()
        source = [Suite(id=1, name="Smoke"), Suite(id=2, name="Regression")]
        destination = [Suite(id=50, name=" smoke ")]

        novel = filter_suites(source, destination, mapping=mapping)

        assert [s.id for s in novel] == [2]
        assert mapping.get_target(SUITES, 1) == 50
        assert mapping.status_of(SUITES, 1) == STATUS_EXISTING

    def test_last_destination_item_wins(self) -> None:
        mapping = MappingIndex()
        destination = [Section(id=70, name="Login"), Section(id=71, name="login")]
        novel = filter_sections([Section(id=1, name="Login")], destination, mapping=mapping)
        assert novel == []
        assert mapping.get_target(SECTIONS, 1) == 71

    def test_empty_names_never_match(self) -> None:
        mapping = MappingIndex()
        novel = filter_sections([Section(id=1, name="")], [Section(id=70, name="")], mapping=mapping)
        assert [s.id for s in novel] == [1]
        assert len(mapping) == 0

    def test_order_is_preserved(self) -> None:
        source = [Suite(id=i, name=f"Suite {i}") for i in (5, 3, 9, 1)]
        novel = filter_suites(source, [], mapping=MappingIndex())
        assert [s.id for s in novel] == [5, 3, 9, 1]

    def test_input_collections_untouched(self) -> None:
        source = [Suite(id=1, name="Smoke")]
        destination = [Suite(id=50, name="Smoke")]
        _ = filter_suites(source, destination, mapping=MappingIndex())
        assert source == [Suite(id=1, name="Smoke")]
        assert destination == [Suite(id=50, name="Smoke")]


@pytest.mark.unit
class TestFilterCases:
    def test_compare_on_title(self) -> None:
        mapping = MappingIndex()
        source = [Case(id=1, title="Login works"), Case(id=2, title="Logout works")]
        destination = [Case(id=100, title="LOGIN WORKS")]
        novel = filter_cases(source, destination, mapping=mapping)
        assert [c.id for c in novel] == [2]
        assert mapping.get_target(CASES, 1) == 100

    def test_compare_on_custom_field(self) -> None:
        mapping = MappingIndex()
        source = [
            Case(id=1, title="A", extra={"custom_key": "K-1"}),
            Case(id=2, title="B", extra={"custom_key": "K-2"}),
        ]
        destination = [Case(id=100, title="Other", extra={"custom_key": "k-1"})]
        novel = filter_cases(source, destination, mapping=mapping, compare_field="custom_key")
        assert [c.id for c in novel] == [2]

    def test_unknown_field_raises(self) -> None:
        with pytest.raises(FilterError, match="no_such_field"):
            filter_cases([Case(id=1, title="A")], [], mapping=MappingIndex(), compare_field="no_such_field")

    def test_empty_inputs_need_no_field_check(self) -> None:
        assert filter_cases([], [], mapping=MappingIndex(), compare_field="whatever") == []


@pytest.mark.unit
class TestFilterSharedSteps:
    def test_used_shared_steps_are_excluded(self) -> None:
        source = [
            SharedStep(id=1, title="Used", case_ids=[10, 99]),
            SharedStep(id=2, title="Orphan", case_ids=[500]),
            SharedStep(id=3, title="Unreferenced"),
        ]
        candidates = exclude_used_shared_steps(source, {10, 11})
        assert [s.id for s in candidates] == [2, 3]

    def test_exclusion_then_deduplication(self) -> None:
        mapping = MappingIndex()
        source = [
            SharedStep(id=1, title="Login", case_ids=[10]),
            SharedStep(id=2, title="Logout"),
            SharedStep(id=3, title="Search"),
        ]
        destination = [SharedStep(id=200, title="logout")]

        novel = filter_shared_steps(source, destination, {10}, mapping=mapping)

        assert [s.id for s in novel] == [3]
        assert mapping.as_dict(SHARED_STEPS) == {2: 200}
        # Excluded shared steps are neither imported nor mapped
        assert (SHARED_STEPS, 1) not in mapping


@pytest.mark.unit
class TestMatchSectionsByName:
    def test_matches_normalized_names_without_touching_mapping(self) -> None:
        source = [Section(id=40, name="Login"), Section(id=41, name="Checkout"), Section(id=42, name="")]
        destination = [Section(id=400, name=" login "), Section(id=402, name="")]

        assert match_sections_by_name(source, destination) == {40: 400}

    def test_no_destination_sections(self) -> None:
        assert match_sections_by_name([Section(id=40, name="Login")], []) == {}
