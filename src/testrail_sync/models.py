"""Data models for entities synchronized between TestRail projects.

Snapshots (Suite, Section, SharedStep, Case) are read-only views of what the
API returned. The synchronization stages never mutate them; they only derive
create-request payloads from them. Unknown API fields are preserved in
``extra`` so exported snapshots stay close to the verbatim API response.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, ClassVar, Self


def _split_known(cls: type, data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split an API dict into dataclass keyword arguments and leftover fields."""
    names = {f.name for f in dataclasses.fields(cls) if f.name != "extra"}
    known = {k: v for k, v in data.items() if k in names}
    extra = {k: v for k, v in data.items() if k not in names}
    return known, extra


def _drop_empty(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None and v != "" and v != []}


@dataclass
class Step:
    """One entry of a ``custom_steps_separated`` list."""

    content: str = ""
    additional_info: str = ""
    expected: str = ""
    refs: str = ""
    shared_step_id: int | None = None  # Reference to a shared step in the same project

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        shared_step_id = data.get("shared_step_id")
        additional_info = data.get("additional_info")
        return cls(
            content=data.get("content") or "",
            additional_info="" if additional_info is None else str(additional_info),
            expected=data.get("expected") or "",
            refs=data.get("refs") or "",
            shared_step_id=int(shared_step_id) if shared_step_id else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_empty(dataclasses.asdict(self))

    def copy(self) -> Step:
        return dataclasses.replace(self)


def _steps(raw: list[dict[str, Any]] | None) -> list[Step]:
    return [Step.from_dict(s) for s in raw or []]


@dataclass
class Suite:
    """A test suite inside a project."""

    entity_type: ClassVar[str] = "suites"

    id: int
    name: str = ""
    description: str = ""
    project_id: int | None = None
    is_master: bool = False
    is_baseline: bool = False
    is_completed: bool = False
    completed_on: int | None = None
    url: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known, extra = _split_known(cls, data)
        known["description"] = known.get("description") or ""
        known["name"] = known.get("name") or ""
        known["url"] = known.get("url") or ""
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        extra = data.pop("extra")
        return data | extra


@dataclass
class Section:
    """A (possibly nested) section of a suite."""

    entity_type: ClassVar[str] = "sections"

    id: int
    name: str = ""
    description: str = ""
    suite_id: int | None = None
    parent_id: int | None = None
    depth: int = 0
    display_order: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known, extra = _split_known(cls, data)
        known["description"] = known.get("description") or ""
        known["name"] = known.get("name") or ""
        known["parent_id"] = known.get("parent_id") or None
        known["depth"] = known.get("depth") or 0
        known["display_order"] = known.get("display_order") or 0
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        extra = data.pop("extra")
        return data | extra


@dataclass
class SharedStep:
    """A project-level shared step set, reusable from case steps."""

    entity_type: ClassVar[str] = "shared_steps"

    id: int
    title: str = ""
    project_id: int | None = None
    custom_steps_separated: list[Step] = field(default_factory=list)
    case_ids: list[int] = field(default_factory=list)  # Cases that currently reference this shared step
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known, extra = _split_known(cls, data)
        known["title"] = known.get("title") or ""
        known["custom_steps_separated"] = _steps(known.get("custom_steps_separated"))
        known["case_ids"] = [int(i) for i in known.get("case_ids") or []]
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        extra = data.pop("extra")
        data["custom_steps_separated"] = [s.to_dict() for s in self.custom_steps_separated]
        return data | extra


@dataclass
class Case:
    """A test case of a suite."""

    entity_type: ClassVar[str] = "cases"

    id: int
    title: str = ""
    section_id: int | None = None
    suite_id: int | None = None
    template_id: int | None = None
    type_id: int | None = None
    priority_id: int | None = None
    milestone_id: int | None = None
    refs: str = ""
    estimate: str = ""
    custom_preconds: str = ""
    custom_steps: str = ""
    custom_expected: str = ""
    custom_steps_separated: list[Step] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known, extra = _split_known(cls, data)
        for text_field in ("title", "refs", "estimate", "custom_preconds", "custom_steps", "custom_expected"):
            known[text_field] = known.get(text_field) or ""
        known["custom_steps_separated"] = _steps(known.get("custom_steps_separated"))
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        extra = data.pop("extra")
        data["custom_steps_separated"] = [s.to_dict() for s in self.custom_steps_separated]
        return data | extra


@dataclass
class AddSuiteRequest:
    name: str
    description: str = ""

    @classmethod
    def from_suite(cls, suite: Suite) -> Self:
        return cls(name=suite.name, description=suite.description)

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name} | _drop_empty({"description": self.description})


@dataclass
class AddSectionRequest:
    name: str
    suite_id: int
    description: str = ""
    parent_id: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "suite_id": self.suite_id} | _drop_empty(
            {"description": self.description, "parent_id": self.parent_id}
        )


@dataclass
class AddSharedStepRequest:
    title: str
    custom_steps_separated: list[Step] = field(default_factory=list)

    @classmethod
    def from_shared_step(cls, shared_step: SharedStep) -> Self:
        """Build the request with its own copy of the step list."""
        return cls(
            title=shared_step.title,
            custom_steps_separated=[s.copy() for s in shared_step.custom_steps_separated],
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "custom_steps_separated": [s.to_dict() for s in self.custom_steps_separated],
        }


@dataclass
class AddCaseRequest:
    title: str
    section_id: int | None = None
    template_id: int | None = None
    type_id: int | None = None
    priority_id: int | None = None
    milestone_id: int | None = None
    refs: str = ""
    estimate: str = ""
    custom_preconds: str = ""
    custom_steps: str = ""
    custom_expected: str = ""
    custom_steps_separated: list[Step] = field(default_factory=list)

    @classmethod
    def from_case(cls, case: Case) -> Self:
        """Build the request with its own copy of the step list."""
        return cls(
            title=case.title,
            section_id=case.section_id,
            template_id=case.template_id,
            type_id=case.type_id,
            priority_id=case.priority_id,
            milestone_id=case.milestone_id,
            refs=case.refs,
            estimate=case.estimate,
            custom_preconds=case.custom_preconds,
            custom_steps=case.custom_steps,
            custom_expected=case.custom_expected,
            custom_steps_separated=[s.copy() for s in case.custom_steps_separated],
        )

    def to_payload(self) -> dict[str, Any]:
        payload = dataclasses.asdict(self)
        payload["custom_steps_separated"] = [s.to_dict() for s in self.custom_steps_separated]
        return {"title": self.title} | _drop_empty(payload)
