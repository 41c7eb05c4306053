"""
Portfolio content models.

Entities mirror the JSON stored under each document key. Wire and
storage names are camelCase; Python attributes are snake_case and the
alias generator maps between them. Patch models are the explicit
"patchable fields" of each entity: every field optional, unknown keys
rejected, only the keys the caller set are merged.
"""

from __future__ import annotations

import copy
from typing import Annotated, Any, ClassVar, Literal

from pydantic import (
    AfterValidator,
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Closed enumerations
# ---------------------------------------------------------------------------

ProjectStatus = Literal["planning", "in-progress", "completed"]
SkillCategory = Literal["Frontend", "Backend", "Mobile", "AI/ML", "Databases", "Tools"]
Timeline = Literal["student", "entrepreneur"]
JourneyIcon = Literal[
    "Award", "GraduationCap", "Lightbulb", "Rocket", "Trophy",
    "Star", "Book", "Code", "Users", "Target",
]
GoalList = Literal["shortTerm", "longTerm"]
AboutField = Literal["name", "title", "location", "bio", "email", "github", "linkedin"]
GoalsField = Literal["currentFocus", "vision", "mission"]

PROJECT_YEAR_MIN = 2020
PROJECT_YEAR_MAX = 2030


# ---------------------------------------------------------------------------
# Field types
# ---------------------------------------------------------------------------

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
# Scalar profile fields; "" is the stored "not set yet" value.
ClearableStr = Annotated[str, StringConstraints(strip_whitespace=True)]

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def _url_or_empty(value: str) -> str:
    # Keep the caller's string; AnyHttpUrl would normalize it.
    if value == "":
        return value
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError:
        raise ValueError("must be an absolute http(s) URL or an empty string")
    return value


UrlOrEmpty = Annotated[str, AfterValidator(_url_or_empty)]
ProjectYear = Annotated[StrictInt, Field(ge=PROJECT_YEAR_MIN, le=PROJECT_YEAR_MAX)]
SkillLevel = Annotated[StrictInt, Field(ge=0, le=100)]
Position = Annotated[StrictInt, Field(ge=0)]


class WireModel(BaseModel):
    """Base for everything that crosses the model/storage boundary."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class ProjectLinks(WireModel):
    github: UrlOrEmpty = ""
    live: UrlOrEmpty = ""


class Project(WireModel):
    title: NonEmptyStr
    description: NonEmptyStr
    stack: list[NonEmptyStr]
    year: ProjectYear
    links: ProjectLinks = Field(default_factory=ProjectLinks)
    featured: StrictBool = False
    status: ProjectStatus = "completed"
    lessons: list[str] = Field(default_factory=list)


class Skill(WireModel):
    name: NonEmptyStr
    icon_name: NonEmptyStr
    color_class: NonEmptyStr
    category: SkillCategory
    level: SkillLevel


class JourneyItem(WireModel):
    id: NonEmptyStr
    year: NonEmptyStr
    title: NonEmptyStr
    desc: NonEmptyStr
    icon: JourneyIcon = "Lightbulb"
    icon_color: NonEmptyStr = "text-indigo-600"


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------

class PatchModel(WireModel):
    """All fields optional; at least one must be provided."""

    @model_validator(mode="after")
    def _require_a_field(self) -> "PatchModel":
        if not self.model_fields_set:
            raise ValueError("At least one field must be updated")
        nulls = sorted(name for name in self.model_fields_set if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"Fields cannot be set to null: {', '.join(nulls)}")
        return self

    def changes(self) -> dict[str, Any]:
        """Only the keys the caller set, in wire form. Nested models come back whole."""
        fields = type(self).model_fields
        wanted = {fields[name].alias or name for name in self.model_fields_set}
        return {key: value for key, value in self.to_wire().items() if key in wanted}


class ProjectPatch(PatchModel):
    title: NonEmptyStr | None = None
    description: NonEmptyStr | None = None
    stack: list[NonEmptyStr] | None = None
    year: ProjectYear | None = None
    links: ProjectLinks | None = None
    featured: StrictBool | None = None
    status: ProjectStatus | None = None
    lessons: list[str] | None = None


class SkillPatch(PatchModel):
    name: NonEmptyStr | None = None
    icon_name: NonEmptyStr | None = None
    color_class: NonEmptyStr | None = None
    category: SkillCategory | None = None
    level: SkillLevel | None = None


class JourneyItemPatch(PatchModel):
    year: NonEmptyStr | None = None
    title: NonEmptyStr | None = None
    desc: NonEmptyStr | None = None
    icon: JourneyIcon | None = None
    icon_color: NonEmptyStr | None = None


# ---------------------------------------------------------------------------
# Stored entries
#
# Undo puts back what the document held, which need not satisfy today's
# entity schema (older years, keys written by other tools). These types
# only insist on the natural key and otherwise carry the entry verbatim.
# ---------------------------------------------------------------------------

def _keyed_entry(key: str) -> AfterValidator:
    def check(entry: dict[str, Any]) -> dict[str, Any]:
        value = entry.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"stored entry must carry a non-empty '{key}'")
        return entry
    return AfterValidator(check)


StoredProject = Annotated[dict[str, Any], _keyed_entry("title")]
StoredSkill = Annotated[dict[str, Any], _keyed_entry("name")]
StoredJourneyItem = Annotated[dict[str, Any], _keyed_entry("id")]


class FieldRestore(WireModel):
    """
    Put some fields of one stored entry back to earlier values.

    `restore` maps stored keys to their earlier values, verbatim.
    `unset` names keys the entry did not have before and must lose again.
    """

    natural_key: ClassVar[str] = ""
    fixed_keys: ClassVar[frozenset[str]] = frozenset()

    restore: dict[str, Any]
    unset: list[NonEmptyStr] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_keys(self) -> "FieldRestore":
        if not self.restore and not self.unset:
            raise ValueError("Nothing to restore")
        touched = set(self.restore) | set(self.unset)
        if touched & self.fixed_keys:
            raise ValueError(f"Cannot restore {', '.join(sorted(touched & self.fixed_keys))}")
        if self.natural_key and self.natural_key in self.unset:
            raise ValueError(f"Cannot unset {self.natural_key}")
        if self.natural_key and self.natural_key in self.restore:
            value = self.restore[self.natural_key]
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{self.natural_key} must be a non-empty string")
        if set(self.restore) & set(self.unset):
            raise ValueError("A key cannot be both restored and unset")
        return self

    def apply(self, entry: dict[str, Any]) -> dict[str, Any]:
        merged = {**entry, **copy.deepcopy(self.restore)}
        for key in self.unset:
            merged.pop(key, None)
        return merged


# ---------------------------------------------------------------------------
# Empty documents
# ---------------------------------------------------------------------------

def empty_about() -> dict[str, Any]:
    return {
        "name": "", "title": "", "location": "", "bio": "",
        "email": "", "github": "", "linkedin": "", "roles": [],
    }


def empty_goals() -> dict[str, Any]:
    return {"shortTerm": [], "longTerm": [], "currentFocus": "", "vision": "", "mission": ""}


def empty_journey() -> dict[str, Any]:
    return {"student": [], "entrepreneur": []}
