"""
Portfolio Agent Command Schema

The closed set of commands the language model may propose. Every command
is {"type": <tag>, "payload": {...}}; the tag selects exactly one variant
and the variant's payload model does the rest. Model output is untrusted:
enums are closed, integers and booleans are strict, unknown keys are
rejected, and validation reports problems instead of raising so the
caller can hand them back to the model.

Add and update commands for projects, skills and journey items also
accept a restore shape, recognised by its "restore" key. Undo emits it
to put back stored entries exactly as they were.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, ClassVar, Literal, Union, get_args

from pydantic import (
    BaseModel,
    Discriminator,
    Field,
    StrictBool,
    StrictInt,
    Tag,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from portfolio_agent.errors import CommandValidationError
from portfolio_agent.models import (
    AboutField,
    ClearableStr,
    FieldRestore,
    GoalList,
    GoalsField,
    JourneyItem,
    JourneyItemPatch,
    NonEmptyStr,
    Position,
    Project,
    ProjectPatch,
    Skill,
    SkillPatch,
    StoredJourneyItem,
    StoredProject,
    StoredSkill,
    Timeline,
    WireModel,
)

ReorderStrategy = Literal[
    "featured_first", "by_year_desc", "by_year_asc", "by_tech_stack", "by_status", "custom_order",
]
JourneyStrategy = Literal["by_year_asc", "by_year_desc", "custom_order"]
AdaptiveIntent = Literal[
    "prioritize_specific_project",
    "prioritize_category",
    "prioritize_technology",
    "prioritize_by_keywords",
    "custom_adaptive_sort",
]
AdaptiveCategory = Literal[
    "ai_ml", "data_science", "web_development", "mobile_development",
    "backend", "full_stack", "cloud_computing", "automation",
]
CommandType = Literal[
    "add_project", "update_project", "remove_project", "reorder_projects", "adaptive_sort_projects",
    "add_skill", "update_skill", "remove_skill",
    "update_about", "add_role", "remove_role",
    "add_goal", "update_goals", "remove_goal",
    "add_journey_item", "update_journey_item", "remove_journey_item", "reorder_journey",
    "undo_command", "view_audit_logs", "clear_audit_logs",
    "noop",
]
COMMAND_TYPES: tuple[str, ...] = get_args(CommandType)

PAYLOAD_SHAPES = ("edit", "restore")


def _payload_shape(value: Any) -> str:
    if isinstance(value, dict):
        return "restore" if "restore" in value else "edit"
    return "restore" if hasattr(value, "restore") else "edit"


def _edit_or_restore(edit: type[BaseModel], restore: type[BaseModel]) -> Any:
    return Annotated[
        Union[Annotated[edit, Tag("edit")], Annotated[restore, Tag("restore")]],
        Discriminator(_payload_shape),
    ]


def touched_keys(payload: Any) -> list[str]:
    """Stored keys an update payload writes or removes, in either shape."""
    if isinstance(payload, FieldRestore):
        return [*payload.restore, *payload.unset]
    return list(payload.patch.changes())


# ---------------------------------------------------------------------------
# Project operations
# ---------------------------------------------------------------------------

class AddProjectPayload(Project):
    position: Position | None = None


class ReinsertProjectPayload(WireModel):
    restore: StoredProject
    position: Position | None = None


class UpdateProjectPayload(WireModel):
    match_title: NonEmptyStr
    patch: ProjectPatch


class RestoreProjectPayload(FieldRestore):
    natural_key: ClassVar[str] = "title"

    match_title: NonEmptyStr


AddProjectBody = _edit_or_restore(AddProjectPayload, ReinsertProjectPayload)
UpdateProjectBody = _edit_or_restore(UpdateProjectPayload, RestoreProjectPayload)


class RemoveProjectPayload(WireModel):
    match_title: NonEmptyStr

class ReorderProjectsPayload(WireModel):
    strategy: ReorderStrategy
    custom_order: list[NonEmptyStr] | None = None
    description: str | None = None

    @model_validator(mode="after")
    def _custom_order_needs_list(self) -> "ReorderProjectsPayload":
        if self.strategy == "custom_order" and not self.custom_order:
            raise ValueError("custom_order strategy requires a non-empty customOrder")
        return self


class AdaptiveSortProjectsPayload(WireModel):
    intent: AdaptiveIntent
    target_project: NonEmptyStr | None = None
    category: AdaptiveCategory | None = None
    technologies: list[NonEmptyStr] | None = None
    keywords: list[NonEmptyStr] | None = None
    reasoning: str | None = None

    @model_validator(mode="after")
    def _intent_needs_its_field(self) -> "AdaptiveSortProjectsPayload":
        required = {
            "prioritize_specific_project": ("target_project", "targetProject"),
            "prioritize_category": ("category", "category"),
            "prioritize_technology": ("technologies", "technologies"),
            "prioritize_by_keywords": ("keywords", "keywords"),
        }.get(self.intent)
        if required and not getattr(self, required[0]):
            raise ValueError(f"intent {self.intent} requires {required[1]}")
        return self


# ---------------------------------------------------------------------------
# Skill operations
# ---------------------------------------------------------------------------

class AddSkillPayload(Skill):
    position: Position | None = None


class ReinsertSkillPayload(WireModel):
    restore: StoredSkill
    position: Position | None = None


class UpdateSkillPayload(WireModel):
    match_name: NonEmptyStr
    patch: SkillPatch


class RestoreSkillPayload(FieldRestore):
    natural_key: ClassVar[str] = "name"

    match_name: NonEmptyStr


AddSkillBody = _edit_or_restore(AddSkillPayload, ReinsertSkillPayload)
UpdateSkillBody = _edit_or_restore(UpdateSkillPayload, RestoreSkillPayload)


class RemoveSkillPayload(WireModel):
    match_name: NonEmptyStr


# ---------------------------------------------------------------------------
# About + goals operations
# ---------------------------------------------------------------------------

class UpdateAboutPayload(WireModel):
    field: AboutField
    value: ClearableStr


class AddRolePayload(WireModel):
    role: NonEmptyStr
    position: Position | None = None


class RemoveRolePayload(WireModel):
    role: NonEmptyStr


class AddGoalPayload(WireModel):
    type: GoalList
    goal: NonEmptyStr
    position: Position | None = None


class UpdateGoalsPayload(WireModel):
    field: GoalsField
    value: ClearableStr


class RemoveGoalPayload(WireModel):
    match_goal: NonEmptyStr
    type: GoalList | None = None


# ---------------------------------------------------------------------------
# Journey operations
# ---------------------------------------------------------------------------

class AddJourneyItemPayload(JourneyItem):
    timeline: Timeline
    id: NonEmptyStr | None = None
    position: Position | None = None


class ReinsertJourneyItemPayload(WireModel):
    timeline: Timeline
    restore: StoredJourneyItem
    position: Position | None = None


class UpdateJourneyItemPayload(WireModel):
    timeline: Timeline
    item_id: NonEmptyStr
    patch: JourneyItemPatch


class RestoreJourneyItemPayload(FieldRestore):
    fixed_keys: ClassVar[frozenset[str]] = frozenset({"id"})

    timeline: Timeline
    item_id: NonEmptyStr


AddJourneyItemBody = _edit_or_restore(AddJourneyItemPayload, ReinsertJourneyItemPayload)
UpdateJourneyItemBody = _edit_or_restore(UpdateJourneyItemPayload, RestoreJourneyItemPayload)


class RemoveJourneyItemPayload(WireModel):
    timeline: Timeline
    item_id: NonEmptyStr


class ReorderJourneyPayload(WireModel):
    timeline: Timeline
    strategy: JourneyStrategy
    custom_order: list[NonEmptyStr] | None = None

    @model_validator(mode="after")
    def _custom_order_needs_list(self) -> "ReorderJourneyPayload":
        if self.strategy == "custom_order" and not self.custom_order:
            raise ValueError("custom_order strategy requires a non-empty customOrder")
        return self


# ---------------------------------------------------------------------------
# Audit operations
# ---------------------------------------------------------------------------

class UndoCommandPayload(WireModel):
    audit_log_id: NonEmptyStr
    reason: str | None = None


class DateRange(WireModel):
    start: datetime | None = None
    end: datetime | None = None


class AuditFilter(WireModel):
    command_type: CommandType | None = None
    category: str | None = None
    date_range: DateRange | None = None
    success_only: StrictBool | None = None
    destructive_only: StrictBool | None = None


class ViewAuditLogsPayload(WireModel):
    limit: Annotated[StrictInt, Field(ge=1, le=100)] = 20
    offset: Annotated[StrictInt, Field(ge=0)] = 0
    filter_by: AuditFilter | None = None


class ClearAuditLogsPayload(WireModel):
    older_than: datetime | None = None
    confirmation_code: NonEmptyStr


class NoopPayload(WireModel):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Command variants
# ---------------------------------------------------------------------------

class BaseCommand(WireModel):
    type: str

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:
        return super().to_wire(exclude_none=True, **kwargs)


class AddProject(BaseCommand):
    type: Literal["add_project"]
    payload: AddProjectBody


class UpdateProject(BaseCommand):
    type: Literal["update_project"]
    payload: UpdateProjectBody


class RemoveProject(BaseCommand):
    type: Literal["remove_project"]
    payload: RemoveProjectPayload


class ReorderProjects(BaseCommand):
    type: Literal["reorder_projects"]
    payload: ReorderProjectsPayload


class AdaptiveSortProjects(BaseCommand):
    type: Literal["adaptive_sort_projects"]
    payload: AdaptiveSortProjectsPayload


class AddSkill(BaseCommand):
    type: Literal["add_skill"]
    payload: AddSkillBody


class UpdateSkill(BaseCommand):
    type: Literal["update_skill"]
    payload: UpdateSkillBody


class RemoveSkill(BaseCommand):
    type: Literal["remove_skill"]
    payload: RemoveSkillPayload


class UpdateAbout(BaseCommand):
    type: Literal["update_about"]
    payload: UpdateAboutPayload


class AddRole(BaseCommand):
    type: Literal["add_role"]
    payload: AddRolePayload


class RemoveRole(BaseCommand):
    type: Literal["remove_role"]
    payload: RemoveRolePayload


class AddGoal(BaseCommand):
    type: Literal["add_goal"]
    payload: AddGoalPayload


class UpdateGoals(BaseCommand):
    type: Literal["update_goals"]
    payload: UpdateGoalsPayload


class RemoveGoal(BaseCommand):
    type: Literal["remove_goal"]
    payload: RemoveGoalPayload


class AddJourneyItem(BaseCommand):
    type: Literal["add_journey_item"]
    payload: AddJourneyItemBody


class UpdateJourneyItem(BaseCommand):
    type: Literal["update_journey_item"]
    payload: UpdateJourneyItemBody


class RemoveJourneyItem(BaseCommand):
    type: Literal["remove_journey_item"]
    payload: RemoveJourneyItemPayload


class ReorderJourney(BaseCommand):
    type: Literal["reorder_journey"]
    payload: ReorderJourneyPayload


class UndoCommand(BaseCommand):
    type: Literal["undo_command"]
    payload: UndoCommandPayload


class ViewAuditLogs(BaseCommand):
    type: Literal["view_audit_logs"]
    payload: ViewAuditLogsPayload = Field(default_factory=ViewAuditLogsPayload)


class ClearAuditLogs(BaseCommand):
    type: Literal["clear_audit_logs"]
    payload: ClearAuditLogsPayload


class Noop(BaseCommand):
    type: Literal["noop"]
    payload: NoopPayload = Field(default_factory=NoopPayload)


Command = Annotated[
    Union[
        AddProject, UpdateProject, RemoveProject, ReorderProjects, AdaptiveSortProjects,
        AddSkill, UpdateSkill, RemoveSkill,
        UpdateAbout, AddRole, RemoveRole,
        AddGoal, UpdateGoals, RemoveGoal,
        AddJourneyItem, UpdateJourneyItem, RemoveJourneyItem, ReorderJourney,
        UndoCommand, ViewAuditLogs, ClearAuditLogs,
        Noop,
    ],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    ok: bool
    command: Any = None
    errors: list[str] = Field(default_factory=list)


def _format_errors(exc: ValidationError) -> list[str]:
    problems = []
    for err in exc.errors():
        # Drop the union tags pydantic inserts after each discriminator.
        loc = [str(part) for part in err["loc"]]
        if len(loc) > 1 and loc[0] in COMMAND_TYPES:
            loc = loc[1:]
        if len(loc) > 1 and loc[0] == "payload" and loc[1] in PAYLOAD_SHAPES:
            loc = loc[:1] + loc[2:]
        where = ".".join(loc) or "command"
        problems.append(f"{where}: {err['msg']}")
    return problems


def validate(raw: Any) -> ValidationResult:
    """
    Validate untrusted input against the command union.

    Accepts a dict or a JSON string. Never raises: on failure the result
    carries one human-readable problem per offending field.
    """
    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return ValidationResult(ok=False, errors=[f"command: not valid JSON ({e})"])
    except RecursionError:
        return ValidationResult(ok=False, errors=["command: JSON is nested too deeply"])

    if not isinstance(raw, dict):
        return ValidationResult(ok=False, errors=["command: expected a JSON object with 'type' and 'payload'"])

    try:
        command = _COMMAND_ADAPTER.validate_python(raw)
    except ValidationError as e:
        return ValidationResult(ok=False, errors=_format_errors(e))
    except RecursionError:
        return ValidationResult(ok=False, errors=["command: input is nested too deeply"])
    return ValidationResult(ok=True, command=command)


def parse_command(raw: Any) -> Command:
    """Like validate() but raises CommandValidationError."""
    result = validate(raw)
    if not result.ok:
        raise CommandValidationError(result.errors)
    return result.command
