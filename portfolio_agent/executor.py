"""
Portfolio Agent Executor — applies validated commands.

It is NOT smart. It is deterministic.

For a command that touches a portfolio document:
  - take the per-key lock
  - read the document, mutate a deep copy, replace the whole document
  - record the attempt in the audit log, still under the lock

Failures come back as ExecutionResult(success=False); nothing raises
across execute(). Undo is a recursive execute() of a synthesized
forward command, never of another undo.
"""

from __future__ import annotations

import asyncio
import copy
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from portfolio_agent import ranking
from portfolio_agent.audit_logger import AuditLog, AuditLogEntry
from portfolio_agent.commands import (
    COMMAND_TYPES,
    Command,
    ReinsertJourneyItemPayload,
    ReinsertProjectPayload,
    ReinsertSkillPayload,
    touched_keys,
)
from portfolio_agent.errors import (
    AlreadyExistsError,
    CommandError,
    NotFoundError,
    StoreError,
    UnsupportedOperationError,
)
from portfolio_agent.event_bus import EventBus
from portfolio_agent.lookup import (
    find_goal,
    find_journey_item,
    find_project,
    find_role,
    find_skill,
    has_name,
    has_title,
)
from portfolio_agent.models import FieldRestore
from portfolio_agent.store import DocumentKey, DocumentStore
from portfolio_agent.summary import format_audit_entry, summarize
from portfolio_agent.targets import is_entity_command, target_key
from portfolio_agent.undo import synthesize_undo


@dataclass
class ExecutionResult:
    success: bool
    message: str
    execution_time_ms: float = 0.0
    data: Any = None
    audit_log_id: str | None = None


Outcome = tuple[Any, str]


def _insert(items: list, item: Any, position: int | None) -> None:
    if position is None:
        items.append(item)
    else:
        items.insert(position, item)


def _expect(doc: Any, kind: type, key: DocumentKey) -> Any:
    if not isinstance(doc, kind):
        raise StoreError(f"Document '{key.value}' is not a JSON {'array' if kind is list else 'object'}")
    return doc


def new_journey_id(timeline: str) -> str:
    return f"{timeline}-{uuid.uuid4().hex[:8]}"


def _merged(entry: dict[str, Any], payload: Any) -> tuple[dict[str, Any], list[str]]:
    """The entry after a patch or a field restore, plus the keys touched."""
    keys = touched_keys(payload)
    if isinstance(payload, FieldRestore):
        return payload.apply(entry), keys
    return {**entry, **payload.patch.changes()}, keys


class CommandExecutor:
    """
    Applies commands to the document store and records them.

    One asyncio.Lock per entity document key. The audit log serializes
    its own document, so the lock order is always entity key first,
    then audit_logs.
    """

    def __init__(self, store: DocumentStore, audit_log: AuditLog, bus: EventBus | None = None):
        self.store = store
        self.audit_log = audit_log
        self.bus = bus
        self._locks: dict[DocumentKey, asyncio.Lock] = defaultdict(asyncio.Lock)

        self._handlers: dict[str, Callable[[Any, Any], Outcome]] = {
            "add_project": self._add_project,
            "update_project": self._update_project,
            "remove_project": self._remove_project,
            "reorder_projects": self._reorder_projects,
            "adaptive_sort_projects": self._adaptive_sort_projects,
            "add_skill": self._add_skill,
            "update_skill": self._update_skill,
            "remove_skill": self._remove_skill,
            "update_about": self._update_about,
            "add_role": self._add_role,
            "remove_role": self._remove_role,
            "add_goal": self._add_goal,
            "update_goals": self._update_goals,
            "remove_goal": self._remove_goal,
            "add_journey_item": self._add_journey_item,
            "update_journey_item": self._update_journey_item,
            "remove_journey_item": self._remove_journey_item,
            "reorder_journey": self._reorder_journey,
        }

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    async def execute(self, cmd: Command) -> ExecutionResult:
        cmd_type = getattr(cmd, "type", None)
        if cmd_type not in COMMAND_TYPES:
            return ExecutionResult(False, f"Unsupported command type: {cmd_type}")

        logger.info(f"[EXEC] {cmd_type}: {summarize(cmd)}")

        if is_entity_command(cmd):
            result = await self._execute_entity(cmd)
        elif cmd_type == "noop":
            result = ExecutionResult(True, cmd.payload.reason or "No action needed")
        elif cmd_type == "view_audit_logs":
            result = await self._guarded(cmd, lambda: self._view_audit_logs(cmd))
        elif cmd_type == "undo_command":
            result = await self._guarded(cmd, lambda: self._undo(cmd))
            await self._audit(cmd, result)
        elif cmd_type == "clear_audit_logs":
            result = await self._guarded(cmd, lambda: self._clear_audit_logs(cmd))
            await self._audit(cmd, result)
        else:
            result = ExecutionResult(False, f"Unsupported command type: {cmd_type}")

        level = "INFO" if result.success else "WARNING"
        logger.log(level, f"[EXEC] {cmd_type} -> {'ok' if result.success else 'failed'}: {result.message}")
        if self.bus is not None:
            self.bus.command_executed(cmd_type, result.success, result.message, result.audit_log_id)
        return result

    async def _guarded(self, cmd: Command, action: Callable[[], Awaitable[tuple[str, Any]]]) -> ExecutionResult:
        """Run one action and turn whatever it raises into a failed result."""
        start = time.perf_counter()
        try:
            message, data = await action()
            result = ExecutionResult(True, message, data=data)
        except CommandError as e:
            result = ExecutionResult(False, str(e))
        except StoreError as e:
            logger.error(f"[EXEC] Store failure during {cmd.type}: {e}")
            result = ExecutionResult(False, f"Storage error: {e}")
        except Exception as e:
            logger.exception(f"[EXEC] Unexpected failure during {cmd.type}")
            result = ExecutionResult(False, f"Unexpected error while executing {cmd.type}: {type(e).__name__}")
        result.execution_time_ms = round((time.perf_counter() - start) * 1000, 3)
        return result

    async def _execute_entity(self, cmd: Command) -> ExecutionResult:
        key = target_key(cmd)
        snapshots: dict[str, Any] = {}

        async def apply() -> tuple[str, Any]:
            before = await self.store.read(key)
            snapshots["before"] = before
            handler = self._handlers.get(cmd.type)
            if handler is None:
                raise UnsupportedOperationError(f"No handler for command type: {cmd.type}")
            after, message = handler(cmd, copy.deepcopy(before))
            await self.store.replace(key, after, message=summarize(cmd))
            snapshots["after"] = after
            return message, None

        async with self._locks[key]:
            result = await self._guarded(cmd, apply)
            await self._audit(cmd, result, snapshots.get("before"), snapshots.get("after"))
        return result

    async def _audit(self, cmd: Command, result: ExecutionResult, before: Any = None, after: Any = None) -> AuditLogEntry | None:
        entry = self.audit_log.record(cmd, result, before, after)
        try:
            await self.audit_log.append(entry)
        except Exception as e:
            logger.error(f"[AUDIT] Could not record {cmd.type} ({entry.id}): {e}")
            if self.bus is not None:
                self.bus.audit_write_failed(cmd.type, result.success, entry.id, str(e))
            return None
        result.audit_log_id = entry.id
        return entry

    # -----------------------------------------------------------------------
    # Projects
    # -----------------------------------------------------------------------

    def _add_project(self, cmd, doc) -> Outcome:
        projects = _expect(doc, list, DocumentKey.PROJECTS)
        p = cmd.payload
        if isinstance(p, ReinsertProjectPayload):
            project = copy.deepcopy(p.restore)
        else:
            project = p.to_wire(exclude={"position"})
        title = project["title"]
        if has_title(projects, title):
            raise AlreadyExistsError("Project", title)
        _insert(projects, project, p.position)
        return projects, f'Added project "{title}"'

    def _update_project(self, cmd, doc) -> Outcome:
        projects = _expect(doc, list, DocumentKey.PROJECTS)
        p = cmd.payload
        index = find_project(projects, p.match_title)
        updated, keys = _merged(projects[index], p)
        if "title" in keys and has_title(projects, updated["title"], skip=index):
            raise AlreadyExistsError("Project", updated["title"])
        projects[index] = updated
        return projects, f'Updated project "{updated.get("title")}" ({", ".join(keys)})'

    def _remove_project(self, cmd, doc) -> Outcome:
        projects = _expect(doc, list, DocumentKey.PROJECTS)
        removed = projects.pop(find_project(projects, cmd.payload.match_title))
        return projects, f'Removed project "{removed.get("title")}"'

    def _reorder_projects(self, cmd, doc) -> Outcome:
        projects = _expect(doc, list, DocumentKey.PROJECTS)
        p = cmd.payload
        ordered = ranking.reorder_projects(projects, p.strategy, p.custom_order)
        return ordered, f"Reordered {len(ordered)} projects ({p.strategy})"

    def _adaptive_sort_projects(self, cmd, doc) -> Outcome:
        projects = _expect(doc, list, DocumentKey.PROJECTS)
        p = cmd.payload
        ordered, explanation = ranking.adaptive_sort(
            projects,
            p.intent,
            target_project=p.target_project,
            category=p.category,
            technologies=p.technologies,
            keywords=p.keywords,
        )
        return ordered, explanation

    # -----------------------------------------------------------------------
    # Skills
    # -----------------------------------------------------------------------

    def _add_skill(self, cmd, doc) -> Outcome:
        skills = _expect(doc, list, DocumentKey.SKILLS)
        p = cmd.payload
        if isinstance(p, ReinsertSkillPayload):
            skill = copy.deepcopy(p.restore)
        else:
            skill = p.to_wire(exclude={"position"})
        name = skill["name"]
        if has_name(skills, name):
            raise AlreadyExistsError("Skill", name)
        _insert(skills, skill, p.position)
        return skills, f"Added skill {name} ({skill.get('category')}, {skill.get('level')}%)"

    def _update_skill(self, cmd, doc) -> Outcome:
        skills = _expect(doc, list, DocumentKey.SKILLS)
        p = cmd.payload
        index = find_skill(skills, p.match_name)
        updated, keys = _merged(skills[index], p)
        if "name" in keys and has_name(skills, updated["name"], skip=index):
            raise AlreadyExistsError("Skill", updated["name"])
        skills[index] = updated
        return skills, f'Updated skill "{updated.get("name")}" ({", ".join(keys)})'

    def _remove_skill(self, cmd, doc) -> Outcome:
        skills = _expect(doc, list, DocumentKey.SKILLS)
        removed = skills.pop(find_skill(skills, cmd.payload.match_name))
        return skills, f'Removed skill "{removed.get("name")}"'

    # -----------------------------------------------------------------------
    # About + goals
    # -----------------------------------------------------------------------

    def _update_about(self, cmd, doc) -> Outcome:
        about = _expect(doc, dict, DocumentKey.ABOUT)
        about[cmd.payload.field] = cmd.payload.value
        return about, f"Updated {cmd.payload.field}"

    def _add_role(self, cmd, doc) -> Outcome:
        about = _expect(doc, dict, DocumentKey.ABOUT)
        roles = about.setdefault("roles", [])
        _insert(roles, cmd.payload.role, cmd.payload.position)
        return about, f'Added role "{cmd.payload.role}"'

    def _remove_role(self, cmd, doc) -> Outcome:
        about = _expect(doc, dict, DocumentKey.ABOUT)
        roles = about.setdefault("roles", [])
        removed = roles.pop(find_role(roles, cmd.payload.role))
        return about, f'Removed role "{removed}"'

    def _add_goal(self, cmd, doc) -> Outcome:
        goals = _expect(doc, dict, DocumentKey.GOALS)
        p = cmd.payload
        _insert(goals.setdefault(p.type, []), p.goal, p.position)
        return goals, f'Added {p.type} goal "{p.goal}"'

    def _update_goals(self, cmd, doc) -> Outcome:
        goals = _expect(doc, dict, DocumentKey.GOALS)
        goals[cmd.payload.field] = cmd.payload.value
        return goals, f"Updated {cmd.payload.field}"

    def _remove_goal(self, cmd, doc) -> Outcome:
        goals = _expect(doc, dict, DocumentKey.GOALS)
        name, index = find_goal(goals, cmd.payload.match_goal, cmd.payload.type)
        removed = goals[name].pop(index)
        return goals, f'Removed {name} goal "{removed}"'

    # -----------------------------------------------------------------------
    # Journey
    # -----------------------------------------------------------------------

    def _add_journey_item(self, cmd, doc) -> Outcome:
        journey = _expect(doc, dict, DocumentKey.JOURNEY)
        p = cmd.payload
        items = journey.setdefault(p.timeline, [])
        if isinstance(p, ReinsertJourneyItemPayload):
            item = copy.deepcopy(p.restore)
        else:
            item_id = p.id or new_journey_id(p.timeline)
            item = {"id": item_id, **p.to_wire(exclude={"timeline", "id", "position"})}
        if any(existing.get("id") == item["id"] for existing in items):
            raise AlreadyExistsError(f"Journey item in {p.timeline}", item["id"])
        _insert(items, item, p.position)
        return journey, f'Added {p.timeline} milestone "{item.get("title", item["id"])}" ({item["id"]})'

    def _update_journey_item(self, cmd, doc) -> Outcome:
        journey = _expect(doc, dict, DocumentKey.JOURNEY)
        p = cmd.payload
        items = journey.setdefault(p.timeline, [])
        index = find_journey_item(items, p.item_id, p.timeline)
        items[index], keys = _merged(items[index], p)
        return journey, f'Updated {p.timeline} milestone "{p.item_id}" ({", ".join(keys)})'

    def _remove_journey_item(self, cmd, doc) -> Outcome:
        journey = _expect(doc, dict, DocumentKey.JOURNEY)
        p = cmd.payload
        items = journey.setdefault(p.timeline, [])
        removed = items.pop(find_journey_item(items, p.item_id, p.timeline))
        return journey, f'Removed {p.timeline} milestone "{removed.get("title", p.item_id)}"'

    def _reorder_journey(self, cmd, doc) -> Outcome:
        journey = _expect(doc, dict, DocumentKey.JOURNEY)
        p = cmd.payload
        journey[p.timeline] = ranking.reorder_journey(journey.get(p.timeline) or [], p.strategy, p.custom_order)
        return journey, f"Reordered {p.timeline} timeline ({p.strategy})"

    # -----------------------------------------------------------------------
    # Audit meta-commands
    # -----------------------------------------------------------------------

    async def _view_audit_logs(self, cmd) -> tuple[str, Any]:
        p = cmd.payload
        page = await self.audit_log.query(limit=p.limit, offset=p.offset, filters=p.filter_by)
        if not page.entries:
            return "No audit log entries match", page
        lines = [format_audit_entry(entry) + f"  (id: {entry.id})" for entry in page.entries]
        header = f"Showing {len(page.entries)} of {page.total} audit log entries:"
        return "\n".join([header, *lines]), page

    async def _undo(self, cmd) -> tuple[str, Any]:
        entry_id = cmd.payload.audit_log_id
        entry = await self.audit_log.get(entry_id)
        if entry is None:
            recent = await self.audit_log.query(limit=5)
            raise NotFoundError("Audit log entry", entry_id, [e.id for e in recent.entries])

        original = entry.command.get("type", "unknown")
        if not entry.metadata.is_undoable:
            raise UnsupportedOperationError(f"{original} cannot be undone")
        if not entry.execution_result.success:
            raise UnsupportedOperationError(f"{original} failed when it ran, so there is nothing to undo")

        inverse = synthesize_undo(entry)
        if inverse is None:
            raise UnsupportedOperationError(f"Could not build an undo for {original} ({entry_id})")
        if inverse.type == "undo_command":
            raise UnsupportedOperationError("An undo may not produce another undo")

        logger.info(f"[UNDO] {original} ({entry_id}) -> {inverse.type}")
        result = await self.execute(inverse)
        if not result.success:
            raise CommandError(f"Undo of {original} failed: {result.message}")
        return f"Undid {original}: {result.message}", {
            "inverse": inverse.to_wire(),
            "inverse_audit_log_id": result.audit_log_id,
        }

    async def _clear_audit_logs(self, cmd) -> tuple[str, Any]:
        p = cmd.payload
        deleted = await self.audit_log.clear(older_than=p.older_than, confirmation_code=p.confirmation_code)
        scope = f" older than {p.older_than.isoformat()}" if p.older_than else ""
        return f"Cleared {deleted} audit log entries{scope}", {"deleted": deleted}
