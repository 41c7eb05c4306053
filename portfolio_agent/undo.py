"""
Undo synthesis.

Turns an audit entry into a new forward command whose execution puts
the affected document back the way the `before` snapshot shows it.
Nothing here touches storage; the result goes through the executor
like any other command and gets its own audit entry.
"""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from portfolio_agent.audit_logger import AuditLogEntry
from portfolio_agent.commands import (
    Command,
    ReinsertProjectPayload,
    ReinsertSkillPayload,
    parse_command,
    touched_keys,
)
from portfolio_agent.errors import CommandValidationError, NotFoundError
from portfolio_agent.lookup import find_goal, find_journey_item, find_project, find_role, find_skill

Inverse = dict[str, Any]


def _wire(type_: str, **payload: Any) -> Inverse:
    return {"type": type_, "payload": payload}


def _field_restore(before_item: dict[str, Any], touched: list[str]) -> dict[str, Any]:
    """Earlier values for the touched keys; keys the entry lacked are unset again."""
    return {
        "restore": {key: before_item[key] for key in touched if key in before_item},
        "unset": [key for key in touched if key not in before_item],
    }


# ---------------------------------------------------------------------------
# Per-family inverses. Each gets the parsed command and the snapshots.
# ---------------------------------------------------------------------------

def _undo_add_project(cmd, before, after) -> Inverse:
    p = cmd.payload
    title = p.restore["title"] if isinstance(p, ReinsertProjectPayload) else p.title
    return _wire("remove_project", matchTitle=title)


def _undo_remove_project(cmd, before, after) -> Inverse:
    index = find_project(before, cmd.payload.match_title)
    return _wire("add_project", restore=before[index], position=index)


def _undo_update_project(cmd, before, after) -> Inverse:
    index = find_project(before, cmd.payload.match_title)
    fields = _field_restore(before[index], touched_keys(cmd.payload))
    return _wire("update_project", matchTitle=after[index]["title"], **fields)


def _undo_reorder_projects(cmd, before, after) -> Inverse | None:
    if not before:
        return None
    return _wire("reorder_projects", strategy="custom_order", customOrder=[p["title"] for p in before])


def _undo_add_skill(cmd, before, after) -> Inverse:
    p = cmd.payload
    name = p.restore["name"] if isinstance(p, ReinsertSkillPayload) else p.name
    return _wire("remove_skill", matchName=name)


def _undo_remove_skill(cmd, before, after) -> Inverse:
    index = find_skill(before, cmd.payload.match_name)
    return _wire("add_skill", restore=before[index], position=index)


def _undo_update_skill(cmd, before, after) -> Inverse:
    index = find_skill(before, cmd.payload.match_name)
    fields = _field_restore(before[index], touched_keys(cmd.payload))
    return _wire("update_skill", matchName=after[index]["name"], **fields)


def _undo_update_about(cmd, before, after) -> Inverse:
    return _wire("update_about", field=cmd.payload.field, value=before.get(cmd.payload.field, ""))


def _undo_add_role(cmd, before, after) -> Inverse:
    return _wire("remove_role", role=cmd.payload.role)


def _undo_remove_role(cmd, before, after) -> Inverse:
    roles = list(before.get("roles") or [])
    index = find_role(roles, cmd.payload.role)
    return _wire("add_role", role=roles[index], position=index)


def _undo_add_goal(cmd, before, after) -> Inverse:
    return _wire("remove_goal", matchGoal=cmd.payload.goal, type=cmd.payload.type)


def _undo_remove_goal(cmd, before, after) -> Inverse:
    name, index = find_goal(before, cmd.payload.match_goal, cmd.payload.type)
    return _wire("add_goal", type=name, goal=before[name][index], position=index)


def _undo_update_goals(cmd, before, after) -> Inverse:
    return _wire("update_goals", field=cmd.payload.field, value=before.get(cmd.payload.field, ""))


def _undo_add_journey_item(cmd, before, after) -> Inverse | None:
    timeline = cmd.payload.timeline
    known = {item.get("id") for item in before.get(timeline, [])}
    added = [item["id"] for item in after.get(timeline, []) if item.get("id") not in known]
    if len(added) != 1:
        return None
    return _wire("remove_journey_item", timeline=timeline, itemId=added[0])


def _undo_remove_journey_item(cmd, before, after) -> Inverse:
    timeline = cmd.payload.timeline
    items = before.get(timeline, [])
    index = find_journey_item(items, cmd.payload.item_id, timeline)
    return _wire("add_journey_item", timeline=timeline, restore=items[index], position=index)


def _undo_update_journey_item(cmd, before, after) -> Inverse:
    timeline = cmd.payload.timeline
    items = before.get(timeline, [])
    index = find_journey_item(items, cmd.payload.item_id, timeline)
    fields = _field_restore(items[index], touched_keys(cmd.payload))
    return _wire("update_journey_item", timeline=timeline, itemId=cmd.payload.item_id, **fields)


def _undo_reorder_journey(cmd, before, after) -> Inverse | None:
    timeline = cmd.payload.timeline
    items = before.get(timeline, [])
    if not items:
        return None
    return _wire("reorder_journey", timeline=timeline, strategy="custom_order", customOrder=[i["id"] for i in items])


_INVERSES: dict[str, Callable[[Any, Any, Any], Inverse | None]] = {
    "add_project": _undo_add_project,
    "remove_project": _undo_remove_project,
    "update_project": _undo_update_project,
    "reorder_projects": _undo_reorder_projects,
    "adaptive_sort_projects": _undo_reorder_projects,
    "add_skill": _undo_add_skill,
    "remove_skill": _undo_remove_skill,
    "update_skill": _undo_update_skill,
    "update_about": _undo_update_about,
    "add_role": _undo_add_role,
    "remove_role": _undo_remove_role,
    "add_goal": _undo_add_goal,
    "remove_goal": _undo_remove_goal,
    "update_goals": _undo_update_goals,
    "add_journey_item": _undo_add_journey_item,
    "remove_journey_item": _undo_remove_journey_item,
    "update_journey_item": _undo_update_journey_item,
    "reorder_journey": _undo_reorder_journey,
}

UNDOABLE_TYPES = frozenset(_INVERSES)


def synthesize_undo(entry: AuditLogEntry) -> Command | None:
    """
    Derive the inverse command for a logged execution.

    Returns None when the execution failed, when its type has no inverse,
    or when the snapshot does not hold what the inverse needs.
    """
    if not entry.execution_result.success:
        return None

    build = _INVERSES.get(entry.command.get("type", ""))
    if build is None:
        return None

    snapshot = entry.data_snapshot
    if snapshot.before is None or snapshot.after is None:
        return None

    try:
        cmd = parse_command(entry.command)
        inverse = build(cmd, snapshot.before, snapshot.after)
    except CommandValidationError as e:
        logger.warning(f"[UNDO] Logged command {entry.id} no longer validates: {e}")
        return None
    except (NotFoundError, KeyError, TypeError, AttributeError) as e:
        logger.warning(f"[UNDO] Snapshot for {entry.id} is missing what the inverse needs: {e}")
        return None

    if inverse is None:
        return None

    try:
        return parse_command(inverse)
    except CommandValidationError as e:
        logger.warning(f"[UNDO] Inverse for {entry.id} does not validate: {e}")
        return None
