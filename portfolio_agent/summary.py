"""Short human-readable renderings of commands and audit entries."""

from __future__ import annotations

from typing import Any

from portfolio_agent.commands import (
    Command,
    ReinsertJourneyItemPayload,
    ReinsertProjectPayload,
    ReinsertSkillPayload,
    parse_command,
    touched_keys,
)
from portfolio_agent.errors import CommandValidationError


def summarize(cmd: Command) -> str:
    p = cmd.payload
    t = cmd.type

    if t == "add_project":
        if isinstance(p, ReinsertProjectPayload):
            return f'Restore project: "{p.restore["title"]}"'
        stack = f" ({', '.join(p.stack)})" if p.stack else ""
        return f'Add project: "{p.title}"{stack}'
    if t == "update_project":
        return f'Update project "{p.match_title}": {", ".join(touched_keys(p))}'
    if t == "remove_project":
        return f'Remove project: "{p.match_title}"'
    if t == "reorder_projects":
        return f"Reorder projects: {p.strategy}" + (f" - {p.description}" if p.description else "")
    if t == "adaptive_sort_projects":
        return f"Adaptive sort projects: {p.intent}" + (f" - {p.reasoning}" if p.reasoning else "")

    if t == "add_skill":
        if isinstance(p, ReinsertSkillPayload):
            return f'Restore skill: "{p.restore["name"]}"'
        return f"Add skill: {p.name} ({p.category}, level {p.level}%)"
    if t == "update_skill":
        return f'Update skill "{p.match_name}": {", ".join(touched_keys(p))}'
    if t == "remove_skill":
        return f'Remove skill: "{p.match_name}"'

    if t == "update_about":
        return f'Update {p.field}: "{p.value}"'
    if t == "add_role":
        return f'Add role: "{p.role}"'
    if t == "remove_role":
        return f'Remove role: "{p.role}"'

    if t == "add_goal":
        return f'Add {p.type} goal: "{p.goal}"'
    if t == "update_goals":
        return f'Update {p.field}: "{p.value}"'
    if t == "remove_goal":
        return f'Remove goal: "{p.match_goal}"'

    if t == "add_journey_item":
        if isinstance(p, ReinsertJourneyItemPayload):
            return f'Restore {p.timeline} milestone: "{p.restore.get("title", p.restore["id"])}"'
        return f'Add {p.timeline} milestone: "{p.title}" ({p.year})'
    if t == "update_journey_item":
        return f'Update {p.timeline} milestone "{p.item_id}": {", ".join(touched_keys(p))}'
    if t == "remove_journey_item":
        return f'Remove {p.timeline} milestone: "{p.item_id}"'
    if t == "reorder_journey":
        return f"Reorder {p.timeline} timeline: {p.strategy}"

    if t == "undo_command":
        return f"Undo command: {p.audit_log_id}" + (f" - {p.reason}" if p.reason else "")
    if t == "view_audit_logs":
        return f"View audit logs: {p.limit} entries{_filter_description(p.filter_by)}"
    if t == "clear_audit_logs":
        if p.older_than:
            return f"Clear audit logs older than {p.older_than.isoformat()}"
        return "Clear audit logs (all)"

    if t == "noop":
        return p.reason or "No action needed"

    return "Unknown command"


def _filter_description(filters) -> str:
    if not filters:
        return ""
    parts = []
    if filters.command_type:
        parts.append(f"type: {filters.command_type}")
    if filters.category:
        parts.append(f"category: {filters.category}")
    if filters.success_only:
        parts.append("successful only")
    if filters.destructive_only:
        parts.append("destructive only")
    if filters.date_range:
        parts.append("date range")
    return f" ({', '.join(parts)})" if parts else ""


def summarize_raw(command: dict[str, Any]) -> str:
    """Summary for a stored (wire-form) command. Falls back to its type tag."""
    try:
        return summarize(parse_command(command))
    except CommandValidationError:
        return str(command.get("type", "unknown command"))


def format_audit_entry(entry) -> str:
    status = "✅" if entry.execution_result.success else "❌"
    when = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
    return f"{status} [{when}] {entry.metadata.category}: {summarize_raw(entry.command)}"
