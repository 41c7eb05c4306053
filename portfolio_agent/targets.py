"""
Command routing tables.

Pure lookups over the closed command set: which document a command
touches, which category it is filed under, and whether it is destructive
or undoable. Nothing here executes anything.
"""

from __future__ import annotations

from portfolio_agent.store import DocumentKey

_FAMILIES: dict[str, tuple[str, DocumentKey | None]] = {
    "add_project": ("Projects", DocumentKey.PROJECTS),
    "update_project": ("Projects", DocumentKey.PROJECTS),
    "remove_project": ("Projects", DocumentKey.PROJECTS),
    "reorder_projects": ("Projects", DocumentKey.PROJECTS),
    "adaptive_sort_projects": ("Projects", DocumentKey.PROJECTS),
    "add_skill": ("Skills", DocumentKey.SKILLS),
    "update_skill": ("Skills", DocumentKey.SKILLS),
    "remove_skill": ("Skills", DocumentKey.SKILLS),
    "update_about": ("About", DocumentKey.ABOUT),
    "add_role": ("About", DocumentKey.ABOUT),
    "remove_role": ("About", DocumentKey.ABOUT),
    "add_goal": ("Goals", DocumentKey.GOALS),
    "update_goals": ("Goals", DocumentKey.GOALS),
    "remove_goal": ("Goals", DocumentKey.GOALS),
    "add_journey_item": ("Journey", DocumentKey.JOURNEY),
    "update_journey_item": ("Journey", DocumentKey.JOURNEY),
    "remove_journey_item": ("Journey", DocumentKey.JOURNEY),
    "reorder_journey": ("Journey", DocumentKey.JOURNEY),
    "undo_command": ("Audit", DocumentKey.AUDIT_LOGS),
    "view_audit_logs": ("Audit", None),
    "clear_audit_logs": ("Audit", DocumentKey.AUDIT_LOGS),
    "noop": ("System", None),
}

DESTRUCTIVE_TYPES = frozenset({
    "remove_project",
    "remove_skill",
    "remove_role",
    "remove_goal",
    "remove_journey_item",
    "clear_audit_logs",
})

# Meta-commands are logged but have no inverse of their own.
NOT_UNDOABLE_TYPES = frozenset({"view_audit_logs", "noop", "undo_command", "clear_audit_logs"})


def _type_of(cmd) -> str:
    return cmd if isinstance(cmd, str) else cmd.type


def target_key(cmd) -> DocumentKey | None:
    """Document the command reads and replaces, or None for keyless commands."""
    return _FAMILIES[_type_of(cmd)][1]


def category(cmd) -> str:
    return _FAMILIES[_type_of(cmd)][0]


def is_destructive(cmd) -> bool:
    return _type_of(cmd) in DESTRUCTIVE_TYPES


def is_undoable(cmd) -> bool:
    return _type_of(cmd) not in NOT_UNDOABLE_TYPES


def is_entity_command(cmd) -> bool:
    """True when the command mutates a portfolio document (not the audit log)."""
    key = target_key(cmd)
    return key is not None and key is not DocumentKey.AUDIT_LOGS
