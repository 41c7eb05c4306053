from datetime import datetime, timezone

import pytest

from portfolio_agent.audit_logger import AuditLog
from portfolio_agent.commands import COMMAND_TYPES
from portfolio_agent.executor import ExecutionResult
from portfolio_agent.store import DocumentKey
from portfolio_agent.summary import format_audit_entry, summarize, summarize_raw
from portfolio_agent.targets import category, is_destructive, is_entity_command, is_undoable, target_key

from tests.conftest import cmd


def test_every_type_is_routed():
    for type_ in COMMAND_TYPES:
        category(type_)
        target_key(type_)


@pytest.mark.parametrize("type_, key", [
    ("add_project", DocumentKey.PROJECTS),
    ("adaptive_sort_projects", DocumentKey.PROJECTS),
    ("update_skill", DocumentKey.SKILLS),
    ("add_role", DocumentKey.ABOUT),
    ("remove_goal", DocumentKey.GOALS),
    ("reorder_journey", DocumentKey.JOURNEY),
    ("undo_command", DocumentKey.AUDIT_LOGS),
    ("clear_audit_logs", DocumentKey.AUDIT_LOGS),
    ("view_audit_logs", None),
    ("noop", None),
])
def test_target_key(type_, key):
    assert target_key(type_) == key


def test_destructive_and_undoable_sets():
    destructive = {t for t in COMMAND_TYPES if is_destructive(t)}
    assert destructive == {
        "remove_project", "remove_skill", "remove_role", "remove_goal",
        "remove_journey_item", "clear_audit_logs",
    }
    not_undoable = {t for t in COMMAND_TYPES if not is_undoable(t)}
    assert not_undoable == {"view_audit_logs", "noop", "undo_command", "clear_audit_logs"}


def test_entity_commands_exclude_audit_and_keyless():
    assert is_entity_command("add_skill")
    assert not is_entity_command("undo_command")
    assert not is_entity_command("noop")


def test_accepts_command_objects():
    command = cmd("remove_skill", matchName="Go")
    assert category(command) == "Skills"
    assert is_destructive(command)


def test_summaries():
    assert summarize(cmd("add_project", title="X", description="d", stack=["Go", "Redis"], year=2024)) == 'Add project: "X" (Go, Redis)'
    assert summarize(cmd("update_project", matchTitle="X", patch={"status": "completed", "year": 2025})) == 'Update project "X": year, status'
    assert summarize(cmd("add_skill", name="Go", iconName="SiGo", colorClass="c", category="Backend", level=60)) == "Add skill: Go (Backend, level 60%)"
    assert summarize(cmd("noop")) == "No action needed"
    assert summarize(cmd("noop", reason="Just chatting")) == "Just chatting"
    assert summarize(cmd("clear_audit_logs", confirmationCode="x")) == "Clear audit logs (all)"


def test_summarize_raw_falls_back_to_type():
    assert summarize_raw({"type": "remove_role", "payload": {"role": "Founder"}}) == 'Remove role: "Founder"'
    assert summarize_raw({"type": "legacy_thing", "data": {}}) == "legacy_thing"


def test_format_audit_entry():
    entry = AuditLog.record(cmd("remove_role", role="Founder"), ExecutionResult(True, "Removed role"))
    entry = entry.model_copy(update={"timestamp": datetime(2025, 3, 1, 9, 30, 0, tzinfo=timezone.utc)})
    assert format_audit_entry(entry) == '✅ [2025-03-01 09:30:00] About: Remove role: "Founder"'

    failed = AuditLog.record(cmd("remove_role", role="Nobody"), ExecutionResult(False, "not found"))
    assert format_audit_entry(failed).startswith("❌ [")
