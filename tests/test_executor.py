import asyncio
import copy

import pytest

from portfolio_agent.audit_logger import AuditLog
from portfolio_agent.errors import StoreError
from portfolio_agent.executor import CommandExecutor
from portfolio_agent.store import DocumentKey, MemoryStore

from tests.conftest import SEED, cmd

NEW_PROJECT = {"title": "X", "stack": ["Go"], "description": "d", "year": 2024, "status": "planning"}


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------

def test_add_update_remove_then_undo_remove(executor, store):
    async def scenario():
        original = await store.read("projects")

        added = await executor.execute(cmd("add_project", **NEW_PROJECT))
        after_add = await store.read("projects")

        updated = await executor.execute(cmd("update_project", matchTitle="X", patch={"status": "completed"}))
        after_update = await store.read("projects")

        removed = await executor.execute(cmd("remove_project", matchTitle="X"))
        after_remove = await store.read("projects")

        undone = await executor.execute(cmd("undo_command", auditLogId=removed.audit_log_id))
        after_undo = await store.read("projects")
        return original, added, after_add, updated, after_update, removed, after_remove, undone, after_undo

    original, added, after_add, updated, after_update, removed, after_remove, undone, after_undo = run(scenario())

    assert added.success
    assert len(after_add) == len(original) + 1
    x = next(p for p in after_add if p["title"].lower() == "x")

    assert updated.success
    x_updated = next(p for p in after_update if p["title"] == "X")
    assert x_updated == {**x, "status": "completed"}

    assert removed.success
    assert after_remove == original

    assert undone.success, undone.message
    assert after_undo == after_update
    assert next(p for p in after_undo if p["title"] == "X") == x_updated


# ---------------------------------------------------------------------------
# Insert / patch / remove
# ---------------------------------------------------------------------------

def test_add_project_fills_defaults(executor, store):
    run(executor.execute(cmd("add_project", title="Y", description="d", stack=["Rust"], year=2025)))
    projects = run(store.read("projects"))
    assert projects[-1] == {
        "title": "Y",
        "description": "d",
        "stack": ["Rust"],
        "year": 2025,
        "links": {"github": "", "live": ""},
        "featured": False,
        "status": "completed",
        "lessons": [],
    }


def test_insert_then_remove_restores_collection(executor, store):
    async def scenario():
        before = await store.read("skills")
        await executor.execute(cmd("add_skill", name="Go", iconName="SiGo", colorClass="c", category="Backend", level=50))
        await executor.execute(cmd("remove_skill", matchName="GO"))
        return before, await store.read("skills")

    before, after = run(scenario())
    assert after == before


@pytest.mark.parametrize("type_, payload, what", [
    ("add_project", {**NEW_PROJECT, "title": "portfolio site"}, "Project"),
    ("add_skill", {"name": "PYTHON", "iconName": "i", "colorClass": "c", "category": "Backend", "level": 1}, "Skill"),
])
def test_natural_keys_are_unique_case_insensitively(executor, store, type_, payload, what):
    key = "projects" if type_ == "add_project" else "skills"
    before = run(store.read(key))
    result = run(executor.execute(cmd(type_, **payload)))
    assert not result.success
    assert "already exists" in result.message
    assert result.message.startswith(what)
    assert run(store.read(key)) == before


def test_rename_onto_existing_title_is_rejected(executor, store):
    result = run(executor.execute(cmd("update_project", matchTitle="Crop Yield Model", patch={"title": "PORTFOLIO SITE"})))
    assert not result.success
    assert "already exists" in result.message


def test_restore_shapes_keep_uniqueness_rules(executor, store):
    async def scenario():
        before = await store.read("projects")
        renamed = await executor.execute(cmd("update_project", matchTitle="Crop Yield Model", restore={"title": "portfolio site"}))
        duplicate = await executor.execute(cmd("add_project", restore={"title": "Portfolio Site", "year": 2018}))
        return before, renamed, duplicate, await store.read("projects")

    before, renamed, duplicate, after = run(scenario())
    assert not renamed.success
    assert "already exists" in renamed.message
    assert not duplicate.success
    assert "already exists" in duplicate.message
    assert after == before


def test_field_restore_writes_and_removes_keys(executor, store):
    result = run(executor.execute(cmd(
        "update_journey_item", timeline="student", itemId="student-2",
        restore={"desc": "Runner-up", "link": "https://example.com"}, unset=["iconColor"],
    )))
    item = run(store.read("journey"))["student"][1]
    assert result.success, result.message
    assert item["desc"] == "Runner-up"
    assert item["link"] == "https://example.com"
    assert "iconColor" not in item
    assert item["title"] == "Hackathon win"


def test_not_found_lists_available_keys(executor):
    result = run(executor.execute(cmd("remove_project", matchTitle="Nope")))
    assert not result.success
    assert result.message == 'Project "Nope" not found. Available: Portfolio Site, Crop Yield Model'


def test_patch_is_idempotent(executor, store):
    patch = cmd("update_skill", matchName="python", patch={"level": 95, "category": "AI/ML"})

    async def scenario():
        await executor.execute(patch)
        once = await store.read("skills")
        await executor.execute(patch)
        return once, await store.read("skills")

    once, twice = run(scenario())
    assert once == twice
    assert once[0] == {**SEED["skills"][0], "level": 95, "category": "AI/ML"}


def test_add_at_position(executor, store):
    run(executor.execute(cmd("add_role", role="Mentor", position=1)))
    assert run(store.read("about"))["roles"] == ["Engineer", "Mentor", "Founder"]


def test_about_and_goal_scalars(executor, store):
    async def scenario():
        await executor.execute(cmd("update_about", field="location", value="Berlin"))
        await executor.execute(cmd("update_goals", field="mission", value="Teach"))
        return await store.read("about"), await store.read("goals")

    about, goals = run(scenario())
    assert about["location"] == "Berlin"
    assert goals["mission"] == "Teach"


def test_role_matching_exact_then_case_insensitive(executor, store):
    run(executor.execute(cmd("remove_role", role="founder")))
    assert run(store.read("about"))["roles"] == ["Engineer"]


def test_goal_matching_exact_then_substring(executor, store):
    async def scenario():
        first = await executor.execute(cmd("remove_goal", matchGoal="rust"))
        second = await executor.execute(cmd("remove_goal", matchGoal="company"))
        missing = await executor.execute(cmd("remove_goal", matchGoal="astronaut"))
        return first, second, missing, await store.read("goals")

    first, second, missing, goals = run(scenario())
    assert first.success and second.success
    assert goals["shortTerm"] == ["Finish the thesis"]
    assert goals["longTerm"] == []
    assert not missing.success
    assert "Finish the thesis" in missing.message


def test_goal_type_restricts_search(executor):
    result = run(executor.execute(cmd("remove_goal", matchGoal="company", type="shortTerm")))
    assert not result.success


def test_journey_lifecycle(executor, store):
    async def scenario():
        added = await executor.execute(cmd("add_journey_item", timeline="entrepreneur", year="2024", title="Founded", desc="Started a studio"))
        items = (await store.read("journey"))["entrepreneur"]
        item_id = items[0]["id"]
        patched = await executor.execute(cmd("update_journey_item", timeline="entrepreneur", itemId=item_id, patch={"icon": "Rocket"}))
        duplicate = await executor.execute(cmd("add_journey_item", timeline="entrepreneur", year="2025", title="Again", desc="d", id=item_id))
        patched_items = (await store.read("journey"))["entrepreneur"]
        removed = await executor.execute(cmd("remove_journey_item", timeline="entrepreneur", itemId=item_id))
        return added, item_id, patched, duplicate, patched_items, removed, await store.read("journey")

    added, item_id, patched, duplicate, patched_items, removed, journey = run(scenario())
    assert added.success
    assert item_id.startswith("entrepreneur-") and len(item_id) == len("entrepreneur-") + 8
    assert patched.success
    assert patched_items[0]["icon"] == "Rocket"
    assert not duplicate.success
    assert removed.success
    assert journey["entrepreneur"] == []
    assert journey["student"] == SEED["journey"]["student"]


def test_journey_item_matches_by_id_only(executor):
    result = run(executor.execute(cmd("remove_journey_item", timeline="student", itemId="Hackathon win")))
    assert not result.success
    assert "student-2" in result.message


def test_reorders(executor, store):
    async def scenario():
        await executor.execute(cmd("reorder_projects", strategy="by_year_asc"))
        projects = await store.read("projects")
        await executor.execute(cmd("reorder_journey", timeline="student", strategy="by_year_desc"))
        journey = await store.read("journey")
        sorted_result = await executor.execute(cmd("adaptive_sort_projects", intent="prioritize_by_keywords", keywords=["machine learning"]))
        return projects, journey, sorted_result

    projects, journey, sorted_result = run(scenario())
    assert [p["title"] for p in projects] == ["Crop Yield Model", "Portfolio Site"]
    assert [i["id"] for i in journey["student"]] == ["student-2", "student-1"]
    assert sorted_result.success
    assert sorted_result.message == "Prioritized by keywords: machine learning"


# ---------------------------------------------------------------------------
# Audit side effects
# ---------------------------------------------------------------------------

def test_every_entity_execution_is_audited_including_failures(executor, audit_log):
    async def scenario():
        ok = await executor.execute(cmd("add_role", role="Mentor"))
        bad = await executor.execute(cmd("remove_role", role="Astronaut"))
        return ok, bad, await audit_log.entries()

    ok, bad, entries = run(scenario())
    assert [e.id for e in entries] == [bad.audit_log_id, ok.audit_log_id]
    failed = entries[0]
    assert failed.execution_result.success is False
    assert failed.metadata.is_destructive is True
    assert failed.data_snapshot.before == SEED["about"]
    assert failed.data_snapshot.after is None
    assert entries[1].data_snapshot.after["roles"][-1] == "Mentor"


def test_noop_and_view_are_not_audited(executor, audit_log, store):
    async def scenario():
        noop = await executor.execute(cmd("noop", reason="Just saying hi"))
        view = await executor.execute(cmd("view_audit_logs"))
        return noop, view, await store.read(DocumentKey.AUDIT_LOGS)

    noop, view, raw = run(scenario())
    assert noop.success and noop.message == "Just saying hi"
    assert view.success and view.message == "No audit log entries match"
    assert raw == []


def test_view_lists_entries(executor):
    async def scenario():
        await executor.execute(cmd("add_role", role="Mentor"))
        return await executor.execute(cmd("view_audit_logs", limit=5))

    view = run(scenario())
    assert view.message.startswith("Showing 1 of 1 audit log entries:")
    assert 'About: Add role: "Mentor"' in view.message
    assert view.data.total == 1


def test_clear_logs_checks_code_and_is_audited(executor, audit_log):
    async def scenario():
        await executor.execute(cmd("add_role", role="Mentor"))
        wrong = await executor.execute(cmd("clear_audit_logs", confirmationCode="yes please"))
        right = await executor.execute(cmd("clear_audit_logs", confirmationCode="CONFIRM_CLEAR_LOGS"))
        return wrong, right, await audit_log.entries()

    wrong, right, entries = run(scenario())
    assert not wrong.success
    assert "Invalid confirmation code" in wrong.message
    assert right.success
    assert right.message == "Cleared 2 audit log entries"
    assert len(entries) == 1
    assert entries[0].command["type"] == "clear_audit_logs"
    assert entries[0].data_snapshot.before is None


class FailingAuditStore(MemoryStore):
    async def replace(self, key, value, message=None):
        if key == DocumentKey.AUDIT_LOGS:
            raise StoreError("disk full")
        await super().replace(key, value, message)


def test_audit_write_failure_does_not_change_result(bus):
    store = FailingAuditStore(copy.deepcopy(SEED))
    executor = CommandExecutor(store, AuditLog(store), bus=bus)
    events = []
    bus.subscribe(events.append)

    result = run(executor.execute(cmd("add_role", role="Mentor")))
    assert result.success
    assert result.audit_log_id is None
    assert run(store.read("about"))["roles"][-1] == "Mentor"
    assert [e.event_type for e in events] == ["audit_write_failed", "command_executed"]
    assert events[0].error == "disk full"
    assert events[0].command_type == "add_role"
    assert events[1].audit_log_id is None


class BrokenStore(MemoryStore):
    async def read(self, key):
        if key == DocumentKey.SKILLS:
            raise StoreError("connection reset")
        return await super().read(key)


def test_store_failures_become_failed_results():
    store = BrokenStore(copy.deepcopy(SEED))
    executor = CommandExecutor(store, AuditLog(store))
    result = run(executor.execute(cmd("remove_skill", matchName="Python")))
    assert not result.success
    assert result.message == "Storage error: connection reset"
    assert result.audit_log_id is not None


def test_wrong_document_shape_is_a_store_error(audit_log):
    store = MemoryStore({"projects": {"not": "a list"}})
    executor = CommandExecutor(store, AuditLog(store))
    result = run(executor.execute(cmd("remove_project", matchTitle="X")))
    assert not result.success
    assert result.message.startswith("Storage error:")


def test_executed_event_is_emitted(executor, bus):
    events = []
    bus.subscribe(events.append)
    run(executor.execute(cmd("noop")))
    assert events[0].event_type == "command_executed"
    assert events[0].command_type == "noop"
    assert events[0].success
    assert events[0].message == "No action needed"


def test_unknown_objects_are_refused(executor):
    class Fake:
        type = "format_disk"

    result = run(executor.execute(Fake()))
    assert not result.success
    assert "Unsupported command type" in result.message
