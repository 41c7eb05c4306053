import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from portfolio_agent.audit_logger import AuditLog, AuditLogEntry
from portfolio_agent.commands import AuditFilter, DateRange
from portfolio_agent.errors import ConfirmationRequiredError
from portfolio_agent.executor import ExecutionResult
from portfolio_agent.store import DocumentKey, MemoryStore

from tests.conftest import cmd

NOW = datetime(2025, 6, 10, 12, 0, 0, tzinfo=timezone.utc)


def entry_at(when, command=None, success=True):
    command = command or cmd("add_role", role="Mentor")
    entry = AuditLog.record(command, ExecutionResult(success, "ok" if success else "failed"))
    return entry.model_copy(update={"timestamp": when})


def test_record_is_pure_and_deep_copies():
    before = {"roles": ["Engineer"]}
    after = {"roles": ["Engineer", "Mentor"]}
    entry = AuditLog.record(cmd("add_role", role="Mentor"), ExecutionResult(True, "Added", 1.5), before, after)

    before["roles"].append("mutated")
    assert entry.data_snapshot.before == {"roles": ["Engineer"]}
    assert entry.data_snapshot.affected_key == "about"
    assert entry.metadata.category == "About"
    assert entry.metadata.is_destructive is False
    assert entry.metadata.is_undoable is True
    assert entry.execution_result.execution_time_ms == 1.5
    assert entry.command == {"type": "add_role", "payload": {"role": "Mentor"}}


def test_entries_are_immutable():
    entry = entry_at(NOW)
    with pytest.raises(Exception):
        entry.id = "other"


def test_wire_form_is_camel_case():
    wire = entry_at(NOW).to_wire()
    assert set(wire) == {"id", "timestamp", "command", "executionResult", "dataSnapshot", "metadata"}
    assert "isDestructive" in wire["metadata"]
    assert "affectedKey" in wire["dataSnapshot"]
    assert AuditLogEntry.model_validate(wire).timestamp == NOW


def test_append_is_most_recent_first():
    store = MemoryStore()
    log = AuditLog(store)
    first, second = entry_at(NOW), entry_at(NOW + timedelta(seconds=1))

    async def scenario():
        await log.append(first)
        await log.append(second)
        return await log.entries()

    entries = asyncio.run(scenario())
    assert [e.id for e in entries] == [second.id, first.id]


def test_cap_evicts_oldest():
    store = MemoryStore()
    log = AuditLog(store, max_entries=3)
    entries = [entry_at(NOW + timedelta(minutes=i)) for i in range(4)]

    async def scenario():
        for e in entries:
            await log.append(e)
        return await store.read(DocumentKey.AUDIT_LOGS)

    raw = asyncio.run(scenario())
    assert len(raw) == 3
    assert [r["id"] for r in raw] == [entries[3].id, entries[2].id, entries[1].id]


def test_get_and_missing():
    log = AuditLog(MemoryStore())
    e = entry_at(NOW)

    async def scenario():
        await log.append(e)
        return await log.get(e.id), await log.get("nope")

    found, missing = asyncio.run(scenario())
    assert found.id == e.id
    assert missing is None


def test_query_filters_combine_with_and():
    log = AuditLog(MemoryStore())
    seeded = [
        entry_at(NOW - timedelta(days=3), cmd("remove_role", role="A")),
        entry_at(NOW - timedelta(days=2), cmd("remove_role", role="B"), success=False),
        entry_at(NOW - timedelta(days=1), cmd("add_skill", name="Go", iconName="i", colorClass="c", category="Backend", level=5)),
        entry_at(NOW, cmd("remove_skill", matchName="Go")),
    ]

    async def scenario():
        for e in seeded:
            await log.append(e)
        return (
            await log.query(),
            await log.query(filters=AuditFilter(destructive_only=True)),
            await log.query(filters=AuditFilter(destructive_only=True, success_only=True)),
            await log.query(filters=AuditFilter(category="skills")),
            await log.query(filters=AuditFilter(command_type="remove_role", success_only=True)),
            await log.query(filters=AuditFilter(date_range=DateRange(start=NOW - timedelta(days=2), end=NOW - timedelta(days=1)))),
            await log.query(limit=1, offset=1),
        )

    everything, destructive, destructive_ok, skills, role_ok, ranged, paged = asyncio.run(scenario())
    assert everything.total == 4
    assert destructive.total == 3
    assert destructive_ok.total == 2
    assert skills.total == 2
    assert [e.id for e in role_ok.entries] == [seeded[0].id]
    assert [e.id for e in ranged.entries] == [seeded[2].id, seeded[1].id]
    assert paged.total == 4 and [e.id for e in paged.entries] == [seeded[2].id]


def test_naive_date_range_is_utc():
    log = AuditLog(MemoryStore())
    e = entry_at(NOW)

    async def scenario():
        await log.append(e)
        return await log.query(filters=AuditFilter(date_range=DateRange(start=datetime(2025, 6, 10, 11, 0))))

    assert asyncio.run(scenario()).total == 1


def test_stats_histogram_oldest_first():
    log = AuditLog(MemoryStore())
    seeded = [
        entry_at(NOW - timedelta(days=10)),
        entry_at(NOW - timedelta(days=2), success=False),
        entry_at(NOW - timedelta(days=2)),
        entry_at(NOW, cmd("remove_skill", matchName="Go")),
    ]

    async def scenario():
        for e in seeded:
            await log.append(e)
        return await log.stats(days=7, now=NOW)

    stats = asyncio.run(scenario())
    assert stats.total == 4
    assert stats.successful == 3
    assert stats.failed == 1
    assert stats.by_category == {"About": 3, "Skills": 1}
    assert [d.date for d in stats.daily_activity] == [
        "2025-06-04", "2025-06-05", "2025-06-06", "2025-06-07", "2025-06-08", "2025-06-09", "2025-06-10",
    ]
    assert [d.count for d in stats.daily_activity] == [0, 0, 0, 0, 2, 0, 1]


def test_clear_requires_exact_code():
    store = MemoryStore()
    log = AuditLog(store)

    async def scenario():
        await log.append(entry_at(NOW))
        with pytest.raises(ConfirmationRequiredError) as exc_info:
            await log.clear(confirmation_code="confirm_clear_logs")
        return exc_info.value, await store.read(DocumentKey.AUDIT_LOGS)

    error, raw = asyncio.run(scenario())
    assert "CONFIRM_CLEAR_LOGS" in str(error)
    assert len(raw) == 1


def test_clear_all_and_older_than():
    log = AuditLog(MemoryStore())
    old, recent = entry_at(NOW - timedelta(days=30)), entry_at(NOW)

    async def scenario():
        await log.append(old)
        await log.append(recent)
        partial = await log.clear(older_than=NOW - timedelta(days=1), confirmation_code="CONFIRM_CLEAR_LOGS")
        remaining = [e.id for e in await log.entries()]
        full = await log.clear(confirmation_code="CONFIRM_CLEAR_LOGS")
        return partial, remaining, full, await log.entries()

    partial, remaining, full, after = asyncio.run(scenario())
    assert partial == 1
    assert remaining == [recent.id]
    assert full == 1
    assert after == []


def test_malformed_stored_entries_are_skipped():
    store = MemoryStore({"audit_logs": [{"id": "broken"}, entry_at(NOW).to_wire()]})
    entries = asyncio.run(AuditLog(store).entries())
    assert len(entries) == 1
