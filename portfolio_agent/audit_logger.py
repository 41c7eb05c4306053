"""
Portfolio Agent Audit Log

A capped, most-recent-first ledger of every command execution attempt,
stored as the `audit_logs` document. Entries are built once and never
edited; the list only grows at the head, loses its tail past the cap,
or is pruned by an explicit, confirmed clear.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from pydantic import ConfigDict, Field, ValidationError

from portfolio_agent.commands import AuditFilter
from portfolio_agent.errors import ConfirmationRequiredError
from portfolio_agent.models import WireModel
from portfolio_agent.store import DocumentKey, DocumentStore
from portfolio_agent.targets import category, is_destructive, is_undoable, target_key

DEFAULT_CONFIRMATION_CODE = "CONFIRM_CLEAR_LOGS"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Entry models
# ---------------------------------------------------------------------------

class RecordedResult(WireModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    execution_time_ms: float = 0.0


class DataSnapshot(WireModel):
    model_config = ConfigDict(frozen=True)

    before: Any = None
    after: Any = None
    affected_key: str | None = None


class EntryMetadata(WireModel):
    model_config = ConfigDict(frozen=True)

    category: str
    is_destructive: bool
    is_undoable: bool


class AuditLogEntry(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)
    command: dict[str, Any]
    execution_result: RecordedResult
    data_snapshot: DataSnapshot = Field(default_factory=DataSnapshot)
    metadata: EntryMetadata


class AuditPage(WireModel):
    entries: list[AuditLogEntry]
    total: int
    limit: int
    offset: int


class DailyActivity(WireModel):
    date: str
    count: int


class AuditStats(WireModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    daily_activity: list[DailyActivity] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def matches(entry: AuditLogEntry, filters: AuditFilter | None) -> bool:
    """All set filters must hold."""
    if filters is None:
        return True
    if filters.command_type and entry.command.get("type") != filters.command_type:
        return False
    if filters.category and entry.metadata.category.lower() != filters.category.lower():
        return False
    if filters.success_only and not entry.execution_result.success:
        return False
    if filters.destructive_only and not entry.metadata.is_destructive:
        return False
    if filters.date_range:
        when = as_utc(entry.timestamp)
        if filters.date_range.start and when < as_utc(filters.date_range.start):
            return False
        if filters.date_range.end and when > as_utc(filters.date_range.end):
            return False
    return True


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLog:
    """
    Read/append access to the `audit_logs` document.

    Appends and clears are read-modify-write on a single document and are
    serialized by this instance's lock. Callers that also hold an entity
    lock must take it first.
    """

    def __init__(
        self,
        store: DocumentStore,
        max_entries: int = 1000,
        confirmation_code: str = DEFAULT_CONFIRMATION_CODE,
    ):
        self.store = store
        self.max_entries = max_entries
        self.confirmation_code = confirmation_code
        self._lock = asyncio.Lock()

    @staticmethod
    def record(cmd, result, before: Any = None, after: Any = None) -> AuditLogEntry:
        """Build an entry for one execution attempt. Touches no storage."""
        key = target_key(cmd)
        return AuditLogEntry(
            command=cmd.to_wire(),
            execution_result=RecordedResult(
                success=result.success,
                message=result.message,
                execution_time_ms=result.execution_time_ms,
            ),
            data_snapshot=DataSnapshot(
                before=copy.deepcopy(before),
                after=copy.deepcopy(after),
                affected_key=key.value if key else None,
            ),
            metadata=EntryMetadata(
                category=category(cmd),
                is_destructive=is_destructive(cmd),
                is_undoable=is_undoable(cmd),
            ),
        )

    async def _raw(self) -> list[Any]:
        raw = await self.store.read(DocumentKey.AUDIT_LOGS)
        return raw if isinstance(raw, list) else []

    async def entries(self) -> list[AuditLogEntry]:
        """All readable entries, most recent first. Malformed records are skipped."""
        parsed = []
        for item in await self._raw():
            try:
                parsed.append(AuditLogEntry.model_validate(item))
            except ValidationError as e:
                logger.warning(f"[AUDIT] Skipping malformed entry: {e.error_count()} problem(s)")
        return parsed

    async def append(self, entry: AuditLogEntry) -> None:
        async with self._lock:
            raw = await self._raw()
            raw.insert(0, entry.to_wire())
            evicted = len(raw) - self.max_entries
            if evicted > 0:
                del raw[self.max_entries:]
                logger.debug(f"[AUDIT] Evicted {evicted} oldest entries")
            await self.store.replace(
                DocumentKey.AUDIT_LOGS, raw,
                message=f"Audit: {entry.command.get('type', 'command')}",
            )
        logger.debug(f"[AUDIT] Recorded {entry.id} ({entry.command.get('type')})")

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        for entry in await self.entries():
            if entry.id == entry_id:
                return entry
        return None

    async def query(self, limit: int = 20, offset: int = 0, filters: AuditFilter | None = None) -> AuditPage:
        selected = [e for e in await self.entries() if matches(e, filters)]
        return AuditPage(
            entries=selected[offset:offset + limit],
            total=len(selected),
            limit=limit,
            offset=offset,
        )

    async def stats(self, days: int = 7, now: datetime | None = None) -> AuditStats:
        """Totals plus a per-day histogram for the trailing `days` days, oldest first."""
        entries = await self.entries()
        today = as_utc(now or utcnow()).date()
        window = [(today - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]
        per_day = Counter(as_utc(e.timestamp).date().isoformat() for e in entries)
        successful = sum(1 for e in entries if e.execution_result.success)

        return AuditStats(
            total=len(entries),
            successful=successful,
            failed=len(entries) - successful,
            by_category=dict(Counter(e.metadata.category for e in entries)),
            daily_activity=[DailyActivity(date=day, count=per_day.get(day, 0)) for day in window],
        )

    async def clear(self, older_than: datetime | None = None, confirmation_code: str = "") -> int:
        """
        Delete entries strictly older than `older_than`, or all of them.

        Requires the exact confirmation code. Returns how many were deleted.
        """
        if confirmation_code != self.confirmation_code:
            raise ConfirmationRequiredError(
                f'Invalid confirmation code. To clear audit logs, set confirmationCode to "{self.confirmation_code}"'
            )

        async with self._lock:
            raw = await self._raw()
            if older_than is None:
                kept: list[Any] = []
            else:
                cutoff = as_utc(older_than)
                kept = [item for item in raw if not self._is_older(item, cutoff)]
            deleted = len(raw) - len(kept)
            await self.store.replace(DocumentKey.AUDIT_LOGS, kept, message="Audit: clear logs")

        logger.info(f"[AUDIT] Cleared {deleted} entries")
        return deleted

    @staticmethod
    def _is_older(item: Any, cutoff: datetime) -> bool:
        try:
            return as_utc(AuditLogEntry.model_validate(item).timestamp) < cutoff
        except ValidationError:
            return False
