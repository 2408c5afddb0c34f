"""SQLite-backed memory store with reinforcement and time decay.

Memories are keyed by ``(kind, vendor, key)``. Writing an existing triple
reinforces it instead of inserting a second row::

    confidence' = min(1, confidence * (1 - decay_rate) + incoming)

and confidence fades lazily with age::

    confidence' = max(0, confidence * (1 - decay_rate) ** age_days)

The store also owns the append-only audit table the pipeline writes to.

Column names and millisecond timestamps are kept stable so existing
``memory.db`` files stay readable.
"""
from __future__ import annotations

import asyncio
import contextlib
import sqlite3
import time
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar

from invmem_core.errors import (
    ConstraintViolationError,
    InvalidMemoryError,
    StorageUnavailableError,
)
from invmem_core.logging import get_logger
from invmem_core.types import (
    DEFAULT_DECAY_RATE,
    AuditEntry,
    AuditStep,
    MemoryKind,
    MemoryRecord,
)

from invmem_store._db import get_connection

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

    import aiosqlite

logger = get_logger("store")

T = TypeVar("T")

_CREATE_SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    vendor TEXT,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    confidence REAL NOT NULL,
    hits INTEGER NOT NULL DEFAULT 0,
    decayRate REAL NOT NULL DEFAULT 0.01,
    createdAt INTEGER NOT NULL,
    lastUpdated INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    step TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    details TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_memories_triple
    ON memories(kind, IFNULL(vendor, ''), key);
"""

_MS_PER_DAY = 1000 * 60 * 60 * 24

# Lock contention beyond busy_timeout
_WRITE_ATTEMPTS = 3
_RETRY_DELAY_SECONDS = 0.05


def _now_ms() -> int:
    return round(time.time() * 1000)


def _to_ms(ts: float) -> int:
    return round(ts * 1000)


def _ms_to_iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


def _row_to_record(row: aiosqlite.Row) -> MemoryRecord:
    return MemoryRecord(
        id=row["id"],
        kind=MemoryKind(row["kind"]),
        vendor=row["vendor"],
        key=row["key"],
        value=row["value"],
        confidence=row["confidence"],
        hits=row["hits"],
        decay_rate=row["decayRate"],
        created_at=row["createdAt"] / 1000,
        last_updated=row["lastUpdated"] / 1000,
    )


def _is_transient(exc: sqlite3.OperationalError) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        msg = f"{name} must be within [0, 1], got {value!r}"
        raise InvalidMemoryError(msg)


@contextlib.contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Translate sqlite3 failures into store errors."""
    try:
        yield
    except sqlite3.IntegrityError as exc:
        msg = f"Constraint violated while {action}: {exc}"
        raise ConstraintViolationError(msg) from exc
    except sqlite3.Error as exc:
        msg = f"Storage failure while {action}: {exc}"
        raise StorageUnavailableError(msg) from exc


class MemoryStore:
    """Durable store for learned memories and the audit trail.

    One instance owns one aiosqlite connection. Statements issued through
    the instance are serialized by an ``asyncio.Lock``; writers on other
    connections to the same file are serialized by SQLite itself (WAL,
    ``busy_timeout`` and ``BEGIN IMMEDIATE``).

    Example::

        async with await MemoryStore.open("memory.db") as store:
            await store.upsert_memory(
                MemoryKind.VENDOR, "Supplier GmbH",
                "poDefault", "PO-77", 0.6,
            )
            records = await store.query_memories(
                kind=MemoryKind.VENDOR, vendor="Supplier GmbH",
            )
    """

    def __init__(self, conn: aiosqlite.Connection, path: str = "") -> None:
        self._conn = conn
        self._path = path
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, db_path: str) -> MemoryStore:
        """Open (or create) the database at *db_path* and ensure the schema."""
        conn = await get_connection(db_path)
        try:
            with _storage_errors("creating schema"):
                await conn.executescript(_CREATE_SCHEMA)
        except BaseException:
            await conn.close()
            raise
        logger.debug("Opened memory store at %s", db_path)
        return cls(conn, db_path)

    async def close(self) -> None:
        async with self._lock:
            await self._conn.close()
        logger.debug("Closed memory store at %s", self._path)

    async def __aenter__(self) -> MemoryStore:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ── Internal helpers ───────────────────────────────

    @contextlib.asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        await self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield
            await self._conn.execute("COMMIT")
        except BaseException:
            if self._conn.in_transaction:
                await self._conn.execute("ROLLBACK")
            raise

    async def _with_retry(
        self, op: Callable[[], Awaitable[T]], action: str
    ) -> T:
        """Run a write, retrying only on transient lock contention."""
        for attempt in range(1, _WRITE_ATTEMPTS + 1):
            try:
                return await op()
            except sqlite3.OperationalError as exc:
                if not _is_transient(exc) or attempt == _WRITE_ATTEMPTS:
                    raise
                logger.debug(
                    "Retrying %s after lock contention (attempt %d): %s",
                    action,
                    attempt,
                    exc,
                )
                await asyncio.sleep(_RETRY_DELAY_SECONDS * attempt)
        msg = f"Exhausted retries while {action}"
        raise StorageUnavailableError(msg)

    async def _fetch_triple(
        self, kind: MemoryKind, vendor: str | None, key: str
    ) -> MemoryRecord | None:
        if vendor is None:
            sql = (
                "SELECT * FROM memories"
                " WHERE kind = ? AND key = ? AND vendor IS NULL"
            )
            params: tuple = (kind.value, key)
        else:
            sql = (
                "SELECT * FROM memories"
                " WHERE kind = ? AND key = ? AND vendor = ?"
            )
            params = (kind.value, key, vendor)
        async with self._conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def _reinforce(
        self,
        existing: MemoryRecord,
        value: str,
        confidence: float,
        decay_rate: float,
        now_ms: int,
    ) -> MemoryRecord:
        new_confidence = min(
            1.0, existing.confidence * (1 - decay_rate) + confidence
        )
        hits = existing.hits + 1
        await self._conn.execute(
            "UPDATE memories SET value = ?, confidence = ?, hits = ?,"
            " decayRate = ?, lastUpdated = ? WHERE id = ?",
            (value, new_confidence, hits, decay_rate, now_ms, existing.id),
        )
        logger.debug(
            "Reinforced %s:%s (vendor=%s) %.3f -> %.3f, hits=%d",
            existing.kind.value,
            existing.key,
            existing.vendor,
            existing.confidence,
            new_confidence,
            hits,
        )
        return replace(
            existing,
            value=value,
            confidence=new_confidence,
            hits=hits,
            decay_rate=decay_rate,
            last_updated=now_ms / 1000,
        )

    async def _upsert_once(
        self,
        kind: MemoryKind,
        vendor: str | None,
        key: str,
        value: str,
        confidence: float,
        decay_rate: float,
    ) -> MemoryRecord:
        now_ms = _now_ms()
        async with self._transaction():
            existing = await self._fetch_triple(kind, vendor, key)
            if existing is not None:
                return await self._reinforce(
                    existing, value, confidence, decay_rate, now_ms
                )
            try:
                cursor = await self._conn.execute(
                    "INSERT INTO memories(kind, vendor, key, value,"
                    " confidence, hits, decayRate, createdAt, lastUpdated)"
                    " VALUES(?, ?, ?, ?, ?, 1, ?, ?, ?)",
                    (
                        kind.value, vendor, key, value,
                        confidence, decay_rate, now_ms, now_ms,
                    ),
                )
            except sqlite3.IntegrityError:
                # Another writer got the row in first; fold into it.
                existing = await self._fetch_triple(kind, vendor, key)
                if existing is None:
                    raise
                return await self._reinforce(
                    existing, value, confidence, decay_rate, now_ms
                )
            logger.debug(
                "Created %s:%s (vendor=%s) at %.3f",
                kind.value, key, vendor, confidence,
            )
            return MemoryRecord(
                id=cursor.lastrowid,
                kind=kind,
                vendor=vendor,
                key=key,
                value=value,
                confidence=confidence,
                hits=1,
                decay_rate=decay_rate,
                created_at=now_ms / 1000,
                last_updated=now_ms / 1000,
            )

    # ── Memories ───────────────────────────────────────

    async def upsert_memory(
        self,
        kind: MemoryKind,
        vendor: str | None,
        key: str,
        value: str,
        confidence: float,
        decay_rate: float = DEFAULT_DECAY_RATE,
    ) -> MemoryRecord:
        """Create the memory for (kind, vendor, key) or reinforce it.

        An empty vendor string is stored as no vendor.

        Raises:
            InvalidMemoryError: If confidence or decay_rate is outside [0, 1].
            StorageUnavailableError: If the write cannot be persisted.
        """
        _check_unit_interval("confidence", confidence)
        _check_unit_interval("decay_rate", decay_rate)
        vendor = vendor or None

        async def _op() -> MemoryRecord:
            return await self._upsert_once(
                kind, vendor, key, value, confidence, decay_rate
            )

        async with self._lock:
            with _storage_errors(f"upserting {kind.value}:{key}"):
                return await self._with_retry(_op, "upsert")

    async def get_memory(
        self, kind: MemoryKind, vendor: str | None, key: str
    ) -> MemoryRecord | None:
        """Fetch the exact (kind, vendor, key) triple.

        A missing vendor matches only records stored without a vendor.
        """
        async with self._lock:
            with _storage_errors(f"reading {kind.value}:{key}"):
                return await self._fetch_triple(kind, vendor or None, key)

    async def query_memories(
        self,
        kind: MemoryKind | None = None,
        vendor: str | None = None,
        min_confidence: float = 0.0,
    ) -> list[MemoryRecord]:
        """Return memories visible to *vendor*, highest confidence first.

        With a vendor, both that vendor's memories and unscoped memories
        match. Without one, only unscoped memories match. Memories scoped
        to some other vendor are never returned.
        """
        clauses: list[str] = []
        params: list[object] = []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind.value)
        if vendor:
            clauses.append("(vendor = ? OR vendor IS NULL)")
            params.append(vendor)
        else:
            clauses.append("vendor IS NULL")
        clauses.append("confidence >= ?")
        params.append(min_confidence)

        sql = (
            "SELECT * FROM memories WHERE "
            + " AND ".join(clauses)
            + " ORDER BY confidence DESC, id ASC"
        )
        async with self._lock:
            with _storage_errors("querying memories"):
                async with self._conn.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def list_memories(
        self, kind: MemoryKind | None = None
    ) -> list[MemoryRecord]:
        """Return every memory regardless of vendor, for inspection."""
        sql = "SELECT * FROM memories"
        params: tuple = ()
        if kind is not None:
            sql += " WHERE kind = ?"
            params = (kind.value,)
        sql += " ORDER BY confidence DESC, id ASC"
        async with self._lock:
            with _storage_errors("listing memories"):
                async with self._conn.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def decay_memories(self, now: float | None = None) -> int:
        """Apply time decay to every memory.

        Only rows whose confidence actually changes are written; those also
        get ``last_updated = now`` so the same period is not decayed twice.

        Args:
            now: Unix timestamp to decay up to. Defaults to the current time.

        Returns:
            Number of memories that changed.
        """
        now_ms = _now_ms() if now is None else _to_ms(now)

        async def _op() -> int:
            changed = 0
            async with self._transaction():
                async with self._conn.execute(
                    "SELECT id, confidence, decayRate, lastUpdated"
                    " FROM memories"
                ) as cursor:
                    rows = await cursor.fetchall()
                for row in rows:
                    age_days = max(
                        0.0, (now_ms - row["lastUpdated"]) / _MS_PER_DAY
                    )
                    decayed = max(
                        0.0,
                        row["confidence"] * (1 - row["decayRate"]) ** age_days,
                    )
                    if decayed != row["confidence"]:
                        await self._conn.execute(
                            "UPDATE memories SET confidence = ?,"
                            " lastUpdated = ? WHERE id = ?",
                            (decayed, now_ms, row["id"]),
                        )
                        changed += 1
            return changed

        async with self._lock:
            with _storage_errors("decaying memories"):
                changed = await self._with_retry(_op, "decay")
        logger.info("Decayed %d memories", changed)
        return changed

    # ── Audit ──────────────────────────────────────────

    async def add_audit(self, step: AuditStep, details: str) -> AuditEntry:
        """Append one audit row stamped with the current time."""
        now_ms = _now_ms()

        async def _op() -> None:
            await self._conn.execute(
                "INSERT INTO audit(step, timestamp, details) VALUES(?, ?, ?)",
                (step.value, now_ms, details),
            )

        async with self._lock:
            with _storage_errors(f"writing {step.value} audit entry"):
                await self._with_retry(_op, "audit")
        return AuditEntry(
            step=step, timestamp=_ms_to_iso(now_ms), details=details
        )

    async def list_audit(self, limit: int = 50) -> list[AuditEntry]:
        """Return the most recent *limit* audit entries, oldest first."""
        async with self._lock:
            with _storage_errors("reading audit trail"):
                async with self._conn.execute(
                    "SELECT step, timestamp, details FROM audit"
                    " ORDER BY id DESC LIMIT ?",
                    (limit,),
                ) as cursor:
                    rows = await cursor.fetchall()
        return [
            AuditEntry(
                step=AuditStep(row["step"]),
                timestamp=_ms_to_iso(row["timestamp"]),
                details=row["details"],
            )
            for row in reversed(rows)
        ]
