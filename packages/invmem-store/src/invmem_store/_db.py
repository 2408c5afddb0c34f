from __future__ import annotations

import sqlite3
from pathlib import Path

import aiosqlite
from invmem_core.errors import StorageUnavailableError


async def get_connection(db_path: str) -> aiosqlite.Connection:
    """Open a WAL-mode SQLite connection, creating the directory if needed.

    The connection runs in autocommit mode; callers open explicit
    ``BEGIN IMMEDIATE`` transactions for read-modify-write sequences.
    """
    path = Path(db_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(path), isolation_level=None)
    except (OSError, sqlite3.Error) as exc:
        msg = f"Cannot open memory database at {db_path}: {exc}"
        raise StorageUnavailableError(msg) from exc
    try:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except sqlite3.Error as exc:
        await conn.close()
        msg = f"Cannot configure memory database at {db_path}: {exc}"
        raise StorageUnavailableError(msg) from exc
    conn.row_factory = aiosqlite.Row
    return conn
