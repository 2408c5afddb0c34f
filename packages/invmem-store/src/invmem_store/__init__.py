"""SQLite memory store: confidence-scored memories plus the audit trail."""
from __future__ import annotations

from invmem_store.store import MemoryStore

__all__ = [
    "MemoryStore",
]
