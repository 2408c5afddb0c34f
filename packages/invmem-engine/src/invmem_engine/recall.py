"""Recall stage: fetch the memories visible to an invoice's vendor."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from invmem_core.types import MemoryKind, MemoryRecord

if TYPE_CHECKING:
    from invmem_core.types import Invoice
    from invmem_store import MemoryStore


@dataclass(frozen=True, slots=True)
class RecallResult:
    """Memories recalled for one invoice, each list highest confidence first."""
    vendor_memories: list[MemoryRecord] = field(default_factory=list)
    correction_memories: list[MemoryRecord] = field(default_factory=list)
    resolution_memories: list[MemoryRecord] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"Found {len(self.vendor_memories)} vendor memories,"
            f" {len(self.correction_memories)} corrections,"
            f" {len(self.resolution_memories)} resolutions."
        )


def find_memory(
    memories: list[MemoryRecord],
    key: str,
    min_confidence: float = 0.0,
) -> MemoryRecord | None:
    """Return the strongest memory with *key* at or above *min_confidence*."""
    return next(
        (
            m for m in memories
            if m.key == key and m.confidence >= min_confidence
        ),
        None,
    )


async def recall_memories(store: MemoryStore, invoice: Invoice) -> RecallResult:
    """Query every memory kind scoped to the invoice's vendor.

    No confidence floor is applied here; gating happens in later stages.
    """
    return RecallResult(
        vendor_memories=await store.query_memories(
            kind=MemoryKind.VENDOR, vendor=invoice.vendor
        ),
        correction_memories=await store.query_memories(
            kind=MemoryKind.CORRECTION, vendor=invoice.vendor
        ),
        resolution_memories=await store.query_memories(
            kind=MemoryKind.RESOLUTION, vendor=invoice.vendor
        ),
    )
