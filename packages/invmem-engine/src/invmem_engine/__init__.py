"""invmem engine: the Recall → Apply → Decide → Learn pipeline.

Example usage::

    from invmem_core import EngineConfig, Invoice
    from invmem_engine import MemoryEngine

    async with await MemoryEngine.open(EngineConfig()) as engine:
        output = await engine.run(
            Invoice(vendor="Supplier GmbH", invoice_number="INV-1")
        )
        print(output.requires_human_review, output.reasoning)
"""
from __future__ import annotations

from invmem_engine.apply import (
    FIELD_FILLS,
    ApplyResult,
    FillTarget,
    apply_memories,
)
from invmem_engine.decide import Decision, decide_review
from invmem_engine.engine import MemoryEngine
from invmem_engine.learn import LearnResult, learn_from_correction
from invmem_engine.recall import RecallResult, find_memory, recall_memories

__all__ = [
    "FIELD_FILLS",
    "ApplyResult",
    "Decision",
    "FillTarget",
    "LearnResult",
    "MemoryEngine",
    "RecallResult",
    "apply_memories",
    "decide_review",
    "find_memory",
    "learn_from_correction",
    "recall_memories",
]
