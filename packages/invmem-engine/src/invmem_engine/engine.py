from __future__ import annotations

from typing import TYPE_CHECKING

from invmem_core.config import EngineConfig
from invmem_core.errors import MalformedInvoiceError
from invmem_core.logging import get_logger
from invmem_core.types import AuditEntry, AuditStep, PipelineOutput
from invmem_store import MemoryStore

from invmem_engine.apply import apply_memories
from invmem_engine.decide import decide_review
from invmem_engine.learn import learn_from_correction
from invmem_engine.recall import recall_memories

if TYPE_CHECKING:
    from invmem_core.types import Invoice, InvoiceCorrection

logger = get_logger("engine")

_NOTHING_APPLIED = "No memories applied"


def _validate_identity(invoice: Invoice) -> None:
    """Reject invoices that cannot be scoped to a vendor memory key."""
    missing = [
        name
        for name, value in (
            ("vendor", invoice.vendor),
            ("invoice_number", invoice.invoice_number),
        )
        if not isinstance(value, str) or not value.strip()
    ]
    if missing:
        msg = f"Invoice is missing required field(s): {', '.join(missing)}"
        raise MalformedInvoiceError(msg)


class MemoryEngine:
    """Runs the Recall → Apply → Decide → Learn pipeline over one store.

    Each ``run`` is independent; the only state shared between runs is the
    store. Every stage writes one audit entry to the store and to the run's
    own trail.

    Lifecycle::

        async with await MemoryEngine.open(EngineConfig()) as engine:
            output = await engine.run(invoice)
            if output.requires_human_review:
                correction = ...  # ask a human
                await engine.run(invoice, correction)
    """

    def __init__(
        self,
        store: MemoryStore,
        config: EngineConfig | None = None,
        *,
        owns_store: bool = False,
    ) -> None:
        self._store = store
        self._config = config or EngineConfig()
        self._owns_store = owns_store

    @classmethod
    async def open(cls, config: EngineConfig | None = None) -> MemoryEngine:
        """Open the configured store, decay stale memories, and wrap it."""
        config = config or EngineConfig()
        store = await MemoryStore.open(config.storage_path)
        try:
            if config.decay_on_open:
                await store.decay_memories()
        except BaseException:
            await store.close()
            raise
        return cls(store, config, owns_store=True)

    @property
    def store(self) -> MemoryStore:
        return self._store

    @property
    def config(self) -> EngineConfig:
        return self._config

    async def close(self) -> None:
        """Close the store if this engine opened it."""
        if self._owns_store:
            await self._store.close()

    async def __aenter__(self) -> MemoryEngine:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def run(
        self,
        invoice: Invoice,
        human_correction: InvoiceCorrection | None = None,
    ) -> PipelineOutput:
        """Process one invoice, learning from *human_correction* if given.

        Raises:
            MalformedInvoiceError: If vendor or invoice number is blank.
                Nothing is written in that case.
            StoreError: If the store fails during any stage.
        """
        _validate_identity(invoice)
        trail: list[AuditEntry] = []

        async def _audit(step: AuditStep, details: str) -> None:
            trail.append(await self._store.add_audit(step, details))

        recalled = await recall_memories(self._store, invoice)
        await _audit(AuditStep.RECALL, recalled.summary())

        applied = apply_memories(
            invoice, recalled, self._config.min_confidence_to_apply
        )
        apply_reasoning = " | ".join(applied.reasoning)
        await _audit(AuditStep.APPLY, apply_reasoning or _NOTHING_APPLIED)

        decision = decide_review(
            applied.normalized,
            applied.proposed_corrections,
            recalled,
            applied.applied_confidence,
            min_confidence_to_apply=self._config.min_confidence_to_apply,
            min_confidence_to_auto_accept=(
                self._config.min_confidence_to_auto_accept
            ),
        )
        await _audit(AuditStep.DECIDE, decision.reasoning)

        memory_updates: list[str] = []
        if human_correction is not None:
            learned = await learn_from_correction(
                self._store,
                invoice,
                applied.normalized,
                human_correction,
                decision.requires_human_review,
            )
            memory_updates = learned.memory_updates
            await _audit(AuditStep.LEARN, learned.reasoning)

        logger.info(
            "Invoice %s from %s: review=%s confidence=%.2f corrections=%d",
            invoice.invoice_number,
            invoice.vendor,
            decision.requires_human_review,
            decision.confidence_score,
            len(applied.proposed_corrections),
        )
        return PipelineOutput(
            normalized_invoice=applied.normalized,
            proposed_corrections=applied.proposed_corrections,
            requires_human_review=decision.requires_human_review,
            reasoning=" | ".join(
                part for part in (apply_reasoning, decision.reasoning) if part
            ),
            confidence_score=decision.confidence_score,
            memory_updates=memory_updates,
            audit_trail=trail,
        )
