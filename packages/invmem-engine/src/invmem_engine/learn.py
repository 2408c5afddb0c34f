"""Learn stage: turn a human correction into reinforced memories.

Each rule checks one signal in the correction against the raw and the
normalized invoice and, when it fires, upserts exactly one memory with a
fixed starting confidence. Repeated corrections reinforce the same memory
rather than adding rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from invmem_core.logging import get_logger
from invmem_core.types import MemoryKind

from invmem_engine.keys import (
    AUTO_ACCEPT_KEY,
    CURRENCY_KEY,
    DEFAULT_FREIGHT_SKU,
    FREIGHT_PATTERN,
    FREIGHT_SKU_KEY,
    PO_DEFAULT_KEY,
    SERVICE_DATE_KEY,
    SERVICE_DATE_SOURCE_FIELD,
    SKONTO_KEY,
    SKONTO_PATTERN,
    VAT_INCLUSIVE_KEY,
    duplicate_key,
)

if TYPE_CHECKING:
    from invmem_core.types import Invoice, InvoiceCorrection
    from invmem_store import MemoryStore

logger = get_logger("engine.learn")

# Starting confidence per learned rule
_SERVICE_DATE_CONFIDENCE = 0.8
_CURRENCY_CONFIDENCE = 0.6
_VAT_INCLUSIVE_CONFIDENCE = 0.5
_PO_DEFAULT_CONFIDENCE = 0.6
_FREIGHT_SKU_CONFIDENCE = 0.6
_SKONTO_CONFIDENCE = 0.5
_AUTO_ACCEPT_CONFIDENCE = 0.4
_DUPLICATE_CONFIDENCE = 0.9

NO_LEARNING_REASONING = "No learnable signal in human correction"


@dataclass(frozen=True, slots=True)
class LearnResult:
    memory_updates: list[str] = field(default_factory=list)
    reasoning: str = NO_LEARNING_REASONING


class _Learner:
    def __init__(self, store: MemoryStore, vendor: str) -> None:
        self._store = store
        self._vendor = vendor
        self.updates: list[str] = []
        self.reasoning: list[str] = []

    async def reinforce(
        self,
        kind: MemoryKind,
        key: str,
        value: str,
        confidence: float,
        reason: str,
    ) -> None:
        record = await self._store.upsert_memory(
            kind, self._vendor, key, value, confidence
        )
        self.updates.append(
            f"{kind.value}:{key} -> {value} (conf {record.confidence:.2f})"
        )
        self.reasoning.append(reason)


async def learn_from_correction(
    store: MemoryStore,
    original: Invoice,
    normalized: Invoice,
    human: InvoiceCorrection,
    requires_human_review: bool,
) -> LearnResult:
    """Reinforce memories for every signal the human correction confirms.

    Args:
        store: Store the memories are written to.
        original: The invoice as it arrived.
        normalized: The invoice after the apply stage.
        human: The human's corrected view of the invoice.
        requires_human_review: Outcome of the decide stage for this run.
    """
    learner = _Learner(store, original.vendor)
    vendor_fields = original.vendor_fields or {}
    raw_text = (original.raw_text or "").lower()

    if (
        human.service_date
        and not normalized.service_date
        and vendor_fields.get(SERVICE_DATE_SOURCE_FIELD)
    ):
        await learner.reinforce(
            MemoryKind.VENDOR,
            SERVICE_DATE_KEY,
            SERVICE_DATE_SOURCE_FIELD,
            _SERVICE_DATE_CONFIDENCE,
            f"Learned mapping {SERVICE_DATE_SOURCE_FIELD} -> serviceDate",
        )

    if (
        human.currency
        and not normalized.currency
        and human.currency.lower() in raw_text
    ):
        await learner.reinforce(
            MemoryKind.VENDOR,
            CURRENCY_KEY,
            human.currency,
            _CURRENCY_CONFIDENCE,
            "Learned currency recovery from raw text",
        )

    if human.vat_inclusive_hint and original.vat_inclusive_hint:
        await learner.reinforce(
            MemoryKind.VENDOR,
            VAT_INCLUSIVE_KEY,
            "true",
            _VAT_INCLUSIVE_CONFIDENCE,
            "Reinforced VAT inclusive handling",
        )

    if human.po_number and not normalized.po_number:
        await learner.reinforce(
            MemoryKind.VENDOR,
            PO_DEFAULT_KEY,
            human.po_number,
            _PO_DEFAULT_CONFIDENCE,
            "Recorded PO match preference for vendor",
        )

    if human.items and normalized.items:
        freight = next(
            (
                item for item in human.items
                if FREIGHT_PATTERN in (item.description or "").lower()
            ),
            None,
        )
        if freight is not None:
            await learner.reinforce(
                MemoryKind.CORRECTION,
                FREIGHT_SKU_KEY,
                freight.sku or DEFAULT_FREIGHT_SKU,
                _FREIGHT_SKU_CONFIDENCE,
                "Mapped freight description to SKU from human feedback",
            )

    if SKONTO_PATTERN in raw_text:
        await learner.reinforce(
            MemoryKind.VENDOR,
            SKONTO_KEY,
            "Skonto terms noted",
            _SKONTO_CONFIDENCE,
            "Captured skonto terms as known pattern",
        )

    if not requires_human_review:
        await learner.reinforce(
            MemoryKind.RESOLUTION,
            AUTO_ACCEPT_KEY,
            original.invoice_number,
            _AUTO_ACCEPT_CONFIDENCE,
            "Recorded auto-accept resolution",
        )

    if (
        human.invoice_number == original.invoice_number
        and human.vendor == original.vendor
        and human.issue_date == original.issue_date
    ):
        await learner.reinforce(
            MemoryKind.RESOLUTION,
            duplicate_key(original.vendor, original.invoice_number),
            "true",
            _DUPLICATE_CONFIDENCE,
            "Recorded duplicate detection",
        )

    logger.debug(
        "Learned %d memory update(s) for %s %s",
        len(learner.updates),
        original.vendor,
        original.invoice_number,
    )
    return LearnResult(
        memory_updates=learner.updates,
        reasoning=" | ".join(learner.reasoning) or NO_LEARNING_REASONING,
    )
