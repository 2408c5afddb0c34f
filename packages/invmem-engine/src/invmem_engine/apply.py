"""Apply stage: map recalled memories onto a normalized invoice.

Rules run in a fixed order and each contributes reasoning lines and,
where it changes or flags the invoice, a proposed correction:

1. Field fills from vendor memories (never overwrite a present value)
2. Net total from gross for vendors known to quote VAT-inclusive amounts
3. Freight line items mapped to a learned SKU
4. Potential duplicate flag from a prior resolution
5. Known skonto (early payment discount) terms, reasoning only

The stage is a pure function; it never touches the store.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from invmem_engine.keys import (
    CURRENCY_KEY,
    FREIGHT_PATTERN,
    FREIGHT_SKU_KEY,
    PO_DEFAULT_KEY,
    SERVICE_DATE_KEY,
    SERVICE_DATE_SOURCE_FIELD,
    SKONTO_KEY,
    VAT_INCLUSIVE_KEY,
    duplicate_key,
)
from invmem_engine.recall import find_memory

if TYPE_CHECKING:
    from invmem_core.types import Invoice, MemoryRecord

    from invmem_engine.recall import RecallResult


class FillTarget(enum.Enum):
    """Invoice fields a vendor memory may fill."""
    SERVICE_DATE = "service_date"
    CURRENCY = "currency"
    PO_NUMBER = "po_number"


# memory key -> the single field it may fill
FIELD_FILLS: tuple[tuple[str, FillTarget], ...] = (
    (SERVICE_DATE_KEY, FillTarget.SERVICE_DATE),
    (CURRENCY_KEY, FillTarget.CURRENCY),
    (PO_DEFAULT_KEY, FillTarget.PO_NUMBER),
)


@dataclass(frozen=True, slots=True)
class ApplyResult:
    normalized: Invoice
    proposed_corrections: list[str] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    applied_confidence: float = 0.0


def _current_value(invoice: Invoice, target: FillTarget) -> str | None:
    if target is FillTarget.SERVICE_DATE:
        return invoice.service_date
    if target is FillTarget.CURRENCY:
        return invoice.currency
    return invoice.po_number


def _with_value(invoice: Invoice, target: FillTarget, value: str) -> Invoice:
    if target is FillTarget.SERVICE_DATE:
        return replace(invoice, service_date=value)
    if target is FillTarget.CURRENCY:
        return replace(invoice, currency=value)
    return replace(invoice, po_number=value)


def _fill_value(
    invoice: Invoice, target: FillTarget, memory: MemoryRecord
) -> str | None:
    """Resolve the value a memory contributes for *target*.

    The service-date mapping names the vendor field to read from; older
    memories stored the date itself, so fall back to the default field
    when the stored value is not a field name on this invoice.
    """
    if target is not FillTarget.SERVICE_DATE:
        return memory.value or None
    vendor_fields = invoice.vendor_fields or {}
    source = (
        memory.value
        if memory.value in vendor_fields
        else SERVICE_DATE_SOURCE_FIELD
    )
    raw = vendor_fields.get(source)
    if raw is None or raw == "":
        return None
    return str(raw)


def apply_memories(
    invoice: Invoice,
    recalled: RecallResult,
    min_confidence_to_apply: float,
) -> ApplyResult:
    """Apply recalled memories at or above *min_confidence_to_apply*.

    Returns:
        The normalized copy of *invoice*, proposed corrections and reasoning
        in rule order, and the highest confidence of any memory used (0 when
        nothing matched).
    """
    normalized = invoice
    corrections: list[str] = []
    reasoning: list[str] = []
    applied_confidence = 0.0

    for key, target in FIELD_FILLS:
        memory = find_memory(
            recalled.vendor_memories, key, min_confidence_to_apply
        )
        if memory is None or _current_value(normalized, target):
            continue
        value = _fill_value(normalized, target, memory)
        if value is None:
            continue
        normalized = _with_value(normalized, target, value)
        corrections.append(f"Applied vendor memory {key} -> {target.value}")
        reasoning.append(
            f"Vendor memory ({key}) filled {target.value}"
            f" with confidence {memory.confidence:.2f}"
        )
        applied_confidence = max(applied_confidence, memory.confidence)

    vat_hint = find_memory(
        recalled.vendor_memories, VAT_INCLUSIVE_KEY, min_confidence_to_apply
    )
    if vat_hint is not None and normalized.vat_inclusive_hint:
        reasoning.append(
            "VAT inclusive hint recognized with confidence"
            f" {vat_hint.confidence:.2f}"
        )
        applied_confidence = max(applied_confidence, vat_hint.confidence)
        if (
            normalized.total_gross
            and normalized.vat_rate
            and not normalized.total_net
        ):
            normalized = replace(
                normalized,
                total_net=normalized.total_gross / (1 + normalized.vat_rate),
            )
            corrections.append(
                "Computed net from gross using vendor VAT inclusive pattern"
            )

    freight_sku = find_memory(
        recalled.correction_memories, FREIGHT_SKU_KEY, min_confidence_to_apply
    )
    if freight_sku is not None and normalized.items:
        items = []
        for item in normalized.items:
            if FREIGHT_PATTERN in (item.description or "").lower():
                item = replace(item, sku=freight_sku.value)
                reasoning.append(
                    "Mapped freight description to SKU using memory"
                    f" confidence {freight_sku.confidence:.2f}"
                )
                corrections.append("Mapped freight line to SKU from memory")
                applied_confidence = max(
                    applied_confidence, freight_sku.confidence
                )
            items.append(item)
        normalized = replace(normalized, items=tuple(items))

    duplicate = find_memory(
        recalled.resolution_memories,
        duplicate_key(invoice.vendor, invoice.invoice_number),
        min_confidence_to_apply,
    )
    if duplicate is not None:
        reasoning.append(
            "Potential duplicate detected based on prior resolution"
            f" with confidence {duplicate.confidence:.2f}"
        )
        corrections.append("Flagged as potential duplicate")
        applied_confidence = max(applied_confidence, duplicate.confidence)

    skonto = find_memory(
        recalled.vendor_memories, SKONTO_KEY, min_confidence_to_apply
    )
    if skonto is not None:
        reasoning.append(
            f"Known skonto terms recorded: {skonto.value}"
            f" (conf {skonto.confidence:.2f})"
        )
        applied_confidence = max(applied_confidence, skonto.confidence)

    return ApplyResult(
        normalized=normalized,
        proposed_corrections=corrections,
        reasoning=reasoning,
        applied_confidence=applied_confidence,
    )
