from __future__ import annotations

import enum
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from invmem_core.errors import MalformedInvoiceError

# ── Memory Types ─────────────────────────────────────────────────────

class MemoryKind(enum.Enum):
    VENDOR = "vendor"
    CORRECTION = "correction"
    RESOLUTION = "resolution"


DEFAULT_DECAY_RATE = 0.01


@dataclass(frozen=True, slots=True)
class MemoryRecord:
    """A learned fact, scoped by kind and optionally by vendor.

    Attributes:
        id: Row id assigned by the store on insert
        kind: Which pipeline rule family the fact belongs to
        vendor: Vendor the fact is scoped to, or None for all vendors
        key: Identifies the fact within (kind, vendor)
        value: String payload
        confidence: Support score in [0, 1]
        hits: Number of times the fact was written (starts at 1)
        decay_rate: Per-day exponential decay factor
        created_at: Unix timestamp of the first write
        last_updated: Unix timestamp of the last reinforcement or decay
    """

    id: int
    kind: MemoryKind
    vendor: str | None
    key: str
    value: str
    confidence: float
    hits: int = 1
    decay_rate: float = DEFAULT_DECAY_RATE
    created_at: float = field(default_factory=time.time)
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "vendor": self.vendor,
            "key": self.key,
            "value": self.value,
            "confidence": self.confidence,
            "hits": self.hits,
            "decay_rate": self.decay_rate,
            "created_at": self.created_at,
            "last_updated": self.last_updated,
        }


# ── Audit Types ──────────────────────────────────────────────────────

class AuditStep(enum.Enum):
    RECALL = "recall"
    APPLY = "apply"
    DECIDE = "decide"
    LEARN = "learn"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """One line of the decision trail, written once per pipeline stage."""
    step: AuditStep
    timestamp: str
    details: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "timestamp": self.timestamp,
            "details": self.details,
        }


# ── Invoice Types ────────────────────────────────────────────────────

# camelCase names used by exported invoice JSON
_INVOICE_ALIASES = {
    "invoiceNumber": "invoice_number",
    "issueDate": "issue_date",
    "serviceDate": "service_date",
    "poNumber": "po_number",
    "totalNet": "total_net",
    "totalGross": "total_gross",
    "vatRate": "vat_rate",
    "vatInclusiveHint": "vat_inclusive_hint",
    "rawText": "raw_text",
    "vendorFields": "vendor_fields",
    "unitPrice": "unit_price",
}


def _canonical_keys(data: Mapping[str, Any], what: str) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        msg = f"{what} must be a JSON object, got {type(data).__name__}"
        raise MalformedInvoiceError(msg)
    return {_INVOICE_ALIASES.get(k, k): v for k, v in data.items()}


_STRING_FIELDS = frozenset({
    "vendor", "invoice_number", "id", "issue_date", "service_date",
    "po_number", "currency", "raw_text", "sku", "description",
})
_NUMBER_FIELDS = frozenset({
    "total_net", "total_gross", "vat_rate", "quantity", "unit_price",
})
_BOOL_FIELDS = frozenset({"vat_inclusive_hint"})


def _check_field_types(kwargs: dict[str, Any], what: str) -> None:
    """Reject scalar fields whose JSON type does not match the model."""
    for name, value in kwargs.items():
        if value is None:
            continue
        if name in _STRING_FIELDS:
            ok = isinstance(value, str)
            expected = "a string"
        elif name in _NUMBER_FIELDS:
            ok = isinstance(value, int | float) and not isinstance(value, bool)
            expected = "a number"
        elif name in _BOOL_FIELDS:
            ok = isinstance(value, bool)
            expected = "a boolean"
        else:
            continue
        if not ok:
            msg = f"{what} field {name!r} must be {expected}, got {value!r}"
            raise MalformedInvoiceError(msg)


def _prune(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True, slots=True)
class LineItem:
    sku: str | None = None
    description: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    currency: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LineItem:
        raw = _canonical_keys(data, "Line item")
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in raw.items() if k in known}
        _check_field_types(kwargs, "Line item")
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "sku": self.sku,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "currency": self.currency,
        })


def _invoice_kwargs(
    raw: dict[str, Any], known: set[str], what: str
) -> dict[str, Any]:
    kwargs = {k: v for k, v in raw.items() if k in known}
    _check_field_types(kwargs, what)
    if kwargs.get("items") is not None:
        items = kwargs["items"]
        if not isinstance(items, list | tuple):
            msg = "Invoice items must be a list"
            raise MalformedInvoiceError(msg)
        kwargs["items"] = tuple(LineItem.from_dict(i) for i in items)
    if kwargs.get("vendor_fields") is not None:
        vendor_fields = kwargs["vendor_fields"]
        if not isinstance(vendor_fields, Mapping):
            msg = "Invoice vendorFields must be an object"
            raise MalformedInvoiceError(msg)
        kwargs["vendor_fields"] = dict(vendor_fields)
    return kwargs


@dataclass(frozen=True, slots=True)
class Invoice:
    """A raw or normalized invoice.

    Only ``vendor`` and ``invoice_number`` are required; they scope every
    memory lookup. A normalized invoice is the same shape after field
    filling.
    """

    vendor: str
    invoice_number: str
    id: str | None = None
    issue_date: str | None = None
    service_date: str | None = None
    po_number: str | None = None
    currency: str | None = None
    total_net: float | None = None
    total_gross: float | None = None
    vat_rate: float | None = None
    vat_inclusive_hint: bool | None = None
    items: tuple[LineItem, ...] | None = None
    raw_text: str | None = None
    vendor_fields: dict[str, str | int | float | bool | None] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Invoice:
        raw = _canonical_keys(data, "Invoice")
        missing = [k for k in ("vendor", "invoice_number") if not raw.get(k)]
        if missing:
            msg = f"Invoice is missing required field(s): {', '.join(missing)}"
            raise MalformedInvoiceError(msg)
        known = {f.name for f in fields(cls)}
        return cls(**_invoice_kwargs(raw, known, "Invoice"))

    def to_dict(self) -> dict[str, Any]:
        return _prune({
            "id": self.id,
            "vendor": self.vendor,
            "invoice_number": self.invoice_number,
            "issue_date": self.issue_date,
            "service_date": self.service_date,
            "po_number": self.po_number,
            "currency": self.currency,
            "total_net": self.total_net,
            "total_gross": self.total_gross,
            "vat_rate": self.vat_rate,
            "vat_inclusive_hint": self.vat_inclusive_hint,
            "items": (
                [i.to_dict() for i in self.items]
                if self.items is not None else None
            ),
            "raw_text": self.raw_text,
            "vendor_fields": self.vendor_fields,
        })


@dataclass(frozen=True, slots=True)
class InvoiceCorrection:
    """A human's partial view of how an invoice should have looked."""

    vendor: str | None = None
    invoice_number: str | None = None
    id: str | None = None
    issue_date: str | None = None
    service_date: str | None = None
    po_number: str | None = None
    currency: str | None = None
    total_net: float | None = None
    total_gross: float | None = None
    vat_rate: float | None = None
    vat_inclusive_hint: bool | None = None
    items: tuple[LineItem, ...] | None = None
    raw_text: str | None = None
    vendor_fields: dict[str, str | int | float | bool | None] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InvoiceCorrection:
        raw = _canonical_keys(data, "Correction")
        known = {f.name for f in fields(cls)}
        return cls(**_invoice_kwargs(raw, known, "Correction"))


# ── Pipeline Types ───────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class PipelineOutput:
    """Result of one Recall → Apply → Decide → Learn run."""
    normalized_invoice: Invoice
    proposed_corrections: list[str]
    requires_human_review: bool
    reasoning: str
    confidence_score: float
    memory_updates: list[str] = field(default_factory=list)
    audit_trail: list[AuditEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalized_invoice": self.normalized_invoice.to_dict(),
            "proposed_corrections": list(self.proposed_corrections),
            "requires_human_review": self.requires_human_review,
            "reasoning": self.reasoning,
            "confidence_score": self.confidence_score,
            "memory_updates": list(self.memory_updates),
            "audit_trail": [e.to_dict() for e in self.audit_trail],
        }
