from __future__ import annotations

import pytest
from invmem_core.types import Invoice, InvoiceCorrection, LineItem, MemoryKind
from invmem_engine import learn_from_correction
from invmem_engine.keys import (
    AUTO_ACCEPT_KEY,
    CURRENCY_KEY,
    FREIGHT_SKU_KEY,
    PO_DEFAULT_KEY,
    SERVICE_DATE_KEY,
    SKONTO_KEY,
    VAT_INCLUSIVE_KEY,
    duplicate_key,
)
from invmem_engine.learn import NO_LEARNING_REASONING
from invmem_store import MemoryStore

VENDOR = "Parts AG"


def _invoice(**overrides) -> Invoice:
    return Invoice(
        **{
            "vendor": VENDOR,
            "invoice_number": "PA-1",
            "issue_date": "2024-01-20",
            **overrides,
        }
    )


async def _learn(
    store: MemoryStore,
    invoice: Invoice,
    human: InvoiceCorrection,
    requires_human_review: bool = True,
):
    return await learn_from_correction(
        store, invoice, invoice, human, requires_human_review
    )


class TestLearnRules:
    async def test_service_date_mapping(self, memory_store: MemoryStore):
        invoice = _invoice(vendor_fields={"Leistungsdatum": "2024-01-10"})

        result = await _learn(
            memory_store, invoice, InvoiceCorrection(service_date="2024-01-10")
        )

        record = await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, SERVICE_DATE_KEY
        )
        assert record.value == "Leistungsdatum"
        assert record.confidence == pytest.approx(0.8)
        assert result.memory_updates == [
            f"vendor:{SERVICE_DATE_KEY} -> Leistungsdatum (conf 0.80)",
        ]
        assert result.reasoning == (
            "Learned mapping Leistungsdatum -> serviceDate"
        )

    async def test_service_date_needs_source_field(
        self, memory_store: MemoryStore
    ):
        result = await _learn(
            memory_store, _invoice(),
            InvoiceCorrection(service_date="2024-01-10"),
        )

        assert result.memory_updates == []
        assert result.reasoning == NO_LEARNING_REASONING

    async def test_currency_recovered_from_raw_text(
        self, memory_store: MemoryStore
    ):
        invoice = _invoice(raw_text="Zahlbar in EUR.")

        result = await _learn(
            memory_store, invoice, InvoiceCorrection(currency="EUR")
        )

        record = await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, CURRENCY_KEY
        )
        assert record.value == "EUR"
        assert record.confidence == pytest.approx(0.6)
        assert result.reasoning == "Learned currency recovery from raw text"

    async def test_currency_not_in_raw_text_is_not_learned(
        self, memory_store: MemoryStore
    ):
        invoice = _invoice(raw_text="Zahlbar in CHF.")

        await _learn(memory_store, invoice, InvoiceCorrection(currency="EUR"))

        assert await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, CURRENCY_KEY
        ) is None

    async def test_vat_inclusive(self, memory_store: MemoryStore):
        invoice = _invoice(vat_inclusive_hint=True)

        await _learn(
            memory_store, invoice, InvoiceCorrection(vat_inclusive_hint=True)
        )

        record = await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, VAT_INCLUSIVE_KEY
        )
        assert record.value == "true"
        assert record.confidence == pytest.approx(0.5)

    async def test_po_default(self, memory_store: MemoryStore):
        await _learn(
            memory_store, _invoice(), InvoiceCorrection(po_number="PO-4410")
        )

        record = await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, PO_DEFAULT_KEY
        )
        assert record.value == "PO-4410"
        assert record.confidence == pytest.approx(0.6)

    async def test_po_already_present_is_not_learned(
        self, memory_store: MemoryStore
    ):
        await _learn(
            memory_store,
            _invoice(po_number="PO-1"),
            InvoiceCorrection(po_number="PO-4410"),
        )

        assert await memory_store.list_memories() == []

    async def test_freight_sku_from_first_freight_line(
        self, memory_store: MemoryStore
    ):
        invoice = _invoice(items=(LineItem(description="Freight"),))
        human = InvoiceCorrection(items=(
            LineItem(sku="WIDGET-1", description="Widget"),
            LineItem(sku="FREIGHT-STD", description="Freight and handling"),
            LineItem(sku="FREIGHT-EXP", description="Express freight"),
        ))

        result = await _learn(memory_store, invoice, human)

        record = await memory_store.get_memory(
            MemoryKind.CORRECTION, VENDOR, FREIGHT_SKU_KEY
        )
        assert record.value == "FREIGHT-STD"
        assert record.hits == 1
        assert record.confidence == pytest.approx(0.6)
        assert len(result.memory_updates) == 1

    async def test_freight_without_sku_uses_default(
        self, memory_store: MemoryStore
    ):
        invoice = _invoice(items=(LineItem(description="Freight"),))
        human = InvoiceCorrection(items=(LineItem(description="Freight"),))

        await _learn(memory_store, invoice, human)

        record = await memory_store.get_memory(
            MemoryKind.CORRECTION, VENDOR, FREIGHT_SKU_KEY
        )
        assert record.value == "FREIGHT"

    async def test_skonto_from_raw_text(self, memory_store: MemoryStore):
        invoice = _invoice(raw_text="2% Skonto bei Zahlung in 10 Tagen.")

        result = await _learn(memory_store, invoice, InvoiceCorrection())

        record = await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, SKONTO_KEY
        )
        assert record.value == "Skonto terms noted"
        assert record.confidence == pytest.approx(0.5)
        assert result.reasoning == "Captured skonto terms as known pattern"

    async def test_auto_accept_recorded_when_no_review(
        self, memory_store: MemoryStore
    ):
        await _learn(
            memory_store, _invoice(), InvoiceCorrection(),
            requires_human_review=False,
        )

        record = await memory_store.get_memory(
            MemoryKind.RESOLUTION, VENDOR, AUTO_ACCEPT_KEY
        )
        assert record.value == "PA-1"
        assert record.confidence == pytest.approx(0.4)

    async def test_duplicate_recorded_on_matching_identity(
        self, memory_store: MemoryStore
    ):
        human = InvoiceCorrection(
            vendor=VENDOR, invoice_number="PA-1", issue_date="2024-01-20"
        )

        result = await _learn(memory_store, _invoice(), human)

        record = await memory_store.get_memory(
            MemoryKind.RESOLUTION, VENDOR, duplicate_key(VENDOR, "PA-1")
        )
        assert record.value == "true"
        assert record.confidence == pytest.approx(0.9)
        assert result.reasoning == "Recorded duplicate detection"

    async def test_identity_mismatch_records_no_duplicate(
        self, memory_store: MemoryStore
    ):
        human = InvoiceCorrection(
            vendor=VENDOR, invoice_number="PA-1", issue_date="2024-01-21"
        )

        await _learn(memory_store, _invoice(), human)

        assert await memory_store.list_memories() == []

    async def test_multiple_rules_join_reasoning_in_order(
        self, memory_store: MemoryStore
    ):
        invoice = _invoice(
            raw_text="Zahlbar in EUR. Skonto 2%.", vat_inclusive_hint=True
        )
        human = InvoiceCorrection(currency="EUR", vat_inclusive_hint=True)

        result = await _learn(memory_store, invoice, human)

        assert result.reasoning == (
            "Learned currency recovery from raw text"
            " | Reinforced VAT inclusive handling"
            " | Captured skonto terms as known pattern"
        )
        assert len(result.memory_updates) == 3

    async def test_repeated_correction_reinforces(
        self, memory_store: MemoryStore
    ):
        for _ in range(2):
            await _learn(
                memory_store, _invoice(), InvoiceCorrection(po_number="PO-1")
            )

        record = await memory_store.get_memory(
            MemoryKind.VENDOR, VENDOR, PO_DEFAULT_KEY
        )
        assert record.hits == 2
        assert record.confidence == pytest.approx(min(1.0, 0.6 * 0.99 + 0.6))
