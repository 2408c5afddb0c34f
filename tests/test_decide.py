from __future__ import annotations

import pytest
from invmem_core.types import Invoice, MemoryKind, MemoryRecord
from invmem_engine import RecallResult, decide_review
from invmem_engine.decide import DEFAULT_REASONING
from invmem_engine.keys import SERVICE_DATE_KEY

VENDOR = "Supplier GmbH"


def _invoice(**overrides) -> Invoice:
    return Invoice(
        **{"vendor": VENDOR, "invoice_number": "INV-1", **overrides}
    )


def _service_date_memory(confidence: float) -> MemoryRecord:
    return MemoryRecord(
        id=1, kind=MemoryKind.VENDOR, vendor=VENDOR, key=SERVICE_DATE_KEY,
        value="Leistungsdatum", confidence=confidence,
    )


class TestDecideReview:
    def test_high_confidence_without_corrections_auto_accepts(self):
        decision = decide_review(_invoice(), [], RecallResult(), 0.75)

        assert decision.requires_human_review is False
        assert decision.confidence_score == pytest.approx(0.75)
        assert decision.reasoning == (
            "High confidence and no corrections; auto-accept"
        )

    def test_moderate_confidence_auto_accepts(self):
        decision = decide_review(_invoice(), [], RecallResult(), 0.5)

        assert decision.requires_human_review is False
        assert decision.confidence_score == pytest.approx(0.5)
        assert decision.reasoning == (
            "Moderate confidence; no corrections; auto-accept"
        )

    @pytest.mark.parametrize("applied_confidence", [0.0, 0.5, 0.95])
    def test_corrections_always_require_review(
        self, applied_confidence: float
    ):
        decision = decide_review(
            _invoice(),
            ["Flagged as potential duplicate"],
            RecallResult(),
            applied_confidence,
        )

        assert decision.requires_human_review is True
        assert decision.confidence_score == pytest.approx(
            max(applied_confidence, 0.45)
        )
        assert decision.reasoning == (
            "Corrections proposed; send to human for confirmation"
        )

    def test_nothing_applied_uses_standard_flow(self):
        decision = decide_review(_invoice(), [], RecallResult(), 0.0)

        assert decision.requires_human_review is False
        assert decision.confidence_score == 0.0
        assert decision.reasoning == DEFAULT_REASONING

    def test_missing_service_date_with_known_mapping_forces_review(self):
        recalled = RecallResult(vendor_memories=[_service_date_memory(0.3)])

        decision = decide_review(_invoice(), [], recalled, 0.0)

        assert decision.requires_human_review is True
        assert decision.reasoning == (
            "Service date missing; vendor memory exists but not applied"
        )

    def test_confident_auto_accept_overrides_missing_service_date(self):
        recalled = RecallResult(vendor_memories=[_service_date_memory(0.3)])

        decision = decide_review(_invoice(), [], recalled, 0.8)

        assert decision.requires_human_review is False
        assert decision.reasoning == (
            "Service date missing; vendor memory exists but not applied"
            " | High confidence and no corrections; auto-accept"
        )

    def test_present_service_date_does_not_force_review(self):
        recalled = RecallResult(vendor_memories=[_service_date_memory(0.3)])

        decision = decide_review(
            _invoice(service_date="2024-01-10"), [], recalled, 0.0
        )

        assert decision.requires_human_review is False

    def test_custom_thresholds(self):
        decision = decide_review(
            _invoice(),
            [],
            RecallResult(),
            0.6,
            min_confidence_to_apply=0.2,
            min_confidence_to_auto_accept=0.55,
        )

        assert decision.reasoning == (
            "High confidence and no corrections; auto-accept"
        )
