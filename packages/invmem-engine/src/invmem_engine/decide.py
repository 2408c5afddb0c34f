"""Decide stage: auto-accept or route to human review."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from invmem_engine.keys import SERVICE_DATE_KEY
from invmem_engine.recall import find_memory

if TYPE_CHECKING:
    from invmem_core.types import Invoice

    from invmem_engine.recall import RecallResult

DEFAULT_REASONING = "Standard decision flow"


@dataclass(frozen=True, slots=True)
class Decision:
    requires_human_review: bool
    confidence_score: float
    reasoning: str


def decide_review(
    normalized: Invoice,
    proposed_corrections: list[str],
    recalled: RecallResult,
    applied_confidence: float,
    *,
    min_confidence_to_apply: float = 0.45,
    min_confidence_to_auto_accept: float = 0.7,
) -> Decision:
    """Gate the normalized invoice on confidence and proposed corrections.

    Any proposed correction sends the invoice to review. A known
    service-date mapping that could not be applied also forces review,
    unless the later confidence checks auto-accept.
    """
    has_corrections = bool(proposed_corrections)
    requires_review = has_corrections
    score = applied_confidence
    parts: list[str] = []

    if (
        not normalized.service_date
        and find_memory(recalled.vendor_memories, SERVICE_DATE_KEY) is not None
    ):
        requires_review = True
        parts.append(
            "Service date missing; vendor memory exists but not applied"
        )

    if applied_confidence >= min_confidence_to_auto_accept and not has_corrections:
        requires_review = False
        score = applied_confidence
        parts.append("High confidence and no corrections; auto-accept")
    elif applied_confidence >= min_confidence_to_apply and not has_corrections:
        requires_review = False
        parts.append("Moderate confidence; no corrections; auto-accept")
    elif has_corrections:
        requires_review = True
        score = max(score, min_confidence_to_apply)
        parts.append("Corrections proposed; send to human for confirmation")

    return Decision(
        requires_human_review=requires_review,
        confidence_score=score,
        reasoning=" | ".join(parts) or DEFAULT_REASONING,
    )
