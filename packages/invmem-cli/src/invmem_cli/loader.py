"""Load ``[{invoice, human?}]`` demo entries from a JSON file."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from invmem_core.errors import InputError
from invmem_core.types import Invoice, InvoiceCorrection

_HUMAN_KEYS = ("human", "human_correction", "humanCorrection")


@dataclass(frozen=True, slots=True)
class DemoEntry:
    invoice: Invoice
    human: InvoiceCorrection | None = None


def parse_entries(raw: object) -> list[DemoEntry]:
    """Build demo entries from decoded JSON.

    Raises:
        InputError: If the payload is not a list of entry objects.
        MalformedInvoiceError: If an invoice lacks vendor or number.
    """
    if not isinstance(raw, list):
        msg = "Demo data must be a JSON array of {invoice, human?} objects"
        raise InputError(msg)

    entries: list[DemoEntry] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or "invoice" not in item:
            msg = f"Entry #{index + 1} has no 'invoice' object"
            raise InputError(msg)
        human_raw = next(
            (item[k] for k in _HUMAN_KEYS if item.get(k) is not None),
            None,
        )
        entries.append(DemoEntry(
            invoice=Invoice.from_dict(item["invoice"]),
            human=(
                InvoiceCorrection.from_dict(human_raw)
                if human_raw is not None else None
            ),
        ))
    return entries


def load_entries(path: Path | str) -> list[DemoEntry]:
    """Read and parse demo entries from *path*."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read demo data {path}: {exc}"
        raise InputError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"Demo data {path} is not valid JSON: {exc}"
        raise InputError(msg) from exc
    return parse_entries(raw)
