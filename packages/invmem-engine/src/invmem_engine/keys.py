"""Memory keys shared by the apply, decide and learn stages."""
from __future__ import annotations

# vendor memories
SERVICE_DATE_KEY = "serviceDateFromLeistungsdatum"
CURRENCY_KEY = "currencyFromRawText"
PO_DEFAULT_KEY = "poDefault"
VAT_INCLUSIVE_KEY = "vatInclusiveHint"
SKONTO_KEY = "skontoTerms"

# correction memories
FREIGHT_SKU_KEY = "freightSku"

# resolution memories
AUTO_ACCEPT_KEY = "autoAccept"
_DUPLICATE_PREFIX = "duplicate:"

# Vendor-specific field that carries the service date on German invoices
SERVICE_DATE_SOURCE_FIELD = "Leistungsdatum"
FREIGHT_PATTERN = "freight"
SKONTO_PATTERN = "skonto"
DEFAULT_FREIGHT_SKU = "FREIGHT"


def duplicate_key(vendor: str, invoice_number: str) -> str:
    """Resolution key marking a (vendor, invoice number) pair as seen."""
    return f"{_DUPLICATE_PREFIX}{vendor}|{invoice_number}"
