"""
Ingestion package: x402 payment events -> transaction store.

Facilitator allow-list and the adapter that validates, de-duplicates and
replay-checks each event before it becomes an immutable transaction row.
"""

from backend_trustscore.ingestion.facilitators import (
    BASE_FACILITATORS,
    default_facilitator_addresses,
    facilitator_provider,
)
from backend_trustscore.ingestion.adapter import (
    IngestionAdapter,
    IngestionOutcome,
    IngestionStats,
    PaymentEvent,
)

__all__ = [
    "BASE_FACILITATORS",
    "default_facilitator_addresses",
    "facilitator_provider",
    "IngestionAdapter",
    "IngestionOutcome",
    "IngestionStats",
    "PaymentEvent",
]
