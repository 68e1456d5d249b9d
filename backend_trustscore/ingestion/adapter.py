"""
Ingestion adapter: normalized x402 payment events -> transaction store writes.

Check order for each event:
1. shape/format validation (hash, addresses, amount, timestamp) -> REJECTED
2. authorizing facilitator must be on the allow-list -> REJECTED
3. (from_address, nonce) already stored under another hash -> REPLAY
4. insert-or-ignore by tx hash -> INSERTED or DUPLICATE

Rejections are logged as warnings and never raised to the ingestion loop.
Replay suppression is backed by a unique store index, so it holds across
restarts and concurrent writers.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from backend_trustscore.config.settings import IngestionSettings
from backend_trustscore.core.exceptions import AuthorizationReplay, IngestionRejected, PersistenceError
from backend_trustscore.database.database import Database
from backend_trustscore.database.models import Transaction
from backend_trustscore.ingestion.facilitators import facilitator_provider
from backend_trustscore.logging import get_logger
from backend_trustscore.reputation.scorer import AgentReputationScorer, ServiceReputationScorer
from backend_trustscore.utils.address_utils import is_valid_address, is_valid_tx_hash

logger = get_logger(__name__)

# Accepted key spellings per field (camelCase from the chain watcher, snake_case from replays).
_KEYS: dict[str, tuple[str, ...]] = {
    "tx_hash": ("txHash", "tx_hash", "hash"),
    "from_address": ("from", "from_address", "payer"),
    "to_address": ("to", "to_address", "payee"),
    "block_number": ("blockHeight", "block_number", "blockNumber"),
    "timestamp": ("timestamp",),
    "facilitator": ("authorizer", "facilitator", "facilitator_address"),
    "nonce": ("authorizationNonce", "nonce"),
}


def _pick(raw: Mapping[str, Any], name: str) -> Any:
    for key in _KEYS[name]:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_int(value: Any, name: str, tx_hash: str | None) -> int:
    if isinstance(value, bool):
        raise IngestionRejected(f"{name} must be an integer", tx_hash=tx_hash)
    try:
        return int(str(value), 0) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise IngestionRejected(f"{name} is not an integer: {value!r}", tx_hash=tx_hash) from e


class IngestionOutcome(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    REPLAY = "replay"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PaymentEvent:
    """One normalized payment authorization event; addresses lower-cased."""

    tx_hash: str
    from_address: str
    to_address: str
    amount: Decimal
    block_number: int
    timestamp: int
    facilitator: str | None = None
    nonce: str | None = None

    @classmethod
    def from_dict(cls, raw: Any, token_decimals: int = 6, max_amount: Decimal | None = None) -> PaymentEvent:
        """
        Parse a raw event dict.

        Amount is either a decimal "amount" in token units or a raw integer "value"
        in base units scaled by token_decimals. Raises IngestionRejected when malformed
        or when the amount exceeds max_amount.
        """
        if not isinstance(raw, Mapping):
            raise IngestionRejected(f"event must be an object, got {type(raw).__name__}")
        tx_hash = _pick(raw, "tx_hash")
        if not is_valid_tx_hash(tx_hash):
            raise IngestionRejected(f"invalid tx hash: {str(tx_hash)[:80]!r}")
        tx_hash = tx_hash.strip().lower()

        from_address = _pick(raw, "from_address")
        to_address = _pick(raw, "to_address")
        for label, addr in (("from", from_address), ("to", to_address)):
            if not is_valid_address(addr):
                raise IngestionRejected(f"invalid {label} address: {str(addr)[:64]!r}", tx_hash=tx_hash)

        if raw.get("amount") is not None:
            try:
                amount = Decimal(str(raw["amount"]))
            except InvalidOperation as e:
                raise IngestionRejected(f"invalid amount: {raw['amount']!r}", tx_hash=tx_hash) from e
        elif raw.get("value") is not None:
            amount = Decimal(_as_int(raw["value"], "value", tx_hash)).scaleb(-token_decimals)
        else:
            raise IngestionRejected("missing amount/value", tx_hash=tx_hash)
        if not amount.is_finite() or amount < 0:
            raise IngestionRejected(f"amount must be a non-negative number: {amount}", tx_hash=tx_hash)
        if max_amount is not None and amount > max_amount:
            raise IngestionRejected(f"amount {amount} exceeds maximum {max_amount}", tx_hash=tx_hash)

        timestamp = _pick(raw, "timestamp")
        if timestamp is None:
            raise IngestionRejected("missing timestamp", tx_hash=tx_hash)
        timestamp = _as_int(timestamp, "timestamp", tx_hash)
        if timestamp < 0:
            raise IngestionRejected("timestamp must be >= 0", tx_hash=tx_hash)

        block = _pick(raw, "block_number")
        if block is None:
            raise IngestionRejected("missing block height", tx_hash=tx_hash)
        block_number = _as_int(block, "block height", tx_hash)
        if block_number < 0:
            raise IngestionRejected("block height must be >= 0", tx_hash=tx_hash)

        facilitator = _pick(raw, "facilitator")
        nonce = _pick(raw, "nonce")
        return cls(
            tx_hash=tx_hash,
            from_address=from_address.strip().lower(),
            to_address=to_address.strip().lower(),
            amount=amount,
            block_number=block_number,
            timestamp=timestamp,
            facilitator=str(facilitator).strip().lower() if facilitator is not None else None,
            nonce=str(nonce).strip().lower() if nonce is not None else None,
        )

    def to_transaction(self) -> Transaction:
        return Transaction(
            tx_hash=self.tx_hash,
            from_address=self.from_address,
            to_address=self.to_address,
            amount=self.amount,
            block_number=self.block_number,
            timestamp=self.timestamp,
            facilitator_address=self.facilitator,
            nonce=self.nonce,
        )


@dataclass
class IngestionStats:
    """Counters for an ingestion run (or the adapter's lifetime)."""

    received: int = 0
    inserted: int = 0
    duplicates: int = 0
    replays: int = 0
    rejected: int = 0
    errors: int = 0
    refresh_failures: int = 0
    unknown_facilitators: set[str] = field(default_factory=set)

    def record(self, outcome: IngestionOutcome) -> None:
        if outcome is IngestionOutcome.INSERTED:
            self.inserted += 1
        elif outcome is IngestionOutcome.DUPLICATE:
            self.duplicates += 1
        elif outcome is IngestionOutcome.REPLAY:
            self.replays += 1
        else:
            self.rejected += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "received": self.received,
            "inserted": self.inserted,
            "duplicates": self.duplicates,
            "replays": self.replays,
            "rejected": self.rejected,
            "errors": self.errors,
            "refresh_failures": self.refresh_failures,
            "unknown_facilitators": sorted(self.unknown_facilitators),
        }


class IngestionAdapter:
    """Turns payment events into idempotent store writes."""

    def __init__(
        self,
        db: Database,
        settings: IngestionSettings | None = None,
        *,
        service_scorer: ServiceReputationScorer | None = None,
        agent_scorer: AgentReputationScorer | None = None,
    ) -> None:
        self.settings = settings or IngestionSettings()
        self.settings.validate()
        self.db = db
        self.service_scorer = service_scorer
        self.agent_scorer = agent_scorer
        self.stats = IngestionStats()

    def ingest(self, event: Mapping[str, Any] | PaymentEvent) -> IngestionOutcome:
        """
        Validate and store one event.

        Malformed or unauthorized events return REJECTED; PersistenceError from
        the store propagates to the caller.
        """
        self.stats.received += 1
        try:
            payment = event if isinstance(event, PaymentEvent) else PaymentEvent.from_dict(
                event, token_decimals=self.settings.token_decimals, max_amount=self.settings.max_amount
            )
            self._check_facilitator(payment)
        except IngestionRejected as e:
            logger.warning("ingestion_rejected", reason=e.reason, tx_hash=e.tx_hash)
            self.stats.record(IngestionOutcome.REJECTED)
            return IngestionOutcome.REJECTED

        # Fast path; the store's unique (from_address, nonce) index is authoritative.
        if payment.nonce and self.db.has_authorization_nonce(
            payment.from_address, payment.nonce, exclude_tx_hash=payment.tx_hash
        ):
            return self._discard_replay(payment)

        try:
            inserted = self.db.insert_transaction_if_absent(payment.to_transaction())
        except AuthorizationReplay:
            return self._discard_replay(payment)
        if not inserted:
            logger.debug("ingestion_duplicate", tx_hash=payment.tx_hash)
            self.stats.record(IngestionOutcome.DUPLICATE)
            return IngestionOutcome.DUPLICATE

        self.stats.record(IngestionOutcome.INSERTED)
        logger.info(
            "transaction_ingested",
            tx_hash=payment.tx_hash,
            from_address=payment.from_address,
            to_address=payment.to_address,
            amount=str(payment.amount),
            facilitator=payment.facilitator,
            provider=facilitator_provider(payment.facilitator or ""),
        )
        if self.settings.refresh_reputations_on_ingest:
            self._refresh_reputations(payment)
        return IngestionOutcome.INSERTED

    def _discard_replay(self, payment: PaymentEvent) -> IngestionOutcome:
        logger.warning(
            "ingestion_replay_discarded",
            tx_hash=payment.tx_hash,
            from_address=payment.from_address,
            nonce=payment.nonce,
        )
        self.stats.record(IngestionOutcome.REPLAY)
        return IngestionOutcome.REPLAY

    def _check_facilitator(self, payment: PaymentEvent) -> None:
        if payment.facilitator in self.settings.facilitators:
            return
        unknown = payment.facilitator or "<missing>"
        if unknown not in self.stats.unknown_facilitators:
            self.stats.unknown_facilitators.add(unknown)
            logger.warning("ingestion_unknown_facilitator", facilitator=unknown, tx_hash=payment.tx_hash)
        raise IngestionRejected(f"unrecognized facilitator: {unknown}", tx_hash=payment.tx_hash)

    def _refresh_reputations(self, payment: PaymentEvent) -> None:
        # The fact is already committed; a failed refresh is left to the next score sweep.
        for scorer, address in ((self.service_scorer, payment.to_address), (self.agent_scorer, payment.from_address)):
            if scorer is None:
                continue
            try:
                scorer.calculate(address)
            except Exception as e:
                self.stats.refresh_failures += 1
                logger.warning(
                    "ingestion_reputation_refresh_failed",
                    role=scorer.role,
                    address=address,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def ingest_many(self, events: Iterable[Any]) -> IngestionStats:
        """Ingest a batch; never raises. Returns counters for this batch only."""
        batch = IngestionStats()
        before = self.stats
        self.stats = batch
        try:
            for event in events:
                try:
                    self.ingest(event)
                except PersistenceError as e:
                    batch.errors += 1
                    logger.error("ingestion_store_failed", error=str(e))
                except Exception as e:
                    batch.errors += 1
                    logger.exception("ingestion_event_failed", error=str(e), error_type=type(e).__name__)
        except Exception as e:
            batch.errors += 1
            logger.error("ingestion_batch_aborted", error=str(e), error_type=type(e).__name__)
        finally:
            self.stats = before
            _merge_stats(before, batch)
        logger.info("ingestion_batch_complete", **batch.to_dict())
        return batch


def _merge_stats(total: IngestionStats, batch: IngestionStats) -> None:
    total.received += batch.received
    total.inserted += batch.inserted
    total.duplicates += batch.duplicates
    total.replays += batch.replays
    total.rejected += batch.rejected
    total.errors += batch.errors
    total.refresh_failures += batch.refresh_failures
    total.unknown_facilitators |= batch.unknown_facilitators
