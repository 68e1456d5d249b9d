"""
Application-level exceptions.

- InvalidInputError: malformed address or out-of-range configuration; raised
  synchronously before any detector or scorer work starts.
- DetectorFailure: one detector raised; recorded by the rule set and never
  propagated out of a rule-set run.
- PersistenceError: a store read/write failed; surfaced to the caller of that
  specific operation.
- IngestionRejected: malformed or unauthorized chain event; the ingestion
  adapter catches it and discards the event with a warning.
- AuthorizationReplay: the store already holds the (payer, nonce) pair under
  another tx hash; the ingestion adapter counts it as a replay.

"Not found" is deliberately not an exception: absent reputation yields the
neutral default and absent flags yield an empty list.
"""

from __future__ import annotations


class TrustScoreError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(TrustScoreError, ValueError):
    """Malformed address or out-of-range configuration value."""


class DetectorFailure(TrustScoreError):
    """A single detector raised during a rule-set run."""

    def __init__(self, detector: str, cause: BaseException) -> None:
        super().__init__(f"detector {detector} failed: {cause}")
        self.detector = detector
        self.cause = cause


class PersistenceError(TrustScoreError):
    """A store operation failed; no partial state was committed."""


class IngestionRejected(TrustScoreError):
    """A chain event was malformed or came from an unrecognized facilitator."""

    def __init__(self, reason: str, *, tx_hash: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.tx_hash = tx_hash


class AuthorizationReplay(TrustScoreError):
    """The payer's authorization nonce is already stored under another tx hash."""

    def __init__(self, from_address: str, nonce: str, *, tx_hash: str | None = None) -> None:
        super().__init__(f"authorization nonce {nonce} from {from_address} already used")
        self.from_address = from_address
        self.nonce = nonce
        self.tx_hash = tx_hash
