"""
Core cross-cutting pieces shared by the store, analysis engine, scorers,
scheduler and ingestion adapter: the error taxonomy lives here.
"""

from backend_trustscore.core.exceptions import (
    AuthorizationReplay,
    DetectorFailure,
    IngestionRejected,
    InvalidInputError,
    PersistenceError,
    TrustScoreError,
)

__all__ = [
    "AuthorizationReplay",
    "DetectorFailure",
    "IngestionRejected",
    "InvalidInputError",
    "PersistenceError",
    "TrustScoreError",
]
