"""
Database abstraction layer: transaction store, fraud flags, reputation snapshots.

MVP uses SQLite via Database and get_database(); backend is swappable for PostgreSQL.
"""

from backend_trustscore.database.database import (
    Database,
    DatabaseBackend,
    SQLiteBackend,
    get_database,
)
from backend_trustscore.database.models import (
    AgentReputation,
    Badge,
    FraudFlag,
    FraudType,
    RiskLevel,
    ServiceReputation,
    Transaction,
    TrustLevel,
    WebhookSubscription,
)

__all__ = [
    "Database",
    "DatabaseBackend",
    "SQLiteBackend",
    "get_database",
    "AgentReputation",
    "Badge",
    "FraudFlag",
    "FraudType",
    "RiskLevel",
    "ServiceReputation",
    "Transaction",
    "TrustLevel",
    "WebhookSubscription",
]
