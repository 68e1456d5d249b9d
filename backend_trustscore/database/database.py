"""
Database abstraction layer for the transaction store, fraud flags and reputation snapshots.

MVP uses SQLite; designed so the backend can be swapped to PostgreSQL via a
different Backend implementation. All access goes through the abstract interface;
SQL and placeholders are backend-specific (? for SQLite, %s for PostgreSQL).

Every write is a single-row statement in its own short transaction, so each one
is independently atomic and retryable. Any driver error surfaces as PersistenceError.
"""

from __future__ import annotations

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator

from backend_trustscore.core.exceptions import AuthorizationReplay, PersistenceError
from backend_trustscore.database.models import (
    AgentReputation,
    Badge,
    FraudFlag,
    FraudType,
    ServiceReputation,
    Transaction,
    TrustLevel,
    WebhookSubscription,
)
from backend_trustscore.logging import get_logger

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Schema (SQLite). For PostgreSQL: use BIGSERIAL, NUMERIC for amounts, and %s.
# -----------------------------------------------------------------------------

SCHEMA_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tx_hash TEXT NOT NULL UNIQUE,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    amount TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    facilitator_address TEXT,
    nonce TEXT,
    created_at INTEGER
);
CREATE INDEX IF NOT EXISTS ix_transactions_to_ts ON transactions(to_address, timestamp);
CREATE INDEX IF NOT EXISTS ix_transactions_from_ts ON transactions(from_address, timestamp);
DROP INDEX IF EXISTS ix_transactions_from_nonce;
CREATE UNIQUE INDEX IF NOT EXISTS ux_transactions_from_nonce
    ON transactions(from_address, nonce) WHERE nonce IS NOT NULL;
"""

SCHEMA_FRAUD_FLAGS = """
CREATE TABLE IF NOT EXISTS fraud_flags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_address TEXT NOT NULL,
    flag_type TEXT NOT NULL,
    severity INTEGER NOT NULL,
    details TEXT,
    is_resolved INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    resolved_at INTEGER
);
CREATE INDEX IF NOT EXISTS ix_fraud_flags_service ON fraud_flags(service_address, is_resolved);
"""

SCHEMA_SERVICE_REPUTATIONS = """
CREATE TABLE IF NOT EXISTS service_reputations (
    address TEXT PRIMARY KEY,
    reputation_score INTEGER NOT NULL,
    trust_level TEXT NOT NULL,
    badges TEXT NOT NULL,
    total_transactions INTEGER NOT NULL,
    total_volume TEXT NOT NULL,
    unique_payers INTEGER NOT NULL,
    account_age_days INTEGER NOT NULL,
    days_since_last_active INTEGER,
    active_fraud_flags INTEGER NOT NULL,
    last_updated INTEGER
);
"""

SCHEMA_AGENT_REPUTATIONS = """
CREATE TABLE IF NOT EXISTS agent_reputations (
    address TEXT PRIMARY KEY,
    reputation_score INTEGER NOT NULL,
    trust_level TEXT NOT NULL,
    badges TEXT NOT NULL,
    total_payments INTEGER NOT NULL,
    total_spent TEXT NOT NULL,
    unique_services INTEGER NOT NULL,
    account_age_days INTEGER NOT NULL,
    days_since_last_payment INTEGER,
    payment_reliability INTEGER NOT NULL,
    dispute_count INTEGER NOT NULL,
    active_fraud_flags INTEGER NOT NULL,
    last_updated INTEGER
);
"""

SCHEMA_WEBHOOKS = """
CREATE TABLE IF NOT EXISTS webhooks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_address TEXT NOT NULL,
    webhook_url TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    failure_count INTEGER NOT NULL DEFAULT 0,
    last_triggered_at INTEGER,
    created_at INTEGER NOT NULL,
    UNIQUE (service_address, webhook_url)
);
"""

_TX_COLUMNS = (
    "id, tx_hash, from_address, to_address, amount, block_number, timestamp, "
    "facilitator_address, nonce, created_at"
)
_FLAG_COLUMNS = (
    "id, service_address, flag_type, severity, details, is_resolved, created_at, resolved_at"
)
_WEBHOOK_COLUMNS = (
    "id, service_address, webhook_url, is_active, failure_count, last_triggered_at, created_at"
)


# -----------------------------------------------------------------------------
# Abstract backend: swap implementation for PostgreSQL later.
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract interface for persistence; implement for SQLite or PostgreSQL."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    # --- Transactions ---

    @abstractmethod
    def insert_transaction_if_absent(self, tx: Transaction) -> bool:
        """
        Insert-or-ignore by tx_hash. Returns True if a new row was written.

        Raises AuthorizationReplay when (from_address, nonce) is already stored
        under a different tx_hash.
        """
        ...

    @abstractmethod
    def get_transactions_to(self, address: str, since_timestamp: int | None = None) -> list[Transaction]:
        """Transactions received by address (newest first) in one consistent read."""
        ...

    @abstractmethod
    def get_transactions_from(self, address: str, since_timestamp: int | None = None) -> list[Transaction]:
        """Transactions paid by address (newest first) in one consistent read."""
        ...

    @abstractmethod
    def has_authorization_nonce(self, from_address: str, nonce: str, *, exclude_tx_hash: str | None = None) -> bool:
        """True if (from_address, nonce) is already stored under another tx hash."""
        ...

    @abstractmethod
    def list_service_addresses(self) -> list[str]:
        """Distinct payee addresses."""
        ...

    @abstractmethod
    def list_agent_addresses(self) -> list[str]:
        """Distinct payer addresses."""
        ...

    @abstractmethod
    def count_transactions(self) -> int:
        ...

    # --- Fraud flags ---

    @abstractmethod
    def insert_fraud_flag(self, flag: FraudFlag) -> int:
        """Append a flag (never upsert). Returns row id."""
        ...

    @abstractmethod
    def get_fraud_flags(self, address: str, *, include_resolved: bool) -> list[FraudFlag]:
        """Flags for a service address, newest first."""
        ...

    @abstractmethod
    def resolve_fraud_flag(self, flag_id: int, resolved_at: int) -> bool:
        """Mark a flag resolved (external/manual action). Returns True if a row changed."""
        ...

    # --- Reputation snapshots ---

    @abstractmethod
    def upsert_service_reputation(self, snapshot: ServiceReputation) -> None:
        ...

    @abstractmethod
    def get_service_reputation(self, address: str) -> ServiceReputation | None:
        ...

    @abstractmethod
    def upsert_agent_reputation(self, snapshot: AgentReputation) -> None:
        ...

    @abstractmethod
    def get_agent_reputation(self, address: str) -> AgentReputation | None:
        ...

    # --- Webhook subscriptions ---

    @abstractmethod
    def register_webhook(self, service_address: str, url: str, created_at: int) -> int:
        """Add (or re-activate) a subscription. Returns its id."""
        ...

    @abstractmethod
    def get_webhooks(self, service_address: str, *, active_only: bool) -> list[WebhookSubscription]:
        ...

    @abstractmethod
    def mark_webhook_triggered(self, webhook_id: int, triggered_at: int) -> None:
        ...

    @abstractmethod
    def record_webhook_failure(self, webhook_id: int, deactivate_after: int | None) -> None:
        """Increment failure_count; deactivate once it reaches deactivate_after."""
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        tx_hash=row["tx_hash"],
        from_address=row["from_address"],
        to_address=row["to_address"],
        amount=Decimal(row["amount"]),
        block_number=row["block_number"],
        timestamp=row["timestamp"],
        facilitator_address=row["facilitator_address"],
        nonce=row["nonce"],
        created_at=row["created_at"],
    )


def _row_to_webhook(row: sqlite3.Row) -> WebhookSubscription:
    return WebhookSubscription(
        id=row["id"],
        service_address=row["service_address"],
        url=row["webhook_url"],
        is_active=bool(row["is_active"]),
        failure_count=row["failure_count"],
        last_triggered_at=row["last_triggered_at"],
        created_at=row["created_at"],
    )


def _row_to_flag(row: sqlite3.Row) -> FraudFlag:
    return FraudFlag(
        id=row["id"],
        subject_address=row["service_address"],
        flag_type=FraudType(row["flag_type"]),
        severity=row["severity"],
        details=json.loads(row["details"]) if row["details"] else {},
        is_resolved=bool(row["is_resolved"]),
        created_at=row["created_at"],
        resolved_at=row["resolved_at"],
    )


class SQLiteBackend(DatabaseBackend):
    """SQLite implementation; single file, one connection per operation for MVP."""

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open database {self._path}: {e}") from e
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in (
                SCHEMA_TRANSACTIONS,
                SCHEMA_FRAUD_FLAGS,
                SCHEMA_SERVICE_REPUTATIONS,
                SCHEMA_AGENT_REPUTATIONS,
                SCHEMA_WEBHOOKS,
            ):
                cur.executescript(stmt)

    def insert_transaction_if_absent(self, tx: Transaction) -> bool:
        now = int(time.time())
        with self._cursor() as cur:
            try:
                cur.execute(
                    """
                    INSERT INTO transactions
                        (tx_hash, from_address, to_address, amount, block_number, timestamp,
                         facilitator_address, nonce, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tx.tx_hash,
                        tx.from_address,
                        tx.to_address,
                        str(tx.amount),
                        tx.block_number,
                        tx.timestamp,
                        tx.facilitator_address,
                        tx.nonce,
                        now,
                    ),
                )
            except sqlite3.IntegrityError:
                # Same hash wins over the nonce index: a re-delivered fact is a duplicate.
                cur.execute("SELECT 1 FROM transactions WHERE tx_hash = ?", (tx.tx_hash,))
                if cur.fetchone() is not None:
                    return False
                if tx.nonce is None:
                    raise
                raise AuthorizationReplay(tx.from_address, tx.nonce, tx_hash=tx.tx_hash) from None
            return True

    def _get_transactions(self, column: str, address: str, since_timestamp: int | None) -> list[Transaction]:
        sql = f"SELECT {_TX_COLUMNS} FROM transactions WHERE {column} = ?"
        params: list[Any] = [address]
        if since_timestamp is not None:
            sql += " AND timestamp > ?"
            params.append(since_timestamp)
        sql += " ORDER BY timestamp DESC, id DESC"
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_row_to_transaction(row) for row in rows]

    def get_transactions_to(self, address: str, since_timestamp: int | None = None) -> list[Transaction]:
        return self._get_transactions("to_address", address, since_timestamp)

    def get_transactions_from(self, address: str, since_timestamp: int | None = None) -> list[Transaction]:
        return self._get_transactions("from_address", address, since_timestamp)

    def has_authorization_nonce(self, from_address: str, nonce: str, *, exclude_tx_hash: str | None = None) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "SELECT 1 FROM transactions WHERE from_address = ? AND nonce = ? AND tx_hash != ? LIMIT 1",
                (from_address, nonce, exclude_tx_hash or ""),
            )
            return cur.fetchone() is not None

    def list_service_addresses(self) -> list[str]:
        with self._cursor() as cur:
            cur.execute("SELECT DISTINCT to_address FROM transactions ORDER BY to_address")
            return [row["to_address"] for row in cur.fetchall()]

    def list_agent_addresses(self) -> list[str]:
        with self._cursor() as cur:
            cur.execute("SELECT DISTINCT from_address FROM transactions ORDER BY from_address")
            return [row["from_address"] for row in cur.fetchall()]

    def count_transactions(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) AS n FROM transactions")
            return int(cur.fetchone()["n"])

    def insert_fraud_flag(self, flag: FraudFlag) -> int:
        created_at = flag.created_at if flag.created_at is not None else int(time.time())
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO fraud_flags (service_address, flag_type, severity, details, is_resolved, created_at)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (
                    flag.subject_address,
                    flag.flag_type.value,
                    flag.severity,
                    json.dumps(flag.details, default=str),
                    created_at,
                ),
            )
            return cur.lastrowid or 0

    def get_fraud_flags(self, address: str, *, include_resolved: bool) -> list[FraudFlag]:
        sql = f"SELECT {_FLAG_COLUMNS} FROM fraud_flags WHERE service_address = ?"
        if not include_resolved:
            sql += " AND is_resolved = 0"
        sql += " ORDER BY created_at DESC, id DESC"
        with self._cursor() as cur:
            cur.execute(sql, (address,))
            rows = cur.fetchall()
        return [_row_to_flag(row) for row in rows]

    def resolve_fraud_flag(self, flag_id: int, resolved_at: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE fraud_flags SET is_resolved = 1, resolved_at = ? WHERE id = ? AND is_resolved = 0",
                (resolved_at, flag_id),
            )
            return cur.rowcount == 1

    def upsert_service_reputation(self, snapshot: ServiceReputation) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO service_reputations (
                    address, reputation_score, trust_level, badges, total_transactions, total_volume,
                    unique_payers, account_age_days, days_since_last_active, active_fraud_flags, last_updated
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    reputation_score = excluded.reputation_score,
                    trust_level = excluded.trust_level,
                    badges = excluded.badges,
                    total_transactions = excluded.total_transactions,
                    total_volume = excluded.total_volume,
                    unique_payers = excluded.unique_payers,
                    account_age_days = excluded.account_age_days,
                    days_since_last_active = excluded.days_since_last_active,
                    active_fraud_flags = excluded.active_fraud_flags,
                    last_updated = excluded.last_updated
                """,
                (
                    snapshot.address,
                    snapshot.score,
                    snapshot.trust_level.value,
                    json.dumps([b.value for b in snapshot.badges]),
                    snapshot.total_transactions,
                    str(snapshot.total_volume),
                    snapshot.unique_payers,
                    snapshot.account_age_days,
                    snapshot.days_since_last_active,
                    snapshot.active_fraud_flags,
                    snapshot.last_updated,
                ),
            )

    def get_service_reputation(self, address: str) -> ServiceReputation | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM service_reputations WHERE address = ?", (address,))
            row = cur.fetchone()
        if row is None:
            return None
        return ServiceReputation(
            address=row["address"],
            score=row["reputation_score"],
            trust_level=TrustLevel(row["trust_level"]),
            badges=[Badge(b) for b in json.loads(row["badges"])],
            total_transactions=row["total_transactions"],
            total_volume=Decimal(row["total_volume"]),
            unique_payers=row["unique_payers"],
            account_age_days=row["account_age_days"],
            days_since_last_active=row["days_since_last_active"],
            active_fraud_flags=row["active_fraud_flags"],
            last_updated=row["last_updated"],
        )

    def upsert_agent_reputation(self, snapshot: AgentReputation) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO agent_reputations (
                    address, reputation_score, trust_level, badges, total_payments, total_spent,
                    unique_services, account_age_days, days_since_last_payment, payment_reliability,
                    dispute_count, active_fraud_flags, last_updated
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    reputation_score = excluded.reputation_score,
                    trust_level = excluded.trust_level,
                    badges = excluded.badges,
                    total_payments = excluded.total_payments,
                    total_spent = excluded.total_spent,
                    unique_services = excluded.unique_services,
                    account_age_days = excluded.account_age_days,
                    days_since_last_payment = excluded.days_since_last_payment,
                    payment_reliability = excluded.payment_reliability,
                    dispute_count = excluded.dispute_count,
                    active_fraud_flags = excluded.active_fraud_flags,
                    last_updated = excluded.last_updated
                """,
                (
                    snapshot.address,
                    snapshot.score,
                    snapshot.trust_level.value,
                    json.dumps([b.value for b in snapshot.badges]),
                    snapshot.total_payments,
                    str(snapshot.total_spent),
                    snapshot.unique_services,
                    snapshot.account_age_days,
                    snapshot.days_since_last_payment,
                    snapshot.payment_reliability,
                    snapshot.dispute_count,
                    snapshot.active_fraud_flags,
                    snapshot.last_updated,
                ),
            )

    def get_agent_reputation(self, address: str) -> AgentReputation | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM agent_reputations WHERE address = ?", (address,))
            row = cur.fetchone()
        if row is None:
            return None
        return AgentReputation(
            address=row["address"],
            score=row["reputation_score"],
            trust_level=TrustLevel(row["trust_level"]),
            badges=[Badge(b) for b in json.loads(row["badges"])],
            total_payments=row["total_payments"],
            total_spent=Decimal(row["total_spent"]),
            unique_services=row["unique_services"],
            account_age_days=row["account_age_days"],
            days_since_last_payment=row["days_since_last_payment"],
            payment_reliability=row["payment_reliability"],
            dispute_count=row["dispute_count"],
            active_fraud_flags=row["active_fraud_flags"],
            last_updated=row["last_updated"],
        )

    def register_webhook(self, service_address: str, url: str, created_at: int) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO webhooks (service_address, webhook_url, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(service_address, webhook_url) DO UPDATE SET
                    is_active = 1,
                    failure_count = 0
                """,
                (service_address, url, created_at),
            )
            cur.execute(
                "SELECT id FROM webhooks WHERE service_address = ? AND webhook_url = ?",
                (service_address, url),
            )
            return int(cur.fetchone()["id"])

    def get_webhooks(self, service_address: str, *, active_only: bool) -> list[WebhookSubscription]:
        sql = f"SELECT {_WEBHOOK_COLUMNS} FROM webhooks WHERE service_address = ?"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY id"
        with self._cursor() as cur:
            cur.execute(sql, (service_address,))
            rows = cur.fetchall()
        return [_row_to_webhook(row) for row in rows]

    def mark_webhook_triggered(self, webhook_id: int, triggered_at: int) -> None:
        with self._cursor() as cur:
            cur.execute("UPDATE webhooks SET last_triggered_at = ? WHERE id = ?", (triggered_at, webhook_id))

    def record_webhook_failure(self, webhook_id: int, deactivate_after: int | None) -> None:
        with self._cursor() as cur:
            cur.execute("UPDATE webhooks SET failure_count = failure_count + 1 WHERE id = ?", (webhook_id,))
            if deactivate_after is not None:
                cur.execute(
                    "UPDATE webhooks SET is_active = 0 WHERE id = ? AND failure_count >= ?",
                    (webhook_id, deactivate_after),
                )


# -----------------------------------------------------------------------------
# Database facade: single entrypoint; backend is swappable.
# -----------------------------------------------------------------------------


class Database:
    """
    Database abstraction: transaction store, fraud flags, reputation snapshots.

    Uses a Backend (SQLite for MVP); replace with PostgreSQLBackend when upgrading.
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        self._backend.ensure_schema()

    # --- Transactions ---

    def insert_transaction_if_absent(self, tx: Transaction) -> bool:
        """
        Append a payment fact; replays of an existing tx_hash are ignored. Returns True if inserted.

        A reused (from_address, nonce) under a new hash raises AuthorizationReplay.
        """
        return self._backend.insert_transaction_if_absent(tx)

    def get_transactions_to(self, address: str, since_timestamp: int | None = None) -> list[Transaction]:
        """Recipient-indexed history, newest first; since_timestamp is exclusive."""
        return self._backend.get_transactions_to(address, since_timestamp)

    def get_transactions_from(self, address: str, since_timestamp: int | None = None) -> list[Transaction]:
        """Payer-indexed history, newest first; since_timestamp is exclusive."""
        return self._backend.get_transactions_from(address, since_timestamp)

    def has_authorization_nonce(self, from_address: str, nonce: str, *, exclude_tx_hash: str | None = None) -> bool:
        return self._backend.has_authorization_nonce(from_address, nonce, exclude_tx_hash=exclude_tx_hash)

    def list_service_addresses(self) -> list[str]:
        return self._backend.list_service_addresses()

    def list_agent_addresses(self) -> list[str]:
        return self._backend.list_agent_addresses()

    def count_transactions(self) -> int:
        return self._backend.count_transactions()

    # --- Fraud flags ---

    def insert_fraud_flag(self, flag: FraudFlag) -> int:
        return self._backend.insert_fraud_flag(flag)

    def get_active_fraud_flags(self, address: str) -> list[FraudFlag]:
        """Unresolved flags only; empty list for unknown addresses."""
        return self._backend.get_fraud_flags(address, include_resolved=False)

    def get_all_fraud_flags(self, address: str, include_resolved: bool = True) -> list[FraudFlag]:
        return self._backend.get_fraud_flags(address, include_resolved=include_resolved)

    def resolve_fraud_flag(self, flag_id: int, resolved_at: int | None = None) -> bool:
        """Resolution hook for the external/manual review workflow."""
        resolved_at = resolved_at if resolved_at is not None else int(time.time())
        resolved = self._backend.resolve_fraud_flag(flag_id, resolved_at)
        if resolved:
            logger.info("fraud_flag_resolved", flag_id=flag_id, resolved_at=resolved_at)
        return resolved

    # --- Reputation snapshots ---

    def upsert_service_reputation(self, snapshot: ServiceReputation) -> None:
        self._backend.upsert_service_reputation(snapshot)

    def get_service_reputation(self, address: str) -> ServiceReputation | None:
        return self._backend.get_service_reputation(address)

    def upsert_agent_reputation(self, snapshot: AgentReputation) -> None:
        self._backend.upsert_agent_reputation(snapshot)

    def get_agent_reputation(self, address: str) -> AgentReputation | None:
        return self._backend.get_agent_reputation(address)

    # --- Webhook subscriptions ---

    def register_webhook(self, service_address: str, url: str, created_at: int | None = None) -> int:
        """Subscribe url to one service's fraud alerts; re-registering re-activates it."""
        created_at = created_at if created_at is not None else int(time.time())
        webhook_id = self._backend.register_webhook(service_address, url, created_at)
        logger.info("webhook_registered", webhook_id=webhook_id, address=service_address, url=url)
        return webhook_id

    def get_webhooks(self, service_address: str, active_only: bool = True) -> list[WebhookSubscription]:
        return self._backend.get_webhooks(service_address, active_only=active_only)

    def mark_webhook_triggered(self, webhook_id: int, triggered_at: int | None = None) -> None:
        self._backend.mark_webhook_triggered(
            webhook_id, triggered_at if triggered_at is not None else int(time.time())
        )

    def record_webhook_failure(self, webhook_id: int, deactivate_after: int | None = None) -> None:
        self._backend.record_webhook_failure(webhook_id, deactivate_after)


def get_database(path: str | Path | None = None) -> Database:
    """
    Return a Database instance for MVP (SQLite).

    path: Path to the SQLite file (e.g. "data/trustscore.db"). Default: "trustscore.db" in cwd.
    For PostgreSQL later: use a different factory that builds PostgreSQLBackend from URL.
    """
    if path is None:
        path = Path("trustscore.db")
    backend = SQLiteBackend(path)
    db = Database(backend)
    db.ensure_schema()
    return db
