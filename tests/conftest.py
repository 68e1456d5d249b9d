"""
Pytest fixtures for TrustScore tests. Uses a temporary SQLite DB and a fixed clock.
"""

from __future__ import annotations

import itertools
from decimal import Decimal

import pytest

from backend_trustscore.alerts.notifier import Notifier
from backend_trustscore.database import get_database
from backend_trustscore.database.models import Transaction

NOW = 1_700_000_000
DAY = 86400
COINBASE_FACILITATOR = "0xdbdf3d8ed80f84c35d01c6c9f9271761bad90ba6"

_hashes = itertools.count(1)


def address(n: int) -> str:
    """Deterministic lower-case 20-byte address."""
    return f"0x{n:040x}"


SERVICE = address(0xA11CE)
AGENT = address(0xB0B)


def make_tx(
    *,
    to: str = SERVICE,
    frm: str = AGENT,
    amount: str | Decimal = "1.00",
    ts: int = NOW,
    nonce: str | None = None,
    facilitator: str | None = COINBASE_FACILITATOR,
) -> Transaction:
    n = next(_hashes)
    return Transaction(
        tx_hash=f"0x{n:064x}",
        from_address=frm,
        to_address=to,
        amount=Decimal(str(amount)),
        block_number=1000 + n,
        timestamp=ts,
        facilitator_address=facilitator,
        nonce=nonce,
    )


class RecordingNotifier(Notifier):
    """Keeps every (address, finding) it is asked to deliver."""

    def __init__(self) -> None:
        self.calls = []

    def notify(self, subject_address, finding) -> None:
        self.calls.append((subject_address, finding))


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite-backed Database per test."""
    return get_database(tmp_path / "trustscore.db")


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(db):
    """Insert transactions into the test DB; returns them."""

    def _store(*txs: Transaction) -> list[Transaction]:
        for tx in txs:
            assert db.insert_transaction_if_absent(tx)
        return list(txs)

    return _store
