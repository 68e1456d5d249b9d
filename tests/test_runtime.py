"""
Tests for the CLI runtime: JSONL ingestion and one-shot sweeps against a temp DB.
"""

from __future__ import annotations

import json

import pytest

from backend_trustscore.config.settings import Settings
from backend_trustscore.database import get_database
from backend_trustscore.runtime import build_engine, main, read_jsonl
from conftest import AGENT, COINBASE_FACILITATOR, NOW, SERVICE


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ("TRUSTSCORE_CONFIG_PATH", "TRUSTSCORE_VELOCITY_LIMIT", "TRUSTSCORE_WEBHOOK_URLS", "DB_PATH"):
        monkeypatch.delenv(name, raising=False)
    db_path = tmp_path / "runtime.db"
    monkeypatch.setenv("TRUSTSCORE_DB_PATH", str(db_path))
    return db_path


def _write_events(path, n: int = 2) -> None:
    lines = [
        json.dumps(
            {
                "txHash": f"0x{i + 1:064x}",
                "from": AGENT,
                "to": SERVICE,
                "value": "2500000",
                "blockHeight": 500 + i,
                "timestamp": NOW + i,
                "authorizer": COINBASE_FACILITATOR,
            }
        )
        for i in range(n)
    ]
    lines.insert(1, "{broken")
    lines.append("")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_read_jsonl_yields_raw_string_for_bad_lines(tmp_path):
    events = tmp_path / "events.jsonl"
    _write_events(events)
    items = list(read_jsonl(events))
    assert len(items) == 3
    assert items[1] == "{broken"


def test_ingest_file(env, tmp_path):
    events = tmp_path / "events.jsonl"
    _write_events(events)
    assert main(["--ingest", str(events)]) == 0
    db = get_database(env)
    assert db.count_transactions() == 2
    assert str(db.get_transactions_to(SERVICE)[0].amount) == "2.500000"
    assert db.get_service_reputation(SERVICE) is not None


def test_ingest_then_run_now(env, tmp_path):
    events = tmp_path / "events.jsonl"
    _write_events(events)
    assert main(["--ingest", str(events), "--run-now"]) == 0
    db = get_database(env)
    assert db.get_agent_reputation(AGENT).total_payments == 2
    assert db.get_active_fraud_flags(SERVICE) == []


def test_missing_ingest_file(env, tmp_path):
    assert main(["--ingest", str(tmp_path / "nope.jsonl")]) == 2


def test_config_error_exit_code(env, monkeypatch):
    monkeypatch.setenv("TRUSTSCORE_VELOCITY_LIMIT", "0")
    assert main(["--run-now"]) == 2


def test_build_engine_wires_components(tmp_path):
    engine = build_engine(Settings(db_path=tmp_path / "wired.db"), clock=lambda: NOW)
    try:
        assert engine.scheduler.task_names == ["fraud_scan", "score_update"]
        assert engine.aggregator.get_fraud_score(SERVICE).score == 100
        assert engine.matcher.assess(SERVICE, AGENT).score == 50
    finally:
        engine.close()


def test_ingest_file_with_infinite_numbers_keeps_going(env, tmp_path):
    events = tmp_path / "events.jsonl"
    good = {
        "txHash": f"0x{0xAA:064x}",
        "from": AGENT,
        "to": SERVICE,
        "value": "1000000",
        "blockHeight": 900,
        "timestamp": NOW,
        "authorizer": COINBASE_FACILITATOR,
    }
    bad = dict(good, txHash=f"0x{0xAB:064x}")
    bad_line = json.dumps(bad).replace(f'"timestamp": {NOW}', '"timestamp": Infinity')
    events.write_text(bad_line + "\n" + json.dumps(good) + "\n", encoding="utf-8")

    assert main(["--ingest", str(events)]) == 0
    db = get_database(env)
    assert [tx.tx_hash for tx in db.get_transactions_to(SERVICE)] == [good["txHash"]]


def test_register_webhook_cli(env):
    assert main(["--register-webhook", SERVICE, "https://hooks.example/fraud"]) == 0
    (hook,) = get_database(env).get_webhooks(SERVICE)
    assert hook.url == "https://hooks.example/fraud"
    assert main(["--register-webhook", SERVICE, "not-a-url"]) == 2
    assert main(["--register-webhook", "0xnope", "https://hooks.example/fraud"]) == 2
