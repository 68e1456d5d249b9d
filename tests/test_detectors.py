"""
Tests for the seven fraud detectors (pure functions over a transaction list).
"""

from __future__ import annotations

import pytest

from backend_trustscore.analysis_engine.detectors import (
    DETECTORS,
    check_low_payer_diversity,
    check_new_wallet_risk,
    check_retry_spam,
    check_time_clustering,
    check_velocity_abuse,
    check_volume_spike,
    check_wash_trading,
)
from backend_trustscore.config.settings import DetectorConfig
from backend_trustscore.database.models import FraudType
from conftest import DAY, NOW, address, make_tx

BASIC = DetectorConfig()
EXTENDED = DetectorConfig.extended_defaults()


@pytest.mark.parametrize("fraud_type", list(FraudType))
def test_empty_history_never_fires(fraud_type):
    assert DETECTORS[fraud_type]([], BASIC, NOW) is None
    assert DETECTORS[fraud_type]([], EXTENDED, NOW) is None


# --- Velocity ---


def test_velocity_fires_above_limit_with_scaled_severity():
    txs = [make_tx(frm=address(i), ts=NOW - i * 30) for i in range(60)]
    finding = check_velocity_abuse(txs, BASIC, NOW)
    assert finding is not None
    assert finding.type is FraudType.VELOCITY_ABUSE
    assert finding.severity == 6
    assert finding.details["transactions_in_window"] == 60


def test_velocity_at_limit_does_not_fire():
    txs = [make_tx(ts=NOW - i) for i in range(50)]
    assert check_velocity_abuse(txs, BASIC, NOW) is None


def test_velocity_window_is_exclusive_of_cutoff():
    txs = [make_tx(ts=NOW - 10) for _ in range(50)] + [make_tx(ts=NOW - 3600)]
    assert check_velocity_abuse(txs, BASIC, NOW) is None


def test_velocity_severity_capped_at_ten():
    txs = [make_tx(ts=NOW - 1) for _ in range(250)]
    assert check_velocity_abuse(txs, BASIC, NOW).severity == 10


# --- New wallet ---


def test_new_wallet_fires_for_young_high_volume():
    txs = [make_tx(amount="60", ts=NOW - DAY), make_tx(amount="60", ts=NOW)]
    finding = check_new_wallet_risk(txs, BASIC, NOW)
    assert finding is not None
    assert finding.severity == 10
    assert finding.details["total_volume"] == "120.00"
    assert finding.details["account_age_days"] == 1.0


def test_new_wallet_reports_volumes_beyond_default_decimal_precision():
    txs = [make_tx(amount="1e30", ts=NOW - DAY), make_tx(amount="0.01", ts=NOW)]
    finding = check_new_wallet_risk(txs, BASIC, NOW)
    assert finding is not None
    assert finding.severity == 10
    assert finding.details["total_volume"] == "1000000000000000000000000000000.00"


def test_new_wallet_volume_must_exceed_threshold():
    txs = [make_tx(amount="50", ts=NOW - DAY), make_tx(amount="50", ts=NOW)]
    assert check_new_wallet_risk(txs, BASIC, NOW) is None


def test_new_wallet_old_account_does_not_fire():
    txs = [make_tx(amount="500", ts=NOW - 8 * DAY), make_tx(amount="500", ts=NOW)]
    assert check_new_wallet_risk(txs, BASIC, NOW) is None


# --- Wash trading ---


def test_wash_trading_scenario_three_uniform_payers():
    payers = [address(1), address(2), address(3)]
    txs = [make_tx(frm=payers[i % 3], amount="10.00", ts=NOW - i * 600) for i in range(150)]
    finding = check_wash_trading(txs, BASIC, NOW)
    assert finding is not None
    assert finding.type is FraudType.WASH_TRADING
    assert finding.details["unique_payers"] == 3
    assert finding.details["payer_diversity_ratio"] == pytest.approx(0.02)
    assert {p["address"] for p in finding.details["suspicious_payers"]} == set(payers)
    assert finding.severity == 10


def test_wash_trading_requires_single_distinct_amount():
    txs = [make_tx(frm=address(1), amount="10.00") for _ in range(11)]
    txs.append(make_tx(frm=address(1), amount="10.01"))
    assert check_wash_trading(txs, BASIC, NOW) is None


def test_wash_trading_requires_repeat_count():
    txs = [make_tx(frm=address(1), amount="10.00") for _ in range(9)]
    assert check_wash_trading(txs, BASIC, NOW) is None


def test_wash_trading_severity_follows_volume_concentration():
    uniform = [make_tx(frm=address(1), amount="1.00") for _ in range(10)]
    others = [make_tx(frm=address(100 + i), amount="9.00") for i in range(10)]
    finding = check_wash_trading(uniform + others, BASIC, NOW)
    # 10 / 100 of volume -> floor(0.1 * 12) = 1
    assert finding.severity == 1


# --- Volume spike ---


def _daily(volumes: list[str]) -> list:
    first_day = NOW // DAY - (len(volumes) - 1)
    return [make_tx(amount=v, ts=(first_day + i) * DAY + 100) for i, v in enumerate(volumes)]


def test_volume_spike_fires_for_both_multipliers():
    txs = _daily(["10"] * 7 + ["200"])
    basic = check_volume_spike(txs, BASIC, NOW)
    extended = check_volume_spike(txs, EXTENDED, NOW)
    assert basic is not None and extended is not None
    assert basic.details["volume_multiplier"] == 20.0
    assert basic.severity == 10


def test_volume_spike_relaxed_multiplier_only_in_extended():
    txs = _daily(["10"] * 7 + ["60"])
    assert check_volume_spike(txs, BASIC, NOW) is None
    finding = check_volume_spike(txs, EXTENDED, NOW)
    assert finding is not None
    assert finding.severity == 3


def test_volume_spike_requires_eight_days():
    txs = _daily(["10"] * 6 + ["500"])
    assert check_volume_spike(txs, BASIC, NOW) is None


def test_volume_spike_zero_baseline_does_not_fire():
    txs = _daily(["0"] * 7 + ["500"])
    assert check_volume_spike(txs, BASIC, NOW) is None


def test_volume_spike_input_order_irrelevant():
    txs = _daily(["10"] * 7 + ["200"])
    assert check_volume_spike(list(reversed(txs)), BASIC, NOW) == check_volume_spike(txs, BASIC, NOW)


# --- Retry spam ---


def test_retry_spam_fires_above_limit():
    txs = [make_tx(frm=address(7), amount="0.05", ts=NOW - 60) for _ in range(11)]
    finding = check_retry_spam(txs, BASIC, NOW)
    assert finding is not None
    assert finding.severity == 5
    assert finding.details["spammers"] == [{"address": address(7), "attempts": 11}]


def test_retry_spam_at_limit_does_not_fire():
    txs = [make_tx(amount="0.05", ts=NOW - 60) for _ in range(10)]
    assert check_retry_spam(txs, BASIC, NOW) is None


def test_retry_spam_ignores_non_micro_and_old_payments():
    at_threshold = [make_tx(amount="0.10", ts=NOW - 60) for _ in range(20)]
    too_old = [make_tx(amount="0.01", ts=NOW - 301) for _ in range(20)]
    assert check_retry_spam(at_threshold + too_old, BASIC, NOW) is None


# --- Low payer diversity ---


def test_low_payer_diversity_fires():
    txs = [make_tx(frm=address(1), ts=NOW - i * 1000) for i in range(20)]
    finding = check_low_payer_diversity(txs, BASIC, NOW)
    assert finding is not None
    assert finding.severity == 10
    assert finding.details["unique_payers"] == 1
    assert finding.details["top_payers"][0]["transactions"] == 20


def test_low_payer_diversity_needs_minimum_sample():
    txs = [make_tx(frm=address(1)) for _ in range(19)]
    assert check_low_payer_diversity(txs, BASIC, NOW) is None


def test_low_payer_diversity_ratio_at_floor_does_not_fire():
    txs = [make_tx(frm=address(i % 2)) for i in range(20)]
    assert check_low_payer_diversity(txs, BASIC, NOW) is None


# --- Time clustering ---


def test_time_clustering_regular_intervals():
    txs = [make_tx(ts=NOW - i * 60) for i in range(20)]
    finding = check_time_clustering(txs, BASIC, NOW)
    assert finding is not None
    assert finding.details["average_interval_sec"] == 60
    assert finding.details["coefficient_of_variation"] == 0.0
    assert finding.severity == 10


def test_time_clustering_same_second_counts_as_regular():
    txs = [make_tx(ts=NOW) for _ in range(12)]
    assert check_time_clustering(txs, BASIC, NOW) is not None


def test_time_clustering_needs_ten_transactions():
    txs = [make_tx(ts=NOW - i * 60) for i in range(9)]
    assert check_time_clustering(txs, BASIC, NOW) is None


def test_time_clustering_irregular_or_slow_does_not_fire():
    irregular = []
    ts = NOW
    for i in range(20):
        irregular.append(make_tx(ts=ts))
        ts -= 10 if i % 2 else 200
    assert check_time_clustering(irregular, BASIC, NOW) is None

    slow = [make_tx(ts=NOW - i * 600) for i in range(20)]
    assert check_time_clustering(slow, BASIC, NOW) is None


def test_time_clustering_uses_most_recent_sample():
    recent = [make_tx(ts=NOW - i * 30) for i in range(20)]
    old_noise = [make_tx(ts=NOW - 10 * DAY - i * 7919) for i in range(30)]
    assert check_time_clustering(old_noise + recent, BASIC, NOW) is not None
