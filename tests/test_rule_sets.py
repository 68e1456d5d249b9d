"""
Tests for BasicRuleSet / ExtendedRuleSet: severity formulas, membership, detector isolation.
"""

from __future__ import annotations

import pytest

from backend_trustscore.analysis_engine.detectors import DETECTORS
from backend_trustscore.analysis_engine.rule_sets import (
    BasicRuleSet,
    ExtendedRuleSet,
    get_rule_set,
)
from backend_trustscore.config.settings import RULE_SET_BASIC, RULE_SET_EXTENDED, DetectorConfig, Settings
from backend_trustscore.core.exceptions import InvalidInputError
from backend_trustscore.database.models import FraudType
from conftest import DAY, NOW, address, make_tx


def _velocity_burst(n: int = 60) -> list:
    # Distinct payers and uneven spacing so only velocity (and new wallet) can fire.
    return [make_tx(frm=address(i), amount="0.50", ts=NOW - (i * i) % 3000) for i in range(n)]


def _by_type(result):
    return {f.type: f for f in result.findings}


def test_velocity_basic_fixed_severity_vs_extended_scaled():
    txs = _velocity_burst()
    basic = _by_type(BasicRuleSet(DetectorConfig()).run(txs, NOW))
    extended = _by_type(ExtendedRuleSet(DetectorConfig.extended_defaults()).run(txs, NOW))
    assert basic[FraudType.VELOCITY_ABUSE].severity == 8
    assert extended[FraudType.VELOCITY_ABUSE].severity == 6


def test_basic_rule_set_fixed_severities_for_every_type():
    old_daily = [make_tx(frm=address(1000 + d), amount="10", ts=NOW - (8 - d) * DAY) for d in range(8)]
    spike = [make_tx(frm=address(2000 + i), amount="100", ts=NOW - 4000 - i) for i in range(3)]
    wash = [make_tx(frm=address(5001), amount="2.00", ts=NOW - 5000 - i * 7) for i in range(10)]
    retry = [make_tx(frm=address(5002), amount="0.01", ts=NOW - 10 - i) for i in range(11)]
    result = BasicRuleSet(DetectorConfig()).run(old_daily + spike + wash + retry + _velocity_burst(), NOW)
    severities = {f.type: f.severity for f in result.findings}
    assert severities[FraudType.VELOCITY_ABUSE] == 8
    assert severities[FraudType.WASH_TRADING] == 9
    assert severities[FraudType.VOLUME_SPIKE] == 6
    assert severities[FraudType.RETRY_SPAM] == 5
    assert FraudType.LOW_PAYER_DIVERSITY not in severities
    assert FraudType.TIME_CLUSTERING not in severities


def test_new_wallet_basic_severity_is_seven():
    txs = [make_tx(amount="80", ts=NOW - DAY), make_tx(amount="80", ts=NOW)]
    result = BasicRuleSet(DetectorConfig()).run(txs, NOW)
    assert [(f.type, f.severity) for f in result.findings] == [(FraudType.NEW_WALLET_RISK, 7)]


def test_extended_runs_all_seven_detectors():
    assert ExtendedRuleSet.detector_types == tuple(FraudType)
    assert len(BasicRuleSet.detector_types) == 5
    txs = [make_tx(frm=address(1), ts=NOW - 20 * DAY - i * 60) for i in range(25)]
    found = _by_type(ExtendedRuleSet(DetectorConfig.extended_defaults()).run(txs, NOW))
    assert FraudType.LOW_PAYER_DIVERSITY in found
    assert FraudType.TIME_CLUSTERING in found


def test_failing_detector_is_isolated():
    def boom(transactions, config, now):
        raise ZeroDivisionError("division by zero")

    detectors = dict(DETECTORS)
    detectors[FraudType.VELOCITY_ABUSE] = boom
    txs = [make_tx(amount="80", ts=NOW - DAY), make_tx(amount="80", ts=NOW)]
    result = BasicRuleSet(DetectorConfig(), detectors=detectors).run(txs, NOW)
    assert result.failed_detectors == ["velocity_abuse"]
    assert result.failures[0].detector == "velocity_abuse"
    assert isinstance(result.failures[0].cause, ZeroDivisionError)
    assert [f.type for f in result.findings] == [FraudType.NEW_WALLET_RISK]


def test_disabling_one_detector_does_not_change_others():
    txs = _velocity_burst()
    full = ExtendedRuleSet(DetectorConfig.extended_defaults()).run(txs, NOW)
    detectors = dict(DETECTORS)
    detectors[FraudType.VELOCITY_ABUSE] = lambda transactions, config, now: None
    without = ExtendedRuleSet(DetectorConfig.extended_defaults(), detectors=detectors).run(txs, NOW)
    expected = [f for f in full.findings if f.type is not FraudType.VELOCITY_ABUSE]
    assert without.findings == expected


def test_get_rule_set_by_name():
    settings = Settings()
    assert isinstance(get_rule_set(RULE_SET_BASIC, settings), BasicRuleSet)
    extended = get_rule_set(RULE_SET_EXTENDED, settings)
    assert isinstance(extended, ExtendedRuleSet)
    assert extended.config.volume_spike_multiplier == 5.0
    with pytest.raises(InvalidInputError):
        get_rule_set("paranoid", settings)


def test_rule_set_rejects_invalid_config():
    with pytest.raises(InvalidInputError):
        BasicRuleSet(DetectorConfig(velocity_limit=0))
