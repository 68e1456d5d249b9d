"""
Tests for service/agent reputation scoring: components, badges, penalties, snapshots.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_trustscore.config.settings import ReputationWeights
from backend_trustscore.core.exceptions import InvalidInputError
from backend_trustscore.database.models import Badge, FraudFlag, FraudType, TrustLevel
from backend_trustscore.reputation.scorer import (
    AgentReputationScorer,
    ServiceReputationScorer,
    clamp_score,
    payment_reliability,
    round_half_up,
    trust_level_for,
)
from conftest import AGENT, DAY, NOW, SERVICE, address, make_tx

NINETY_DAYS = 90 * DAY


def _spread(i: int, n: int = 100) -> int:
    """Timestamps from NOW back to exactly 90 days ago."""
    return NOW - (i * NINETY_DAYS) // (n - 1)


@pytest.fixture
def service_scorer(db, clock):
    return ServiceReputationScorer(db, ReputationWeights(), clock=clock)


@pytest.fixture
def agent_scorer(db, clock):
    return AgentReputationScorer(db, ReputationWeights.agent_defaults(), clock=clock)


def test_empty_history_gets_default_snapshot(db, service_scorer, agent_scorer):
    service = service_scorer.calculate(SERVICE)
    assert service.score == 50
    assert service.trust_level is TrustLevel.MEDIUM
    assert service.badges == [Badge.NEW]
    assert service.total_transactions == 0
    assert service.last_updated == NOW
    assert db.get_service_reputation(SERVICE) == service

    agent = agent_scorer.calculate(AGENT)
    assert agent.score == 50
    assert agent.badges == [Badge.NEW]
    assert agent.payment_reliability == 100
    assert db.get_agent_reputation(AGENT) == agent


def test_established_service_scores_ninety(db, store, service_scorer):
    store(*[make_tx(frm=address(i % 50), amount="10", ts=_spread(i)) for i in range(100)])
    rep = service_scorer.calculate(SERVICE)
    assert rep.score == 90
    assert rep.trust_level is TrustLevel.EXCELLENT
    assert rep.badges == [Badge.VERIFIED, Badge.TRUSTED, Badge.ESTABLISHED, Badge.CLEAN]
    assert rep.total_transactions == 100
    assert rep.total_volume == Decimal("1000.00")
    assert rep.unique_payers == 50
    assert rep.account_age_days == 90
    assert rep.days_since_last_active == 0


def test_active_flag_penalises_score_and_clean_badge(db, store, service_scorer):
    store(*[make_tx(frm=address(i % 50), amount="10", ts=_spread(i)) for i in range(100)])
    db.insert_fraud_flag(
        FraudFlag(subject_address=SERVICE, flag_type=FraudType.RETRY_SPAM, severity=5, created_at=NOW)
    )
    rep = service_scorer.calculate(SERVICE)
    assert rep.score == 75
    assert rep.trust_level is TrustLevel.HIGH
    assert rep.active_fraud_flags == 1
    assert Badge.CLEAN not in rep.badges
    assert Badge.VERIFIED not in rep.badges


def test_resolved_flag_no_longer_penalises(db, store, service_scorer):
    store(*[make_tx(frm=address(i % 50), amount="10", ts=_spread(i)) for i in range(100)])
    flag_id = db.insert_fraud_flag(
        FraudFlag(subject_address=SERVICE, flag_type=FraudType.WASH_TRADING, severity=9, created_at=NOW)
    )
    db.resolve_fraud_flag(flag_id, resolved_at=NOW)
    assert service_scorer.calculate(SERVICE).score == 90


def test_agent_with_steady_payments_scores_hundred(db, store, agent_scorer):
    store(*[make_tx(to=address(0x5000 + i % 20), frm=AGENT, amount="10", ts=_spread(i)) for i in range(100)])
    rep = agent_scorer.calculate(AGENT)
    assert rep.score == 100
    assert rep.payment_reliability == 100
    assert rep.unique_services == 20
    assert rep.total_spent == Decimal("1000.00")
    assert rep.badges == [Badge.VERIFIED, Badge.RELIABLE, Badge.EXPERIENCED]
    assert rep.trust_level is TrustLevel.EXCELLENT


def test_agent_and_service_read_opposite_sides(db, store, service_scorer, agent_scorer):
    store(make_tx(to=SERVICE, frm=AGENT, amount="10", ts=NOW - DAY))
    assert service_scorer.calculate(SERVICE).total_transactions == 1
    assert agent_scorer.calculate(AGENT).total_payments == 1
    assert service_scorer.calculate(AGENT).total_transactions == 0
    assert agent_scorer.calculate(SERVICE).total_payments == 0


def test_calculate_is_idempotent(store, service_scorer):
    store(*[make_tx(frm=address(i), amount="3.5", ts=NOW - i * 3 * DAY) for i in range(12)])
    first = service_scorer.calculate(SERVICE)
    second = service_scorer.calculate(SERVICE)
    assert first == second


def test_score_never_decreases_with_more_clean_history(db, service_scorer):
    previous = 0
    for i in range(40):
        db.insert_transaction_if_absent(make_tx(frm=address(i), amount="7", ts=NOW - i * DAY))
        score = service_scorer.calculate(SERVICE).score
        assert score >= previous
        previous = score


def test_stale_history_loses_recency_points(store, service_scorer):
    store(*[make_tx(frm=address(i), amount="10", ts=NOW - 60 * DAY - i) for i in range(10)])
    rep = service_scorer.calculate(SERVICE)
    # count 3 + volume 2 + diversity 3 + age 10 + recency 0
    assert rep.score == 18
    assert rep.trust_level is TrustLevel.UNTRUSTED
    assert rep.days_since_last_active == 60


def test_get_or_calculate_returns_stored_until_recalculated(db, service_scorer):
    assert service_scorer.get_or_calculate(SERVICE).score == 50
    for i in range(100):
        db.insert_transaction_if_absent(make_tx(frm=address(i % 50), amount="10", ts=_spread(i)))
    assert service_scorer.get_or_calculate(SERVICE).score == 50
    assert service_scorer.get_or_calculate(SERVICE, recalculate=True).score == 90
    assert db.get_service_reputation(SERVICE).score == 90


def test_calculate_rejects_invalid_address(service_scorer):
    with pytest.raises(InvalidInputError):
        service_scorer.calculate("0xnope")


def test_scorer_rejects_invalid_weights(db):
    with pytest.raises(InvalidInputError):
        ServiceReputationScorer(db, ReputationWeights(count_reference=0))


@pytest.mark.parametrize(
    "age_days,count,expected",
    [
        (0.0, 0, 100),
        (0.5, 1, 100),
        (10.0, 5, 90),
        (100.0, 10, 75),
        (300.0, 5, 50),
    ],
)
def test_payment_reliability_tiers(age_days, count, expected):
    assert payment_reliability(age_days, count) == expected


def test_rounding_and_clamping():
    assert round_half_up(42.5) == 43
    assert round_half_up(42.49) == 42
    assert round_half_up(-0.5) == 0
    assert clamp_score(100.4) == 100
    assert clamp_score(130) == 100
    assert clamp_score(-12) == 0


@pytest.mark.parametrize(
    "score,level",
    [
        (100, TrustLevel.EXCELLENT),
        (85, TrustLevel.EXCELLENT),
        (84, TrustLevel.HIGH),
        (70, TrustLevel.HIGH),
        (50, TrustLevel.MEDIUM),
        (30, TrustLevel.LOW),
        (29, TrustLevel.UNTRUSTED),
        (0, TrustLevel.UNTRUSTED),
    ],
)
def test_trust_level_thresholds(score, level):
    assert trust_level_for(score) is level
