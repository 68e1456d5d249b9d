"""
Rule-based fraud detectors over a service's received transactions.

Seven independent detectors, each a pure function
check_<kind>(transactions, config, now) -> Finding | None. No I/O, no shared
state; transactions may arrive in any order. An empty transaction list never
fires. Severities returned here are the scaled (per-signal) severities; the
basic rule set overrides them with fixed values.
"""

from __future__ import annotations

import math
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Sequence

from backend_trustscore.analysis_engine.findings import Finding, clamp_severity
from backend_trustscore.config.settings import DetectorConfig
from backend_trustscore.database.models import FraudType, Transaction
from backend_trustscore.utils.address_utils import truncate_middle
from backend_trustscore.utils.money import to_cents

SECONDS_PER_DAY = 86400
TOP_PAYERS_LIMIT = 5

Detector = Callable[[Sequence[Transaction], DetectorConfig, int], Finding | None]


def _money(value: Decimal) -> str:
    return str(to_cents(value))


def _total_volume(transactions: Sequence[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), Decimal("0"))


def _payer_counts(transactions: Sequence[Transaction]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for tx in transactions:
        counts[tx.from_address] += 1
    return counts


def top_payers(transactions: Sequence[Transaction], limit: int = TOP_PAYERS_LIMIT) -> list[dict[str, object]]:
    """Most frequent payers with their share of transactions (addresses truncated)."""
    counts = _payer_counts(transactions)
    total = len(transactions)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return [
        {
            "address": truncate_middle(address),
            "transactions": count,
            "percentage": round(count / total * 100, 1),
        }
        for address, count in ranked
    ]


def check_velocity_abuse(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """Too many transactions in the trailing window (default 1 hour)."""
    cutoff = now - config.velocity_window_sec
    count = sum(1 for tx in transactions if tx.timestamp > cutoff)
    if count <= config.velocity_limit:
        return None
    return Finding(
        type=FraudType.VELOCITY_ABUSE,
        severity=clamp_severity(count // 10),
        description="Excessive transaction velocity detected",
        details={
            "transactions_in_window": count,
            "threshold": config.velocity_limit,
            "window_sec": config.velocity_window_sec,
        },
        explanation=(
            f"This service processed {count} transactions in the last "
            f"{config.velocity_window_sec // 60} minutes (limit: {config.velocity_limit}). "
            "This suggests automated bot activity or potential spam attacks."
        ),
        recommendation="Monitor closely and consider rate limiting if this continues",
    )


def check_new_wallet_risk(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """Young account with unusually high received volume."""
    if not transactions:
        return None
    earliest = min(tx.timestamp for tx in transactions)
    age_days = max(0.0, (now - earliest) / SECONDS_PER_DAY)
    volume = _total_volume(transactions)
    if not (age_days < config.new_wallet_age_days and volume > Decimal(str(config.new_wallet_volume_threshold))):
        return None
    volume_f = float(volume)
    per_day = volume_f / age_days if age_days > 0 else volume_f
    return Finding(
        type=FraudType.NEW_WALLET_RISK,
        severity=clamp_severity(math.floor((100 - age_days * 10) + volume_f / 100)),
        description="New account with unusually high volume",
        details={
            "account_age_days": round(age_days, 1),
            "total_volume": _money(volume),
            "volume_per_day": round(per_day, 2),
            "age_threshold_days": config.new_wallet_age_days,
            "volume_threshold": config.new_wallet_volume_threshold,
        },
        explanation=(
            f"This account is only {math.floor(age_days)} days old but has processed "
            f"${_money(volume)} in volume. New accounts typically process much less volume, "
            "suggesting potential money laundering or test activities."
        ),
        recommendation="Enhanced monitoring recommended for first 30 days",
    )


def check_wash_trading(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """
    Payers sending the same amount over and over.

    Fires when any payer has at least wash_min_repeat_count payments that all
    share exactly one distinct amount. Scaled severity follows the share of
    total volume those payers account for.
    """
    if not transactions:
        return None
    by_payer: dict[str, list[Transaction]] = defaultdict(list)
    for tx in transactions:
        by_payer[tx.from_address].append(tx)

    suspicious = []
    for payer, txs in sorted(by_payer.items()):
        if len(txs) >= config.wash_min_repeat_count and len({tx.amount for tx in txs}) == 1:
            suspicious.append((payer, txs))
    if not suspicious:
        return None

    total_volume = _total_volume(transactions)
    suspicious_volume = sum((_total_volume(txs) for _, txs in suspicious), Decimal("0"))
    concentration = float(suspicious_volume / total_volume) if total_volume > 0 else 1.0
    unique_payers = len(by_payer)
    diversity_ratio = unique_payers / len(transactions)
    return Finding(
        type=FraudType.WASH_TRADING,
        severity=clamp_severity(math.floor(concentration * 12)),
        description="Wash trading pattern detected",
        details={
            "suspicious_payers": [
                {"address": payer, "count": len(txs), "amount": str(txs[0].amount)}
                for payer, txs in suspicious
            ],
            "unique_payers": unique_payers,
            "total_transactions": len(transactions),
            "payer_diversity_ratio": diversity_ratio,
            "concentration_ratio": round(concentration * 100, 1),
            "pattern": "Identical repeated payments from same addresses",
        },
        explanation=(
            f"{len(suspicious)} address(es) account for {concentration * 100:.1f}% of total volume "
            "with identical repeated payments. This is characteristic of wash trading where the "
            "same entities circulate funds to inflate activity metrics."
        ),
        recommendation="Immediate investigation required - may constitute market manipulation",
    )


def check_volume_spike(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """Latest day's volume far above the mean of the earlier days."""
    daily: dict[int, Decimal] = defaultdict(Decimal)
    for tx in transactions:
        daily[tx.timestamp // SECONDS_PER_DAY] += tx.amount
    if len(daily) < config.volume_spike_min_days:
        return None

    latest_day = max(daily)
    latest = daily[latest_day]
    rest = [v for day, v in daily.items() if day != latest_day]
    mean_rest = sum(rest, Decimal("0")) / len(rest)
    if mean_rest <= 0:
        return None
    multiplier = float(latest / mean_rest)
    if multiplier <= config.volume_spike_multiplier:
        return None
    return Finding(
        type=FraudType.VOLUME_SPIKE,
        severity=clamp_severity(math.floor(multiplier / 2)),
        description="Unusual volume spike detected",
        details={
            "average_daily_volume": _money(mean_rest),
            "latest_daily_volume": _money(latest),
            "volume_multiplier": round(multiplier, 1),
            "threshold_multiplier": config.volume_spike_multiplier,
            "spike_day": latest_day * SECONDS_PER_DAY,
            "days_observed": len(daily),
        },
        explanation=(
            f"The latest day's volume of ${_money(latest)} is {multiplier:.1f}x higher than the "
            f"daily average of ${_money(mean_rest)}. Such sudden spikes often indicate promotional "
            "abuse, coordinated attacks, or testing activities."
        ),
        recommendation="Monitor for next 48 hours to determine if pattern continues",
    )


def check_retry_spam(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """A payer hammering the service with micro-payments in a short window."""
    cutoff = now - config.retry_window_sec
    micro = Decimal(str(config.retry_micro_amount))
    attempts: dict[str, int] = defaultdict(int)
    for tx in transactions:
        if tx.timestamp > cutoff and tx.amount < micro:
            attempts[tx.from_address] += 1
    spammers = sorted(
        ((addr, n) for addr, n in attempts.items() if n > config.retry_spam_limit),
        key=lambda item: (-item[1], item[0]),
    )
    if not spammers:
        return None
    max_attempts = spammers[0][1]
    return Finding(
        type=FraudType.RETRY_SPAM,
        severity=clamp_severity(max_attempts // 2),
        description="Excessive micro-payment retries detected",
        details={
            "spammers": [{"address": addr, "attempts": n} for addr, n in spammers],
            "max_attempts": max_attempts,
            "threshold": config.retry_spam_limit,
            "window_sec": config.retry_window_sec,
        },
        explanation=(
            f"{len(spammers)} address(es) made more than {config.retry_spam_limit} payments below "
            f"{config.retry_micro_amount} within {config.retry_window_sec} seconds. "
            "Rapid retries with tiny amounts suggest scripted probing or spam."
        ),
        recommendation="Throttle the offending payers and review failed payment attempts",
    )


def check_low_payer_diversity(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """Few payers account for most transactions; no amount uniformity required."""
    total = len(transactions)
    if total < config.low_diversity_min_transactions:
        return None
    unique = len({tx.from_address for tx in transactions})
    ratio = unique / total
    if ratio >= config.low_diversity_ratio_floor:
        return None
    return Finding(
        type=FraudType.LOW_PAYER_DIVERSITY,
        severity=clamp_severity(math.floor((1 - ratio) * 15)),
        description="Very low payer diversity detected",
        details={
            "unique_payers": unique,
            "total_transactions": total,
            "diversity_ratio": ratio,
            "top_payers": top_payers(transactions),
        },
        explanation=(
            f"Only {unique} unique addresses account for {total} transactions "
            f"({ratio * 100:.1f}% diversity). This pattern is characteristic of wash trading "
            "or circular payment schemes."
        ),
        recommendation="Investigate relationships between payer addresses",
    )


def check_time_clustering(transactions: Sequence[Transaction], config: DetectorConfig, now: int) -> Finding | None:
    """Mechanically regular spacing between recent transactions."""
    if len(transactions) < config.time_cluster_min_transactions:
        return None
    timestamps = sorted((tx.timestamp for tx in transactions), reverse=True)[: config.time_cluster_sample_size]
    intervals = [timestamps[i - 1] - timestamps[i] for i in range(1, len(timestamps))]
    if not intervals:
        return None
    mean = sum(intervals) / len(intervals)
    std = math.sqrt(sum((i - mean) ** 2 for i in intervals) / len(intervals))
    # All in the same second counts as perfectly regular.
    cv = std / mean if mean > 0 else 0.0
    if not (cv < config.time_cluster_max_cv and mean < config.time_cluster_max_mean_interval_sec):
        return None
    cadence = "Every minute" if mean < 60 else f"Every {math.floor(mean / 60)} minutes"
    return Finding(
        type=FraudType.TIME_CLUSTERING,
        severity=clamp_severity(math.floor((1 - cv) * 15)),
        description="Suspiciously regular transaction timing",
        details={
            "average_interval_sec": math.floor(mean),
            "standard_deviation_sec": math.floor(std),
            "coefficient_of_variation": cv,
            "sample_size": len(timestamps),
            "pattern_description": cadence,
        },
        explanation=(
            f"Transactions occur with extremely regular intervals (avg: {math.floor(mean)} seconds, "
            f"variation: {cv * 100:.1f}%). Natural human activity shows much more variation. "
            "This suggests automated bot activity or scripted transactions."
        ),
        recommendation="Block automated access and require human verification",
    )


DETECTORS: dict[FraudType, Detector] = {
    FraudType.VELOCITY_ABUSE: check_velocity_abuse,
    FraudType.NEW_WALLET_RISK: check_new_wallet_risk,
    FraudType.WASH_TRADING: check_wash_trading,
    FraudType.VOLUME_SPIKE: check_volume_spike,
    FraudType.RETRY_SPAM: check_retry_spam,
    FraudType.LOW_PAYER_DIVERSITY: check_low_payer_diversity,
    FraudType.TIME_CLUSTERING: check_time_clustering,
}
