"""
Tests for RecomputationScheduler: sweep isolation, timeouts, job registration.
"""

from __future__ import annotations

import threading
import time

import pytest
import structlog
from apscheduler.schedulers.background import BackgroundScheduler

from backend_trustscore.config.settings import SchedulerSettings
from backend_trustscore.scheduler import TASK_FRAUD_SCAN, TASK_SCORE_UPDATE, RecomputationScheduler
from conftest import address, make_tx


class FakeAggregator:
    def __init__(self, flagged=(), failing=(), blocking=(), release=None):
        self.flagged = set(flagged)
        self.failing = set(failing)
        self.blocking = set(blocking)
        self.release = release
        self.evaluated = []
        self.contexts = {}
        self._lock = threading.Lock()

    def evaluate(self, addr):
        with self._lock:
            self.evaluated.append(addr)
            self.contexts[addr] = structlog.contextvars.get_contextvars()
        if addr in self.blocking:
            self.release.wait(10)
        if addr in self.failing:
            raise RuntimeError(f"evaluation failed for {addr}")
        return ["finding"] if addr in self.flagged else []


class FakeScorer:
    def __init__(self, failing=(), delay=0.0):
        self.failing = set(failing)
        self.delay = delay
        self.calculated = []
        self._lock = threading.Lock()

    def calculate(self, addr):
        with self._lock:
            self.calculated.append(addr)
        if self.delay:
            time.sleep(self.delay)
        if addr in self.failing:
            raise RuntimeError("scorer failed")
        return object()


SERVICES = [address(0x100 + i) for i in range(5)]
AGENTS = [address(0x200 + i) for i in range(3)]


@pytest.fixture
def populated_db(db):
    for i, service in enumerate(SERVICES):
        db.insert_transaction_if_absent(make_tx(to=service, frm=AGENTS[i % len(AGENTS)]))
    return db


def _scheduler(db, aggregator=None, service_scorer=None, agent_scorer=None, **settings):
    return RecomputationScheduler(
        db,
        aggregator or FakeAggregator(),
        service_scorer or FakeScorer(),
        agent_scorer or FakeScorer(),
        SchedulerSettings(**settings),
    )


def test_fraud_scan_visits_every_service_and_counts_flagged(populated_db):
    aggregator = FakeAggregator(flagged=SERVICES[:2])
    sched = _scheduler(populated_db, aggregator, sweep_concurrency=2)
    try:
        result = sched.run_fraud_scan()
    finally:
        sched.shutdown(wait=False)
    assert sorted(aggregator.evaluated) == sorted(SERVICES)
    assert result.scanned == 5
    assert result.succeeded == 5
    assert result.flagged == 2
    assert result.failed == 0


def test_failing_address_does_not_stop_sweep(populated_db):
    aggregator = FakeAggregator(failing=[SERVICES[1]])
    sched = _scheduler(populated_db, aggregator)
    try:
        result = sched.run_fraud_scan()
    finally:
        sched.shutdown(wait=False)
    assert result.scanned == 5
    assert result.failed == 1
    assert result.succeeded == 4
    assert result.failed_addresses == [SERVICES[1]]


def test_slow_address_is_abandoned_and_sweep_continues(populated_db):
    release = threading.Event()
    aggregator = FakeAggregator(blocking=[SERVICES[0]], release=release)
    sched = _scheduler(populated_db, aggregator, sweep_concurrency=1, per_address_timeout_sec=0.2)
    try:
        result = sched.run_fraud_scan()
    finally:
        release.set()
        sched.shutdown(wait=False)
    assert result.timed_out == 1
    assert result.succeeded == 4
    assert result.failed_addresses == [SERVICES[0]]
    assert set(SERVICES[1:]) <= set(aggregator.evaluated)


def test_update_all_scores_covers_services_and_agents(populated_db):
    service_scorer = FakeScorer()
    agent_scorer = FakeScorer(failing=[AGENTS[0]])
    sched = _scheduler(populated_db, service_scorer=service_scorer, agent_scorer=agent_scorer)
    try:
        result = sched.update_all_scores()
    finally:
        sched.shutdown(wait=False)
    assert result.name == TASK_SCORE_UPDATE
    assert sorted(service_scorer.calculated) == sorted(SERVICES)
    assert sorted(agent_scorer.calculated) == sorted(AGENTS)
    assert result.scanned == 8
    assert result.succeeded == 7
    assert result.failed == 1
    assert result.flagged == 0


def test_empty_store_sweeps_nothing(db):
    sched = _scheduler(db)
    result = sched.run_fraud_scan()
    sched.shutdown()
    assert result.scanned == 0
    assert result.to_dict()["name"] == TASK_FRAUD_SCAN


def test_run_task_isolates_task_failure(db):
    calls = []

    def broken():
        calls.append("broken")
        raise RuntimeError("task exploded")

    sched = _scheduler(db)
    sched.register_task("broken", broken, 60)
    sched.run_task("broken")
    sched.run_task("broken")
    assert calls == ["broken", "broken"]


def test_register_task_rejects_non_positive_interval(db):
    sched = _scheduler(db)
    with pytest.raises(ValueError):
        sched.register_task("never", lambda: None, 0)


def test_start_registers_interval_jobs_without_overlap(db):
    background = BackgroundScheduler()
    sched = RecomputationScheduler(
        db,
        FakeAggregator(),
        FakeScorer(),
        FakeScorer(),
        SchedulerSettings(fraud_scan_interval_sec=120, score_update_interval_sec=900),
        scheduler=background,
    )
    sched.register_default_tasks()
    assert sched.task_names == [TASK_FRAUD_SCAN, TASK_SCORE_UPDATE]
    sched.start()
    try:
        assert sched.running
        jobs = {job.id: job for job in background.get_jobs()}
        assert set(jobs) == {TASK_FRAUD_SCAN, TASK_SCORE_UPDATE}
        assert jobs[TASK_FRAUD_SCAN].trigger.interval.total_seconds() == 120
        assert jobs[TASK_SCORE_UPDATE].trigger.interval.total_seconds() == 900
        for job in jobs.values():
            assert job.max_instances == 1
            assert job.coalesce is True
    finally:
        sched.shutdown()
    assert not sched.running


def test_shutdown_is_safe_when_never_started(db):
    sched = _scheduler(db)
    sched.shutdown()
    sched.shutdown(wait=False)
    assert not sched.running


def test_concurrent_sweeps_do_not_cancel_each_other(populated_db):
    release = threading.Event()
    aggregator = FakeAggregator(blocking=[SERVICES[0]], release=release)
    service_scorer = FakeScorer(delay=0.05)
    agent_scorer = FakeScorer(delay=0.05)
    sched = _scheduler(
        populated_db,
        aggregator,
        service_scorer,
        agent_scorer,
        sweep_concurrency=1,
        per_address_timeout_sec=0.3,
    )
    results = {}
    scores = threading.Thread(target=lambda: results.update(scores=sched.update_all_scores()))
    try:
        scores.start()
        results["fraud"] = sched.run_fraud_scan()
        scores.join(10)
    finally:
        release.set()
        sched.shutdown(wait=False)

    assert results["fraud"].timed_out == 1
    assert results["fraud"].succeeded == 4
    assert results["scores"].scanned == 8
    assert results["scores"].succeeded == 8
    assert results["scores"].failed == 0
    assert results["scores"].timed_out == 0


def test_sweep_binds_address_to_log_context(populated_db):
    aggregator = FakeAggregator()
    sched = _scheduler(populated_db, aggregator, sweep_concurrency=2)
    try:
        sched.run_fraud_scan()
    finally:
        sched.shutdown(wait=False)
    assert aggregator.contexts[SERVICES[3]] == {"address": SERVICES[3], "sweep": TASK_FRAUD_SCAN}
    assert structlog.contextvars.get_contextvars() == {}


def test_shutdown_stops_running_sweep_at_next_chunk(populated_db):
    release = threading.Event()
    aggregator = FakeAggregator(blocking=[SERVICES[0]], release=release)
    sched = _scheduler(populated_db, aggregator, sweep_concurrency=1, per_address_timeout_sec=5)
    results = {}
    sweep = threading.Thread(target=lambda: results.update(fraud=sched.run_fraud_scan()))
    sweep.start()
    deadline = time.monotonic() + 5
    while SERVICES[0] not in aggregator.evaluated and time.monotonic() < deadline:
        time.sleep(0.01)
    sched.shutdown(wait=False)
    release.set()
    sweep.join(10)

    assert results["fraud"].scanned == 1
    assert results["fraud"].succeeded == 1
    assert aggregator.evaluated == [SERVICES[0]]
