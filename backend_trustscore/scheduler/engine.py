"""
Recomputation scheduler: periodic full-population sweeps via APScheduler.

Two default tasks:
- fraud_scan: every known service through the alerting aggregator.
- score_update: every known service and agent through the reputation scorers.

The scheduler holds no business logic. Each address is isolated: a failure is
logged and counted, a call exceeding per_address_timeout_sec is abandoned and
the sweep moves on. Each task is isolated the same way, so one failing sweep
never stops the scheduler.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from backend_trustscore.analysis_engine.aggregator import FraudAggregator
from backend_trustscore.config.settings import SchedulerSettings
from backend_trustscore.database.database import Database
from backend_trustscore.logging import address_context, get_logger
from backend_trustscore.reputation.scorer import AgentReputationScorer, ServiceReputationScorer

logger = get_logger(__name__)

TASK_FRAUD_SCAN = "fraud_scan"
TASK_SCORE_UPDATE = "score_update"


@dataclass
class SweepResult:
    """Per-sweep counters. flagged = addresses with at least one finding."""

    name: str
    scanned: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0
    flagged: int = 0
    failed_addresses: list[str] = field(default_factory=list)
    duration_sec: float = 0.0

    def merge(self, other: SweepResult) -> None:
        self.scanned += other.scanned
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.timed_out += other.timed_out
        self.flagged += other.flagged
        self.failed_addresses.extend(other.failed_addresses)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "scanned": self.scanned,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "flagged": self.flagged,
            "duration_sec": round(self.duration_sec, 3),
        }


@dataclass
class ScheduledTask:
    name: str
    fn: Callable[[], Any]
    interval_sec: float


class RecomputationScheduler:
    """
    Owns task registration, per-task failure isolation and graceful shutdown.

    Each sweep fans out over its own ThreadPoolExecutor of sweep_concurrency
    workers in chunks; each chunk waits at most per_address_timeout_sec. On a
    timeout that sweep's pool is abandoned and replaced, so concurrent sweeps
    never share or cancel each other's workers. After shutdown() a running
    sweep stops at its next chunk boundary.
    """

    def __init__(
        self,
        db: Database,
        aggregator: FraudAggregator,
        service_scorer: ServiceReputationScorer,
        agent_scorer: AgentReputationScorer,
        settings: SchedulerSettings | None = None,
        *,
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self.settings = settings or SchedulerSettings()
        self.settings.validate()
        self.db = db
        self.aggregator = aggregator
        self.service_scorer = service_scorer
        self.agent_scorer = agent_scorer
        self._scheduler = scheduler or BackgroundScheduler()
        self._tasks: dict[str, ScheduledTask] = {}
        self._stopping = threading.Event()
        self._active = 0
        self._idle = threading.Condition()
        self._started = False

    # --- Task registration ---

    def register_task(self, name: str, fn: Callable[[], Any], interval_sec: float) -> None:
        if interval_sec <= 0:
            raise ValueError(f"interval for task {name} must be > 0")
        self._tasks[name] = ScheduledTask(name=name, fn=fn, interval_sec=float(interval_sec))
        if self._started:
            self._add_job(self._tasks[name])
        logger.info("scheduler_task_registered", task=name, interval_sec=interval_sec)

    def register_default_tasks(self) -> None:
        self.register_task(TASK_FRAUD_SCAN, self.run_fraud_scan, self.settings.fraud_scan_interval_sec)
        self.register_task(TASK_SCORE_UPDATE, self.update_all_scores, self.settings.score_update_interval_sec)

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)

    def _wrap(self, task: ScheduledTask) -> Callable[[], None]:
        def job() -> None:
            logger.info("scheduler_task_start", task=task.name)
            started = time.monotonic()
            try:
                result = task.fn()
            except Exception as e:
                logger.exception("scheduler_task_failed", task=task.name, error=str(e))
                return
            fields = result.to_dict() if isinstance(result, SweepResult) else {}
            logger.info(
                "scheduler_task_end",
                task=task.name,
                elapsed_sec=round(time.monotonic() - started, 3),
                **{k: v for k, v in fields.items() if k != "name"},
            )

        return job

    def _add_job(self, task: ScheduledTask, *, run_now: bool = False) -> None:
        kwargs: dict[str, Any] = {}
        if run_now:
            kwargs["next_run_time"] = datetime.now(timezone.utc)
        self._scheduler.add_job(
            self._wrap(task),
            "interval",
            seconds=task.interval_sec,
            id=task.name,
            name=task.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **kwargs,
        )

    def run_task(self, name: str) -> None:
        """Run a registered task once, in the caller's thread, with the same isolation."""
        self._wrap(self._tasks[name])()

    # --- Lifecycle ---

    def start(self, *, run_immediately: bool = False) -> None:
        if self._started:
            return
        self._stopping.clear()
        for task in self._tasks.values():
            self._add_job(task, run_now=run_immediately)
        self._scheduler.start()
        self._started = True
        logger.info(
            "scheduler_started",
            tasks={t.name: t.interval_sec for t in self._tasks.values()},
        )

    @property
    def running(self) -> bool:
        return self._started

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop scheduling new runs and ask in-flight sweeps to stop at their next
        chunk; if wait, give them up to shutdown_timeout_sec to finish.
        """
        self._stopping.set()
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
        if wait:
            deadline = time.monotonic() + self.settings.shutdown_timeout_sec
            with self._idle:
                while self._active > 0:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.warning("scheduler_shutdown_timeout", active_sweeps=self._active)
                        break
                    self._idle.wait(remaining)
        logger.info("scheduler_stopped")

    # --- Sweeps ---

    def run_fraud_scan(self) -> SweepResult:
        """Evaluate every known service with the alerting rule set."""

        def evaluate(address: str) -> bool:
            return len(self.aggregator.evaluate(address)) > 0

        return self._sweep(TASK_FRAUD_SCAN, self.db.list_service_addresses(), evaluate)

    def update_all_scores(self) -> SweepResult:
        """Recompute every known service and agent reputation snapshot."""
        started = time.monotonic()
        result = SweepResult(name=TASK_SCORE_UPDATE)
        result.merge(
            self._sweep("service_scores", self.db.list_service_addresses(), self._calculate(self.service_scorer))
        )
        result.merge(
            self._sweep("agent_scores", self.db.list_agent_addresses(), self._calculate(self.agent_scorer))
        )
        result.duration_sec = time.monotonic() - started
        return result

    @staticmethod
    def _calculate(scorer: ServiceReputationScorer | AgentReputationScorer) -> Callable[[str], bool]:
        def calculate(address: str) -> bool:
            scorer.calculate(address)
            return False

        return calculate

    def _open_pool(self, name: str) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.settings.sweep_concurrency,
            thread_name_prefix=f"trustscore-{name}",
        )

    def _sweep(self, name: str, addresses: Sequence[str], fn: Callable[[str], bool]) -> SweepResult:
        with self._idle:
            self._active += 1
        started = time.monotonic()
        result = SweepResult(name=name)
        pool = self._open_pool(name)
        try:
            chunk_size = self.settings.sweep_concurrency
            for i in range(0, len(addresses), chunk_size):
                if self._stopping.is_set():
                    logger.warning("sweep_interrupted", sweep=name, remaining=len(addresses) - i)
                    break
                chunk = addresses[i : i + chunk_size]
                futures: list[tuple[str, Future[bool]]] = [
                    (addr, pool.submit(_run_for_address, name, fn, addr)) for addr in chunk
                ]
                if self._collect(name, futures, result):
                    # Stuck workers keep their threads; later chunks get a fresh pool.
                    pool.shutdown(wait=False, cancel_futures=True)
                    pool = self._open_pool(name)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
            result.duration_sec = time.monotonic() - started
            with self._idle:
                self._active -= 1
                self._idle.notify_all()
        logger.info("sweep_complete", **result.to_dict())
        return result

    def _collect(self, name: str, futures: list[tuple[str, Future[bool]]], result: SweepResult) -> bool:
        """Wait for one chunk; returns True if any call was abandoned on timeout."""
        deadline = time.monotonic() + self.settings.per_address_timeout_sec
        abandoned = False
        for address, future in futures:
            result.scanned += 1
            try:
                flagged = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeout:
                future.cancel()
                abandoned = True
                result.timed_out += 1
                result.failed_addresses.append(address)
                logger.warning(
                    "sweep_address_timeout",
                    sweep=name,
                    address=address,
                    timeout_sec=self.settings.per_address_timeout_sec,
                )
                continue
            except Exception as e:
                result.failed += 1
                result.failed_addresses.append(address)
                logger.error(
                    "sweep_address_failed",
                    sweep=name,
                    address=address,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            result.succeeded += 1
            if flagged:
                result.flagged += 1
        return abandoned


def _run_for_address(sweep: str, fn: Callable[[str], bool], address: str) -> bool:
    with address_context(address, sweep=sweep):
        return fn(address)
