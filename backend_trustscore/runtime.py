"""
Process runtime: wire the engine from settings and run it.

- build_engine(): database, notifier, aggregator, scorers, matcher, ingestion
  adapter and scheduler from one validated Settings.
- run_forever(): start the recomputation scheduler; block until SIGINT/SIGTERM,
  then shut down gracefully.
- main(): CLI (--run-now for one-shot sweeps, --ingest FILE.jsonl to replay events,
  --register-webhook ADDRESS URL to subscribe a URL to one service's alerts).

Usage:
  python -m backend_trustscore.runtime                 # run scheduler until stopped
  python -m backend_trustscore.runtime --run-now       # one fraud scan + score update, then exit
  python -m backend_trustscore.runtime --ingest events.jsonl
  python -m backend_trustscore.runtime --register-webhook 0xSERVICE https://hooks.example/fraud
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

from backend_trustscore.alerts.notifier import Notifier, get_notifier, subscribe
from backend_trustscore.analysis_engine.aggregator import FraudAggregator
from backend_trustscore.config.settings import Settings, get_settings
from backend_trustscore.core.exceptions import TrustScoreError
from backend_trustscore.database.database import Database, get_database
from backend_trustscore.ingestion.adapter import IngestionAdapter
from backend_trustscore.logging import get_logger
from backend_trustscore.reputation.scorer import AgentReputationScorer, ServiceReputationScorer
from backend_trustscore.reputation.trust_matcher import TrustMatcher
from backend_trustscore.scheduler.engine import TASK_FRAUD_SCAN, TASK_SCORE_UPDATE, RecomputationScheduler

logger = get_logger(__name__)


@dataclass
class Engine:
    settings: Settings
    db: Database
    notifier: Notifier
    aggregator: FraudAggregator
    service_scorer: ServiceReputationScorer
    agent_scorer: AgentReputationScorer
    matcher: TrustMatcher
    ingestion: IngestionAdapter
    scheduler: RecomputationScheduler

    def close(self) -> None:
        self.scheduler.shutdown(wait=True)
        self.notifier.close()


def build_engine(
    settings: Settings | None = None,
    *,
    db: Database | None = None,
    notifier: Notifier | None = None,
    clock: Callable[[], float] = time.time,
) -> Engine:
    settings = (settings or get_settings()).validate()
    db = db or get_database(settings.db_path)
    notifier = notifier or get_notifier(settings.notifications, db)
    aggregator = FraudAggregator(db, settings, notifier=notifier, clock=clock)
    service_scorer = ServiceReputationScorer(db, settings.service_weights, clock=clock)
    agent_scorer = AgentReputationScorer(db, settings.agent_weights, clock=clock)
    scheduler = RecomputationScheduler(db, aggregator, service_scorer, agent_scorer, settings.scheduler)
    scheduler.register_default_tasks()
    return Engine(
        settings=settings,
        db=db,
        notifier=notifier,
        aggregator=aggregator,
        service_scorer=service_scorer,
        agent_scorer=agent_scorer,
        matcher=TrustMatcher(db, service_scorer, agent_scorer),
        ingestion=IngestionAdapter(
            db,
            settings.ingestion,
            service_scorer=service_scorer,
            agent_scorer=agent_scorer,
        ),
        scheduler=scheduler,
    )


def read_jsonl(path: Path) -> Iterator[Any]:
    """Yield one parsed object per non-empty line; unparsable lines yield the raw string (rejected downstream)."""
    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("ingest_file_bad_line", path=str(path), line=lineno, error=str(e))
                yield line


def run_forever(engine: Engine, *, run_immediately: bool = False) -> None:
    """Start scheduled sweeps; block until SIGINT/SIGTERM, then shut down."""
    stop = threading.Event()

    def request_shutdown(*args: Any) -> None:
        stop.set()

    try:
        signal.signal(signal.SIGTERM, request_shutdown)
    except (AttributeError, ValueError):
        # Windows or not in main thread
        pass

    engine.scheduler.start(run_immediately=run_immediately)
    logger.info("runtime_started", db_path=str(engine.settings.db_path), tasks=engine.scheduler.task_names)
    try:
        while not stop.is_set():
            stop.wait(1.0)
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
    finally:
        engine.close()
        logger.info("runtime_stopped")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="TrustScore fraud and reputation engine.")
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Run one fraud scan and one score update, then exit.",
    )
    parser.add_argument(
        "--ingest",
        type=Path,
        metavar="FILE.jsonl",
        help="Ingest payment events (one JSON object per line), then exit.",
    )
    parser.add_argument(
        "--run-immediately",
        action="store_true",
        help="When running the scheduler, fire every task once at startup.",
    )
    parser.add_argument(
        "--register-webhook",
        nargs=2,
        metavar=("ADDRESS", "URL"),
        help="Subscribe URL to fraud alerts for one service address, then exit.",
    )
    args = parser.parse_args(argv)

    try:
        engine = build_engine()
    except TrustScoreError as e:
        logger.error("runtime_config_error", error=str(e))
        return 2

    if args.register_webhook is not None:
        service_address, url = args.register_webhook
        try:
            webhook_id = subscribe(engine.db, service_address, url)
        except TrustScoreError as e:
            logger.error("webhook_register_failed", error=str(e))
            return 2
        finally:
            engine.close()
        logger.info("webhook_register_done", webhook_id=webhook_id)
        return 0

    if args.ingest is not None:
        if not args.ingest.is_file():
            logger.error("ingest_file_not_found", path=str(args.ingest))
            engine.close()
            return 2
        stats = engine.ingestion.ingest_many(read_jsonl(args.ingest))
        logger.info("ingest_file_done", path=str(args.ingest), **stats.to_dict())
        if not args.run_now:
            engine.close()
            return 0

    if args.run_now:
        logger.info("runtime_manual_run_start")
        engine.scheduler.run_task(TASK_FRAUD_SCAN)
        engine.scheduler.run_task(TASK_SCORE_UPDATE)
        engine.close()
        logger.info("runtime_manual_run_end")
        return 0

    try:
        run_forever(engine, run_immediately=args.run_immediately)
        return 0
    except Exception as e:
        logger.exception("runtime_fatal", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
