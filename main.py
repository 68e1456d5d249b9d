"""
Main entrypoint: recomputation scheduler (fraud scans, reputation refresh) until stopped.

Env: TRUSTSCORE_DB_PATH, TRUSTSCORE_CONFIG_PATH, TRUSTSCORE_* overrides, LOG_LEVEL, LOG_FORMAT.
Options: --run-now (one-shot sweeps), --ingest FILE.jsonl (replay payment events).
"""

import sys

# Configure structured JSON logging before other imports that may log
from backend_trustscore.logging import get_logger

logger = get_logger("main")


if __name__ == "__main__":
    from backend_trustscore.runtime import main

    logger.info("main_starting", argv=sys.argv[1:])
    sys.exit(main())
