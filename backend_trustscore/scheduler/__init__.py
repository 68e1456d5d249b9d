# Periodic recomputation: fraud scans and reputation refresh sweeps.

from backend_trustscore.scheduler.engine import (
    TASK_FRAUD_SCAN,
    TASK_SCORE_UPDATE,
    RecomputationScheduler,
    SweepResult,
)

__all__ = [
    "TASK_FRAUD_SCAN",
    "TASK_SCORE_UPDATE",
    "RecomputationScheduler",
    "SweepResult",
]
