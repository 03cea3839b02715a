"""Background task definitions."""

from worker.tasks.effectiveness import (
    EffectivenessPipeline,
    RunAbandoned,
    run_effectiveness,
    run_effectiveness_sync,
)

__all__ = [
    "EffectivenessPipeline",
    "RunAbandoned",
    "run_effectiveness",
    "run_effectiveness_sync",
]
