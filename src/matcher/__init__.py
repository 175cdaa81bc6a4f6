"""
Matcher Service - chained batch matching of profiles to opportunities.

A run is started by the RunInitiator, which schedules batch 0. Each batch is
scored by the LLM oracle in its own task and schedules the next one, so a run
never lives in a single long-running process.
"""

from .batch import PROCESS_BATCH_TASK, BatchOutcome, BatchProcessor, backoff_delay_ms
from .initiator import ProfileNotFoundError, RunInitiator
from .oracle import OracleResponseError, ScoringOracle
from .rate_limit import is_rate_limited
from .scheduler import TaskQueue, Worker
from .validation import RawFallback, Validated, validate_matching_result

__all__ = [
    "PROCESS_BATCH_TASK",
    "BatchOutcome",
    "BatchProcessor",
    "backoff_delay_ms",
    "ProfileNotFoundError",
    "RunInitiator",
    "OracleResponseError",
    "ScoringOracle",
    "is_rate_limited",
    "TaskQueue",
    "Worker",
    "RawFallback",
    "Validated",
    "validate_matching_result",
]
