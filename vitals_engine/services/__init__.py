"""
Rules engine services.

This package contains the evaluation pipeline: condition evaluation,
deduplication, action dispatch, audit recording, the per-patient pass,
the periodic scheduler and default catalog seeding.
"""

from .conditions import evaluate
from .deduplication import VISIT_REQUEST_KEY, DeduplicationGate
from .dispatch import ActionDispatcher
from .engine import RulesEngine
from .recorder import ExecutionRecorder
from .result import Result
from .scheduler import EvaluationScheduler
from .seeding import default_rules, seed_defaults

__all__ = [
    "evaluate",
    "DeduplicationGate",
    "VISIT_REQUEST_KEY",
    "ActionDispatcher",
    "RulesEngine",
    "ExecutionRecorder",
    "Result",
    "EvaluationScheduler",
    "default_rules",
    "seed_defaults",
]
