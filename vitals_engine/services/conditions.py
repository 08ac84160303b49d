"""
Condition evaluation: pure functions from (rule, readings) to a verdict.

Key patterns:
- One evaluator per condition variant, selected with an exhaustive match
- No I/O and no clock reads: ``now`` is passed in by the caller
- Malformed readings degrade to "no usable value" instead of raising
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import assert_never

import structlog

from vitals_engine.config import EvaluationConfig
from vitals_engine.domain.models import (
    Measurement,
    MissingDataCondition,
    RuleDefinition,
    RuleExecutionResult,
    ThresholdCondition,
    TrendCondition,
    VolatilityCondition,
)
from vitals_engine.services.extraction import extract_series

logger = structlog.get_logger(__name__)

MIN_VOLATILITY_SAMPLES = 3


def evaluate(
    rule: RuleDefinition,
    measurements: Sequence[Measurement],
    *,
    now: datetime,
    settings: EvaluationConfig | None = None,
) -> RuleExecutionResult:
    """
    Evaluate one rule against the readings fetched for its window.

    Args:
        rule: The rule to evaluate
        measurements: Readings for ``rule.metric`` ordered by ascending timestamp
        now: Reference time for persistence windows
        settings: Defaults for parameters the rule leaves unset

    Returns:
        RuleExecutionResult: verdict plus evidence (value, slope, metadata)
    """
    settings = settings or EvaluationConfig()
    condition = rule.condition

    match condition:
        case MissingDataCondition():
            return evaluate_missing_data(rule, condition, measurements)
        case ThresholdCondition():
            return evaluate_threshold(rule, condition, measurements, now=now)
        case TrendCondition():
            return evaluate_trend(rule, condition, measurements, settings=settings)
        case VolatilityCondition():
            return evaluate_volatility(rule, condition, measurements, settings=settings)
        case _:
            assert_never(condition)


def evaluate_threshold(
    rule: RuleDefinition,
    condition: ThresholdCondition,
    measurements: Sequence[Measurement],
    *,
    now: datetime,
) -> RuleExecutionResult:
    values = extract_series(measurements, rule.metric)
    if not values:
        return RuleExecutionResult(triggered=False)

    latest = values[-1]
    if not condition.holds(latest):
        return RuleExecutionResult(triggered=False, value=latest)

    days = condition.persistence_days
    cutoff = now - timedelta(days=days)
    recent = extract_series((m for m in measurements if m.timestamp >= cutoff), rule.metric)

    if len(recent) >= days and all(condition.holds(v) for v in recent):
        return RuleExecutionResult(
            triggered=True,
            value=latest,
            message=f"{rule.metric.value} {condition.operator} {condition.value:g} for {days} days",
            metadata={"persistence_days": days, "qualifying_readings": len(recent)},
        )

    return RuleExecutionResult(triggered=False, value=latest)


def calculate_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of value against index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = n * (n - 1) / 2
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    return (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)


def evaluate_trend(
    rule: RuleDefinition,
    condition: TrendCondition,
    measurements: Sequence[Measurement],
    *,
    settings: EvaluationConfig,
) -> RuleExecutionResult:
    values = extract_series(measurements, rule.metric)
    recent = values[-condition.days :]
    if len(recent) < 2:
        return RuleExecutionResult(triggered=False, value=values[-1] if values else None)

    slope = calculate_slope(recent)
    threshold = (
        condition.min_slope if condition.min_slope is not None else settings.trend_slope_threshold
    )

    significant = abs(slope) > threshold
    if condition.direction == "up":
        triggered = slope > 0 and significant
    else:
        triggered = slope < 0 and significant

    return RuleExecutionResult(
        triggered=triggered,
        value=values[-1],
        trend_slope=slope,
        message=(
            f"{rule.metric.value} trending {condition.direction} over {condition.days} days"
            if triggered
            else None
        ),
        metadata={"samples": len(recent), "slope_threshold": threshold},
    )


def evaluate_volatility(
    rule: RuleDefinition,
    condition: VolatilityCondition,
    measurements: Sequence[Measurement],
    *,
    settings: EvaluationConfig,
) -> RuleExecutionResult:
    values = extract_series(measurements, rule.metric)
    if len(values) < MIN_VOLATILITY_SAMPLES:
        return RuleExecutionResult(triggered=False, value=values[-1] if values else None)

    highest = max(values)
    lowest = min(values)
    mean = sum(values) / len(values)
    if mean == 0:
        logger.warning("volatility_zero_mean", rule_id=rule.id, samples=len(values))
        return RuleExecutionResult(triggered=False, value=values[-1])

    volatility_percent = (highest - lowest) / mean * 100
    limit = (
        condition.percent_change
        if condition.percent_change is not None
        else settings.default_volatility_percent
    )
    triggered = volatility_percent > limit

    return RuleExecutionResult(
        triggered=triggered,
        value=values[-1],
        message=(
            f"{rule.metric.value} showing {volatility_percent:.1f}% volatility"
            if triggered
            else None
        ),
        metadata={
            "volatility_percent": volatility_percent,
            "max_value": highest,
            "min_value": lowest,
        },
    )


def evaluate_missing_data(
    rule: RuleDefinition,
    condition: MissingDataCondition,
    measurements: Sequence[Measurement],
) -> RuleExecutionResult:
    # Staleness is decided by the rule window the caller fetched; any reading clears it.
    if measurements:
        return RuleExecutionResult(triggered=False)

    return RuleExecutionResult(
        triggered=True,
        message=f"No {rule.metric.value} data for {condition.hours_without_data} hours",
        metadata={"hours_without_data": condition.hours_without_data},
    )
