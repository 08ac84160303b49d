"""
Default rule catalog.

Seeding is an explicit bootstrap step: nothing here runs at import. Rules
are upserted by name, so running it again leaves existing (possibly
operator-edited) rules alone.
"""

import structlog

from vitals_engine.domain.models import (
    AlertAction,
    AssignContentAction,
    AssignTaskAction,
    MetricType,
    MissingDataCondition,
    RuleDefinition,
    Severity,
    SuggestVisitAction,
    ThresholdCondition,
    TrendCondition,
    VolatilityCondition,
)
from vitals_engine.domain.protocols import RuleRepository

logger = structlog.get_logger(__name__)


def default_rules() -> list[RuleDefinition]:
    """Build the default catalog with fresh ids and timestamps."""
    return [
        RuleDefinition(
            name="BP High Trend (3 days)",
            description="Blood pressure elevated above 130/80 for 3 consecutive days",
            metric=MetricType.BLOOD_PRESSURE,
            window_days=7,
            condition=ThresholdCondition(operator=">", value=130, persistence_days=3),
            severity=Severity.WARN,
            action=AlertAction(),
            priority=10,
        ),
        # Single-day window, so the latest reading alone decides.
        RuleDefinition(
            name="BP Critical High",
            description="Blood pressure critically high (systolic > 160)",
            metric=MetricType.BLOOD_PRESSURE,
            window_days=1,
            condition=ThresholdCondition(operator=">", value=160, persistence_days=1),
            severity=Severity.CRITICAL,
            action=SuggestVisitAction(),
            priority=20,
        ),
        RuleDefinition(
            name="BP Rising Trend",
            description="Blood pressure trending upward over 5 days",
            metric=MetricType.BLOOD_PRESSURE,
            window_days=7,
            condition=TrendCondition(direction="up", days=5),
            severity=Severity.WARN,
            action=AlertAction(),
            priority=8,
        ),
        RuleDefinition(
            name="Glucose Persistent High",
            description="Glucose above 140 mg/dL despite medication adherence",
            metric=MetricType.GLUCOSE,
            window_days=7,
            condition=ThresholdCondition(operator=">", value=140, persistence_days=5),
            severity=Severity.WARN,
            action=SuggestVisitAction(),
            priority=12,
        ),
        RuleDefinition(
            name="Glucose Critical High",
            description="Glucose critically high (>250 mg/dL)",
            metric=MetricType.GLUCOSE,
            window_days=1,
            condition=ThresholdCondition(operator=">", value=250, persistence_days=1),
            severity=Severity.CRITICAL,
            action=SuggestVisitAction(),
            priority=25,
        ),
        RuleDefinition(
            name="Weight Volatility",
            description="Weight showing significant volatility (>10% change)",
            metric=MetricType.WEIGHT,
            window_days=14,
            condition=VolatilityCondition(percent_change=10),
            severity=Severity.INFO,
            action=AssignContentAction(content_module="nutrition"),
            priority=5,
        ),
        RuleDefinition(
            name="No Data - BP",
            description="No blood pressure data for 72 hours",
            metric=MetricType.BLOOD_PRESSURE,
            window_days=3,
            condition=MissingDataCondition(hours_without_data=72),
            severity=Severity.INFO,
            action=AssignTaskAction(task_type="TRACKING", title="Check blood pressure"),
            priority=3,
        ),
        RuleDefinition(
            name="No Data - Glucose",
            description="No glucose data for 48 hours",
            metric=MetricType.GLUCOSE,
            window_days=2,
            condition=MissingDataCondition(hours_without_data=48),
            severity=Severity.INFO,
            action=AssignTaskAction(task_type="TRACKING", title="Check glucose"),
            priority=3,
        ),
        RuleDefinition(
            name="Sleep Deterioration",
            description="Sleep quality trending downward",
            metric=MetricType.SLEEP,
            window_days=7,
            condition=TrendCondition(direction="down", days=5),
            severity=Severity.INFO,
            action=AssignContentAction(content_module="sleep_hygiene"),
            priority=4,
        ),
        RuleDefinition(
            name="HRV Deterioration",
            description="Heart rate variability declining",
            metric=MetricType.HEART_RATE_VARIABILITY,
            window_days=7,
            condition=TrendCondition(direction="down", days=5),
            severity=Severity.WARN,
            action=AssignContentAction(content_module="stress_management"),
            priority=6,
        ),
    ]


async def seed_defaults(repository: RuleRepository) -> list[RuleDefinition]:
    """
    Upsert the default catalog into ``repository``.

    Returns:
        list[RuleDefinition]: the rules that were created by this call
    """
    created: list[RuleDefinition] = []
    for rule in default_rules():
        stored = await repository.upsert_default_rule(rule)
        if stored is not None:
            created.append(stored)

    logger.info("default_rules_seeded", created=len(created), total=len(default_rules()))
    return created
