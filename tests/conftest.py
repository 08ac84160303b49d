"""Shared fixtures: rule and reading factories plus a wired in-memory engine."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from adapters.memory import (
    InMemoryAlertSink,
    InMemoryExecutionStore,
    InMemoryMeasurementSource,
    InMemoryRuleRepository,
    InMemoryVisitRequestSink,
)
from vitals_engine.config import AppConfig
from vitals_engine.domain.models import (
    AlertAction,
    Measurement,
    MetricType,
    RuleDefinition,
    Severity,
    ThresholdCondition,
    parse_measurement_value,
)
from vitals_engine.services.engine import RulesEngine

RuleFactory = Callable[..., RuleDefinition]
SeriesFactory = Callable[..., list[Measurement]]


@pytest.fixture
def now() -> datetime:
    return datetime.now(UTC)


@pytest.fixture
def make_rule() -> RuleFactory:
    """Build a rule with sensible defaults; keyword arguments override fields."""

    def _make(**overrides: Any) -> RuleDefinition:
        fields: dict[str, Any] = {
            "name": "BP High Trend (3 days)",
            "description": "Blood pressure elevated above 130/80 for 3 consecutive days",
            "metric": MetricType.BLOOD_PRESSURE,
            "window_days": 7,
            "condition": ThresholdCondition(operator=">", value=130, persistence_days=3),
            "severity": Severity.WARN,
            "action": AlertAction(),
            "priority": 10,
        }
        fields.update(overrides)
        return RuleDefinition(**fields)

    return _make


@pytest.fixture
def make_series(now: datetime) -> SeriesFactory:
    """
    One reading per day, oldest first, the last one taken an hour ago.

    Raw values go through parse_measurement_value like stored values do.
    """

    def _make(
        values: list[Any],
        metric: MetricType = MetricType.BLOOD_PRESSURE,
        patient_id: str = "patient-1",
        spacing: timedelta = timedelta(days=1),
    ) -> list[Measurement]:
        latest = now - timedelta(hours=1)
        count = len(values)
        return [
            Measurement(
                patient_id=patient_id,
                metric=metric,
                value=parse_measurement_value(raw),
                timestamp=latest - spacing * (count - 1 - i),
            )
            for i, raw in enumerate(values)
        ]

    return _make


@dataclass
class EngineHarness:
    """A RulesEngine wired to in-memory collaborators the test can inspect."""

    engine: RulesEngine
    measurements: InMemoryMeasurementSource
    rules: InMemoryRuleRepository
    alerts: InMemoryAlertSink
    visits: InMemoryVisitRequestSink
    executions: InMemoryExecutionStore


@pytest.fixture
def harness() -> EngineHarness:
    measurements = InMemoryMeasurementSource()
    rules = InMemoryRuleRepository()
    alerts = InMemoryAlertSink()
    visits = InMemoryVisitRequestSink()
    executions = InMemoryExecutionStore()
    engine = RulesEngine(
        measurement_source=measurements,
        rule_repository=rules,
        alert_sink=alerts,
        visit_request_sink=visits,
        execution_store=executions,
        config=AppConfig(),
    )
    return EngineHarness(engine, measurements, rules, alerts, visits, executions)
