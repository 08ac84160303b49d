"""
Action dispatch: turn a triggered rule into exactly one downstream artifact.

Every action kind is materialized by an external sink (alerts or visit
requests). The dispatcher holds no state of its own; it asks the
deduplication gate before creating anything and holds the gate's
per-(patient, key) lock across check-and-create.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import assert_never

import structlog

from vitals_engine.config import DeduplicationConfig
from vitals_engine.domain.exceptions import ActionDispatchError
from vitals_engine.domain.models import (
    AlertAction,
    AlertSeverity,
    AlertType,
    AssignContentAction,
    AssignTaskAction,
    DispatchOutcome,
    MetricType,
    NewAlert,
    NewVisitRequest,
    RuleDefinition,
    RuleExecutionResult,
    Severity,
    SuggestVisitAction,
    VisitRequestType,
)
from vitals_engine.domain.protocols import AlertSink, VisitRequestSink
from vitals_engine.services.deduplication import VISIT_REQUEST_KEY, DeduplicationGate

logger = structlog.get_logger(__name__)


ALERT_SEVERITIES: dict[Severity, AlertSeverity] = {
    Severity.INFO: AlertSeverity.INFO,
    Severity.WARN: AlertSeverity.WARNING,
    Severity.CRITICAL: AlertSeverity.CRITICAL,
}

# Several metrics share an alert type until the care team asks for dedicated ones.
ALERT_TYPES: dict[MetricType, AlertType] = {
    MetricType.BLOOD_PRESSURE: AlertType.BP_HIGH_TREND,
    MetricType.GLUCOSE: AlertType.GLUCOSE_HIGH,
    MetricType.WEIGHT: AlertType.MEDICATION_ADHERENCE,
    MetricType.SLEEP: AlertType.NO_DATA,
    MetricType.HEART_RATE_VARIABILITY: AlertType.NO_DATA,
    MetricType.A1C: AlertType.GLUCOSE_HIGH,
}


class ActionDispatcher:
    """
    Performs the single side effect of a triggered rule.

    One handler per action variant, selected with an exhaustive match, so a
    new action kind fails type checking until it has a handler.
    """

    def __init__(
        self,
        alert_sink: AlertSink,
        visit_request_sink: VisitRequestSink,
        gate: DeduplicationGate,
        config: DeduplicationConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.alert_sink = alert_sink
        self.visit_request_sink = visit_request_sink
        self.gate = gate
        self.config = config or DeduplicationConfig()
        self.clock = clock or (lambda: datetime.now(UTC))
        self.logger = logger.bind(component="action_dispatcher")

    @property
    def alert_window(self) -> timedelta:
        return timedelta(hours=self.config.alert_window_hours)

    @property
    def visit_request_window(self) -> timedelta:
        return timedelta(days=self.config.visit_request_window_days)

    async def dispatch(
        self, patient_id: str, rule: RuleDefinition, result: RuleExecutionResult
    ) -> DispatchOutcome:
        """
        Dispatch the rule's action for a triggered result.

        Raises:
            ActionDispatchError: the sink rejected the artifact
        """
        action = rule.action

        try:
            match action:
                case AlertAction():
                    outcome = await self._create_alert(patient_id, rule, result)
                case SuggestVisitAction():
                    outcome = await self._suggest_visit(patient_id, rule, result)
                case AssignTaskAction():
                    outcome = await self._assign_task(patient_id, rule, action)
                case AssignContentAction():
                    outcome = await self._assign_content(patient_id, rule, action)
                case _:
                    assert_never(action)
        except ActionDispatchError:
            raise
        except Exception as e:
            raise ActionDispatchError(patient_id, rule.id, action.kind, str(e)) from e

        self.logger.info(
            "action_dispatched",
            patient_id=patient_id,
            rule_id=rule.id,
            action=action.kind,
            outcome=outcome.value,
        )
        return outcome

    async def _create_alert(
        self, patient_id: str, rule: RuleDefinition, result: RuleExecutionResult
    ) -> DispatchOutcome:
        alert_type = ALERT_TYPES[rule.metric]
        alert = NewAlert(
            severity=ALERT_SEVERITIES[rule.severity],
            type=alert_type,
            title=rule.name,
            body=result.message or rule.description or f"Rule triggered: {rule.name}",
            payload={
                "ruleId": rule.id,
                "metric": rule.metric.value,
                "value": result.value,
                "trend": result.trend_slope,
                **result.metadata,
            },
        )
        return await self._create_alert_once(patient_id, alert, lock_key=alert_type.value)

    async def _suggest_visit(
        self, patient_id: str, rule: RuleDefinition, result: RuleExecutionResult
    ) -> DispatchOutcome:
        request = NewVisitRequest(
            type=(
                VisitRequestType.PROVIDER
                if rule.severity == Severity.CRITICAL
                else VisitRequestType.MA_CHECK
            ),
            notes=f"Suggested by rule: {rule.name}. {result.message or rule.description}".strip(),
        )

        async with self.gate.hold(patient_id, VISIT_REQUEST_KEY):
            if await self.gate.should_suppress(
                patient_id, VISIT_REQUEST_KEY, self.visit_request_window, now=self.clock()
            ):
                return DispatchOutcome.SUPPRESSED
            await self.visit_request_sink.create_visit_request(patient_id, request)
        return DispatchOutcome.CREATED

    async def _assign_task(
        self, patient_id: str, rule: RuleDefinition, action: AssignTaskAction
    ) -> DispatchOutcome:
        title = action.title or f"Monitor {rule.metric.value}"
        alert = NewAlert(
            severity=AlertSeverity.INFO,
            type=AlertType.CARE_TASK,
            title=f"Task: {title}",
            body=rule.description or f"Please complete: {title}",
            payload={
                "ruleId": rule.id,
                "taskType": action.task_type,
                "title": title,
                "action": action.kind,
            },
        )
        return await self._create_alert_once(
            patient_id, alert, lock_key=f"{AlertType.CARE_TASK.value}:{rule.id}", rule_id=rule.id
        )

    async def _assign_content(
        self, patient_id: str, rule: RuleDefinition, action: AssignContentAction
    ) -> DispatchOutcome:
        alert = NewAlert(
            severity=AlertSeverity.INFO,
            type=AlertType.CONTENT_ASSIGNMENT,
            title="New content available",
            body=f"We've prepared personalized content for you about {rule.metric.value}",
            payload={
                "ruleId": rule.id,
                "contentModule": action.content_module,
                "action": action.kind,
            },
        )
        return await self._create_alert_once(
            patient_id,
            alert,
            lock_key=f"{AlertType.CONTENT_ASSIGNMENT.value}:{rule.id}",
            rule_id=rule.id,
        )

    async def _create_alert_once(
        self,
        patient_id: str,
        alert: NewAlert,
        *,
        lock_key: str,
        rule_id: str | None = None,
    ) -> DispatchOutcome:
        async with self.gate.hold(patient_id, lock_key):
            if await self.gate.should_suppress(
                patient_id, alert.type, self.alert_window, rule_id=rule_id, now=self.clock()
            ):
                return DispatchOutcome.SUPPRESSED
            await self.alert_sink.create_alert(patient_id, alert)
        return DispatchOutcome.CREATED
