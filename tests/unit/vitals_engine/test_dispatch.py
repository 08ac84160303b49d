"""Action dispatcher: one artifact per action kind, suppression, error wrapping."""

import asyncio

import pytest

from adapters.memory import InMemoryAlertSink, InMemoryVisitRequestSink
from vitals_engine.config import DeduplicationConfig
from vitals_engine.domain.exceptions import ActionDispatchError
from vitals_engine.domain.models import (
    AlertSeverity,
    AlertType,
    AssignContentAction,
    AssignTaskAction,
    DispatchOutcome,
    MetricType,
    RuleExecutionResult,
    Severity,
    SuggestVisitAction,
    VisitRequestType,
)
from vitals_engine.services.deduplication import DeduplicationGate
from vitals_engine.services.dispatch import ActionDispatcher


@pytest.fixture
def alerts() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def visits() -> InMemoryVisitRequestSink:
    return InMemoryVisitRequestSink()


@pytest.fixture
def dispatcher(alerts: InMemoryAlertSink, visits: InMemoryVisitRequestSink) -> ActionDispatcher:
    return ActionDispatcher(alerts, visits, DeduplicationGate(alerts, visits))


@pytest.fixture
def triggered() -> RuleExecutionResult:
    return RuleExecutionResult(
        triggered=True,
        value=138.0,
        message="bp > 130 for 3 days",
        metadata={"persistence_days": 3},
    )


class TestAlertAction:
    async def test_creates_alert_with_mapped_type_and_severity(
        self, dispatcher, alerts, make_rule, triggered
    ) -> None:
        rule = make_rule()

        outcome = await dispatcher.dispatch("p1", rule, triggered)

        assert outcome is DispatchOutcome.CREATED
        [alert] = await alerts.list_for_patient("p1")
        assert alert.type is AlertType.BP_HIGH_TREND
        assert alert.severity is AlertSeverity.WARNING
        assert alert.title == rule.name
        assert alert.body == "bp > 130 for 3 days"
        assert alert.payload["ruleId"] == rule.id
        assert alert.payload["metric"] == "bp"
        assert alert.payload["value"] == 138.0
        assert alert.payload["persistence_days"] == 3

    async def test_body_falls_back_to_description(
        self, dispatcher, alerts, make_rule
    ) -> None:
        rule = make_rule(metric=MetricType.GLUCOSE, severity=Severity.CRITICAL)

        await dispatcher.dispatch("p1", rule, RuleExecutionResult(triggered=True))

        [alert] = await alerts.list_for_patient("p1")
        assert alert.type is AlertType.GLUCOSE_HIGH
        assert alert.severity is AlertSeverity.CRITICAL
        assert alert.body == rule.description

    async def test_body_falls_back_to_rule_name(self, dispatcher, alerts, make_rule) -> None:
        rule = make_rule(description="")

        await dispatcher.dispatch("p1", rule, RuleExecutionResult(triggered=True))

        [alert] = await alerts.list_for_patient("p1")
        assert alert.body == f"Rule triggered: {rule.name}"

    async def test_second_alert_within_window_is_suppressed(
        self, dispatcher, alerts, make_rule, triggered
    ) -> None:
        rule = make_rule()

        first = await dispatcher.dispatch("p1", rule, triggered)
        second = await dispatcher.dispatch("p1", rule, triggered)

        assert first is DispatchOutcome.CREATED
        assert second is DispatchOutcome.SUPPRESSED
        assert len(await alerts.list_for_patient("p1")) == 1

    async def test_alert_types_are_shared_across_rules_of_a_metric(
        self, dispatcher, alerts, make_rule, triggered
    ) -> None:
        await dispatcher.dispatch("p1", make_rule(name="BP High"), triggered)
        outcome = await dispatcher.dispatch("p1", make_rule(name="BP Rising"), triggered)

        assert outcome is DispatchOutcome.SUPPRESSED

    async def test_concurrent_dispatch_creates_one_alert(
        self, dispatcher, alerts, make_rule, triggered
    ) -> None:
        rule = make_rule()

        outcomes = await asyncio.gather(
            *(dispatcher.dispatch("p1", rule, triggered) for _ in range(5))
        )

        assert outcomes.count(DispatchOutcome.CREATED) == 1
        assert len(await alerts.list_for_patient("p1")) == 1


class TestSuggestVisit:
    @pytest.mark.parametrize(
        "severity,expected",
        [
            (Severity.CRITICAL, VisitRequestType.PROVIDER),
            (Severity.WARN, VisitRequestType.MA_CHECK),
            (Severity.INFO, VisitRequestType.MA_CHECK),
        ],
    )
    async def test_request_type_follows_severity(
        self, dispatcher, visits, make_rule, triggered, severity, expected
    ) -> None:
        rule = make_rule(severity=severity, action=SuggestVisitAction())

        outcome = await dispatcher.dispatch("p1", rule, triggered)

        assert outcome is DispatchOutcome.CREATED
        [request] = await visits.list_for_patient("p1")
        assert request.type is expected
        assert request.notes == f"Suggested by rule: {rule.name}. bp > 130 for 3 days"

    async def test_any_pending_request_suppresses(
        self, dispatcher, visits, make_rule, triggered
    ) -> None:
        await dispatcher.dispatch("p1", make_rule(action=SuggestVisitAction()), triggered)
        outcome = await dispatcher.dispatch(
            "p1",
            make_rule(name="Glucose Critical High", action=SuggestVisitAction()),
            triggered,
        )

        assert outcome is DispatchOutcome.SUPPRESSED
        assert len(await visits.list_for_patient("p1")) == 1

    async def test_windows_are_configurable(self, alerts, visits) -> None:
        dispatcher = ActionDispatcher(
            alerts,
            visits,
            DeduplicationGate(alerts, visits),
            DeduplicationConfig(visit_request_window_days=1),
        )

        assert dispatcher.visit_request_window.days == 1
        assert dispatcher.alert_window.total_seconds() == 24 * 3600


class TestAssignTask:
    async def test_creates_care_task_alert(self, dispatcher, alerts, make_rule) -> None:
        rule = make_rule(
            severity=Severity.INFO,
            action=AssignTaskAction(task_type="TRACKING", title="Check blood pressure"),
        )

        outcome = await dispatcher.dispatch("p1", rule, RuleExecutionResult(triggered=True))

        assert outcome is DispatchOutcome.CREATED
        [alert] = await alerts.list_for_patient("p1")
        assert alert.type is AlertType.CARE_TASK
        assert alert.severity is AlertSeverity.INFO
        assert alert.title == "Task: Check blood pressure"
        assert alert.payload == {
            "ruleId": rule.id,
            "taskType": "TRACKING",
            "title": "Check blood pressure",
            "action": "assign_task",
        }

    async def test_title_defaults_to_metric(self, dispatcher, alerts, make_rule) -> None:
        rule = make_rule(metric=MetricType.WEIGHT, action=AssignTaskAction())

        await dispatcher.dispatch("p1", rule, RuleExecutionResult(triggered=True))

        [alert] = await alerts.list_for_patient("p1")
        assert alert.title == "Task: Monitor weight"

    async def test_tasks_from_different_rules_do_not_suppress_each_other(
        self, dispatcher, alerts, make_rule
    ) -> None:
        result = RuleExecutionResult(triggered=True)
        bp = make_rule(name="No Data - BP", action=AssignTaskAction(title="Check blood pressure"))
        glucose = make_rule(
            name="No Data - Glucose",
            metric=MetricType.GLUCOSE,
            action=AssignTaskAction(title="Check glucose"),
        )

        assert await dispatcher.dispatch("p1", bp, result) is DispatchOutcome.CREATED
        assert await dispatcher.dispatch("p1", glucose, result) is DispatchOutcome.CREATED
        assert await dispatcher.dispatch("p1", bp, result) is DispatchOutcome.SUPPRESSED


class TestAssignContent:
    async def test_creates_content_assignment(self, dispatcher, alerts, make_rule) -> None:
        rule = make_rule(
            metric=MetricType.WEIGHT,
            severity=Severity.INFO,
            action=AssignContentAction(content_module="nutrition"),
        )

        await dispatcher.dispatch("p1", rule, RuleExecutionResult(triggered=True))

        [alert] = await alerts.list_for_patient("p1")
        assert alert.type is AlertType.CONTENT_ASSIGNMENT
        assert alert.title == "New content available"
        assert alert.body == "We've prepared personalized content for you about weight"
        assert alert.payload["contentModule"] == "nutrition"


async def test_sink_failure_raises_dispatch_error(
    dispatcher, alerts, make_rule, triggered
) -> None:
    alerts.fail_with = ConnectionError("alert store down")
    rule = make_rule()

    with pytest.raises(ActionDispatchError) as exc_info:
        await dispatcher.dispatch("p1", rule, triggered)

    assert exc_info.value.details == {"patient_id": "p1", "rule_id": rule.id, "action": "alert"}
    assert "alert store down" in exc_info.value.message


async def test_failed_lookup_suppresses_dispatch(
    dispatcher, alerts, make_rule, triggered
) -> None:
    alerts.fail_lookups_with = TimeoutError("lookup timed out")

    outcome = await dispatcher.dispatch("p1", make_rule(), triggered)

    assert outcome is DispatchOutcome.SUPPRESSED
    assert await alerts.list_for_patient("p1") == []
