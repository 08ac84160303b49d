"""Deduplication gate: lookback windows, fail-closed lookups, per-key serialization."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from adapters.memory import InMemoryAlertSink, InMemoryVisitRequestSink
from vitals_engine.domain.models import (
    AlertSeverity,
    AlertType,
    NewAlert,
    NewVisitRequest,
    VisitRequestStatus,
    VisitRequestType,
)
from vitals_engine.services.deduplication import VISIT_REQUEST_KEY, DeduplicationGate

DAY = timedelta(days=1)


def _alert(alert_type: AlertType = AlertType.BP_HIGH_TREND, rule_id: str = "r1") -> NewAlert:
    return NewAlert(
        severity=AlertSeverity.WARNING,
        type=alert_type,
        title="BP High Trend (3 days)",
        body="bp > 130 for 3 days",
        payload={"ruleId": rule_id},
    )


@pytest.fixture
def alerts() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def visits() -> InMemoryVisitRequestSink:
    return InMemoryVisitRequestSink()


@pytest.fixture
def gate(alerts: InMemoryAlertSink, visits: InMemoryVisitRequestSink) -> DeduplicationGate:
    return DeduplicationGate(alerts, visits)


async def test_nothing_recent_allows(gate: DeduplicationGate) -> None:
    assert not await gate.should_suppress("p1", AlertType.BP_HIGH_TREND, DAY)


async def test_active_alert_in_window_suppresses(
    gate: DeduplicationGate, alerts: InMemoryAlertSink
) -> None:
    await alerts.create_alert("p1", _alert())

    assert await gate.should_suppress("p1", AlertType.BP_HIGH_TREND, DAY)
    # Other patients and other alert types are unaffected
    assert not await gate.should_suppress("p2", AlertType.BP_HIGH_TREND, DAY)
    assert not await gate.should_suppress("p1", AlertType.GLUCOSE_HIGH, DAY)


async def test_alert_outside_window_does_not_suppress() -> None:
    old_sink = InMemoryAlertSink(clock=lambda: datetime.now(UTC) - timedelta(hours=25))
    await old_sink.create_alert("p1", _alert())
    old_gate = DeduplicationGate(old_sink, InMemoryVisitRequestSink())

    assert not await old_gate.should_suppress("p1", AlertType.BP_HIGH_TREND, DAY)


async def test_resolved_alert_does_not_suppress(
    gate: DeduplicationGate, alerts: InMemoryAlertSink
) -> None:
    created = await alerts.create_alert("p1", _alert())
    await alerts.resolve(created.id, note="called patient")

    assert not await gate.should_suppress("p1", AlertType.BP_HIGH_TREND, DAY)


async def test_rule_scoped_lookup(gate: DeduplicationGate, alerts: InMemoryAlertSink) -> None:
    await alerts.create_alert("p1", _alert(AlertType.CARE_TASK, rule_id="no-data-bp"))

    assert await gate.should_suppress("p1", AlertType.CARE_TASK, DAY, rule_id="no-data-bp")
    assert not await gate.should_suppress(
        "p1", AlertType.CARE_TASK, DAY, rule_id="no-data-glucose"
    )


async def test_pending_visit_request_suppresses_for_seven_days(
    gate: DeduplicationGate, visits: InMemoryVisitRequestSink
) -> None:
    request = await visits.create_visit_request(
        "p1", NewVisitRequest(type=VisitRequestType.MA_CHECK)
    )

    assert await gate.should_suppress("p1", VISIT_REQUEST_KEY, 7 * DAY)

    await visits.update_status(request.id, VisitRequestStatus.COMPLETED)
    assert not await gate.should_suppress("p1", VISIT_REQUEST_KEY, 7 * DAY)


async def test_explicit_reference_time(gate: DeduplicationGate, alerts: InMemoryAlertSink) -> None:
    await alerts.create_alert("p1", _alert())
    two_days_later = datetime.now(UTC) + 2 * DAY

    assert not await gate.should_suppress(
        "p1", AlertType.BP_HIGH_TREND, DAY, now=two_days_later
    )


async def test_failed_lookup_fails_closed(
    gate: DeduplicationGate, alerts: InMemoryAlertSink, visits: InMemoryVisitRequestSink
) -> None:
    alerts.fail_lookups_with = ConnectionError("alert store unavailable")
    visits.fail_lookups_with = ConnectionError("visit store unavailable")

    assert await gate.should_suppress("p1", AlertType.NO_DATA, DAY)
    assert await gate.should_suppress("p1", VISIT_REQUEST_KEY, 7 * DAY)


async def test_hold_serializes_same_key(gate: DeduplicationGate) -> None:
    events: list[str] = []

    async def critical_section(name: str) -> None:
        async with gate.hold("p1", "BP_HIGH_TREND"):
            events.append(f"{name}-enter")
            await asyncio.sleep(0.01)
            events.append(f"{name}-exit")

    await asyncio.gather(critical_section("a"), critical_section("b"))

    assert events == ["a-enter", "a-exit", "b-enter", "b-exit"]


async def test_hold_does_not_serialize_different_patients(gate: DeduplicationGate) -> None:
    inside = 0
    peak = 0

    async def critical_section(patient_id: str) -> None:
        nonlocal inside, peak
        async with gate.hold(patient_id, "BP_HIGH_TREND"):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(critical_section("p1"), critical_section("p2"))

    assert peak == 2
