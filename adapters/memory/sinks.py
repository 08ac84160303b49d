"""In-memory alert and visit request sinks, with their review lifecycle."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from vitals_engine.domain.models import (
    Alert,
    AlertStatus,
    AlertType,
    NewAlert,
    NewVisitRequest,
    VisitRequest,
    VisitRequestStatus,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryAlertSink:
    """
    Patient alerts in creation order.

    Only ACTIVE alerts count for deduplication; resolving or dismissing an
    alert lets the next trigger create a new one.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._alerts: list[Alert] = []
        self.clock = clock
        self.fail_with: Exception | None = None
        self.fail_lookups_with: Exception | None = None
        self.logger = logger.bind(component="memory_alert_sink")

    async def create_alert(self, patient_id: str, alert: NewAlert) -> Alert:
        if self.fail_with is not None:
            raise self.fail_with

        stored = Alert(patient_id=patient_id, created_at=self.clock(), **alert.model_dump())
        self._alerts.append(stored)
        self.logger.info(
            "alert_created", alert_id=stored.id, patient_id=patient_id, type=stored.type.value
        )
        return stored

    async def find_active_alert(
        self,
        patient_id: str,
        alert_type: AlertType,
        since: datetime,
        rule_id: str | None = None,
    ) -> Alert | None:
        if self.fail_lookups_with is not None:
            raise self.fail_lookups_with

        matches = [
            a
            for a in self._alerts
            if a.patient_id == patient_id
            and a.type == alert_type
            and a.status == AlertStatus.ACTIVE
            and a.created_at >= since
            and (rule_id is None or a.payload.get("ruleId") == rule_id)
        ]
        return max(matches, key=lambda a: a.created_at, default=None)

    async def list_for_patient(self, patient_id: str) -> list[Alert]:
        """Newest first."""
        return sorted(
            (a for a in self._alerts if a.patient_id == patient_id),
            key=lambda a: a.created_at,
            reverse=True,
        )

    async def list_active(self) -> list[Alert]:
        return [a for a in self._alerts if a.status == AlertStatus.ACTIVE]

    async def resolve(self, alert_id: str, note: str | None = None) -> Alert:
        alert = self._get(alert_id)
        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = self.clock()
        if note:
            alert.payload["resolutionNote"] = note
        self.logger.info("alert_resolved", alert_id=alert_id)
        return alert

    async def dismiss(self, alert_id: str) -> Alert:
        alert = self._get(alert_id)
        alert.status = AlertStatus.DISMISSED
        alert.resolved_at = self.clock()
        self.logger.info("alert_dismissed", alert_id=alert_id)
        return alert

    def _get(self, alert_id: str) -> Alert:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        raise KeyError(alert_id)


class InMemoryVisitRequestSink:
    """Visit requests; only PENDING requests count for deduplication."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._requests: list[VisitRequest] = []
        self.clock = clock
        self.fail_with: Exception | None = None
        self.fail_lookups_with: Exception | None = None
        self.logger = logger.bind(component="memory_visit_request_sink")

    async def create_visit_request(
        self, patient_id: str, request: NewVisitRequest
    ) -> VisitRequest:
        if self.fail_with is not None:
            raise self.fail_with

        stored = VisitRequest(
            patient_id=patient_id, requested_at=self.clock(), **request.model_dump()
        )
        self._requests.append(stored)
        self.logger.info(
            "visit_request_created",
            request_id=stored.id,
            patient_id=patient_id,
            type=stored.type.value,
        )
        return stored

    async def find_pending_request(self, patient_id: str, since: datetime) -> VisitRequest | None:
        if self.fail_lookups_with is not None:
            raise self.fail_lookups_with

        for request in reversed(self._requests):
            if (
                request.patient_id == patient_id
                and request.status == VisitRequestStatus.PENDING
                and request.requested_at >= since
            ):
                return request
        return None

    async def list_for_patient(self, patient_id: str) -> list[VisitRequest]:
        return [r for r in self._requests if r.patient_id == patient_id]

    async def update_status(self, request_id: str, status: VisitRequestStatus) -> VisitRequest:
        for request in self._requests:
            if request.id == request_id:
                request.status = status
                self.logger.info(
                    "visit_request_status_changed", request_id=request_id, status=status.value
                )
                return request
        raise KeyError(request_id)
