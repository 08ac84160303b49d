"""
Deduplication gate: suppress actions that already fired recently.

A rule re-triggers on every scheduler pass while the patient's state is
unchanged, so every dispatch first asks whether an equivalent ACTIVE alert or
PENDING visit request already exists inside the lookback window. The
check-then-create sequence is serialized per (patient, key) with an asyncio
lock held by the caller through ``hold()``.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import structlog

from vitals_engine.domain.models import AlertType
from vitals_engine.domain.protocols import AlertSink, VisitRequestSink

logger = structlog.get_logger(__name__)

VISIT_REQUEST_KEY = "VISIT_REQUEST"


class DeduplicationGate:
    """
    Answers "has an equivalent artifact fired recently for this patient?".

    Design principles:
    - Fail closed: a failed lookup suppresses the action
    - Lookups only, the gate never writes
    - Per-(patient, key) locks, released when no pass holds them
    """

    def __init__(self, alert_sink: AlertSink, visit_request_sink: VisitRequestSink) -> None:
        self.alert_sink = alert_sink
        self.visit_request_sink = visit_request_sink
        self.logger = logger.bind(component="deduplication_gate")
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, patient_id: str, key: str) -> AsyncIterator[None]:
        """Serialize check-and-create for one (patient, key) pair."""
        lock = self._locks.get((patient_id, key))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[(patient_id, key)] = lock

        async with lock:
            yield

    async def should_suppress(
        self,
        patient_id: str,
        key: AlertType | str,
        lookback: timedelta,
        *,
        rule_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Check for an equivalent artifact created within ``lookback``.

        Args:
            patient_id: Patient the action targets
            key: An AlertType for alert-backed actions, or VISIT_REQUEST_KEY
            lookback: Suppression window
            rule_id: Narrows alert lookups to artifacts created by this rule
            now: Reference time, defaults to the current UTC time

        Returns:
            bool: True when the action must not be dispatched
        """
        since = (now or datetime.now(UTC)) - lookback
        key_name = key.value if isinstance(key, AlertType) else key

        try:
            if key_name == VISIT_REQUEST_KEY:
                existing = await self.visit_request_sink.find_pending_request(patient_id, since)
            else:
                existing = await self.alert_sink.find_active_alert(
                    patient_id, AlertType(key_name), since, rule_id=rule_id
                )
        except Exception as e:
            self.logger.error(
                "dedup_lookup_failed_suppressing",
                patient_id=patient_id,
                key=key_name,
                error=str(e),
            )
            return True

        if existing is not None:
            self.logger.info(
                "action_suppressed_duplicate",
                patient_id=patient_id,
                key=key_name,
                existing_id=existing.id,
            )
            return True

        return False
