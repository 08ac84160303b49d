"""
Protocols for the collaborators the engine reads from and writes to.

Why Protocol over ABC: structural typing, easy in-memory doubles, no coupling
to a storage technology. Every method is async because every collaborator is
I/O-bound.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from vitals_engine.domain.models import (
    Alert,
    AlertType,
    Measurement,
    MetricType,
    NewAlert,
    NewVisitRequest,
    RuleDefinition,
    RuleExecution,
    VisitRequest,
)


@runtime_checkable
class MeasurementSource(Protocol):
    """Time-ordered patient readings."""

    async def find_measurements(
        self, patient_id: str, metric: MetricType, start: datetime, end: datetime
    ) -> list[Measurement]:
        """
        Return readings of ``metric`` for the patient with ``start <= timestamp <= end``.

        Returns:
            list[Measurement]: readings ordered by ascending timestamp.
        """
        ...


@runtime_checkable
class RuleRepository(Protocol):
    """Catalog of operator-authored rules."""

    async def list_enabled_rules(self) -> list[RuleDefinition]:
        """Return enabled rules ordered by descending priority."""
        ...

    async def upsert_default_rule(self, rule: RuleDefinition) -> RuleDefinition | None:
        """Create ``rule`` unless a rule with the same name exists; return it if created."""
        ...


@runtime_checkable
class AlertSink(Protocol):
    async def create_alert(self, patient_id: str, alert: NewAlert) -> Alert: ...

    async def find_active_alert(
        self,
        patient_id: str,
        alert_type: AlertType,
        since: datetime,
        rule_id: str | None = None,
    ) -> Alert | None:
        """Most recent ACTIVE alert of ``alert_type`` created at or after ``since``."""
        ...


@runtime_checkable
class VisitRequestSink(Protocol):
    async def create_visit_request(
        self, patient_id: str, request: NewVisitRequest
    ) -> VisitRequest: ...

    async def find_pending_request(self, patient_id: str, since: datetime) -> VisitRequest | None:
        """Any PENDING request for the patient created at or after ``since``."""
        ...


@runtime_checkable
class ExecutionStore(Protocol):
    """Append-only audit trail of rule executions."""

    async def append(self, execution: RuleExecution) -> None: ...


@runtime_checkable
class PatientDirectory(Protocol):
    """The population a scheduler pass walks."""

    async def list_patient_ids(self) -> list[str]: ...
