"""
Domain models for clinical rule evaluation.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation; rule conditions, rule actions and measurement
values are closed tagged unions discriminated on ``kind``.
"""

import math
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


def _assume_utc(value: datetime) -> datetime:
    """Stores often hand back naive UTC; comparisons need an offset."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]


class MetricType(str, Enum):
    """Patient metrics a rule can watch."""

    BLOOD_PRESSURE = "bp"
    GLUCOSE = "glucose"
    WEIGHT = "weight"
    SLEEP = "sleep"
    HEART_RATE_VARIABILITY = "hrv"
    A1C = "a1c"


class Severity(str, Enum):
    """Rule severity as authored by the operator."""

    INFO = "info"
    WARN = "warn"
    CRITICAL = "critical"


# Rule conditions


class ThresholdCondition(BaseModel):
    """Latest value beyond a threshold, held for ``persistence_days``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["threshold"] = "threshold"
    operator: Literal[">", "<"]
    value: float
    persistence_days: int = Field(default=3, gt=0)

    def holds(self, candidate: float) -> bool:
        if self.operator == ">":
            return candidate > self.value
        return candidate < self.value


class TrendCondition(BaseModel):
    """Least-squares slope over the most recent ``days`` readings."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["trend"] = "trend"
    direction: Literal["up", "down"]
    days: int = Field(default=5, gt=0)
    min_slope: float | None = Field(
        default=None, ge=0.0, description="Overrides the configured slope significance"
    )


class VolatilityCondition(BaseModel):
    """Range of readings relative to their mean."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["volatility"] = "volatility"
    percent_change: float | None = Field(
        default=None, gt=0.0, description="Falls back to the configured default"
    )


class MissingDataCondition(BaseModel):
    """No readings at all inside the rule window."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["missing_data"] = "missing_data"
    hours_without_data: int = Field(default=72, gt=0)


Condition = Annotated[
    ThresholdCondition | TrendCondition | VolatilityCondition | MissingDataCondition,
    Field(discriminator="kind"),
]


# Rule actions


class AlertAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["alert"] = "alert"


class SuggestVisitAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["suggest_visit"] = "suggest_visit"


class AssignTaskAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assign_task"] = "assign_task"
    task_type: str = "TRACKING"
    title: str | None = None


class AssignContentAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["assign_content"] = "assign_content"
    content_module: str = "general"


RuleAction = Annotated[
    AlertAction | SuggestVisitAction | AssignTaskAction | AssignContentAction,
    Field(discriminator="kind"),
]


class RuleDefinition(BaseModel):
    """Operator-authored rule: a condition over one metric plus the action to take."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(min_length=1)
    description: str = ""
    metric: MetricType
    window_days: int = Field(gt=0, description="How far back to look for measurements")
    condition: Condition
    severity: Severity
    action: RuleAction
    enabled: bool = True
    priority: int = 0
    created_at: UtcDatetime = Field(default_factory=_utcnow)
    updated_at: UtcDatetime = Field(default_factory=_utcnow)


# Measurements


class ScalarValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["scalar"] = "scalar"
    value: float


class StructuredValue(BaseModel):
    """Multi-field reading such as a systolic/diastolic pair."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["structured"] = "structured"
    components: dict[str, float]


MeasurementValue = Annotated[ScalarValue | StructuredValue, Field(discriminator="kind")]


def _as_number(raw: Any) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        return None
    try:
        number = float(raw)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def parse_measurement_value(raw: Any) -> ScalarValue | StructuredValue | None:
    """
    Convert a raw stored value into a measurement value.

    Numbers become scalars, mappings keep their numeric fields in order,
    anything else has no usable value. Never raises.
    """
    if isinstance(raw, ScalarValue | StructuredValue):
        return raw
    number = _as_number(raw)
    if number is not None:
        return ScalarValue(value=number)
    if isinstance(raw, Mapping):
        numeric = {str(k): n for k, v in raw.items() if (n := _as_number(v)) is not None}
        return StructuredValue(components=numeric) if numeric else None
    return None


class Measurement(BaseModel):
    """Individual patient reading, consumed read-only."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    metric: MetricType
    value: MeasurementValue | None
    timestamp: UtcDatetime = Field(default_factory=_utcnow)
    source: str = Field(default="manual", description="Device or entry channel")


# Evaluation outcomes


class RuleExecutionResult(BaseModel):
    """Verdict of one rule against one patient's series, plus evidence."""

    model_config = ConfigDict(frozen=True)

    triggered: bool
    value: float | None = None
    trend_slope: float | None = None
    message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RuleExecution(BaseModel):
    """Append-only audit record of one evaluation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    rule_id: str
    patient_id: str
    triggered: bool
    result: RuleExecutionResult
    executed_at: UtcDatetime = Field(default_factory=_utcnow)


# Action sink artifacts


class AlertSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertType(str, Enum):
    BP_HIGH_TREND = "BP_HIGH_TREND"
    GLUCOSE_HIGH = "GLUCOSE_HIGH"
    NO_DATA = "NO_DATA"
    VISIT_REQUESTED = "VISIT_REQUESTED"
    MEDICATION_ADHERENCE = "MEDICATION_ADHERENCE"
    CARE_TASK = "CARE_TASK"
    CONTENT_ASSIGNMENT = "CONTENT_ASSIGNMENT"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class NewAlert(BaseModel):
    """Alert creation payload handed to the alert sink."""

    model_config = ConfigDict(frozen=True)

    severity: AlertSeverity
    type: AlertType
    title: str
    body: str
    payload: dict[str, Any] = Field(default_factory=dict)


class Alert(NewAlert):
    """Alert as stored by the alert sink."""

    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=_new_id)
    patient_id: str
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: UtcDatetime = Field(default_factory=_utcnow)
    resolved_at: UtcDatetime | None = None


class VisitRequestType(str, Enum):
    MA_CHECK = "MA_CHECK"
    PROVIDER = "PROVIDER"


class VisitRequestStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class NewVisitRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: VisitRequestType
    notes: str | None = None


class VisitRequest(NewVisitRequest):
    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=_new_id)
    patient_id: str
    status: VisitRequestStatus = VisitRequestStatus.PENDING
    requested_at: UtcDatetime = Field(default_factory=_utcnow)


# Pass reports


class DispatchOutcome(str, Enum):
    CREATED = "created"
    SUPPRESSED = "suppressed"


class RuleOutcome(BaseModel):
    """What happened to one rule during one patient's pass."""

    rule_id: str
    rule_name: str
    execution: RuleExecution | None = None
    dispatch: DispatchOutcome | None = None
    error: str | None = None

    @property
    def triggered(self) -> bool:
        return self.execution is not None and self.execution.triggered

    @property
    def failed(self) -> bool:
        return self.error is not None


class PatientPassReport(BaseModel):
    """Outcome of evaluating every enabled rule for one patient."""

    patient_id: str
    outcomes: list[RuleOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def triggered_count(self) -> int:
        return sum(1 for o in self.outcomes if o.triggered)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def dispatched_count(self) -> int:
        return sum(1 for o in self.outcomes if o.dispatch == DispatchOutcome.CREATED)


class PassReport(BaseModel):
    """Outcome of one scheduler pass over the whole population."""

    patients: list[PatientPassReport] = Field(default_factory=list)
    failed_patients: dict[str, str] = Field(
        default_factory=dict, description="patient_id -> failure reason"
    )
    started_at: datetime = Field(default_factory=_utcnow)
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def evaluated_count(self) -> int:
        return len(self.patients)

    @property
    def dispatched_count(self) -> int:
        return sum(p.dispatched_count for p in self.patients)
