"""
Per-patient evaluation pass: the engine's single unit of work.

One pass loads the enabled rule catalog, evaluates every rule against the
patient's readings, records every evaluation and dispatches the action of
every triggered rule:

1. Fetch + evaluate all rules concurrently (pure evaluation over I/O fetches)
2. Record, then dispatch, sequentially in descending priority order
3. Isolate failures per (patient, rule)

The scheduler calls ``evaluate_for_patient`` for each patient; external
callers may call it directly after ingesting new readings.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from vitals_engine.config import AppConfig, get_config
from vitals_engine.domain.exceptions import (
    ActionDispatchError,
    ExecutionRecordError,
    PatientEvaluationError,
    RuleEvaluationError,
)
from vitals_engine.domain.models import (
    PatientPassReport,
    RuleDefinition,
    RuleExecutionResult,
    RuleOutcome,
)
from vitals_engine.domain.protocols import (
    AlertSink,
    ExecutionStore,
    MeasurementSource,
    RuleRepository,
    VisitRequestSink,
)
from vitals_engine.services.conditions import evaluate
from vitals_engine.services.deduplication import DeduplicationGate
from vitals_engine.services.dispatch import ActionDispatcher
from vitals_engine.services.recorder import ExecutionRecorder
from vitals_engine.services.result import Result

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class RulesEngine:
    """
    Orchestrates condition evaluation, audit recording and action dispatch.

    Holds no patient state between passes; everything it reads or writes
    belongs to the collaborators passed in. The deduplication lock lives in
    ``gate``: engines that write to the same sinks in one process (say, the
    scheduler's and an on-demand caller's) must be given the same gate.
    """

    def __init__(
        self,
        measurement_source: MeasurementSource,
        rule_repository: RuleRepository,
        alert_sink: AlertSink,
        visit_request_sink: VisitRequestSink,
        execution_store: ExecutionStore,
        config: AppConfig | None = None,
        clock: Clock = utc_now,
        gate: DeduplicationGate | None = None,
    ) -> None:
        self.config = config or get_config()
        self.measurement_source = measurement_source
        self.rule_repository = rule_repository
        self.clock = clock
        self.logger = logger.bind(component="rules_engine")

        self.gate = gate or DeduplicationGate(alert_sink, visit_request_sink)
        self.dispatcher = ActionDispatcher(
            alert_sink, visit_request_sink, self.gate, self.config.deduplication, clock
        )
        self.recorder = ExecutionRecorder(execution_store)

    async def evaluate_for_patient(self, patient_id: str) -> PatientPassReport:
        """
        Run every enabled rule for one patient.

        Returns:
            PatientPassReport: one outcome per enabled rule, in priority order

        Raises:
            PatientEvaluationError: the rule catalog could not be loaded
        """
        started_at = self.clock()
        start_time = time.perf_counter()
        log = self.logger.bind(patient_id=patient_id)

        try:
            rules = await self.rule_repository.list_enabled_rules()
        except Exception as e:
            log.error("rule_catalog_unavailable", error=str(e))
            raise PatientEvaluationError(patient_id, f"rule catalog unavailable: {e}") from e

        # sorted() is stable, so equal priorities keep catalog order
        rules = sorted((r for r in rules if r.enabled), key=lambda r: r.priority, reverse=True)

        async with asyncio.TaskGroup() as task_group:
            tasks = [
                task_group.create_task(self._evaluate_rule(patient_id, rule, started_at))
                for rule in rules
            ]

        outcomes = [
            await self._record_and_dispatch(patient_id, rule, task.result())
            for rule, task in zip(rules, tasks, strict=True)
        ]

        report = PatientPassReport(
            patient_id=patient_id,
            outcomes=outcomes,
            started_at=started_at,
            duration_seconds=time.perf_counter() - start_time,
        )
        log.info(
            "patient_pass_completed",
            rules_evaluated=len(rules),
            triggered=report.triggered_count,
            dispatched=report.dispatched_count,
            failed=report.failed_count,
            duration_seconds=round(report.duration_seconds, 3),
        )
        return report

    async def _evaluate_rule(
        self, patient_id: str, rule: RuleDefinition, now: datetime
    ) -> Result[RuleExecutionResult, RuleEvaluationError]:
        start = now - timedelta(days=rule.window_days)

        try:
            measurements = await self.measurement_source.find_measurements(
                patient_id, rule.metric, start, now
            )
            measurements = sorted(measurements, key=lambda m: m.timestamp)
            result = evaluate(rule, measurements, now=now, settings=self.config.evaluation)
        except Exception as e:
            return Result.err(RuleEvaluationError(patient_id, rule.id, str(e)))

        return Result.ok(result)

    async def _record_and_dispatch(
        self,
        patient_id: str,
        rule: RuleDefinition,
        evaluation: Result[RuleExecutionResult, RuleEvaluationError],
    ) -> RuleOutcome:
        log = self.logger.bind(patient_id=patient_id, rule_id=rule.id, rule_name=rule.name)
        outcome = RuleOutcome(rule_id=rule.id, rule_name=rule.name)

        if evaluation.is_err():
            error = evaluation.unwrap_err()
            log.warning("rule_evaluation_failed", error=error.message)
            outcome.error = error.message
            return outcome

        result = evaluation.unwrap()

        # Recorded before dispatch; a triggered execution stays on record even if dispatch fails.
        try:
            outcome.execution = await self.recorder.record(rule.id, patient_id, result)
        except ExecutionRecordError as e:
            log.error("rule_execution_not_recorded", error=e.message)
            outcome.error = e.message
            return outcome

        if not result.triggered:
            return outcome

        log.info("rule_triggered", value=result.value, message=result.message)

        try:
            outcome.dispatch = await self.dispatcher.dispatch(patient_id, rule, result)
        except ActionDispatchError as e:
            log.error("action_dispatch_failed", action=rule.action.kind, error=e.message)
            outcome.error = e.message

        return outcome
