"""Execution recorder: the unconditional audit write of every evaluation."""

import structlog

from vitals_engine.domain.exceptions import ExecutionRecordError
from vitals_engine.domain.models import RuleExecution, RuleExecutionResult
from vitals_engine.domain.protocols import ExecutionStore

logger = structlog.get_logger(__name__)


class ExecutionRecorder:
    """Appends one RuleExecution per evaluation, triggered or not."""

    def __init__(self, store: ExecutionStore) -> None:
        self.store = store
        self.logger = logger.bind(component="execution_recorder")

    async def record(
        self, rule_id: str, patient_id: str, result: RuleExecutionResult
    ) -> RuleExecution:
        """
        Persist the audit record of one evaluation.

        Raises:
            ExecutionRecordError: the store rejected the write
        """
        execution = RuleExecution(
            rule_id=rule_id,
            patient_id=patient_id,
            triggered=result.triggered,
            result=result,
        )

        try:
            await self.store.append(execution)
        except Exception as e:
            raise ExecutionRecordError(patient_id, rule_id, str(e)) from e

        self.logger.debug(
            "rule_execution_recorded",
            execution_id=execution.id,
            rule_id=rule_id,
            patient_id=patient_id,
            triggered=result.triggered,
        )
        return execution
