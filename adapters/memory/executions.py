"""In-memory append-only execution log."""

from vitals_engine.domain.models import RuleExecution


class InMemoryExecutionStore:
    def __init__(self) -> None:
        self._executions: list[RuleExecution] = []
        self.fail_with: Exception | None = None

    @property
    def executions(self) -> list[RuleExecution]:
        return list(self._executions)

    async def append(self, execution: RuleExecution) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self._executions.append(execution)

    async def list_for_patient(
        self, patient_id: str, rule_id: str | None = None
    ) -> list[RuleExecution]:
        return [
            e
            for e in self._executions
            if e.patient_id == patient_id and (rule_id is None or e.rule_id == rule_id)
        ]
