"""Exceptions raised by the rules engine."""


class RulesEngineError(Exception):
    """Base exception for all rules engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize rules engine exception.

        Args:
            message: Human-readable error message
            details: Optional dict with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)


class PatientEvaluationError(RulesEngineError):
    """Raised when a patient's pass could not run to completion."""

    def __init__(self, patient_id: str, reason: str):
        super().__init__(
            message=f"Evaluation pass for patient {patient_id} failed: {reason}",
            details={"patient_id": patient_id},
        )


class RuleEvaluationError(RulesEngineError):
    """Raised when one rule could not be evaluated for one patient."""

    def __init__(self, patient_id: str, rule_id: str, reason: str):
        super().__init__(
            message=f"Rule {rule_id} could not be evaluated for patient {patient_id}: {reason}",
            details={"patient_id": patient_id, "rule_id": rule_id},
        )


class ExecutionRecordError(RulesEngineError):
    """Raised when the audit record of an evaluation could not be written."""

    def __init__(self, patient_id: str, rule_id: str, reason: str):
        super().__init__(
            message=f"Execution of rule {rule_id} for patient {patient_id} was not recorded: {reason}",
            details={"patient_id": patient_id, "rule_id": rule_id},
        )


class ActionDispatchError(RulesEngineError):
    """Raised when an action sink rejected the artifact for a triggered rule."""

    def __init__(self, patient_id: str, rule_id: str, action: str, reason: str):
        super().__init__(
            message=f"Action {action} for rule {rule_id} and patient {patient_id} failed: {reason}",
            details={"patient_id": patient_id, "rule_id": rule_id, "action": action},
        )
