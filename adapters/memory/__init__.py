"""
In-memory collaborators for the rules engine.

Used by the tests, the demo runner and single-process deployments. Every
store can be told to fail (``fail_with``) to exercise the engine's failure
isolation.
"""

from .directory import StaticPatientDirectory
from .executions import InMemoryExecutionStore
from .measurements import InMemoryMeasurementSource
from .rules import InMemoryRuleRepository
from .sinks import InMemoryAlertSink, InMemoryVisitRequestSink

__all__ = [
    "StaticPatientDirectory",
    "InMemoryExecutionStore",
    "InMemoryMeasurementSource",
    "InMemoryRuleRepository",
    "InMemoryAlertSink",
    "InMemoryVisitRequestSink",
]
