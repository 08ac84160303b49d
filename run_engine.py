"""
End-to-end demo of the rules engine on in-memory collaborators.

This script:
1. Loads configuration and installs structured logging
2. Seeds the default rule catalog
3. Loads a few scenario patients
4. Runs two scheduler passes (the second one shows deduplication)
5. Prints executions, alerts and visit requests

Run with: uv run python run_engine.py
"""

import asyncio
from datetime import UTC, datetime, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.memory import (
    InMemoryAlertSink,
    InMemoryExecutionStore,
    InMemoryMeasurementSource,
    InMemoryRuleRepository,
    InMemoryVisitRequestSink,
    StaticPatientDirectory,
)
from vitals_engine.config import configure_logging, get_config, print_config_summary
from vitals_engine.domain.models import DispatchOutcome, MetricType, PassReport
from vitals_engine.services import EvaluationScheduler, RulesEngine, seed_defaults

console = Console()


def load_scenarios(source: InMemoryMeasurementSource, now: datetime) -> list[str]:
    """Daily readings for a handful of patients, oldest first."""

    def daily(patient_id: str, metric: MetricType, values: list[object]) -> None:
        for days_ago, value in zip(range(len(values) - 1, -1, -1), values, strict=True):
            source.record(
                patient_id,
                metric,
                value,
                timestamp=now - timedelta(days=days_ago, hours=1),
                source="home-device",
            )

    # Hypertensive and rising, tracks glucose normally
    daily(
        "patient-hypertensive",
        MetricType.BLOOD_PRESSURE,
        [{"systolic": s, "diastolic": 85} for s in (128, 132, 136, 139, 141, 145)],
    )
    daily("patient-hypertensive", MetricType.GLUCOSE, [105, 110, 98])

    # Glucose out of control, critical today
    daily("patient-glucose", MetricType.GLUCOSE, [150, 165, 172, 181, 260])
    daily("patient-glucose", MetricType.BLOOD_PRESSURE, [118, 121, 119])

    # Stable vitals, swinging weight, declining sleep and HRV
    daily("patient-lifestyle", MetricType.BLOOD_PRESSURE, [{"systolic": 118, "diastolic": 76}])
    daily("patient-lifestyle", MetricType.GLUCOSE, [96])
    daily("patient-lifestyle", MetricType.WEIGHT, [82.0, 88.5, 79.0, 86.0, 80.5])
    daily("patient-lifestyle", MetricType.SLEEP, [7.8, 7.4, 7.0, 6.5, 6.1])
    daily("patient-lifestyle", MetricType.HEART_RATE_VARIABILITY, [62, 58, 55, 51, 47])

    # No recent device data, and one unreadable upload
    daily("patient-silent", MetricType.BLOOD_PRESSURE, ["cuff error"])

    return ["patient-hypertensive", "patient-glucose", "patient-lifestyle", "patient-silent"]


def print_pass(number: int, report: PassReport) -> None:
    table = Table(title=f"Pass {number}")
    table.add_column("Patient", style="cyan")
    table.add_column("Rules", style="white")
    table.add_column("Triggered", style="yellow")
    table.add_column("Dispatched", style="green")
    table.add_column("Suppressed", style="magenta")
    table.add_column("Failed", style="red")

    for patient in report.patients:
        suppressed = sum(1 for o in patient.outcomes if o.dispatch is DispatchOutcome.SUPPRESSED)
        table.add_row(
            patient.patient_id,
            str(len(patient.outcomes)),
            str(patient.triggered_count),
            str(patient.dispatched_count),
            str(suppressed),
            str(patient.failed_count),
        )
    for patient_id, reason in report.failed_patients.items():
        table.add_row(patient_id, "-", "-", "-", "-", reason)

    console.print(table)
    console.print(f"Pass duration: {report.duration_seconds * 1000:.1f} ms", style="dim")


async def main() -> None:
    config = get_config()
    configure_logging(config.logging.model_copy(update={"level": "WARNING"}))

    console.print(Panel("Vitals Rules Engine - Demo", style="bold blue"))
    print_config_summary()

    measurements = InMemoryMeasurementSource()
    rules = InMemoryRuleRepository()
    alerts = InMemoryAlertSink()
    visits = InMemoryVisitRequestSink()
    executions = InMemoryExecutionStore()

    seeded = await seed_defaults(rules)
    console.print(f"\nSeeded {len(seeded)} default rules", style="green")

    patient_ids = load_scenarios(measurements, datetime.now(UTC))
    engine = RulesEngine(measurements, rules, alerts, visits, executions, config=config)
    scheduler = EvaluationScheduler(engine, StaticPatientDirectory(patient_ids))

    for number in (1, 2):
        print_pass(number, await scheduler.run_pass())

    alert_table = Table(title="Alerts")
    alert_table.add_column("Patient", style="cyan")
    alert_table.add_column("Severity", style="red")
    alert_table.add_column("Type", style="magenta")
    alert_table.add_column("Title", style="white")
    alert_table.add_column("Body", style="yellow")
    for alert in await alerts.list_active():
        alert_table.add_row(
            alert.patient_id, alert.severity.value, alert.type.value, alert.title, alert.body
        )
    console.print(alert_table)

    visit_table = Table(title="Visit Requests")
    visit_table.add_column("Patient", style="cyan")
    visit_table.add_column("Type", style="magenta")
    visit_table.add_column("Status", style="green")
    visit_table.add_column("Notes", style="white")
    for patient_id in patient_ids:
        for request in await visits.list_for_patient(patient_id):
            visit_table.add_row(
                patient_id, request.type.value, request.status.value, request.notes or ""
            )
    console.print(visit_table)

    console.print(
        f"\n{len(executions.executions)} rule executions recorded "
        f"({sum(e.triggered for e in executions.executions)} triggered)",
        style="bold",
    )


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        console.print("\nDemo interrupted", style="yellow")
