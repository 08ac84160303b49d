"""In-memory measurement store."""

import asyncio
import bisect
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

import structlog

from vitals_engine.domain.models import Measurement, MetricType, parse_measurement_value

logger = structlog.get_logger(__name__)


class InMemoryMeasurementSource:
    """
    Patient readings kept per (patient, metric), sorted by timestamp.

    ``delays`` adds per-patient latency to lookups, which is how the tests
    simulate a slow backing store.
    """

    def __init__(self) -> None:
        self._readings: defaultdict[tuple[str, MetricType], list[Measurement]] = defaultdict(list)
        self.delays: dict[str, float] = {}
        self.fail_with: Exception | None = None
        self.logger = logger.bind(component="memory_measurement_source")

    def add(self, measurement: Measurement) -> None:
        readings = self._readings[(measurement.patient_id, measurement.metric)]
        bisect.insort(readings, measurement, key=lambda m: m.timestamp)

    def record(
        self,
        patient_id: str,
        metric: MetricType,
        raw_value: Any,
        timestamp: datetime | None = None,
        source: str = "manual",
    ) -> Measurement:
        """Store a reading from a raw value; unusable values are kept with no value."""
        measurement = Measurement(
            patient_id=patient_id,
            metric=metric,
            value=parse_measurement_value(raw_value),
            timestamp=timestamp or datetime.now(UTC),
            source=source,
        )
        if measurement.value is None:
            self.logger.warning(
                "unusable_measurement_value", patient_id=patient_id, metric=metric.value
            )
        self.add(measurement)
        return measurement

    async def find_measurements(
        self, patient_id: str, metric: MetricType, start: datetime, end: datetime
    ) -> list[Measurement]:
        delay = self.delays.get(patient_id)
        if delay:
            await asyncio.sleep(delay)
        if self.fail_with is not None:
            raise self.fail_with

        return [
            m for m in self._readings.get((patient_id, metric), []) if start <= m.timestamp <= end
        ]
