"""
Numeric extraction from heterogeneous measurement values.

Metric-specific rules are declared as data in ``CANONICAL_COMPONENTS``: a
structured reading for a metric listed there yields that component, any other
structured reading yields its first numeric component.
"""

from collections.abc import Iterable

from vitals_engine.domain.models import (
    Measurement,
    MetricType,
    ScalarValue,
    StructuredValue,
)

CANONICAL_COMPONENTS: dict[MetricType, str] = {
    MetricType.BLOOD_PRESSURE: "systolic",
}


def extract_value(value: ScalarValue | StructuredValue | None, metric: MetricType) -> float | None:
    """Return the number a rule should compare for this reading, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, ScalarValue):
        return value.value

    canonical = CANONICAL_COMPONENTS.get(metric)
    if canonical is not None and canonical in value.components:
        return value.components[canonical]
    return next(iter(value.components.values()), None)


def extract_series(measurements: Iterable[Measurement], metric: MetricType) -> list[float]:
    """Extract usable values in input order, skipping readings with no usable value."""
    values = (extract_value(m.value, metric) for m in measurements)
    return [v for v in values if v is not None]
