from __future__ import annotations

import pytest

from aocc.services.operations.catalog import MetricCatalog, MetricDefinition, MetricReading
from aocc.shared.models.operations import MetricCategory, ValueKind


@pytest.fixture(scope="session")
def catalog() -> MetricCatalog:
    """Packaged default catalog"""
    return MetricCatalog.load_default(strict=True)


def subsystem(metric_id: str, reading, name: str | None = None) -> MetricDefinition:
    derive_fn = reading if callable(reading) else (lambda mode: reading)
    return MetricDefinition(
        id=metric_id,
        category=MetricCategory.SUBSYSTEM,
        label=name or metric_id.upper(),
        derive_fn=derive_fn,
    )


def kpi(metric_id: str, reading, value_kind: ValueKind = ValueKind.PERCENT, **kwargs) -> MetricDefinition:
    derive_fn = reading if callable(reading) else (lambda mode: reading)
    return MetricDefinition(
        id=metric_id,
        category=MetricCategory.KPI,
        label=metric_id.replace("_", " ").title(),
        derive_fn=derive_fn,
        value_kind=value_kind,
        **kwargs,
    )


@pytest.fixture
def make_subsystem():
    return subsystem


@pytest.fixture
def make_kpi():
    return kpi


@pytest.fixture
def reading():
    return MetricReading
