"""Derivation engine: (ModeState, MetricCatalog) -> OperationalSnapshot.

Every KPI, subsystem record and alert banner of a snapshot is computed in one
pass from the same mode state. The engine never raises across its boundary:
invalid readings are clamped, logged and listed in ``snapshot.issues``.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Union

from aocc.services.operations.banding import clamp_kpi_status, clamp_subsystem_status
from aocc.services.operations.catalog import (
    KpiPolicy,
    MetricCatalog,
    MetricDefinition,
    MetricReading,
    reading_domain_error,
    status_token,
)
from aocc.shared.models.operations import (
    FLAG_LABELS,
    AlertBanner,
    FlightRecord,
    KPIRecord,
    KpiStatus,
    ModeState,
    OperationalSnapshot,
    SubsystemHealthRecord,
    SubsystemStatus,
    ValueKind,
    is_number,
)


logger = logging.getLogger(__name__)

# Stand-ins for an entry whose derive function failed outright.
FALLBACK_UPTIME = 0.0
FALLBACK_KPI_VALUE = 0.0

# Live flight feed; returns records whose attributes are already computed.
FlightSource = Callable[[], Iterable[FlightRecord]]


class DerivationEngine:
    """Catalog-bound wrapper around :func:`derive`."""

    def __init__(self, catalog: MetricCatalog, flight_source: Optional[FlightSource] = None) -> None:
        self._catalog = catalog
        self._flight_source = flight_source

    @property
    def catalog(self) -> MetricCatalog:
        return self._catalog

    def derive(self, mode: ModeState) -> OperationalSnapshot:
        return derive(mode, self._catalog, flight_source=self._flight_source)


def derive(
    mode: ModeState,
    catalog: MetricCatalog,
    flight_source: Optional[FlightSource] = None,
) -> OperationalSnapshot:
    issues: list[str] = []
    subsystems = tuple(_derive_subsystem(definition, mode, issues) for definition in catalog.subsystems)
    kpis = tuple(_derive_kpi(definition, mode, issues) for definition in catalog.kpis)
    banners = tuple(AlertBanner(flag=flag, label=FLAG_LABELS[flag]) for flag in mode.active_flags())
    flights = _read_flights(catalog, flight_source, issues)
    return OperationalSnapshot(
        kpis=kpis,
        subsystems=subsystems,
        banners=banners,
        insights=catalog.insights,
        flights=flights,
        issues=tuple(issues),
    )


def _read_flights(
    catalog: MetricCatalog,
    flight_source: Optional[FlightSource],
    issues: list[str],
) -> tuple[FlightRecord, ...]:
    if flight_source is None:
        return catalog.flights
    try:
        flights = tuple(flight_source())
    except Exception as exc:
        logger.warning("Flight source failed: %r", exc)
        issues.append(f"flights: source failed: {exc!r}")
        return ()
    accepted = tuple(flight for flight in flights if isinstance(flight, FlightRecord))
    if len(accepted) != len(flights):
        logger.warning("Flight source returned %d non-flight item(s)", len(flights) - len(accepted))
        issues.append(f"flights: dropped {len(flights) - len(accepted)} non-flight item(s)")
    return accepted


def _read(definition: MetricDefinition, mode: ModeState, issues: list[str]) -> Optional[MetricReading]:
    try:
        reading = definition.derive(mode)
    except Exception as exc:
        logger.warning("Metric %s derive failed: %r", definition.id, exc)
        issues.append(f"{definition.id}: derive failed: {exc!r}")
        return None

    reason = reading_domain_error(definition, reading)
    if reason is None:
        return reading
    logger.warning("Metric %s produced an invalid reading: %s", definition.id, reason)
    issues.append(f"{definition.id}: {reason}")
    if not isinstance(reading, MetricReading):
        return None
    return reading


def _clamp_percent(value: object) -> Optional[float]:
    if not is_number(value):
        return None
    return min(100.0, max(0.0, float(value)))


def _parse_subsystem_status(token: Optional[str]) -> Optional[SubsystemStatus]:
    try:
        return SubsystemStatus(token) if token is not None else None
    except ValueError:
        return None


def _parse_kpi_status(token: Optional[str]) -> Optional[KpiStatus]:
    try:
        return KpiStatus(token) if token is not None else None
    except ValueError:
        return None


def _derive_subsystem(definition: MetricDefinition, mode: ModeState, issues: list[str]) -> SubsystemHealthRecord:
    reading = _read(definition, mode, issues)
    uptime = _clamp_percent(reading.value) if reading is not None else None
    if uptime is None:
        uptime, raw_status = FALLBACK_UPTIME, SubsystemStatus.CRITICAL
    else:
        raw_status = _parse_subsystem_status(status_token(reading.status))

    status = clamp_subsystem_status(uptime, raw_status)
    if raw_status is not None and status is not raw_status:
        logger.warning(
            "Subsystem %s status %s disagrees with uptime %.1f; banded to %s",
            definition.id,
            raw_status.value,
            uptime,
            status.value,
        )
    return SubsystemHealthRecord(
        id=definition.id,
        name=definition.label,
        status=status,
        uptime_percent=uptime,
        description=definition.description,
    )


def _classify_kpi(
    policy: KpiPolicy,
    value: Union[float, str],
    change: Union[float, str, None],
    raw_status: Optional[KpiStatus],
) -> KpiStatus:
    status = raw_status or KpiStatus.GOOD
    if is_number(change):
        if policy.good_at_or_above is not None and is_number(value) and value >= policy.good_at_or_above:
            status = KpiStatus.GOOD
        elif change >= 0:
            status = KpiStatus.GOOD
        else:
            status = policy.negative_change
    if policy.critical_below is not None and is_number(value) and value < policy.critical_below:
        status = KpiStatus.CRITICAL
    return status


def _kpi_value(definition: MetricDefinition, reading: Optional[MetricReading]) -> Optional[Union[float, str]]:
    if reading is None:
        return None
    value = reading.value
    if definition.value_kind is ValueKind.PERCENT:
        return _clamp_percent(value)
    if definition.value_kind is ValueKind.COUNT:
        return max(0.0, float(value)) if is_number(value) else None
    return value if isinstance(value, str) and value else None


def _derive_kpi(definition: MetricDefinition, mode: ModeState, issues: list[str]) -> KPIRecord:
    reading = _read(definition, mode, issues)
    value = _kpi_value(definition, reading)
    if value is None:
        value = "n/a" if definition.value_kind is ValueKind.CATEGORICAL else FALLBACK_KPI_VALUE
        change: Union[float, str, None] = None
        status = KpiStatus.CRITICAL
    else:
        change = reading.change
        if change is not None and not isinstance(change, str) and not is_number(change):
            change = None
        raw_status = _parse_kpi_status(status_token(reading.status))
        status = _classify_kpi(definition.policy, value, change, raw_status)

    if definition.value_kind is ValueKind.PERCENT:
        banded = clamp_kpi_status(float(value), status)
        if banded is not status:
            logger.warning(
                "KPI %s status %s disagrees with value %.1f; banded to %s",
                definition.id,
                status.value,
                value,
                banded.value,
            )
            status = banded

    return KPIRecord(
        id=definition.id,
        label=definition.label,
        value=value,
        value_kind=definition.value_kind,
        change_indicator=float(change) if is_number(change) else change,
        status=status,
        description=definition.description,
    )
