"""Uptime / percentage banding and status clamping."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from aocc.shared.models.operations import KpiStatus, SubsystemStatus


HEALTHY_THRESHOLD = 95.0
DEGRADED_THRESHOLD = 80.0


class Band(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"


SUBSYSTEM_ALLOWED: dict[Band, tuple[SubsystemStatus, ...]] = {
    Band.HEALTHY: (SubsystemStatus.OPTIMAL, SubsystemStatus.OPERATIONAL),
    Band.DEGRADED: (SubsystemStatus.OPERATIONAL, SubsystemStatus.MAINTENANCE, SubsystemStatus.WARNING),
    Band.FAILING: (SubsystemStatus.CRITICAL,),
}

KPI_ALLOWED: dict[Band, tuple[KpiStatus, ...]] = {
    Band.HEALTHY: (KpiStatus.GOOD,),
    Band.DEGRADED: (KpiStatus.GOOD, KpiStatus.WARNING),
    Band.FAILING: (KpiStatus.CRITICAL,),
}

# Used when a reading carries no status of its own.
SUBSYSTEM_DEFAULT: dict[Band, SubsystemStatus] = {
    Band.HEALTHY: SubsystemStatus.OPERATIONAL,
    Band.DEGRADED: SubsystemStatus.WARNING,
    Band.FAILING: SubsystemStatus.CRITICAL,
}


def band_for(value: float) -> Band:
    if value >= HEALTHY_THRESHOLD:
        return Band.HEALTHY
    if value >= DEGRADED_THRESHOLD:
        return Band.DEGRADED
    return Band.FAILING


def _closest(status, allowed):
    # allowed tiers are contiguous and ordered by severity
    if status in allowed:
        return status
    if status.severity > allowed[-1].severity:
        return allowed[-1]
    return allowed[0]


def clamp_subsystem_status(uptime: float, status: Optional[SubsystemStatus]) -> SubsystemStatus:
    band = band_for(uptime)
    if status is None:
        return SUBSYSTEM_DEFAULT[band]
    return _closest(status, SUBSYSTEM_ALLOWED[band])


def clamp_kpi_status(value: float, status: KpiStatus) -> KpiStatus:
    return _closest(status, KPI_ALLOWED[band_for(value)])


def subsystem_status_allowed(uptime: float, status: SubsystemStatus) -> bool:
    return status in SUBSYSTEM_ALLOWED[band_for(uptime)]


def kpi_status_allowed(value: float, status: KpiStatus) -> bool:
    return status in KPI_ALLOWED[band_for(value)]
