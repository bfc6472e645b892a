"""
Pydantic models for the AOCC operational state.

Operator mode flags, derived KPI / subsystem records, alert banners and the
immutable snapshot that ties them together.
"""

from __future__ import annotations

import itertools
import math
from enum import Enum
from typing import Annotated, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
#  Base model configuration
# =============================================================================
class FrozenModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


# =============================================================================
#  Enums
# =============================================================================
class ModeFlag(str, Enum):
    EMERGENCY = "emergency"
    OPERATIONS_ALERT = "operations_alert"
    SYSTEM_OPTIMIZED = "system_optimized"


# Highest precedence first: emergency degradation dominates optimization.
FLAG_PRECEDENCE: tuple[ModeFlag, ...] = (
    ModeFlag.EMERGENCY,
    ModeFlag.OPERATIONS_ALERT,
    ModeFlag.SYSTEM_OPTIMIZED,
)

FLAG_LABELS: dict[ModeFlag, str] = {
    ModeFlag.EMERGENCY: "Emergency Mode",
    ModeFlag.OPERATIONS_ALERT: "Operations Alert",
    ModeFlag.SYSTEM_OPTIMIZED: "Optimized",
}


class MetricCategory(str, Enum):
    KPI = "kpi"
    SUBSYSTEM = "subsystem"


class ValueKind(str, Enum):
    COUNT = "count"
    PERCENT = "percent"
    CATEGORICAL = "categorical"


class SubsystemStatus(str, Enum):
    OPTIMAL = "optimal"
    OPERATIONAL = "operational"
    MAINTENANCE = "maintenance"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SUBSYSTEM_SEVERITY[self]


class KpiStatus(str, Enum):
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _KPI_SEVERITY[self]


_SUBSYSTEM_SEVERITY = {status: rank for rank, status in enumerate(SubsystemStatus)}
_KPI_SEVERITY = {status: rank for rank, status in enumerate(KpiStatus)}


class TransitionSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
#  Mode state
# =============================================================================
class ModeState(FrozenModel):
    """Operator-set posture flags. All eight combinations are valid."""

    emergency: bool = False
    operations_alert: bool = False
    system_optimized: bool = False

    def is_active(self, flag: ModeFlag) -> bool:
        return bool(getattr(self, ModeFlag(flag).value))

    def with_flag(self, flag: ModeFlag, value: bool) -> "ModeState":
        return self.model_copy(update={ModeFlag(flag).value: bool(value)})

    def active_flags(self) -> tuple[ModeFlag, ...]:
        """Active flags in precedence order."""
        return tuple(flag for flag in FLAG_PRECEDENCE if self.is_active(flag))

    @classmethod
    def from_flags(cls, flags: Iterable[ModeFlag | str]) -> "ModeState":
        return cls(**{ModeFlag(flag).value: True for flag in flags})

    @classmethod
    def all_states(cls) -> tuple["ModeState", ...]:
        return tuple(
            cls(emergency=e, operations_alert=o, system_optimized=s)
            for e, o, s in itertools.product((False, True), repeat=3)
        )


# =============================================================================
#  Derived records
# =============================================================================
class SubsystemHealthRecord(FrozenModel):
    kind: Literal["subsystem"] = "subsystem"
    id: str
    name: str
    status: SubsystemStatus
    uptime_percent: float = Field(ge=0.0, le=100.0)
    description: str = ""


class KPIRecord(FrozenModel):
    kind: Literal["kpi"] = "kpi"
    id: str
    label: str
    value: Union[float, str]
    value_kind: ValueKind
    change_indicator: Optional[Union[float, str]] = None
    status: KpiStatus
    description: str = ""

    @property
    def is_percentage(self) -> bool:
        return self.value_kind is ValueKind.PERCENT

    @property
    def display_value(self) -> str:
        if isinstance(self.value, str):
            return self.value
        if self.is_percentage:
            return f"{self.value:g}%"
        return f"{self.value:,.0f}" if float(self.value).is_integer() else f"{self.value:,g}"

    @property
    def display_change(self) -> str:
        change = self.change_indicator
        if change is None:
            return ""
        if isinstance(change, str):
            return change
        return f"{change:+g}%"


class InsightRecord(FrozenModel):
    """Static prediction card from the AI insights panel."""

    kind: Literal["insight"] = "insight"
    id: str
    title: str
    label: str
    value: str
    detail: str = ""
    status: KpiStatus = KpiStatus.GOOD


class FlightRecord(FrozenModel):
    """Flight movement as delivered by the flight source.

    Every attribute arrives precomputed (progress, delay, times); the state
    model carries them through unchanged and never derives them.
    """

    kind: Literal["flight"] = "flight"
    id: str
    flight_number: str
    airline: str
    aircraft_type: str = ""
    route: str
    origin: str = ""
    destination: str = ""
    scheduled_departure: str = ""
    actual_departure: Optional[str] = None
    estimated_arrival: str = ""
    status: str
    gate: str = ""
    terminal: str = ""
    passengers: int = Field(default=0, ge=0)
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    delay_minutes: int = 0


SelectionItem = Annotated[
    Union[KPIRecord, SubsystemHealthRecord, InsightRecord],
    Field(discriminator="kind"),
]

SelectionKind = Literal["kpi", "subsystem", "insight"]


class AlertBanner(FrozenModel):
    flag: ModeFlag
    label: str


class OperationalSnapshot(FrozenModel):
    """Complete derived state for one mode state. Never patched in place."""

    kpis: tuple[KPIRecord, ...] = ()
    subsystems: tuple[SubsystemHealthRecord, ...] = ()
    banners: tuple[AlertBanner, ...] = ()
    insights: tuple[InsightRecord, ...] = ()
    flights: tuple[FlightRecord, ...] = ()
    issues: tuple[str, ...] = ()

    @property
    def banner_flags(self) -> frozenset[ModeFlag]:
        return frozenset(banner.flag for banner in self.banners)

    def kpi(self, kpi_id: str) -> Optional[KPIRecord]:
        return next((item for item in self.kpis if item.id == kpi_id), None)

    def subsystem(self, subsystem_id: str) -> Optional[SubsystemHealthRecord]:
        return next((item for item in self.subsystems if item.id == subsystem_id), None)

    def insight(self, insight_id: str) -> Optional[InsightRecord]:
        return next((item for item in self.insights if item.id == insight_id), None)

    def flight(self, flight_id: str) -> Optional[FlightRecord]:
        return next((item for item in self.flights if item.id == flight_id), None)

    def find(self, kind: str, item_id: str) -> Optional[Union[KPIRecord, SubsystemHealthRecord, InsightRecord]]:
        if kind == "kpi":
            return self.kpi(item_id)
        if kind == "subsystem":
            return self.subsystem(item_id)
        if kind == "insight":
            return self.insight(item_id)
        return None


class TransitionDescription(FrozenModel):
    """Emitted on every toggle for the notification collaborator."""

    flag: ModeFlag
    previous_value: bool
    new_value: bool
    severity: TransitionSeverity
    tick: int = Field(ge=0)
    mode: ModeState


def is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
