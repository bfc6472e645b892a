"""Metric catalog: declarative description of every KPI and monitored subsystem.

The packaged catalog is a YAML policy table. Each metric declares a baseline
reading plus per-flag overrides; the override of the highest-precedence active
flag wins (see ``FLAG_PRECEDENCE``). Live sources can build ``MetricDefinition``
objects with their own ``derive_fn`` instead.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from importlib import resources
from typing import Callable, Iterable, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from aocc.services.operations.exceptions import CatalogError, InvalidMetricDefinition
from aocc.shared.models.operations import (
    FLAG_PRECEDENCE,
    FlightRecord,
    InsightRecord,
    KpiStatus,
    MetricCategory,
    ModeFlag,
    ModeState,
    SubsystemStatus,
    ValueKind,
    is_number,
)


logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_PACKAGE = "aocc.resources.catalog"
DEFAULT_RESOURCE_NAME = "metric_catalog.yaml"


# =============================================================================
#  Runtime definitions
# =============================================================================
@dataclass(frozen=True)
class MetricReading:
    """Raw output of a derive function, before banding."""

    value: Union[float, str, None]
    status: Optional[str] = None
    change: Union[float, str, None] = None


@dataclass(frozen=True)
class KpiPolicy:
    negative_change: KpiStatus = KpiStatus.WARNING
    critical_below: Optional[float] = None
    good_at_or_above: Optional[float] = None


@dataclass(frozen=True)
class ModePolicyTable:
    """Baseline reading plus overrides, already sorted by flag precedence."""

    baseline: MetricReading
    overrides: tuple[tuple[ModeFlag, MetricReading], ...] = ()

    def __call__(self, mode: ModeState) -> MetricReading:
        for flag, reading in self.overrides:
            if mode.is_active(flag):
                return reading
        return self.baseline

    @property
    def flags(self) -> tuple[ModeFlag, ...]:
        return tuple(flag for flag, _ in self.overrides)

    @classmethod
    def build(cls, baseline: MetricReading, overrides: dict[ModeFlag, MetricReading]) -> "ModePolicyTable":
        ordered = tuple((flag, overrides[flag]) for flag in FLAG_PRECEDENCE if flag in overrides)
        return cls(baseline=baseline, overrides=ordered)


@dataclass(frozen=True)
class MetricDefinition:
    id: str
    category: MetricCategory
    label: str
    derive_fn: Callable[[ModeState], MetricReading]
    description: str = ""
    value_kind: ValueKind = ValueKind.PERCENT
    policy: KpiPolicy = field(default_factory=KpiPolicy)
    governing_flags: tuple[ModeFlag, ...] = ()

    def derive(self, mode: ModeState) -> MetricReading:
        return self.derive_fn(mode)

    @property
    def is_banded(self) -> bool:
        return self.category is MetricCategory.SUBSYSTEM or self.value_kind is ValueKind.PERCENT


def status_token(status: object) -> Optional[str]:
    """Normalise a status given as an enum member or a plain string."""
    if status is None:
        return None
    return str(getattr(status, "value", status))


def reading_domain_error(definition: MetricDefinition, reading: object) -> Optional[str]:
    """Describe why ``reading`` is outside the definition's domain, or None."""
    if not isinstance(reading, MetricReading):
        return f"derive returned {type(reading).__name__}, expected MetricReading"

    value = reading.value
    if definition.is_banded or definition.value_kind is ValueKind.COUNT:
        if not is_number(value):
            return f"value {value!r} is not a finite number"
        if definition.is_banded and not 0.0 <= float(value) <= 100.0:
            return f"value {value!r} outside [0, 100]"
        if definition.value_kind is ValueKind.COUNT and definition.category is MetricCategory.KPI and value < 0:
            return f"count {value!r} is negative"
    elif not isinstance(value, str) or not value:
        return f"categorical value {value!r} is not a non-empty string"

    allowed = SubsystemStatus if definition.category is MetricCategory.SUBSYSTEM else KpiStatus
    token = status_token(reading.status)
    if token is not None and token not in {s.value for s in allowed}:
        return f"status {token!r} is not one of {[s.value for s in allowed]}"

    change = reading.change
    if change is not None and not isinstance(change, str):
        if isinstance(change, bool) or not isinstance(change, (int, float)) or not math.isfinite(change):
            return f"change {change!r} is neither a finite percentage nor a label"
    return None


# =============================================================================
#  YAML schema
# =============================================================================
class _SchemaModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SubsystemReadingSpec(_SchemaModel):
    uptime: float
    status: Optional[SubsystemStatus] = None

    def to_reading(self) -> MetricReading:
        return MetricReading(value=self.uptime, status=self.status.value if self.status else None)


class KpiReadingSpec(_SchemaModel):
    value: Union[float, str]
    change: Optional[Union[float, str]] = None
    status: Optional[KpiStatus] = None

    def to_reading(self) -> MetricReading:
        return MetricReading(value=self.value, status=self.status.value if self.status else None, change=self.change)


class KpiPolicySpec(_SchemaModel):
    negative_change: KpiStatus = KpiStatus.WARNING
    critical_below: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    good_at_or_above: Optional[float] = None


class SubsystemSpec(_SchemaModel):
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    baseline: SubsystemReadingSpec
    overrides: dict[ModeFlag, SubsystemReadingSpec] = Field(default_factory=dict)

    def to_definition(self) -> MetricDefinition:
        table = ModePolicyTable.build(
            self.baseline.to_reading(),
            {flag: spec.to_reading() for flag, spec in self.overrides.items()},
        )
        return MetricDefinition(
            id=self.id,
            category=MetricCategory.SUBSYSTEM,
            label=self.name,
            description=self.description,
            derive_fn=table,
            value_kind=ValueKind.PERCENT,
            governing_flags=table.flags,
        )


class KpiSpec(_SchemaModel):
    id: str = Field(min_length=1)
    label: str
    description: str = ""
    value_kind: ValueKind = ValueKind.COUNT
    policy: KpiPolicySpec = Field(default_factory=KpiPolicySpec)
    baseline: KpiReadingSpec
    overrides: dict[ModeFlag, KpiReadingSpec] = Field(default_factory=dict)

    def to_definition(self) -> MetricDefinition:
        table = ModePolicyTable.build(
            self.baseline.to_reading(),
            {flag: spec.to_reading() for flag, spec in self.overrides.items()},
        )
        return MetricDefinition(
            id=self.id,
            category=MetricCategory.KPI,
            label=self.label,
            description=self.description,
            derive_fn=table,
            value_kind=self.value_kind,
            policy=KpiPolicy(
                negative_change=self.policy.negative_change,
                critical_below=self.policy.critical_below,
                good_at_or_above=self.policy.good_at_or_above,
            ),
            governing_flags=table.flags,
        )


class InsightSpec(_SchemaModel):
    id: str = Field(min_length=1)
    title: str
    label: str
    value: str
    detail: str = ""
    status: KpiStatus = KpiStatus.GOOD

    def to_record(self) -> InsightRecord:
        return InsightRecord(**self.model_dump())


class CatalogSpec(_SchemaModel):
    version: int = 1
    subsystems: list[SubsystemSpec] = Field(default_factory=list)
    kpis: list[KpiSpec] = Field(default_factory=list)
    insights: list[InsightSpec] = Field(default_factory=list)
    # flights are opaque records; attribute names match FlightRecord
    flights: list[FlightRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_unique_ids(self) -> "CatalogSpec":
        ids = [item.id for item in (*self.subsystems, *self.kpis, *self.insights)]
        flight_ids = [flight.id for flight in self.flights]
        duplicate_flights = sorted({item for item in flight_ids if flight_ids.count(item) > 1})
        if duplicate_flights:
            raise ValueError(f"duplicate flight ids: {duplicate_flights}")
        duplicates = sorted({item for item in ids if ids.count(item) > 1})
        if duplicates:
            raise ValueError(f"duplicate catalog ids: {duplicates}")
        return self


# =============================================================================
#  Catalog
# =============================================================================
class MetricCatalog:
    """Ordered, read-only collection of metric definitions."""

    def __init__(
        self,
        subsystems: Iterable[MetricDefinition] = (),
        kpis: Iterable[MetricDefinition] = (),
        insights: Iterable[InsightRecord] = (),
        flights: Iterable[FlightRecord] = (),
        *,
        version: int = 1,
    ) -> None:
        self._subsystems = tuple(subsystems)
        self._kpis = tuple(kpis)
        self._insights = tuple(insights)
        self._flights = tuple(flights)
        self.version = version

        for definition in self._subsystems:
            if definition.category is not MetricCategory.SUBSYSTEM:
                raise CatalogError(f"{definition.id}: expected a subsystem definition")
        for definition in self._kpis:
            if definition.category is not MetricCategory.KPI:
                raise CatalogError(f"{definition.id}: expected a KPI definition")

        self._by_id: dict[str, MetricDefinition] = {}
        for definition in (*self._subsystems, *self._kpis):
            if definition.id in self._by_id:
                raise CatalogError(f"duplicate metric id: {definition.id}")
            self._by_id[definition.id] = definition

    @property
    def subsystems(self) -> tuple[MetricDefinition, ...]:
        return self._subsystems

    @property
    def kpis(self) -> tuple[MetricDefinition, ...]:
        return self._kpis

    @property
    def insights(self) -> tuple[InsightRecord, ...]:
        return self._insights

    @property
    def flights(self) -> tuple[FlightRecord, ...]:
        return self._flights

    def get(self, metric_id: str) -> Optional[MetricDefinition]:
        return self._by_id.get(metric_id)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def validate(self) -> list[InvalidMetricDefinition]:
        """Run every definition over all mode states and collect domain violations."""
        problems: list[InvalidMetricDefinition] = []
        for definition in (*self._subsystems, *self._kpis):
            for mode in ModeState.all_states():
                try:
                    reading = definition.derive(mode)
                except Exception as exc:
                    problems.append(InvalidMetricDefinition(definition.id, f"derive raised {exc!r}", mode))
                    continue
                reason = reading_domain_error(definition, reading)
                if reason:
                    problems.append(InvalidMetricDefinition(definition.id, reason, mode))
        return problems

    # ------------------------------------------------------------------
    #  Loading
    # ------------------------------------------------------------------
    @classmethod
    def from_spec(cls, spec: CatalogSpec, *, strict: bool = False) -> "MetricCatalog":
        catalog = cls(
            subsystems=[item.to_definition() for item in spec.subsystems],
            kpis=[item.to_definition() for item in spec.kpis],
            insights=[item.to_record() for item in spec.insights],
            flights=spec.flights,
            version=spec.version,
        )
        problems = catalog.validate()
        for problem in problems:
            logger.warning("Invalid metric definition: %s", problem)
        if strict and problems:
            raise CatalogError(f"{len(problems)} invalid metric definition(s); first: {problems[0]}")
        return catalog

    @classmethod
    def from_yaml(cls, raw: str, *, strict: bool = False, source: str = "<string>") -> "MetricCatalog":
        try:
            payload = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise CatalogError(f"{source}: malformed YAML: {exc}") from exc
        if not isinstance(payload, dict):
            raise CatalogError(f"{source}: metric catalog must be a YAML mapping")
        try:
            spec = CatalogSpec.model_validate(payload)
        except ValidationError as exc:
            raise CatalogError(f"{source}: {exc}") from exc
        catalog = cls.from_spec(spec, strict=strict)
        logger.debug(
            "Metric catalog loaded from %s: %d subsystems, %d KPIs, %d insights, %d flights",
            source,
            len(catalog.subsystems),
            len(catalog.kpis),
            len(catalog.insights),
            len(catalog.flights),
        )
        return catalog

    @classmethod
    def from_file(cls, path: str, *, strict: bool = False) -> "MetricCatalog":
        if not os.path.exists(path):
            raise CatalogError(f"metric catalog not found: {path}")
        with open(path, "r", encoding="utf-8") as handle:
            raw = handle.read()
        return cls.from_yaml(raw, strict=strict, source=path)

    @classmethod
    def load_default(cls, *, strict: bool = False) -> "MetricCatalog":
        resource = resources.files(DEFAULT_RESOURCE_PACKAGE).joinpath(DEFAULT_RESOURCE_NAME)
        raw = resource.read_text(encoding="utf-8")
        return cls.from_yaml(raw, strict=strict, source=f"{DEFAULT_RESOURCE_PACKAGE}/{DEFAULT_RESOURCE_NAME}")

    @classmethod
    def load(cls, path: Optional[str] = None, *, strict: bool = False) -> "MetricCatalog":
        if path:
            return cls.from_file(path, strict=strict)
        return cls.load_default(strict=strict)
