"""Detail-view records built from a selected summary item."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Optional, Union

from pydantic import Field

from aocc.shared.models.operations import FrozenModel


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class KeyMetric(FrozenModel):
    id: str
    name: str
    value: float
    unit: str = ""
    trend: Trend = Trend.STABLE
    change_percent: float = 0.0


class RelatedAsset(FrozenModel):
    id: str
    name: str
    type: str
    status: str
    location: str


class DetailRecord(FrozenModel):
    """Frozen copy of what the detail view shows; never a live view."""

    title: str
    status: str = "normal"
    current_value: Union[float, str] = 0
    unit: str = ""
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
    description: str = ""
    key_metrics: tuple[KeyMetric, ...] = ()
    related_assets: tuple[RelatedAsset, ...] = ()
    source_kind: Optional[str] = None
    source_id: Optional[str] = None
    known: bool = True
