"""Selection projector: summary item + snapshot -> DetailRecord.

Projection is read-only and total. Items that are not part of the snapshot
they were selected from, and objects that are not selectable records at all,
produce a record made of documented defaults.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Callable, Optional, Sequence, Union

from aocc.services.operations.exceptions import UnknownSelection
from aocc.shared.models.detail import DetailRecord, KeyMetric, RelatedAsset, Trend
from aocc.shared.models.operations import (
    InsightRecord,
    KPIRecord,
    OperationalSnapshot,
    SelectionItem,
    SelectionKind,
    SubsystemHealthRecord,
    SubsystemStatus,
)


logger = logging.getLogger(__name__)

DEFAULT_TITLE = "AOCC Details"
DEFAULT_STATUS = "normal"
DEFAULT_VALUE = 0
DEFAULT_DESCRIPTION = "Detailed analytics for selected metric"

PERCENT_UNIT = "%"

_HEALTHY_SUBSYSTEM = {SubsystemStatus.OPTIMAL, SubsystemStatus.OPERATIONAL}

STATIC_RELATED_ASSETS: tuple[RelatedAsset, ...] = (
    RelatedAsset(id="1", name="Control Tower", type="Communication", status="operational", location="Central"),
    RelatedAsset(id="2", name="Radar System", type="Navigation", status="operational", location="Tower"),
)

RelatedAssetsProvider = Callable[[SelectionItem, OperationalSnapshot], Sequence[RelatedAsset]]


def static_related_assets(item: SelectionItem, snapshot: OperationalSnapshot) -> Sequence[RelatedAsset]:
    return STATIC_RELATED_ASSETS


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _subsystem_metrics(item: SubsystemHealthRecord) -> tuple[KeyMetric, ...]:
    alerts = 0 if item.status in _HEALTHY_SUBSYSTEM else 1
    return (
        KeyMetric(id="1", name="Uptime", value=item.uptime_percent, unit=PERCENT_UNIT, trend=Trend.STABLE, change_percent=0.0),
        KeyMetric(id="2", name="Performance", value=94.2, unit=PERCENT_UNIT, trend=Trend.UP, change_percent=5.2),
        KeyMetric(id="3", name="Alerts", value=alerts, unit="", trend=Trend.DOWN, change_percent=-10.0),
    )


def _summary_metrics() -> tuple[KeyMetric, ...]:
    return (
        KeyMetric(id="1", name="Performance", value=94.2, unit=PERCENT_UNIT, trend=Trend.UP, change_percent=5.2),
        KeyMetric(id="2", name="Efficiency", value=87.8, unit=PERCENT_UNIT, trend=Trend.STABLE, change_percent=0.0),
    )


def _description(description: str, label: str) -> str:
    return description or f"Detailed analytics for {label or 'selected metric'}"


def _value_or_default(value: object) -> Union[float, str]:
    if value is None or value == "":
        return DEFAULT_VALUE
    return value


class SelectionProjector:
    def __init__(
        self,
        related_assets: Optional[RelatedAssetsProvider] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._related_assets = related_assets or static_related_assets
        self._clock = clock

    def project(self, item: SelectionItem, snapshot: OperationalSnapshot) -> DetailRecord:
        if not isinstance(item, (KPIRecord, SubsystemHealthRecord, InsightRecord)):
            logger.warning("Unsupported selection type %s; projecting defaults", type(item).__name__)
            return self.default_record(item)
        try:
            self._require_present(item, snapshot)
        except UnknownSelection as exc:
            logger.warning("%s; projecting defaults", exc)
            return self.default_record(item)

        if isinstance(item, SubsystemHealthRecord):
            return DetailRecord(
                title=item.name or DEFAULT_TITLE,
                status=item.status.value,
                current_value=item.uptime_percent,
                unit=PERCENT_UNIT,
                last_updated=self._clock(),
                description=_description(item.description, item.name),
                key_metrics=_subsystem_metrics(item),
                related_assets=self._assets(item, snapshot),
                source_kind=item.kind,
                source_id=item.id,
            )
        if isinstance(item, KPIRecord):
            return DetailRecord(
                title=item.label or DEFAULT_TITLE,
                status=item.status.value,
                current_value=_value_or_default(item.value),
                unit=PERCENT_UNIT if item.is_percentage else "",
                last_updated=self._clock(),
                description=_description(item.description, item.label),
                key_metrics=_summary_metrics(),
                related_assets=self._assets(item, snapshot),
                source_kind=item.kind,
                source_id=item.id,
            )
        return DetailRecord(
            title=item.label or DEFAULT_TITLE,
            status=item.status.value,
            current_value=_value_or_default(item.value),
            unit="",
            last_updated=self._clock(),
            description=_description(item.detail, item.label),
            key_metrics=_summary_metrics(),
            related_assets=self._assets(item, snapshot),
            source_kind=item.kind,
            source_id=item.id,
        )

    def select(self, snapshot: OperationalSnapshot, kind: SelectionKind, item_id: str) -> DetailRecord:
        """Look an item up in the captured snapshot and project it."""
        try:
            item = self.lookup(snapshot, kind, item_id)
        except UnknownSelection as exc:
            logger.warning("%s; projecting defaults", exc)
            return DetailRecord(
                title=DEFAULT_TITLE,
                unit=PERCENT_UNIT if kind == "subsystem" else "",
                last_updated=self._clock(),
                description=DEFAULT_DESCRIPTION,
                source_kind=kind,
                source_id=item_id,
                known=False,
            )
        return self.project(item, snapshot)

    @staticmethod
    def lookup(snapshot: OperationalSnapshot, kind: SelectionKind, item_id: str) -> SelectionItem:
        item = snapshot.find(kind, item_id)
        if item is None:
            raise UnknownSelection(kind, item_id)
        return item

    def default_record(self, item: object) -> DetailRecord:
        kind = getattr(item, "kind", None)
        item_id = getattr(item, "id", None)
        return DetailRecord(
            title=DEFAULT_TITLE,
            status=DEFAULT_STATUS,
            current_value=DEFAULT_VALUE,
            unit=PERCENT_UNIT if isinstance(item, SubsystemHealthRecord) else "",
            last_updated=self._clock(),
            description=DEFAULT_DESCRIPTION,
            source_kind=kind if isinstance(kind, str) else None,
            source_id=item_id if isinstance(item_id, str) else None,
            known=False,
        )

    @staticmethod
    def _require_present(item: SelectionItem, snapshot: OperationalSnapshot) -> None:
        if snapshot.find(item.kind, item.id) is None:
            raise UnknownSelection(item.kind, item.id)

    def _assets(self, item: SelectionItem, snapshot: OperationalSnapshot) -> tuple[RelatedAsset, ...]:
        try:
            return tuple(self._related_assets(item, snapshot))
        except Exception as exc:
            logger.warning("Related assets provider failed for %s/%s: %r", item.kind, item.id, exc)
            return ()


_default_projector = SelectionProjector()


def project(item: SelectionItem, snapshot: OperationalSnapshot) -> DetailRecord:
    return _default_projector.project(item, snapshot)
