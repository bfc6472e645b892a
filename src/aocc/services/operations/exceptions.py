from __future__ import annotations

from typing import Optional

from aocc.shared.models.operations import ModeState


class OperationsStateError(Exception):
    """Base error for the operational state model."""


class CatalogError(OperationsStateError, ValueError):
    """Catalog file missing, malformed or failing schema validation."""


class InvalidMetricDefinition(OperationsStateError, ValueError):
    """A metric's derive function produced a reading outside its declared domain."""

    def __init__(self, metric_id: str, reason: str, mode: Optional[ModeState] = None) -> None:
        self.metric_id = metric_id
        self.reason = reason
        self.mode = mode
        flags = ",".join(flag.value for flag in mode.active_flags()) if mode is not None else ""
        super().__init__(f"{metric_id}: {reason} (mode=[{flags}])")


class UnknownSelection(OperationsStateError, LookupError):
    """Selected item is not present in the snapshot it was selected from."""

    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"Unknown {kind} selection: {item_id}")
