"""
Operational state model for the AOCC dashboard.

Mode toggles in, consistent KPI / subsystem snapshots and detail records out.
"""

from .catalog import MetricCatalog, MetricDefinition, MetricReading, ModePolicyTable
from .controller import ModeController, OperationalView
from .engine import DerivationEngine, FlightSource, derive
from .exceptions import CatalogError, InvalidMetricDefinition, OperationsStateError, UnknownSelection
from .projector import SelectionProjector, project

__all__ = [
    "MetricCatalog",
    "MetricDefinition",
    "MetricReading",
    "ModePolicyTable",
    "ModeController",
    "OperationalView",
    "DerivationEngine",
    "FlightSource",
    "derive",
    "CatalogError",
    "InvalidMetricDefinition",
    "OperationsStateError",
    "UnknownSelection",
    "SelectionProjector",
    "project",
]
