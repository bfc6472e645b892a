"""CLI for dumping the derived operational snapshot."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from aocc.services.operations.catalog import MetricCatalog
from aocc.services.operations.controller import ModeController, OperationalView
from aocc.services.operations.exceptions import CatalogError
from aocc.services.operations.projector import SelectionProjector
from aocc.shared.config.settings import DashboardSettings, parse_flags
from aocc.shared.logging_config import setup_logging
from aocc.shared.models.detail import DetailRecord
from aocc.shared.models.operations import ModeFlag


_STATUS_STYLE = {
    "optimal": "bold blue",
    "operational": "green",
    "good": "green",
    "maintenance": "dark_orange",
    "warning": "yellow",
    "critical": "bold red",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aocc-snapshot", description="AOCC operational snapshot CLI")
    parser.add_argument("--catalog", default=None, help="Metric catalog YAML (default: packaged catalog).")
    parser.add_argument("--strict", action="store_true", help="Fail on invalid metric definitions.")
    parser.add_argument("--emergency", action="store_true", help="Toggle emergency mode on.")
    parser.add_argument("--operations-alert", action="store_true", help="Toggle the operations alert on.")
    parser.add_argument("--optimized", action="store_true", help="Toggle system optimization on.")
    parser.add_argument("--modes", default="", help="Comma-separated flags to toggle on.")
    parser.add_argument("--select", default=None, metavar="KIND:ID", help="Project one item, e.g. subsystem:bhs.")
    parser.add_argument("--table", action="store_true", help="Render rich tables instead of JSON.")
    return parser


def _requested_flags(args: argparse.Namespace) -> list[ModeFlag]:
    flags = list(parse_flags(args.modes))
    for enabled, flag in (
        (args.emergency, ModeFlag.EMERGENCY),
        (args.operations_alert, ModeFlag.OPERATIONS_ALERT),
        (args.optimized, ModeFlag.SYSTEM_OPTIMIZED),
    ):
        if enabled and flag not in flags:
            flags.append(flag)
    return flags


def _styled(status: str) -> str:
    style = _STATUS_STYLE.get(status)
    return f"[{style}]{status}[/{style}]" if style else status


def _render_tables(console: Console, view: OperationalView, detail: Optional[DetailRecord]) -> None:
    snapshot = view.snapshot
    banners = ", ".join(banner.label for banner in snapshot.banners) or "none"
    console.print(f"tick={view.tick}  banners: {banners}")

    kpis = Table(title="KPIs")
    for column in ("id", "label", "value", "change", "status"):
        kpis.add_column(column)
    for kpi in snapshot.kpis:
        kpis.add_row(kpi.id, kpi.label, kpi.display_value, kpi.display_change, _styled(kpi.status.value))
    console.print(kpis)

    subsystems = Table(title="Subsystems")
    for column in ("id", "name", "uptime", "status"):
        subsystems.add_column(column)
    for record in snapshot.subsystems:
        subsystems.add_row(record.id, record.name, f"{record.uptime_percent:g}%", _styled(record.status.value))
    console.print(subsystems)

    if snapshot.flights:
        flights = Table(title="Flights")
        for column in ("flight", "airline", "route", "gate", "status", "progress"):
            flights.add_column(column)
        for flight in snapshot.flights:
            flights.add_row(flight.flight_number, flight.airline, flight.route, flight.gate, flight.status, f"{flight.progress:g}%")
        console.print(flights)

    for issue in snapshot.issues:
        console.print(f"[yellow]issue:[/yellow] {issue}")

    if detail is not None:
        metrics = Table(title=f"Detail: {detail.title}")
        for column in ("metric", "value", "trend", "change"):
            metrics.add_column(column)
        for metric in detail.key_metrics:
            metrics.add_row(metric.name, f"{metric.value:g}{metric.unit}", metric.trend.value, f"{metric.change_percent:+g}%")
        console.print(f"{detail.title}: {detail.current_value}{detail.unit} ({_styled(detail.status)})")
        console.print(metrics)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = DashboardSettings.from_env()
    setup_logging(default_path=settings.log_config_path)

    try:
        catalog = MetricCatalog.load(args.catalog or settings.catalog_path, strict=args.strict or settings.catalog_strict)
    except CatalogError as exc:
        print(f"aocc-snapshot: {exc}", file=sys.stderr)
        return 2

    controller = ModeController(catalog, initial_mode=settings.initial_mode_state())
    for flag in _requested_flags(args):
        if not controller.mode.is_active(flag):
            controller.toggle(flag)

    view = controller.current()
    detail = None
    if args.select:
        kind, _, item_id = args.select.partition(":")
        detail = SelectionProjector().select(view.snapshot, kind.strip(), item_id.strip())

    if args.table:
        _render_tables(Console(), view, detail)
        return 0

    payload = {
        "tick": view.tick,
        "mode": view.mode.model_dump(mode="json", by_alias=True),
        "snapshot": view.snapshot.model_dump(mode="json", by_alias=True),
    }
    if detail is not None:
        payload["detail"] = detail.model_dump(mode="json", by_alias=True)
    print(json.dumps(payload, ensure_ascii=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
