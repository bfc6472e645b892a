from __future__ import annotations

import pytest

from aocc.services.operations.banding import kpi_status_allowed, subsystem_status_allowed
from aocc.services.operations.catalog import KpiPolicy, MetricCatalog, MetricReading
from aocc.services.operations.engine import DerivationEngine, derive
from aocc.shared.models.operations import (
    FLAG_LABELS,
    FlightRecord,
    KpiStatus,
    ModeFlag,
    ModeState,
    SubsystemStatus,
    ValueKind,
)


ALL_STATES = ModeState.all_states()


def _state_id(mode: ModeState) -> str:
    return "+".join(flag.value for flag in mode.active_flags()) or "baseline"


@pytest.mark.parametrize("mode", ALL_STATES, ids=_state_id)
def test_derive_is_deterministic(catalog, mode):
    first = derive(mode, catalog)
    second = derive(mode, catalog)
    assert first == second
    assert first.model_dump() == second.model_dump()


@pytest.mark.parametrize("mode", ALL_STATES, ids=_state_id)
def test_every_record_respects_banding(catalog, mode):
    snapshot = derive(mode, catalog)
    for record in snapshot.subsystems:
        assert subsystem_status_allowed(record.uptime_percent, record.status), record
    for record in snapshot.kpis:
        if record.value_kind is ValueKind.PERCENT:
            assert kpi_status_allowed(record.value, record.status), record


@pytest.mark.parametrize("mode", ALL_STATES, ids=_state_id)
def test_banners_match_active_flags(catalog, mode):
    snapshot = derive(mode, catalog)
    assert snapshot.banner_flags == frozenset(mode.active_flags())
    assert len(snapshot.banners) == len(mode.active_flags())
    for banner in snapshot.banners:
        assert banner.label == FLAG_LABELS[banner.flag]


@pytest.mark.parametrize("mode", ALL_STATES, ids=_state_id)
def test_packaged_catalog_derives_without_issues(catalog, mode):
    snapshot = derive(mode, catalog)
    assert snapshot.issues == ()
    assert [record.id for record in snapshot.subsystems] == [
        "aodb", "acdm", "bhs", "cctv", "network", "power", "storage", "comms",
    ]
    assert len(snapshot.kpis) == 6
    assert len(snapshot.insights) == 3


def test_baseline_snapshot_values(catalog):
    snapshot = derive(ModeState(), catalog)

    bhs = snapshot.subsystem("bhs")
    assert bhs.status is SubsystemStatus.MAINTENANCE
    assert bhs.uptime_percent == pytest.approx(89.2)

    flights = snapshot.kpi("active_flights")
    assert flights.value == 24
    assert flights.change_indicator == pytest.approx(5.2)
    assert flights.status is KpiStatus.GOOD

    on_time = snapshot.kpi("on_time_performance")
    assert on_time.status is KpiStatus.WARNING
    assert on_time.display_value == "87.3%"
    assert on_time.display_change == "-2.1%"

    assert snapshot.kpi("passengers_today").display_value == "3,247"
    assert snapshot.kpi("system_health").change_indicator is None
    assert snapshot.banners == ()


def test_emergency_scenario_and_restore(catalog):
    baseline = derive(ModeState(), catalog)
    emergency = derive(ModeState(emergency=True), catalog)

    bhs = emergency.subsystem("bhs")
    assert bhs.status is SubsystemStatus.CRITICAL
    assert bhs.uptime_percent == pytest.approx(45.2)

    flights = emergency.kpi("active_flights")
    assert flights.value == 18
    assert flights.change_indicator == pytest.approx(-25.0)
    assert flights.display_change == "-25%"
    assert flights.status is KpiStatus.CRITICAL

    health = emergency.kpi("system_health")
    assert health.value == pytest.approx(76.2)
    assert health.status is KpiStatus.CRITICAL

    restored = derive(ModeState(emergency=True).with_flag(ModeFlag.EMERGENCY, False), catalog)
    assert restored == baseline


def test_emergency_dominates_optimization(catalog):
    both = derive(ModeState(emergency=True, system_optimized=True), catalog)
    emergency_only = derive(ModeState(emergency=True), catalog)
    optimized_only = derive(ModeState(system_optimized=True), catalog)

    assert both.subsystem("bhs") == emergency_only.subsystem("bhs")
    assert both.kpi("system_health") == emergency_only.kpi("system_health")
    assert both.kpi("system_health") != optimized_only.kpi("system_health")

    # metrics governed only by optimization still improve
    assert both.subsystem("network").status is SubsystemStatus.OPTIMAL
    assert both.kpi("on_time_performance") == optimized_only.kpi("on_time_performance")


def test_operations_alert_degrades_comms_and_weather(catalog):
    snapshot = derive(ModeState(operations_alert=True), catalog)
    comms = snapshot.subsystem("comms")
    assert comms.status is SubsystemStatus.WARNING
    assert comms.uptime_percent == pytest.approx(94.1)

    weather = snapshot.kpi("weather_status")
    assert weather.value == "Stormy"
    assert weather.change_indicator == "Alert"
    assert weather.status is KpiStatus.WARNING


def test_subsystem_status_is_banded_by_engine(make_subsystem):
    catalog = MetricCatalog(
        subsystems=[
            make_subsystem("low", MetricReading(value=70.0, status="operational")),
            make_subsystem("high", MetricReading(value=97.0, status="warning")),
            make_subsystem("mid_optimal", MetricReading(value=90.0, status="optimal")),
            make_subsystem("mid_critical", MetricReading(value=90.0, status="critical")),
            make_subsystem("no_status", MetricReading(value=85.0)),
        ]
    )
    snapshot = derive(ModeState(), catalog)
    assert snapshot.subsystem("low").status is SubsystemStatus.CRITICAL
    assert snapshot.subsystem("high").status is SubsystemStatus.OPERATIONAL
    assert snapshot.subsystem("mid_optimal").status is SubsystemStatus.OPERATIONAL
    assert snapshot.subsystem("mid_critical").status is SubsystemStatus.WARNING
    assert snapshot.subsystem("no_status").status is SubsystemStatus.WARNING
    assert snapshot.issues == ()


def test_out_of_domain_uptime_is_clamped_and_reported(make_subsystem):
    catalog = MetricCatalog(
        subsystems=[
            make_subsystem("bad", MetricReading(value=150.0, status="optimal")),
            make_subsystem("good", MetricReading(value=99.0, status="operational")),
        ]
    )
    snapshot = derive(ModeState(), catalog)
    bad = snapshot.subsystem("bad")
    assert bad.uptime_percent == 100.0
    assert bad.status is SubsystemStatus.OPTIMAL
    assert snapshot.subsystem("good").uptime_percent == 99.0
    assert len(snapshot.issues) == 1
    assert snapshot.issues[0].startswith("bad:")


def test_failing_derive_degrades_only_that_entry(make_subsystem, make_kpi):
    def broken(mode):
        raise RuntimeError("telemetry feed down")

    catalog = MetricCatalog(
        subsystems=[
            make_subsystem("broken", broken),
            make_subsystem("fine", MetricReading(value=99.5, status="operational")),
        ],
        kpis=[make_kpi("broken_kpi", broken), make_kpi("weather", broken, value_kind=ValueKind.CATEGORICAL)],
    )
    snapshot = derive(ModeState(emergency=True), catalog)

    assert snapshot.subsystem("broken").status is SubsystemStatus.CRITICAL
    assert snapshot.subsystem("broken").uptime_percent == 0.0
    assert snapshot.subsystem("fine").status is SubsystemStatus.OPERATIONAL
    assert snapshot.kpi("broken_kpi").status is KpiStatus.CRITICAL
    assert snapshot.kpi("broken_kpi").value == 0.0
    assert snapshot.kpi("weather").value == "n/a"
    assert len(snapshot.issues) == 3


def test_kpi_policy_table(make_kpi):
    catalog = MetricCatalog(
        kpis=[
            make_kpi("drop_warning", MetricReading(value=90.0, change=-1.0, status="good")),
            make_kpi(
                "drop_critical",
                MetricReading(value=90.0, change=-1.0),
                policy=KpiPolicy(negative_change=KpiStatus.CRITICAL),
            ),
            make_kpi("rise", MetricReading(value=90.0, change=3.0, status="warning")),
            make_kpi(
                "below_floor",
                MetricReading(value=79.0, change=2.0),
                policy=KpiPolicy(critical_below=80.0),
            ),
            make_kpi(
                "meets_baseline",
                MetricReading(value=92.0, change=-4.0),
                policy=KpiPolicy(good_at_or_above=90.0),
            ),
            make_kpi("count_drop", MetricReading(value=12, change=-8.0), value_kind=ValueKind.COUNT),
            make_kpi(
                "label_change",
                MetricReading(value="Stormy", change="Alert", status="warning"),
                value_kind=ValueKind.CATEGORICAL,
            ),
        ]
    )
    snapshot = derive(ModeState(), catalog)
    assert snapshot.kpi("drop_warning").status is KpiStatus.WARNING
    assert snapshot.kpi("drop_critical").status is KpiStatus.WARNING  # banded: 90 cannot be critical
    assert snapshot.kpi("rise").status is KpiStatus.GOOD
    assert snapshot.kpi("below_floor").status is KpiStatus.CRITICAL
    assert snapshot.kpi("meets_baseline").status is KpiStatus.GOOD
    assert snapshot.kpi("count_drop").status is KpiStatus.WARNING
    assert snapshot.kpi("label_change").status is KpiStatus.WARNING


def test_percentage_kpi_banding_overrides_policy(make_kpi):
    catalog = MetricCatalog(
        kpis=[
            make_kpi("healthy_drop", MetricReading(value=97.0, change=-3.0)),
            make_kpi("failing_rise", MetricReading(value=60.0, change=5.0, status="good")),
        ]
    )
    snapshot = derive(ModeState(), catalog)
    assert snapshot.kpi("healthy_drop").status is KpiStatus.GOOD
    assert snapshot.kpi("failing_rise").status is KpiStatus.CRITICAL


def test_engine_binds_catalog(catalog):
    engine = DerivationEngine(catalog)
    assert engine.catalog is catalog
    assert engine.derive(ModeState(operations_alert=True)) == derive(ModeState(operations_alert=True), catalog)


@pytest.mark.parametrize("mode", ALL_STATES, ids=_state_id)
def test_catalog_flights_pass_through_unchanged(catalog, mode):
    snapshot = derive(mode, catalog)
    assert snapshot.flights == catalog.flights
    assert snapshot.flight("VN-A321").gate == "A3"
    assert snapshot.flight("nope") is None


def test_flight_source_replaces_catalog_flights(catalog):
    live = FlightRecord(id="live-1", flight_number="VN9", airline="Vietnam Airlines", route="DAD → PQC", status="En Route", progress=40)
    engine = DerivationEngine(catalog, flight_source=lambda: [live])
    snapshot = engine.derive(ModeState(emergency=True))
    assert snapshot.flights == (live,)
    assert snapshot.issues == ()
    assert snapshot.subsystem("bhs").uptime_percent == 45.2


def test_failing_flight_source_is_reported_not_raised(catalog):
    def offline():
        raise ConnectionError("feed down")

    snapshot = derive(ModeState(), catalog, flight_source=offline)
    assert snapshot.flights == ()
    assert any(issue.startswith("flights: source failed") for issue in snapshot.issues)
    assert snapshot.subsystem("bhs").status is SubsystemStatus.MAINTENANCE


def test_flight_source_non_records_are_dropped(catalog):
    good = catalog.flights[0]
    snapshot = derive(ModeState(), catalog, flight_source=lambda: [good, {"id": "raw"}])
    assert snapshot.flights == (good,)
    assert snapshot.issues == ("flights: dropped 1 non-flight item(s)",)
