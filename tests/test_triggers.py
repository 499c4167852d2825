"""Tests for trigger matching and condition filtering."""

from __future__ import annotations

from datetime import time, timedelta

import pytest

from conftest import NOW
from depot_ops.engine.predictive import RiskPredictionEngine
from depot_ops.engine.triggers import (
    _MISSING,
    TriggerContext,
    match_rule,
    match_trigger,
    resolve_field,
    vehicle_matches,
)
from depot_ops.models.automation import (
    AnomalyDetectedTrigger,
    AutomationRule,
    BetweenCondition,
    ContainsCondition,
    DepotCapacityTrigger,
    EqCondition,
    GtCondition,
    IncidentCreatedTrigger,
    InCondition,
    LtCondition,
    MaintenanceDueTrigger,
    NeCondition,
    PredictionConfidenceTrigger,
    ScheduleTrigger,
    SocThresholdTrigger,
    VehicleIdleTrigger,
)
from depot_ops.models.fleet import (
    Anomaly,
    ChargingStall,
    Depot,
    Incident,
    OperationalMetrics,
    ResourceStatus,
    SafetyMetrics,
    Vehicle,
    VehicleStatus,
)
from depot_ops.store import FleetStore


def _vehicle(vehicle_id: str, soc: float = 0.5, **kwargs) -> Vehicle:
    kwargs.setdefault("current_depot_id", "D1")
    return Vehicle(id=vehicle_id, state_of_charge=soc, **kwargs)


def _ctx(clock, store: FleetStore, last_fired=None) -> TriggerContext:
    now = clock.now()
    return TriggerContext(
        store.snapshot(now), now, RiskPredictionEngine(store, clock=clock), last_fired=last_fired,
    )


def _ids(vehicles) -> list[str]:
    return [v.id for v in vehicles]


# ═══════════════════════════════════════════════════════════════════════════
# Triggers
# ═══════════════════════════════════════════════════════════════════════════


class TestSocThreshold:
    @pytest.fixture
    def ctx(self, clock):
        store = FleetStore(vehicles=[_vehicle("A", 0.1), _vehicle("B", 0.2), _vehicle("C", 0.5)])
        return _ctx(clock, store)

    def test_below_is_strict(self, ctx):
        assert _ids(match_trigger(SocThresholdTrigger(threshold=0.2), ctx)) == ["A"]

    def test_above_is_strict(self, ctx):
        trigger = SocThresholdTrigger(threshold=0.2, direction="above")
        assert _ids(match_trigger(trigger, ctx)) == ["C"]


class TestMaintenanceDue:
    def test_due_within_window(self, clock):
        store = FleetStore(vehicles=[
            _vehicle("SOON", next_maintenance_date=NOW + timedelta(days=5)),
            _vehicle("LATER", next_maintenance_date=NOW + timedelta(days=10)),
            _vehicle("OVERDUE", next_maintenance_date=NOW - timedelta(days=2)),
            _vehicle("UNKNOWN"),
        ])
        matched = match_trigger(MaintenanceDueTrigger(days_until=7), _ctx(clock, store))
        assert _ids(matched) == ["SOON", "OVERDUE"]


class TestVehicleIdle:
    def test_idle_long_enough(self, clock):
        store = FleetStore(vehicles=[
            _vehicle("LONG", status=VehicleStatus.IDLE, idle_since=NOW - timedelta(hours=3)),
            _vehicle("SHORT", status=VehicleStatus.IDLE, idle_since=NOW - timedelta(minutes=45)),
            _vehicle("UNTRACKED", status=VehicleStatus.IDLE),
            _vehicle("BUSY", status=VehicleStatus.ACTIVE, idle_since=NOW - timedelta(hours=3)),
        ])
        matched = match_trigger(VehicleIdleTrigger(duration_minutes=120), _ctx(clock, store))
        assert _ids(matched) == ["LONG", "UNTRACKED"]

    def test_naive_idle_since(self, clock):
        naive = (NOW - timedelta(hours=3)).replace(tzinfo=None)
        store = FleetStore(vehicles=[_vehicle("A", status=VehicleStatus.IDLE, idle_since=naive)])
        assert _ids(match_trigger(VehicleIdleTrigger(), _ctx(clock, store))) == ["A"]


class TestDepotCapacity:
    def _store(self, busy: int) -> FleetStore:
        stalls = [
            ChargingStall(
                id=f"S{i}", depot_id="D1",
                status=ResourceStatus.OCCUPIED if i < busy else ResourceStatus.AVAILABLE,
            )
            for i in range(2)
        ]
        return FleetStore(
            vehicles=[_vehicle("A"), _vehicle("ELSEWHERE", current_depot_id="D2")],
            depots=[Depot(id="D1", name="One"), Depot(id="D2", name="Two")],
            resources=stalls,
        )

    def test_full_depot(self, clock):
        matched = match_trigger(DepotCapacityTrigger(threshold=0.9), _ctx(clock, self._store(busy=2)))
        assert _ids(matched) == ["A"]

    def test_half_full_depot(self, clock):
        matched = match_trigger(DepotCapacityTrigger(threshold=0.9), _ctx(clock, self._store(busy=1)))
        assert matched == []

    def test_below_direction(self, clock):
        trigger = DepotCapacityTrigger(threshold=0.6, direction="below")
        assert _ids(match_trigger(trigger, _ctx(clock, self._store(busy=1)))) == ["A"]

    def test_depot_without_resources_of_kind(self, clock):
        trigger = DepotCapacityTrigger(resource_type="detailing_bay", threshold=0.0)
        assert match_trigger(trigger, _ctx(clock, self._store(busy=2))) == []


class TestSchedule:
    @pytest.fixture
    def store(self):
        return FleetStore(vehicles=[_vehicle("A"), _vehicle("B")])

    def test_not_yet_due(self, clock, store):
        assert match_trigger(ScheduleTrigger(at=time(22, 0)), _ctx(clock, store)) == []

    def test_due(self, clock, store):
        clock.set(NOW.replace(hour=22, minute=30))
        assert _ids(match_trigger(ScheduleTrigger(at=time(22, 0)), _ctx(clock, store))) == ["A", "B"]

    def test_already_fired_today(self, clock, store):
        clock.set(NOW.replace(hour=23))
        fired = NOW.replace(hour=22, minute=5)
        ctx = _ctx(clock, store, last_fired=fired)
        assert match_trigger(ScheduleTrigger(at=time(22, 0)), ctx) == []

    def test_fired_yesterday(self, clock, store):
        clock.set(NOW.replace(hour=22, minute=1))
        ctx = _ctx(clock, store, last_fired=NOW.replace(hour=22) - timedelta(days=1))
        assert len(match_trigger(ScheduleTrigger(at=time(22, 0)), ctx)) == 2


class TestEvents:
    @pytest.fixture
    def store(self):
        return FleetStore(
            vehicles=[_vehicle("A"), _vehicle("B"), _vehicle("C")],
            incidents=[
                Incident(id="I1", vehicle_id="A", incident_type="collision", severity="high",
                         created_at=NOW - timedelta(hours=2)),
                Incident(id="I2", vehicle_id="B", incident_type="collision", severity="low",
                         created_at=NOW - timedelta(minutes=5)),
                Incident(id="I3", vehicle_id="C", incident_type="flat_tire", severity="low",
                         created_at=NOW - timedelta(minutes=5)),
            ],
            anomalies=[
                Anomaly(id="X1", vehicle_id="C", anomaly_type="sensor_drift",
                        detected_at=NOW - timedelta(minutes=1)),
            ],
        )

    def test_all_incidents_when_never_fired(self, clock, store):
        assert _ids(match_trigger(IncidentCreatedTrigger(), _ctx(clock, store))) == ["A", "B", "C"]

    def test_incident_type_filter(self, clock, store):
        trigger = IncidentCreatedTrigger(incident_types=["collision"])
        assert _ids(match_trigger(trigger, _ctx(clock, store))) == ["A", "B"]

    def test_severity_filter(self, clock, store):
        trigger = IncidentCreatedTrigger(severities=["high"])
        assert _ids(match_trigger(trigger, _ctx(clock, store))) == ["A"]

    def test_only_incidents_since_last_fire(self, clock, store):
        ctx = _ctx(clock, store, last_fired=NOW - timedelta(hours=1))
        trigger = IncidentCreatedTrigger(incident_types=["collision"])
        assert _ids(match_trigger(trigger, ctx)) == ["B"]

    def test_anomaly(self, clock, store):
        assert _ids(match_trigger(AnomalyDetectedTrigger(anomaly_type="sensor_drift"), _ctx(clock, store))) == ["C"]
        assert match_trigger(AnomalyDetectedTrigger(anomaly_type="overheat"), _ctx(clock, store)) == []


class TestPredictionConfidence:
    def test_maintenance_risk(self, clock):
        worn = _vehicle(
            "WORN", mileage=90_000, engine_hours=4_000,
            next_maintenance_date=NOW - timedelta(days=1),
            operational_metrics=OperationalMetrics(uptime=0.8),
        )
        store = FleetStore(vehicles=[worn, _vehicle("NEW", next_maintenance_date=NOW + timedelta(days=90))])
        trigger = PredictionConfidenceTrigger(prediction_type="maintenance_risk", threshold=0.7)
        assert _ids(match_trigger(trigger, _ctx(clock, store))) == ["WORN"]

    def test_incident_risk(self, clock):
        risky = _vehicle("RISKY", safety_metrics=SafetyMetrics(safety_score=60, disengagement_rate=0.0003))
        store = FleetStore(vehicles=[risky, _vehicle("CALM")])
        trigger = PredictionConfidenceTrigger(prediction_type="incident_risk", threshold=0.5)
        assert _ids(match_trigger(trigger, _ctx(clock, store))) == ["RISKY"]


# ═══════════════════════════════════════════════════════════════════════════
# Conditions
# ═══════════════════════════════════════════════════════════════════════════


class TestConditions:
    @pytest.fixture
    def vehicle(self) -> Vehicle:
        return _vehicle("A", 0.6, city="Austin", autonomy_level="L3", current_route="route-002")

    def test_resolve_field(self, vehicle):
        assert resolve_field(vehicle, "soc") == 0.6
        assert resolve_field(vehicle, "status") == "available"
        assert resolve_field(vehicle, "operational_metrics.uptime") == 0.9
        assert resolve_field(vehicle, "no_such_field") is _MISSING
        assert resolve_field(vehicle, "operational_metrics.nope") is _MISSING

    @pytest.mark.parametrize("condition, expected", [
        (EqCondition(field="city", value="Austin"), True),
        (NeCondition(field="status", value="charging"), True),
        (GtCondition(field="soc", value=0.5), True),
        (LtCondition(field="soc", value=0.5), False),
        (InCondition(field="autonomy_level", value=["L3", "L4"]), True),
        (ContainsCondition(field="current_route", value="002"), True),
        (BetweenCondition(field="soc", value=(0.5, 0.6)), True),
        (BetweenCondition(field="soc", value=(0.7, 0.9)), False),
        (GtCondition(field="city", value=1), False),
        (EqCondition(field="missing", value="x"), False),
    ])
    def test_single_condition(self, vehicle, condition, expected):
        assert vehicle_matches(vehicle, [condition]) is expected

    def test_conditions_are_anded(self, vehicle):
        conditions = [GtCondition(field="soc", value=0.5), EqCondition(field="city", value="Phoenix")]
        assert vehicle_matches(vehicle, conditions) is False
        assert vehicle_matches(vehicle, []) is True

    def test_ne_on_missing_field_does_not_match(self, vehicle):
        assert vehicle_matches(vehicle, [NeCondition(field="missing", value="x")]) is False

    def test_match_rule_narrows_trigger(self, clock):
        store = FleetStore(vehicles=[
            _vehicle("A", 0.1),
            _vehicle("B", 0.1, status=VehicleStatus.MAINTENANCE),
            _vehicle("C", 0.9),
        ])
        rule = AutomationRule(
            id="r", name="r",
            trigger=SocThresholdTrigger(threshold=0.2),
            conditions=[NeCondition(field="status", value="maintenance")],
        )
        assert _ids(match_rule(rule, _ctx(clock, store))) == ["A"]
