"""Tests for the risk prediction engine.

Covers:
  - Confidence scoring bounds
  - Charging needs: urgency, filtering, ordering, recommended time
  - Maintenance risk step functions and composite score
  - Incident likelihood under weather / traffic
  - Depot demand forecast
  - Fleet prediction summary
  - Charge target shared with the scheduler
"""

from __future__ import annotations

from datetime import timedelta

import numpy as np
import pytest

from conftest import NOW
from depot_ops.config import (
    DEFAULT_CHARGE_TARGET_SOC,
    FleetOpsSettings,
    PredictionSettings,
    SchedulerSettings,
)
from depot_ops.engine import build_runtime
from depot_ops.engine.predictive import (
    RiskPredictionEngine,
    age_risk,
    days_until,
    demand_multipliers,
    failure_window_days,
    filter_vehicles,
    maintenance_due_risk,
    mileage_risk,
    operational_risk,
)
from depot_ops.models.fleet import (
    Depot,
    FleetConditions,
    MaintenanceAlert,
    OperationalMetrics,
    Priority,
    SafetyMetrics,
    Vehicle,
    VehicleStatus,
)
from depot_ops.models.predictions import PredictionFactor
from depot_ops.store import FleetStore


def _vehicle(vehicle_id: str, soc: float = 0.5, **kwargs) -> Vehicle:
    kwargs.setdefault("current_depot_id", "D1")
    kwargs.setdefault("city", "Testville")
    return Vehicle(id=vehicle_id, state_of_charge=soc, **kwargs)


def _engine(clock, vehicles, depots=(), conditions=None) -> RiskPredictionEngine:
    store = FleetStore(vehicles=vehicles, depots=depots, conditions=conditions)
    return RiskPredictionEngine(store, clock=clock)


def _factor(direction: str) -> PredictionFactor:
    return PredictionFactor(name="f", weight=0.1, value=1, direction=direction)


NO_DRAIN = OperationalMetrics(avg_daily_distance=0)


# ═══════════════════════════════════════════════════════════════════════════
# Confidence
# ═══════════════════════════════════════════════════════════════════════════


class TestConfidence:
    def test_base(self, predictor):
        assert predictor.calculate_confidence([], 0) == 0.5

    def test_data_points_raise_confidence(self, predictor):
        assert predictor.calculate_confidence([], 10) == 0.7

    def test_ceiling(self, predictor):
        assert predictor.calculate_confidence([], 500) == 0.95

    def test_negative_factors_lower_confidence(self, predictor):
        factors = [_factor("negative"), _factor("negative"), _factor("positive")]
        assert predictor.calculate_confidence(factors, 10) == 0.6

    def test_floor(self, predictor):
        factors = [_factor("negative")] * 8
        assert predictor.calculate_confidence(factors, 0) == 0.3


# ═══════════════════════════════════════════════════════════════════════════
# Charging
# ═══════════════════════════════════════════════════════════════════════════


class TestChargingNeeds:
    def test_low_soc_is_critical(self, clock):
        engine = _engine(clock, [_vehicle("A", 0.12, operational_metrics=NO_DRAIN)])
        result = engine.predict_charging_needs(horizon_hours=4, soc_threshold=0.30)
        (prediction,) = result.prediction
        assert prediction.urgency == Priority.CRITICAL
        assert prediction.predicted_soc == pytest.approx(0.12)
        assert prediction.reason == "Battery critically low - immediate charging required"
        assert prediction.recommended_charge_time == NOW
        # (0.8 - 0.12) × 100 kWh / 250 kW × 60
        assert prediction.estimated_charge_minutes == 16

    def test_drain_projects_into_critical(self, predictor):
        # V2: 0.5 SOC, 150 km/day × 90 kWh/100 km over 100 kWh → 0.1125/h
        result = predictor.predict_charging_needs(horizon_hours=4)
        v2 = next(p for p in result.prediction if p.vehicle_id == "V2")
        assert v2.urgency == Priority.CRITICAL
        assert v2.reason == "Will reach critical level within forecast window"
        assert v2.drain_rate_pct_per_hour == 11.25

    def test_comfortable_vehicles_are_dropped(self, clock):
        engine = _engine(clock, [_vehicle("A", 0.9, operational_metrics=NO_DRAIN)])
        assert engine.predict_charging_needs().prediction == []

    def test_medium_urgency_below_threshold(self, clock):
        engine = _engine(clock, [_vehicle("A", 0.5, operational_metrics=NO_DRAIN)])
        (prediction,) = engine.predict_charging_needs(soc_threshold=0.6).prediction
        assert prediction.urgency == Priority.MEDIUM

    def test_high_urgency(self, clock):
        engine = _engine(clock, [_vehicle("A", 0.22, operational_metrics=NO_DRAIN)])
        (prediction,) = engine.predict_charging_needs().prediction
        assert prediction.urgency == Priority.HIGH
        assert prediction.reason == "SOC trending toward critical threshold"

    def test_charging_and_maintenance_vehicles_excluded(self, clock):
        engine = _engine(clock, [
            _vehicle("A", 0.05, status=VehicleStatus.CHARGING),
            _vehicle("B", 0.05, status=VehicleStatus.MAINTENANCE),
            _vehicle("C", 0.05, status=VehicleStatus.ACTIVE),
        ])
        ids = [p.vehicle_id for p in engine.predict_charging_needs().prediction]
        assert ids == ["C"]

    def test_sorted_most_urgent_first(self, clock):
        engine = _engine(clock, [
            _vehicle("MED", 0.5, operational_metrics=NO_DRAIN),
            _vehicle("CRIT", 0.05, operational_metrics=NO_DRAIN),
            _vehicle("HIGH", 0.22, operational_metrics=NO_DRAIN),
        ])
        result = engine.predict_charging_needs(soc_threshold=0.6)
        assert [p.vehicle_id for p in result.prediction] == ["CRIT", "HIGH", "MED"]
        ranks = [p.urgency.rank for p in result.prediction]
        assert ranks == sorted(ranks)

    def test_filters_by_city_and_depot(self, clock):
        engine = _engine(clock, [
            _vehicle("A", 0.05, city="Austin", current_depot_id="D1"),
            _vehicle("B", 0.05, city="Phoenix", current_depot_id="D2"),
        ])
        assert [p.vehicle_id for p in engine.predict_charging_needs(city="austin").prediction] == ["A"]
        assert [p.vehicle_id for p in engine.predict_charging_needs(depot_id="D2").prediction] == ["B"]

    def test_recommended_time_when_threshold_is_crossed(self, clock):
        engine = _engine(clock, [])
        vehicle = _vehicle(
            "A", 0.5, battery_capacity_kwh=100,
            operational_metrics=OperationalMetrics(avg_daily_distance=150, energy_consumption_per_100=80),
        )
        prediction = engine._charging_prediction(vehicle, 1, 0.3, NOW)
        # 0.1 SOC/h drain, 0.2 above threshold
        delta = prediction.recommended_charge_time - NOW
        assert delta.total_seconds() == pytest.approx(2 * 3600)

    def test_zero_drain_never_crosses(self, clock):
        engine = _engine(clock, [])
        prediction = engine._charging_prediction(
            _vehicle("A", 0.5, operational_metrics=NO_DRAIN), 4, 0.3, NOW,
        )
        assert prediction.recommended_charge_time is None
        assert prediction.drain_rate_pct_per_hour == 0.0

    def test_critical_factor_is_negative(self, clock):
        engine = _engine(clock, [_vehicle("A", 0.05)])
        result = engine.predict_charging_needs()
        critical = next(f for f in result.factors if f.name == "critical_count")
        assert critical.direction == "negative"
        assert critical.value == 1
        assert result.model_version == "1.0.0"
        assert result.timestamp == NOW


# ═══════════════════════════════════════════════════════════════════════════
# Maintenance
# ═══════════════════════════════════════════════════════════════════════════


class TestRiskStepFunctions:
    @pytest.mark.parametrize("mileage, expected", [
        (0, 0.1), (19_999, 0.1), (20_000, 0.3), (45_000, 0.5), (79_999, 0.7), (80_000, 0.9),
    ])
    def test_mileage(self, mileage, expected):
        assert mileage_risk(mileage) == expected

    @pytest.mark.parametrize("hours, expected", [(500, 0.1), (1_500, 0.3), (2_500, 0.5), (3_000, 0.7)])
    def test_age(self, hours, expected):
        assert age_risk(hours) == expected

    @pytest.mark.parametrize("days, expected", [
        (-2, 1.0), (3, 0.8), (10, 0.5), (20, 0.3), (45, 0.1),
    ])
    def test_maintenance_due(self, days, expected):
        assert maintenance_due_risk(NOW + timedelta(days=days), NOW) == expected

    def test_unknown_maintenance_date(self):
        assert maintenance_due_risk(None, NOW) == 0.5

    def test_operational(self):
        assert operational_risk(_vehicle("A")) == 0.0
        worn = _vehicle("B", operational_metrics=OperationalMetrics(
            uptime=0.8, utilization_rate=0.95, maintenance_cost_per_km=0.2,
        ))
        assert operational_risk(worn) == pytest.approx(0.8)

    def test_days_until_floors(self):
        assert days_until(NOW + timedelta(hours=30), NOW) == 1
        assert days_until(NOW - timedelta(hours=1), NOW) == -1

    def test_failure_window(self):
        # D = round(0.5 × 30) + 5 = 20
        earliest, latest = failure_window_days(0.5)
        assert earliest == pytest.approx(14.0)
        assert latest == pytest.approx(26.0)


class TestMaintenanceRisks:
    def _worn(self, **kwargs) -> Vehicle:
        base = dict(
            mileage=88_000, engine_hours=3_600, next_maintenance_date=NOW + timedelta(days=3),
        )
        base.update(kwargs)
        return _vehicle("W", **base)

    def test_composite_score(self, clock):
        engine = _engine(clock, [self._worn()])
        (risk,) = engine.predict_maintenance_risks(risk_threshold=0.6).prediction
        # 0.25 × 0.9 + 0.15 × 0.7 + 0.35 × 0.8 + 0.25 × 0
        assert risk.risk_score == 0.61
        assert risk.urgency == Priority.HIGH
        assert risk.category == "general"
        assert risk.estimated_cost == 3550
        assert [c.component for c in risk.components] == ["drivetrain"]
        assert risk.recommended_action == "Schedule preventive maintenance within 2 weeks"
        window = risk.predicted_failure_window
        assert NOW.date() < window.earliest < window.latest

    def test_threshold_is_inclusive_filter(self, clock):
        engine = _engine(clock, [self._worn()])
        assert engine.predict_maintenance_risks(risk_threshold=0.61).prediction
        assert engine.predict_maintenance_risks(risk_threshold=0.62).prediction == []

    def test_raising_threshold_never_adds_vehicles(self, demo_runtime):
        predictor = demo_runtime.predictor
        counts = [
            len(predictor.predict_maintenance_risks(risk_threshold=t).prediction)
            for t in (0.0, 0.3, 0.5, 0.7, 0.9)
        ]
        assert counts == sorted(counts, reverse=True)

    def test_battery_alert_sets_category_and_cost(self, clock):
        alert = MaintenanceAlert(
            component="battery", confidence=0.82,
            recommendation="Battery cell imbalance detected", cost_impact=4_200,
        )
        engine = _engine(clock, [self._worn(predictive_alerts=[alert])])
        (risk,) = engine.predict_maintenance_risks(risk_threshold=0.0).prediction
        assert risk.category == "battery"
        assert risk.estimated_cost == 4_200

    def test_sensor_component_for_high_autonomy(self, clock):
        vehicle = self._worn(
            autonomy_level="L5",
            safety_metrics=SafetyMetrics(disengagement_rate=0.0002),
        )
        engine = _engine(clock, [vehicle])
        (risk,) = engine.predict_maintenance_risks(risk_threshold=0.0).prediction
        assert risk.category == "sensors"
        assert "autonomous_sensors" in [c.component for c in risk.components]
        assert risk.recommended_action == "Schedule sensor calibration and cleaning within 1 week"

    def test_category_filter(self, clock):
        engine = _engine(clock, [self._worn()])
        assert engine.predict_maintenance_risks(risk_threshold=0.0, categories=["sensors"]).prediction == []
        assert engine.predict_maintenance_risks(risk_threshold=0.0, categories=["general"]).prediction

    def test_sorted_by_risk(self, demo_runtime):
        risks = demo_runtime.predictor.predict_maintenance_risks(risk_threshold=0.0).prediction
        scores = [r.risk_score for r in risks]
        assert scores == sorted(scores, reverse=True)


# ═══════════════════════════════════════════════════════════════════════════
# Incidents
# ═══════════════════════════════════════════════════════════════════════════


class TestIncidentLikelihood:
    def _risky(self) -> Vehicle:
        return _vehicle(
            "R", autonomy_level="L3", current_route="route-9",
            safety_metrics=SafetyMetrics(safety_score=80, disengagement_rate=0.0001),
        )

    def test_adverse_conditions(self, clock):
        engine = _engine(
            clock, [self._risky()], conditions=FleetConditions(weather="rain", traffic="heavy"),
        )
        result = engine.predict_incident_likelihood()
        (risk,) = result.prediction
        # (0.2 + 0.1) × 1.2 × 1.3 × 1.2
        assert risk.risk_score == 0.56
        assert risk.urgency == Priority.HIGH
        assert len(risk.primary_factors) == 5
        assert len(risk.recommended_actions) == 3
        assert risk.affected_routes == ["route-9"]
        assert result.confidence == 0.42

    def test_clear_conditions_lower_risk(self, clock):
        engine = _engine(
            clock, [self._risky()], conditions=FleetConditions(weather="clear", traffic="light"),
        )
        (risk,) = engine.predict_incident_likelihood().prediction
        # 0.3 × 1.2
        assert risk.risk_score == 0.36
        assert risk.urgency == Priority.MEDIUM

    def test_safe_vehicles_dropped(self, clock):
        safe = _vehicle(
            "S", autonomy_level="L5",
            safety_metrics=SafetyMetrics(safety_score=99.5, disengagement_rate=0.00001),
        )
        engine = _engine(clock, [safe])
        assert engine.predict_incident_likelihood().prediction == []

    def test_risk_is_clamped(self, clock):
        reckless = _vehicle("X", safety_metrics=SafetyMetrics(safety_score=10, disengagement_rate=0.01))
        engine = _engine(clock, [reckless])
        (risk,) = engine.predict_incident_likelihood().prediction
        assert risk.risk_score == 1.0
        assert risk.urgency == Priority.CRITICAL

    def test_sorted_descending(self, demo_runtime):
        risks = demo_runtime.predictor.predict_incident_likelihood().prediction
        scores = [r.risk_score for r in risks]
        assert scores == sorted(scores, reverse=True)


# ═══════════════════════════════════════════════════════════════════════════
# Depot demand
# ═══════════════════════════════════════════════════════════════════════════


class TestDepotDemand:
    def _engine(self, clock, charging_capacity: int = 4) -> RiskPredictionEngine:
        depot = Depot(id="D1", name="Test Depot", charging_capacity=charging_capacity)
        vehicles = [_vehicle(f"V{i}") for i in range(10)]
        return _engine(clock, vehicles, depots=[depot])

    def test_multipliers(self):
        hours = np.array([0, 5, 6, 9, 10, 17, 20, 21, 22, 23])
        expected = [1.3, 1.3, 1.5, 1.5, 1.0, 1.6, 1.6, 1.0, 1.3, 1.3]
        assert demand_multipliers(hours).tolist() == expected

    def test_hourly_forecast(self, clock):
        result = self._engine(clock).predict_depot_demand("D1", horizon_hours=6)
        forecast = result.prediction
        assert [p.hour for p in forecast.forecasts] == [12, 13, 14, 15, 16, 17]
        # base demand round(10 × 0.3) = 3 against 4 stalls
        assert [p.predicted_demand for p in forecast.forecasts] == [3, 3, 3, 3, 3, 5]
        assert forecast.forecasts[0].utilization_percent == 75
        assert forecast.forecasts[0].recommendation == "Monitor queue closely - approaching capacity"
        assert forecast.forecasts[-1].utilization_percent == 100
        assert forecast.forecasts[-1].is_peak
        assert forecast.peak_hours == [17]
        assert "Peak hours identified: 17:00" in forecast.recommendations

    def test_confidence_decays_per_point(self, clock):
        forecast = self._engine(clock).predict_depot_demand("D1", horizon_hours=6).prediction
        assert [p.confidence for p in forecast.forecasts] == [0.75, 0.73, 0.71, 0.69, 0.67, 0.65]

    def test_long_horizon_confidence_floors_at_zero(self, clock):
        forecast = self._engine(clock).predict_depot_demand("D1", horizon_hours=48).prediction
        assert min(p.confidence for p in forecast.forecasts) == 0.0

    @pytest.mark.parametrize("granularity, horizon, points", [
        ("shift", 24, 3), ("daily", 24, 1), ("daily", 25, 2), ("hourly", 3, 3),
    ])
    def test_granularity(self, clock, granularity, horizon, points):
        forecast = self._engine(clock).predict_depot_demand(
            "D1", horizon_hours=horizon, granularity=granularity,
        ).prediction
        assert len(forecast.forecasts) == points

    def test_unknown_depot(self, clock):
        result = self._engine(clock).predict_depot_demand("nowhere")
        assert result.confidence == 0.0
        assert result.prediction.depot_name == "Unknown Depot"
        assert result.prediction.forecasts == []
        assert result.prediction.recommendations == ["Depot not found"]

    def test_zero_capacity(self, clock):
        forecast = self._engine(clock, charging_capacity=0).predict_depot_demand(
            "D1", horizon_hours=2,
        ).prediction
        assert all(p.utilization_percent == 100 for p in forecast.forecasts)
        assert "High demand forecast - consider pre-scheduling priority vehicles" in forecast.recommendations

    def test_low_utilization_recommendation(self, clock):
        forecast = self._engine(clock, charging_capacity=50).predict_depot_demand(
            "D1", horizon_hours=4,
        ).prediction
        assert forecast.peak_hours == []
        assert forecast.recommendations == [
            "Low utilization forecast - opportunity for maintenance scheduling"
        ]


# ═══════════════════════════════════════════════════════════════════════════
# Summary & helpers
# ═══════════════════════════════════════════════════════════════════════════


class TestFleetSummary:
    def test_counts_match_individual_forecasts(self, demo_runtime):
        predictor = demo_runtime.predictor
        summary = predictor.get_fleet_prediction_summary()
        charging = predictor.predict_charging_needs(horizon_hours=4).prediction
        critical = sum(1 for p in charging if p.urgency == Priority.CRITICAL)
        assert summary.charging_needs.total == len(charging)
        assert summary.charging_needs.critical == critical
        assert f"{critical} vehicles need immediate charging" in summary.recommendations

    def test_city_scope(self, demo_runtime):
        summary = demo_runtime.predictor.get_fleet_prediction_summary(city="Phoenix")
        assert summary.city == "Phoenix"
        assert summary.charging_needs.total <= 3

    def test_empty_fleet(self, clock):
        summary = _engine(clock, []).get_fleet_prediction_summary()
        assert summary.charging_needs.total == 0
        assert summary.recommendations == []


class TestFilterVehicles:
    def test_empty_id_list_means_no_filter(self):
        vehicles = [_vehicle("A"), _vehicle("B")]
        assert filter_vehicles(vehicles, vehicle_ids=[]) == vehicles

    def test_ids(self):
        vehicles = [_vehicle("A"), _vehicle("B")]
        assert [v.id for v in filter_vehicles(vehicles, vehicle_ids=["B"])] == ["B"]


# ═══════════════════════════════════════════════════════════════════════════
# Shared charge target
# ═══════════════════════════════════════════════════════════════════════════


class TestChargeTarget:
    def test_runtime_passes_one_target_to_both_engines(self, store, clock):
        runtime = build_runtime(store, settings=FleetOpsSettings(charge_target_soc=0.4), clock=clock)
        assert runtime.scheduler.charge_target_soc == 0.4
        assert runtime.predictor.charge_target_soc == 0.4

        # V2 sits at 0.5, already above the lowered target
        assert [v.id for v in runtime.scheduler.get_charging_queue("D1").vehicles] == ["V1"]
        v1 = next(
            p for p in runtime.predictor.predict_charging_needs().prediction
            if p.vehicle_id == "V1"
        )
        # (0.4 - 0.10) × 75 kWh / 250 kW × 60
        assert v1.estimated_charge_minutes == 5

    def test_default_target(self, store, clock):
        runtime = build_runtime(store, clock=clock)
        assert runtime.scheduler.charge_target_soc == DEFAULT_CHARGE_TARGET_SOC
        v1 = next(
            p for p in runtime.predictor.predict_charging_needs().prediction
            if p.vehicle_id == "V1"
        )
        # (0.8 - 0.10) × 75 kWh / 250 kW × 60
        assert v1.estimated_charge_minutes == 13

    @pytest.mark.parametrize("section", [SchedulerSettings, PredictionSettings])
    def test_sections_do_not_redeclare_target(self, section):
        assert "charge_target_soc" not in section.model_fields
