"""Risk prediction engine — charging, maintenance, incident and depot demand forecasts.

Stateless: every call reads one ``FleetSnapshot`` (taken fresh, or passed in by
the caller so several forecasts share a consistent view) and returns a
``PredictionResult`` wrapping the payload, its confidence and its factors.

Charging (per eligible vehicle; charging/maintenance vehicles excluded):
  drain/h      = (avg_daily_distance / 100 × consumption_per_100) / capacity / 12
  predicted    = max(0, soc − drain × horizon)
  urgency      = critical if soc < 0.15 or predicted < 0.10
                 high     if soc < 0.25 or predicted < 0.20
                 medium   if predicted < soc_threshold
                 low      otherwise

Maintenance (weighted step functions):
  risk = 0.25 × mileage + 0.15 × age + 0.35 × maintenance_due + 0.25 × operational
  failure window = now + [0.7 D, 1.3 D] days,  D = round((1 − risk) × 30) + 5

Incident:
  risk = ((100 − safety) / 100 + 1000 × disengagement) × autonomy × weather × traffic
  autonomy: L3 × 1.2, L5 × 0.8;  adverse weather × 1.3;  heavy traffic × 1.2

Confidence (shared):
  clamp(0.5 + 0.02 × data_points, ≤ 0.95) − 0.05 × negative_factors, clamped [0.3, 0.95]
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

import numpy as np

from depot_ops.clock import Clock, SystemClock, ensure_utc
from depot_ops.config.prediction import PredictionSettings
from depot_ops.config.settings import DEFAULT_CHARGE_TARGET_SOC
from depot_ops.engine.helpers import clamp, round_half_up
from depot_ops.models.fleet import Priority, Vehicle, VehicleStatus
from depot_ops.models.predictions import (
    ChargingPrediction,
    ComponentRisk,
    DemandForecastPoint,
    DemandGranularity,
    DepotDemandForecast,
    FailureWindow,
    FleetPredictionSummary,
    IncidentRisk,
    MaintenanceRisk,
    PredictionFactor,
    PredictionResult,
    UrgencyCounts,
)
from depot_ops.store import FleetSnapshot, FleetStore

logger = logging.getLogger(__name__)

_GRANULARITY_HOURS = {"hourly": 1, "shift": 8, "daily": 24}

_SENSOR_AUTONOMY_LEVELS = ("L4", "L5")


class RiskPredictionEngine:
    """Read-only forecasts over the current fleet snapshot."""

    def __init__(
        self,
        store: FleetStore,
        settings: PredictionSettings | None = None,
        clock: Clock | None = None,
        charge_target_soc: float = DEFAULT_CHARGE_TARGET_SOC,
    ) -> None:
        self._store = store
        self._settings = settings or PredictionSettings()
        self._clock = clock or SystemClock()
        self._charge_target_soc = charge_target_soc

    @property
    def settings(self) -> PredictionSettings:
        return self._settings

    @property
    def charge_target_soc(self) -> float:
        return self._charge_target_soc

    def _resolve(self, snapshot: FleetSnapshot | None) -> FleetSnapshot:
        return snapshot if snapshot is not None else self._store.snapshot(self._clock.now())

    def _result(self, prediction, factors: list[PredictionFactor], data_points: int, now: datetime):
        return PredictionResult(
            prediction=prediction,
            confidence=self.calculate_confidence(factors, data_points),
            factors=factors,
            timestamp=now,
            model_version=self._settings.model_version,
        )

    # ── Confidence ──────────────────────────────────────────────────────

    def calculate_confidence(self, factors: list[PredictionFactor], data_points: int) -> float:
        s = self._settings
        confidence = min(s.confidence_ceiling, s.confidence_base + data_points * s.confidence_per_data_point)
        negatives = sum(1 for f in factors if f.direction == "negative")
        confidence -= negatives * s.confidence_negative_penalty
        return round_half_up(clamp(confidence, s.confidence_floor, s.confidence_ceiling), 2)

    # ═══════════════════════════════════════════════════════════════════
    # Charging
    # ═══════════════════════════════════════════════════════════════════

    def predict_charging_needs(
        self,
        horizon_hours: float = 4,
        soc_threshold: float = 0.30,
        city: str | None = None,
        depot_id: str | None = None,
        snapshot: FleetSnapshot | None = None,
    ) -> PredictionResult[list[ChargingPrediction]]:
        snap = self._resolve(snapshot)
        now = self._clock.now()
        targets = filter_vehicles(snap.vehicles, city=city, depot_id=depot_id)

        predictions = [
            self._charging_prediction(v, horizon_hours, soc_threshold, now)
            for v in targets
            if v.status not in (VehicleStatus.CHARGING, VehicleStatus.MAINTENANCE)
        ]
        predictions = [
            p for p in predictions
            if round_half_up(p.predicted_soc * 100) < soc_threshold * 100 or p.urgency != Priority.LOW
        ]
        predictions.sort(key=lambda p: p.urgency.rank)

        critical = sum(1 for p in predictions if p.urgency == Priority.CRITICAL)
        factors = [
            PredictionFactor(
                name="horizon_hours", weight=0.3, value=horizon_hours, direction="neutral",
                description=f"Looking ahead {horizon_hours} hours",
            ),
            PredictionFactor(
                name="soc_threshold", weight=0.4, value=soc_threshold * 100, direction="neutral",
                description=f"Threshold set at {soc_threshold:.0%} SOC",
            ),
            PredictionFactor(
                name="vehicles_analyzed", weight=0.2, value=len(targets), direction="neutral",
                description=f"Analyzed {len(targets)} vehicles",
            ),
            PredictionFactor(
                name="critical_count", weight=0.5, value=critical,
                direction="negative" if critical > 0 else "positive",
                description=f"{critical} critical vehicles identified",
            ),
        ]
        return self._result(predictions, factors, len(predictions), now)

    def _charging_prediction(
        self,
        vehicle: Vehicle,
        horizon_hours: float,
        soc_threshold: float,
        now: datetime,
    ) -> ChargingPrediction:
        s = self._settings
        ops = vehicle.operational_metrics
        capacity = vehicle.battery_capacity_kwh
        soc = vehicle.state_of_charge

        daily_energy = ops.avg_daily_distance / 100.0 * ops.energy_consumption_per_100
        drain = daily_energy / capacity / s.active_hours_per_day
        predicted = max(0.0, soc - drain * horizon_hours)

        if soc < 0.15 or predicted < 0.10:
            urgency = Priority.CRITICAL
        elif soc < 0.25 or predicted < 0.20:
            urgency = Priority.HIGH
        elif predicted < soc_threshold:
            urgency = Priority.MEDIUM
        else:
            urgency = Priority.LOW

        if soc <= soc_threshold:
            recommended: datetime | None = now
        elif drain > 0:
            recommended = now + timedelta(hours=(soc - soc_threshold) / drain)
        else:
            recommended = None

        energy_needed = max(0.0, self._charge_target_soc - soc) * capacity
        charge_minutes = int(round_half_up(energy_needed / s.avg_charging_power_kw * 60))

        return ChargingPrediction(
            vehicle_id=vehicle.id,
            vehicle_name=vehicle.display_name,
            current_soc=round(soc, 4),
            predicted_soc=round(predicted, 4),
            recommended_charge_time=recommended,
            urgency=urgency,
            estimated_charge_minutes=charge_minutes,
            suggested_depot_id=vehicle.current_depot_id,
            reason=_charging_reason(soc, urgency),
            drain_rate_pct_per_hour=round_half_up(drain * 100, 2),
        )

    # ═══════════════════════════════════════════════════════════════════
    # Maintenance
    # ═══════════════════════════════════════════════════════════════════

    def predict_maintenance_risks(
        self,
        risk_threshold: float = 0.6,
        categories: list[str] | None = None,
        city: str | None = None,
        vehicle_ids: list[str] | None = None,
        snapshot: FleetSnapshot | None = None,
    ) -> PredictionResult[list[MaintenanceRisk]]:
        snap = self._resolve(snapshot)
        now = self._clock.now()
        targets = filter_vehicles(snap.vehicles, city=city, vehicle_ids=vehicle_ids)

        predictions = [
            p for p in (self._maintenance_risk(v, now) for v in targets)
            if p.risk_score >= risk_threshold and (not categories or p.category in categories)
        ]
        predictions.sort(key=lambda p: p.risk_score, reverse=True)

        high_risk = sum(1 for p in predictions if p.urgency in (Priority.CRITICAL, Priority.HIGH))
        critical = sum(1 for p in predictions if p.urgency == Priority.CRITICAL)
        factors = [
            PredictionFactor(
                name="risk_threshold", weight=0.3, value=risk_threshold, direction="neutral",
                description=f"Filtering risks above {risk_threshold:.0%}",
            ),
            PredictionFactor(
                name="vehicles_analyzed", weight=0.2, value=len(targets), direction="neutral",
                description=f"Analyzed {len(targets)} vehicles",
            ),
            PredictionFactor(
                name="high_risk_count", weight=0.5, value=high_risk,
                direction="negative" if critical > 2 else "neutral",
                description=f"{high_risk} high-risk vehicles",
            ),
        ]
        return self._result(predictions, factors, len(predictions), now)

    def _maintenance_risk(self, vehicle: Vehicle, now: datetime) -> MaintenanceRisk:
        mileage = mileage_risk(vehicle.mileage)
        age = age_risk(vehicle.engine_hours)
        due = maintenance_due_risk(vehicle.next_maintenance_date, now)
        operational = operational_risk(vehicle)

        risk = mileage * 0.25 + age * 0.15 + due * 0.35 + operational * 0.25

        components: list[ComponentRisk] = []
        if mileage > 0.5:
            components.append(ComponentRisk(
                component="drivetrain", risk_score=mileage,
                indicators=["High mileage", "Increased wear patterns"],
            ))
        if vehicle.autonomy_level in _SENSOR_AUTONOMY_LEVELS:
            sensor = mileage * 0.2 + min(0.3, vehicle.safety_metrics.disengagement_rate * 2000)
            if sensor > 0.4:
                components.append(ComponentRisk(
                    component="autonomous_sensors", risk_score=round(sensor, 2),
                    indicators=["Sensor calibration drift", "LIDAR cleaning required"],
                ))
        for alert in vehicle.predictive_alerts:
            components.append(ComponentRisk(
                component=alert.component, risk_score=alert.confidence,
                indicators=[alert.recommendation],
            ))

        if risk > 0.8:
            urgency = Priority.CRITICAL
        elif risk > 0.6:
            urgency = Priority.HIGH
        elif risk > 0.4:
            urgency = Priority.MEDIUM
        else:
            urgency = Priority.LOW

        earliest, latest = failure_window_days(risk)
        window = FailureWindow(
            earliest=(now + timedelta(days=earliest)).date(),
            latest=(now + timedelta(days=latest)).date(),
        )

        if any("sensor" in c.component for c in components):
            category = "sensors"
        elif any(c.component == "battery" for c in components):
            category = "battery"
        else:
            category = "general"

        alert_cost = next(
            (a.cost_impact for a in vehicle.predictive_alerts if a.cost_impact is not None), None,
        )
        cost = alert_cost if alert_cost is not None else round_half_up(risk * 5000 + 500)

        return MaintenanceRisk(
            vehicle_id=vehicle.id,
            vehicle_name=vehicle.display_name,
            risk_score=round_half_up(risk, 2),
            category=category,
            predicted_failure_window=window,
            recommended_action=_maintenance_recommendation(risk, components),
            estimated_cost=cost,
            components=components,
            urgency=urgency,
        )

    # ═══════════════════════════════════════════════════════════════════
    # Incidents
    # ═══════════════════════════════════════════════════════════════════

    def predict_incident_likelihood(
        self,
        city: str | None = None,
        vehicle_ids: list[str] | None = None,
        snapshot: FleetSnapshot | None = None,
    ) -> PredictionResult[list[IncidentRisk]]:
        snap = self._resolve(snapshot)
        now = self._clock.now()
        conditions = snap.conditions
        targets = filter_vehicles(snap.vehicles, city=city, vehicle_ids=vehicle_ids)

        weather_factor = 1.3 if conditions.adverse_weather else 1.0
        traffic_factor = 1.2 if conditions.heavy_traffic else 1.0

        predictions: list[IncidentRisk] = []
        for vehicle in targets:
            safety = vehicle.safety_metrics.safety_score
            disengagement = vehicle.safety_metrics.disengagement_rate
            level = vehicle.autonomy_level

            risk = (100 - safety) / 100 + disengagement * 1000
            if level == "L3":
                risk *= 1.2
            elif level == "L5":
                risk *= 0.8
            risk = clamp(risk * weather_factor * traffic_factor, 0.0, 1.0)

            if risk > 0.6:
                urgency = Priority.CRITICAL
            elif risk > 0.4:
                urgency = Priority.HIGH
            elif risk > 0.2:
                urgency = Priority.MEDIUM
            else:
                urgency = Priority.LOW

            primary: list[str] = []
            if safety < 98:
                primary.append(f"Below-average safety score ({safety:g})")
            if disengagement > 0.00008:
                primary.append("Elevated disengagement rate")
            if level == "L3":
                primary.append("L3 autonomy requires more driver intervention")
            if weather_factor > 1:
                primary.append("Adverse weather conditions")
            if traffic_factor > 1:
                primary.append("Heavy traffic conditions")

            actions: list[str] = []
            if risk > 0.4:
                actions.append("Consider route optimization to avoid high-risk areas")
            if disengagement > 0.00008:
                actions.append("Schedule sensor calibration")
            if safety < 97:
                actions.append("Review recent driving patterns for anomalies")

            score = round_half_up(risk, 2)
            if score > 0.1:
                predictions.append(IncidentRisk(
                    vehicle_id=vehicle.id,
                    vehicle_name=vehicle.display_name,
                    risk_score=score,
                    primary_factors=primary,
                    recommended_actions=actions,
                    affected_routes=[vehicle.current_route] if vehicle.current_route else [],
                    urgency=urgency,
                ))
        predictions.sort(key=lambda p: p.risk_score, reverse=True)

        factors = [
            PredictionFactor(
                name="weather_conditions", weight=0.3, value=conditions.weather,
                direction="positive" if conditions.weather == "clear" else "negative",
                description=f"Current weather: {conditions.weather}",
            ),
            PredictionFactor(
                name="traffic_conditions", weight=0.2, value=conditions.traffic,
                direction="positive" if conditions.traffic == "light" else "negative",
                description=f"Traffic: {conditions.traffic}",
            ),
        ]
        return self._result(predictions, factors, len(predictions), now)

    # ═══════════════════════════════════════════════════════════════════
    # Depot demand
    # ═══════════════════════════════════════════════════════════════════

    def predict_depot_demand(
        self,
        depot_id: str,
        horizon_hours: int = 24,
        granularity: DemandGranularity = "hourly",
        snapshot: FleetSnapshot | None = None,
    ) -> PredictionResult[DepotDemandForecast]:
        s = self._settings
        snap = self._resolve(snapshot)
        now = self._clock.now()

        depot = snap.depot(depot_id)
        if depot is None:
            return PredictionResult(
                prediction=DepotDemandForecast(
                    depot_id=depot_id,
                    depot_name="Unknown Depot",
                    granularity=granularity,
                    recommendations=["Depot not found"],
                ),
                confidence=0.0,
                factors=[],
                timestamp=now,
                model_version=s.model_version,
            )

        vehicles_at_depot = len(snap.vehicles_at(depot_id))
        step_hours = _GRANULARITY_HOURS[granularity]
        intervals = horizon_hours if granularity == "hourly" else math.ceil(horizon_hours / step_hours)

        times = [now + timedelta(hours=i * step_hours) for i in range(intervals)]
        hours = np.array([t.hour for t in times], dtype=np.int64)
        multipliers = demand_multipliers(hours)

        capacity = depot.charging_capacity
        base_demand = round_half_up(vehicles_at_depot * s.demand_base_rate)

        forecasts: list[DemandForecastPoint] = []
        peak_hours: list[int] = []
        for i, (when, hour, multiplier) in enumerate(zip(times, hours.tolist(), multipliers.tolist())):
            demand = int(round_half_up(base_demand * multiplier))
            if capacity > 0:
                utilization = int(round_half_up(demand / capacity * 100))
            else:
                utilization = 100 if demand > 0 else 0

            is_peak = utilization > s.peak_utilization_pct
            if is_peak and hour not in peak_hours:
                peak_hours.append(hour)

            if utilization > 90:
                recommendation = "Consider staggering vehicle arrivals or using alternative depots"
            elif utilization > 70:
                recommendation = "Monitor queue closely - approaching capacity"
            else:
                recommendation = "Capacity available for additional vehicles"

            forecasts.append(DemandForecastPoint(
                timestamp=when,
                hour=hour,
                predicted_demand=demand,
                capacity=capacity,
                utilization_percent=min(100, utilization),
                is_peak=is_peak,
                recommendation=recommendation,
                confidence=max(0.0, round(s.demand_confidence_base - i * s.demand_confidence_step, 2)),
            ))

        avg_utilization = (
            float(np.mean([f.utilization_percent for f in forecasts])) if forecasts else 0.0
        )

        recommendations: list[str] = []
        if avg_utilization > 80:
            recommendations.append("High demand forecast - consider pre-scheduling priority vehicles")
        if peak_hours:
            recommendations.append(
                "Peak hours identified: " + ", ".join(f"{h:02d}:00" for h in peak_hours)
            )
        if avg_utilization < 50:
            recommendations.append("Low utilization forecast - opportunity for maintenance scheduling")

        factors = [
            PredictionFactor(
                name="vehicles_at_depot", weight=0.4, value=vehicles_at_depot, direction="neutral",
                description=f"{vehicles_at_depot} vehicles assigned to depot",
            ),
            PredictionFactor(
                name="charging_capacity", weight=0.3, value=capacity, direction="positive",
                description=f"{capacity} charging stations available",
            ),
            PredictionFactor(
                name="avg_utilization_forecast", weight=0.3, value=round_half_up(avg_utilization),
                direction="negative" if avg_utilization > 80 else "positive",
                description=f"Average forecasted utilization: {avg_utilization:.0f}%",
            ),
        ]
        forecast = DepotDemandForecast(
            depot_id=depot_id,
            depot_name=depot.name,
            granularity=granularity,
            forecasts=forecasts,
            peak_hours=peak_hours,
            recommendations=recommendations,
        )
        return self._result(forecast, factors, len(forecasts), now)

    # ═══════════════════════════════════════════════════════════════════
    # Fleet summary
    # ═══════════════════════════════════════════════════════════════════

    def get_fleet_prediction_summary(
        self,
        city: str | None = None,
        snapshot: FleetSnapshot | None = None,
    ) -> FleetPredictionSummary:
        """Quick overview across charging, maintenance and incident forecasts."""
        snap = self._resolve(snapshot)
        charging = self.predict_charging_needs(horizon_hours=4, city=city, snapshot=snap).prediction
        maintenance = self.predict_maintenance_risks(risk_threshold=0.5, city=city, snapshot=snap).prediction
        incidents = self.predict_incident_likelihood(city=city, snapshot=snap).prediction

        critical_charging = sum(1 for p in charging if p.urgency == Priority.CRITICAL)
        high_charging = sum(1 for p in charging if p.urgency == Priority.HIGH)
        critical_maintenance = sum(1 for p in maintenance if p.urgency == Priority.CRITICAL)
        high_maintenance = sum(1 for p in maintenance if p.urgency == Priority.HIGH)
        elevated = sum(1 for p in incidents if p.risk_score > 0.3)

        recommendations: list[str] = []
        if critical_charging > 0:
            recommendations.append(f"{critical_charging} vehicles need immediate charging")
        if high_charging > 3:
            recommendations.append("Consider batch charging optimization")
        if critical_maintenance > 0:
            recommendations.append(f"{critical_maintenance} vehicles need urgent maintenance attention")
        if elevated > 2:
            recommendations.append("Multiple vehicles showing elevated incident risk - review routes")

        logger.debug(
            "Fleet summary: %d charging, %d maintenance, %d elevated incident risks",
            len(charging), len(maintenance), elevated,
        )
        return FleetPredictionSummary(
            generated_at=self._clock.now(),
            city=city,
            charging_needs=UrgencyCounts(
                critical=critical_charging, high=high_charging, total=len(charging),
            ),
            maintenance_risks=UrgencyCounts(
                critical=critical_maintenance, high=high_maintenance, total=len(maintenance),
            ),
            elevated_incident_risks=elevated,
            recommendations=recommendations,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Risk step functions
# ═══════════════════════════════════════════════════════════════════════════

def mileage_risk(mileage: float) -> float:
    if mileage < 20_000:
        return 0.1
    if mileage < 40_000:
        return 0.3
    if mileage < 60_000:
        return 0.5
    if mileage < 80_000:
        return 0.7
    return 0.9


def age_risk(engine_hours: float) -> float:
    if engine_hours < 1_000:
        return 0.1
    if engine_hours < 2_000:
        return 0.3
    if engine_hours < 3_000:
        return 0.5
    return 0.7


def maintenance_due_risk(next_maintenance: datetime | None, now: datetime) -> float:
    if next_maintenance is None:
        return 0.5
    days = days_until(next_maintenance, now)
    if days < 0:
        return 1.0
    if days < 7:
        return 0.8
    if days < 14:
        return 0.5
    if days < 30:
        return 0.3
    return 0.1


def operational_risk(vehicle: Vehicle) -> float:
    ops = vehicle.operational_metrics
    risk = 0.0
    if ops.uptime < 0.85:
        risk += 0.3
    if ops.utilization_rate > 0.9:
        risk += 0.2
    if ops.maintenance_cost_per_km > 0.10:
        risk += 0.3
    return min(1.0, risk)


def days_until(when: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``when``, floored (negative when overdue)."""
    return math.floor((ensure_utc(when) - now).total_seconds() / 86_400)


def demand_multipliers(hours: np.ndarray) -> np.ndarray:
    """Hour-of-day demand multiplier: 06–09 × 1.5, 17–20 × 1.6, 22–05 × 1.3, else 1.0."""
    return np.select(
        [
            (hours >= 6) & (hours <= 9),
            (hours >= 17) & (hours <= 20),
            (hours >= 22) | (hours <= 5),
        ],
        [1.5, 1.6, 1.3],
        default=1.0,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def filter_vehicles(
    vehicles: list[Vehicle],
    city: str | None = None,
    depot_id: str | None = None,
    vehicle_ids: list[str] | None = None,
) -> list[Vehicle]:
    selected = vehicles
    if city:
        selected = [v for v in selected if v.city and v.city.lower() == city.lower()]
    if depot_id:
        selected = [v for v in selected if v.current_depot_id == depot_id]
    if vehicle_ids:
        wanted = set(vehicle_ids)
        selected = [v for v in selected if v.id in wanted]
    return selected


def _charging_reason(soc: float, urgency: Priority) -> str:
    if urgency == Priority.CRITICAL:
        if soc < 0.15:
            return "Battery critically low - immediate charging required"
        return "Will reach critical level within forecast window"
    if urgency == Priority.HIGH:
        return "SOC trending toward critical threshold"
    if urgency == Priority.MEDIUM:
        return "Recommend charging to maintain optimal range"
    return "Proactive charging suggested for fleet optimization"


def _maintenance_recommendation(risk: float, components: list[ComponentRisk]) -> str:
    if risk > 0.8:
        return "Schedule immediate inspection - high probability of component failure"
    if any("sensor" in c.component for c in components):
        return "Schedule sensor calibration and cleaning within 1 week"
    if risk > 0.6:
        return "Schedule preventive maintenance within 2 weeks"
    return "Continue monitoring - schedule routine check during next service window"


def failure_window_days(risk: float) -> tuple[float, float]:
    """(earliest, latest) day offsets of the predicted failure window."""
    days = round_half_up((1 - risk) * 30) + 5
    return days * 0.7, days * 1.3


__all__ = [
    "RiskPredictionEngine",
    "mileage_risk",
    "age_risk",
    "maintenance_due_risk",
    "operational_risk",
    "days_until",
    "filter_vehicles",
    "demand_multipliers",
    "failure_window_days",
]
