"""Trigger matching and condition filtering for automation rules.

A rule match runs in two stages against one ``FleetSnapshot``:
  1. the trigger selects a candidate vehicle set (type-specific filter)
  2. every condition narrows that set (logical AND, evaluated per vehicle)

Both stages are pure: they read the snapshot and never touch the store.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from depot_ops.clock import ensure_utc
from depot_ops.engine.predictive import RiskPredictionEngine, days_until
from depot_ops.models.automation import (
    AnomalyDetectedTrigger,
    AutomationRule,
    Condition,
    DepotCapacityTrigger,
    IncidentCreatedTrigger,
    MaintenanceDueTrigger,
    PredictionConfidenceTrigger,
    ScheduleTrigger,
    SocThresholdTrigger,
    Trigger,
    VehicleIdleTrigger,
)
from depot_ops.models.fleet import ResourceStatus, Vehicle, VehicleStatus
from depot_ops.store import FleetSnapshot

_MISSING = object()


class TriggerContext:
    """Everything a trigger may consult besides the snapshot itself."""

    def __init__(
        self,
        snapshot: FleetSnapshot,
        now: datetime,
        predictor: RiskPredictionEngine,
        last_fired: datetime | None = None,
    ) -> None:
        self.snapshot = snapshot
        self.now = now
        self.predictor = predictor
        self.last_fired = last_fired


# ═══════════════════════════════════════════════════════════════════════════
# Triggers
# ═══════════════════════════════════════════════════════════════════════════

def _soc_threshold(trigger: SocThresholdTrigger, ctx: TriggerContext) -> list[Vehicle]:
    if trigger.direction == "below":
        return [v for v in ctx.snapshot.vehicles if v.state_of_charge < trigger.threshold]
    return [v for v in ctx.snapshot.vehicles if v.state_of_charge > trigger.threshold]


def _maintenance_due(trigger: MaintenanceDueTrigger, ctx: TriggerContext) -> list[Vehicle]:
    return [
        v for v in ctx.snapshot.vehicles
        if v.next_maintenance_date is not None
        and days_until(v.next_maintenance_date, ctx.now) <= trigger.days_until
    ]


def _prediction_confidence(trigger: PredictionConfidenceTrigger, ctx: TriggerContext) -> list[Vehicle]:
    if trigger.prediction_type == "maintenance_risk":
        result = ctx.predictor.predict_maintenance_risks(
            risk_threshold=trigger.threshold, snapshot=ctx.snapshot,
        )
        flagged = {p.vehicle_id for p in result.prediction}
    else:
        result = ctx.predictor.predict_incident_likelihood(snapshot=ctx.snapshot)
        flagged = {p.vehicle_id for p in result.prediction if p.risk_score >= trigger.threshold}
    return [v for v in ctx.snapshot.vehicles if v.id in flagged]


def _vehicle_idle(trigger: VehicleIdleTrigger, ctx: TriggerContext) -> list[Vehicle]:
    cutoff = ctx.now - timedelta(minutes=trigger.duration_minutes)
    return [
        v for v in ctx.snapshot.vehicles
        if v.status == VehicleStatus.IDLE
        and (v.idle_since is None or ensure_utc(v.idle_since) <= cutoff)
    ]


def _depot_capacity(trigger: DepotCapacityTrigger, ctx: TriggerContext) -> list[Vehicle]:
    matched: list[Vehicle] = []
    for depot in ctx.snapshot.depots:
        resources = [
            r for r in ctx.snapshot.resources
            if r.depot_id == depot.id and r.kind == trigger.resource_type
        ]
        if not resources:
            continue
        in_use = sum(1 for r in resources if r.status != ResourceStatus.AVAILABLE)
        share = in_use / len(resources)
        hit = share > trigger.threshold if trigger.direction == "above" else share < trigger.threshold
        if hit:
            matched.extend(ctx.snapshot.vehicles_at(depot.id))
    return matched


def _schedule(trigger: ScheduleTrigger, ctx: TriggerContext) -> list[Vehicle]:
    due_at = ctx.now.replace(
        hour=trigger.at.hour, minute=trigger.at.minute, second=0, microsecond=0,
    )
    if ctx.now < due_at:
        return []
    if ctx.last_fired is not None and ctx.last_fired >= due_at:
        return []
    return list(ctx.snapshot.vehicles)


def _incident_created(trigger: IncidentCreatedTrigger, ctx: TriggerContext) -> list[Vehicle]:
    flagged = {
        i.vehicle_id for i in ctx.snapshot.incidents
        if (ctx.last_fired is None or ensure_utc(i.created_at) > ctx.last_fired)
        and (not trigger.incident_types or i.incident_type in trigger.incident_types)
        and (not trigger.severities or i.severity in trigger.severities)
    }
    return [v for v in ctx.snapshot.vehicles if v.id in flagged]


def _anomaly_detected(trigger: AnomalyDetectedTrigger, ctx: TriggerContext) -> list[Vehicle]:
    flagged = {
        a.vehicle_id for a in ctx.snapshot.anomalies
        if (ctx.last_fired is None or ensure_utc(a.detected_at) > ctx.last_fired)
        and (trigger.anomaly_type is None or a.anomaly_type == trigger.anomaly_type)
    }
    return [v for v in ctx.snapshot.vehicles if v.id in flagged]


_TRIGGER_HANDLERS: dict[str, Callable[[Any, TriggerContext], list[Vehicle]]] = {
    "soc_threshold": _soc_threshold,
    "maintenance_due": _maintenance_due,
    "prediction_confidence": _prediction_confidence,
    "vehicle_idle": _vehicle_idle,
    "depot_capacity": _depot_capacity,
    "schedule": _schedule,
    "incident_created": _incident_created,
    "anomaly_detected": _anomaly_detected,
}


def match_trigger(trigger: Trigger, ctx: TriggerContext) -> list[Vehicle]:
    """Vehicles selected by ``trigger`` in snapshot order."""
    return _TRIGGER_HANDLERS[trigger.type](trigger, ctx)


# ═══════════════════════════════════════════════════════════════════════════
# Conditions
# ═══════════════════════════════════════════════════════════════════════════

def resolve_field(vehicle: Vehicle, path: str) -> Any:
    """Look up a (dotted) attribute path on a vehicle.

    ``"soc"``, ``"status"`` and ``"operational_metrics.utilization_rate"`` all
    work.  Enum values resolve to their plain value; unknown paths resolve to
    a sentinel that no condition matches.
    """
    value: Any = vehicle
    for part in path.split("."):
        value = getattr(value, part, _MISSING)
        if value is _MISSING:
            return _MISSING
    if isinstance(value, Enum):
        return value.value
    return value


def vehicle_matches(vehicle: Vehicle, conditions: list[Condition]) -> bool:
    for condition in conditions:
        actual = resolve_field(vehicle, condition.field)
        if actual is _MISSING or not condition.matches(actual):
            return False
    return True


def match_rule(rule: AutomationRule, ctx: TriggerContext) -> list[Vehicle]:
    """Trigger selection narrowed by every rule condition."""
    return [v for v in match_trigger(rule.trigger, ctx) if vehicle_matches(v, rule.conditions)]
