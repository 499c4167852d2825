"""Automation contracts — rule triggers, conditions, actions and outcomes.

Triggers, conditions and actions are closed tagged unions: each variant is
its own model, discriminated by ``type`` (triggers, actions) or ``operator``
(conditions), and carries only the fields relevant to it.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from depot_ops.clock import ensure_utc
from depot_ops.models.fleet import Priority
from depot_ops.models.schedule import BookingError, ScheduleAssignment


class JobType(str, Enum):
    CHARGE = "CHARGE"
    MAINTENANCE = "MAINTENANCE"
    DETAILING = "DETAILING"
    DOWNTIME_PARK = "DOWNTIME_PARK"


ChargingStrategy = Literal["urgent_first", "balanced", "off_peak", "revenue_optimal"]
RebalanceCriteria = Literal["highest_soc", "lowest_utilization", "oldest_at_depot"]
Direction = Literal["below", "above"]


# ═══════════════════════════════════════════════════════════════════════════
# Triggers
# ═══════════════════════════════════════════════════════════════════════════

class SocThresholdTrigger(BaseModel):
    type: Literal["soc_threshold"] = "soc_threshold"
    threshold: float = Field(default=0.20, ge=0, le=1.0, description="SOC fraction")
    direction: Direction = "below"


class MaintenanceDueTrigger(BaseModel):
    type: Literal["maintenance_due"] = "maintenance_due"
    days_until: int = Field(default=7, description="Match when maintenance is due within N days")


class PredictionConfidenceTrigger(BaseModel):
    type: Literal["prediction_confidence"] = "prediction_confidence"
    prediction_type: Literal["maintenance_risk", "incident_risk"] = "maintenance_risk"
    threshold: float = Field(default=0.7, ge=0, le=1.0, description="Minimum risk score")


class VehicleIdleTrigger(BaseModel):
    type: Literal["vehicle_idle"] = "vehicle_idle"
    duration_minutes: int = Field(default=120, ge=0)


class DepotCapacityTrigger(BaseModel):
    type: Literal["depot_capacity"] = "depot_capacity"
    resource_type: Literal["charging_stall", "detailing_bay"] = "charging_stall"
    threshold: float = Field(default=0.9, ge=0, le=1.0, description="Share of resources in use")
    direction: Direction = "above"


class ScheduleTrigger(BaseModel):
    type: Literal["schedule"] = "schedule"
    at: time = Field(default=time(22, 0), description="UTC time of day the rule becomes due")


class IncidentCreatedTrigger(BaseModel):
    type: Literal["incident_created"] = "incident_created"
    incident_types: list[str] = Field(default_factory=list, description="Empty = any type")
    severities: list[str] = Field(default_factory=list, description="Empty = any severity")


class AnomalyDetectedTrigger(BaseModel):
    type: Literal["anomaly_detected"] = "anomaly_detected"
    anomaly_type: str | None = None


Trigger = Annotated[
    Union[
        SocThresholdTrigger,
        MaintenanceDueTrigger,
        PredictionConfidenceTrigger,
        VehicleIdleTrigger,
        DepotCapacityTrigger,
        ScheduleTrigger,
        IncidentCreatedTrigger,
        AnomalyDetectedTrigger,
    ],
    Field(discriminator="type"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Conditions
# ═══════════════════════════════════════════════════════════════════════════

Scalar = Union[bool, int, float, str]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class EqCondition(BaseModel):
    operator: Literal["eq"] = "eq"
    field: str
    value: Scalar

    def matches(self, actual: Any) -> bool:
        return actual == self.value


class NeCondition(BaseModel):
    operator: Literal["ne"] = "ne"
    field: str
    value: Scalar

    def matches(self, actual: Any) -> bool:
        return actual != self.value


class GtCondition(BaseModel):
    operator: Literal["gt"] = "gt"
    field: str
    value: float

    def matches(self, actual: Any) -> bool:
        return _is_number(actual) and actual > self.value


class LtCondition(BaseModel):
    operator: Literal["lt"] = "lt"
    field: str
    value: float

    def matches(self, actual: Any) -> bool:
        return _is_number(actual) and actual < self.value


class InCondition(BaseModel):
    operator: Literal["in"] = "in"
    field: str
    value: list[Scalar]

    def matches(self, actual: Any) -> bool:
        return actual in self.value


class ContainsCondition(BaseModel):
    operator: Literal["contains"] = "contains"
    field: str
    value: str

    def matches(self, actual: Any) -> bool:
        return isinstance(actual, str) and self.value in actual


class BetweenCondition(BaseModel):
    operator: Literal["between"] = "between"
    field: str
    value: tuple[float, float]

    def matches(self, actual: Any) -> bool:
        low, high = self.value
        return _is_number(actual) and low <= actual <= high


Condition = Annotated[
    Union[
        EqCondition,
        NeCondition,
        GtCondition,
        LtCondition,
        InCondition,
        ContainsCondition,
        BetweenCondition,
    ],
    Field(discriminator="operator"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Actions
# ═══════════════════════════════════════════════════════════════════════════

class CreateJobAction(BaseModel):
    type: Literal["create_job"] = "create_job"
    job_type: JobType = JobType.CHARGE
    priority: Priority = Priority.MEDIUM


class NotifyAction(BaseModel):
    type: Literal["notify"] = "notify"
    channels: list[str] = Field(default_factory=lambda: ["slack"])
    template: str = "generic"


class EscalateAction(BaseModel):
    type: Literal["escalate"] = "escalate"
    notify_roles: list[str] = Field(default_factory=lambda: ["fleet_manager"])


class QueueForChargingAction(BaseModel):
    type: Literal["queue_for_charging"] = "queue_for_charging"
    strategy: ChargingStrategy = "balanced"
    priority: Priority | None = None


class QueueForMaintenanceAction(BaseModel):
    type: Literal["queue_for_maintenance"] = "queue_for_maintenance"
    maintenance_type: str = "predictive"
    priority: Priority | None = None


class CreateAlertAction(BaseModel):
    type: Literal["create_alert"] = "create_alert"
    severity: Priority = Priority.MEDIUM
    message: str = ""


class RebalanceAction(BaseModel):
    type: Literal["rebalance"] = "rebalance"
    target_depot_id: str | None = None


Action = Annotated[
    Union[
        CreateJobAction,
        NotifyAction,
        EscalateAction,
        QueueForChargingAction,
        QueueForMaintenanceAction,
        CreateAlertAction,
        RebalanceAction,
    ],
    Field(discriminator="type"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Rules & executions
# ═══════════════════════════════════════════════════════════════════════════

class AutomationRule(BaseModel):
    id: str
    name: str
    description: str = ""
    enabled: bool = True
    trigger: Trigger
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    cooldown_minutes: int = Field(default=60, ge=0)
    last_triggered_at: datetime | None = None
    execution_count: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("last_triggered_at", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        """Naive timestamps (e.g. from stored JSON) are read as UTC."""
        return ensure_utc(value) if value is not None else None

    def cooldown_elapsed(self, now: datetime) -> bool:
        if self.last_triggered_at is None:
            return True
        return now - self.last_triggered_at >= timedelta(minutes=self.cooldown_minutes)


class AutomationExecution(BaseModel):
    """Immutable execution-log entry."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    rule_name: str
    triggered_at: datetime
    vehicles_affected: list[str]
    actions_executed: list[str]
    success: bool
    message: str
    dry_run: bool = True


# ═══════════════════════════════════════════════════════════════════════════
# Auto-queue / rebalance outcomes
# ═══════════════════════════════════════════════════════════════════════════

class QueuedJob(BaseModel):
    vehicle_id: str
    vehicle_name: str
    job_type: JobType
    priority: Priority
    reason: str
    estimated_start: datetime | None = None
    depot_id: str | None = None


class SkippedVehicle(BaseModel):
    vehicle_id: str
    reason: str


class AutoQueueResult(BaseModel):
    success: bool
    vehicles_queued: list[QueuedJob] = Field(default_factory=list)
    vehicles_skipped: list[SkippedVehicle] = Field(default_factory=list)
    summary: str
    dry_run: bool = True


class ChargingCommit(BaseModel):
    """Outcome of booking one queued vehicle through the scheduler."""

    vehicle_id: str
    success: bool
    assignment: ScheduleAssignment | None = None
    rejections: list[BookingError] = Field(default_factory=list)
    message: str = ""


class VehicleMove(BaseModel):
    vehicle_id: str
    from_depot_id: str
    to_depot_id: str
    reason: str


class RebalancePlan(BaseModel):
    success: bool
    vehicles_to_move: list[VehicleMove] = Field(default_factory=list)
    recommendation: str
    execute: bool = False
    source_depot_id: str | None = None
    target_depot_id: str | None = None
