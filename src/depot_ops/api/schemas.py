"""Request / response models for the HTTP layer.

Parameter bounds live here: a horizon, threshold or count outside its range
is rejected with HTTP 422 before any engine runs.  The LLM tool definitions
in ``depot_ops.api.tools`` are generated from these same models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from depot_ops.models.automation import (
    AutomationExecution,
    AutoQueueResult,
    ChargingCommit,
    ChargingStrategy,
    RebalanceCriteria,
)
from depot_ops.models.predictions import DemandGranularity, FleetPredictionSummary
from depot_ops.models.schedule import BookingResult, OptimizationObjective, OptimizationPlan


# ═══════════════════════════════════════════════════════════════════════════
# Scheduler
# ═══════════════════════════════════════════════════════════════════════════

class BookingRequest(BaseModel):
    """Book a charging stall (or detailing bay) for a vehicle over ``[start, end)``."""
    vehicle_id: str = Field(..., description="Vehicle to book, e.g. 'V-001'")
    resource_id: str = Field(..., description="Charging stall or detailing bay id, e.g. 'N-1'")
    start: datetime = Field(..., description="Booking start (ISO-8601, UTC if no offset)")
    end: datetime = Field(..., description="Booking end (ISO-8601, exclusive)")


class ReleaseRequest(BaseModel):
    status: Literal["completed", "cancelled"] = Field(
        default="completed", description="Terminal status for the assignment",
    )


class OptimizeRequest(BaseModel):
    """Greedy charging plan for one depot."""
    horizon_minutes: int = Field(
        default=120, ge=1, le=1440, description="Planning horizon; caps each charging session",
    )
    objective: OptimizationObjective = Field(
        default="minimize_wait",
        description="Echoed in the plan metrics; the greedy pairing is the same for every objective",
    )
    apply: bool = Field(
        default=False, description="Commit the plan through the booking path after computing it",
    )


class OptimizeResponse(BaseModel):
    plan: OptimizationPlan
    bookings: list[BookingResult] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════
# Predictions
# ═══════════════════════════════════════════════════════════════════════════

class ChargingNeedsRequest(BaseModel):
    """Forecast which vehicles need charging within the horizon."""
    horizon_hours: float = Field(default=4, gt=0, le=72, description="Look-ahead window in hours")
    soc_threshold: float = Field(default=0.30, ge=0, le=1.0, description="SOC fraction considered low")
    city: str | None = Field(default=None, description="Only vehicles in this city")
    depot_id: str | None = Field(default=None, description="Only vehicles at this depot")


class MaintenanceRiskRequest(BaseModel):
    """Score vehicles for maintenance risk."""
    risk_threshold: float = Field(default=0.6, ge=0, le=1.0, description="Minimum risk score to report")
    categories: list[str] | None = Field(
        default=None, description="Restrict to categories: 'sensors', 'battery', 'general'",
    )
    city: str | None = None
    vehicle_ids: list[str] | None = None


class IncidentRiskRequest(BaseModel):
    """Score vehicles for incident likelihood under current weather and traffic."""
    city: str | None = None
    vehicle_ids: list[str] | None = None


class DepotDemandRequest(BaseModel):
    """Forecast charging-stall demand at one depot."""
    depot_id: str = Field(..., description="Depot to forecast, e.g. 'depot-max-aus'")
    horizon_hours: int = Field(default=24, ge=1, le=168, description="Forecast window in hours")
    granularity: DemandGranularity = Field(
        default="hourly", description="'hourly', 'shift' (8h) or 'daily' intervals",
    )


class BriefingResponse(BaseModel):
    summary: FleetPredictionSummary
    narrative: str


# ═══════════════════════════════════════════════════════════════════════════
# Fleet events
# ═══════════════════════════════════════════════════════════════════════════

class IncidentReport(BaseModel):
    """Report an incident; ``incident_created`` rules see it on their next pass."""
    vehicle_id: str = Field(..., description="Vehicle involved, e.g. 'V-004'")
    incident_type: str = Field(..., description="e.g. 'collision', 'breakdown', 'flat_tire'")
    severity: str = Field(default="medium", description="'low', 'medium', 'high' or 'critical'")
    created_at: datetime | None = Field(default=None, description="Defaults to now (UTC if no offset)")


class AnomalyReport(BaseModel):
    """Report a telemetry anomaly; ``anomaly_detected`` rules see it on their next pass."""
    vehicle_id: str
    anomaly_type: str = Field(..., description="e.g. 'battery_temperature', 'sensor_drift'")
    detected_at: datetime | None = Field(default=None, description="Defaults to now (UTC if no offset)")


# ═══════════════════════════════════════════════════════════════════════════
# Automation
# ═══════════════════════════════════════════════════════════════════════════

class EvaluateRequest(BaseModel):
    dry_run: bool = Field(
        default=True, description="When false, charging actions are booked after the pass",
    )


class AutoQueueChargingRequest(BaseModel):
    """Propose (and optionally book) charging for low-SOC vehicles."""
    depot_id: str | None = None
    city: str | None = None
    strategy: ChargingStrategy = Field(
        default="balanced",
        description="'urgent_first' (lowest SOC), 'balanced' (SOC + utilization), "
                    "'revenue_optimal' (highest revenue), 'off_peak' (lowest SOC, starts 22:00 UTC)",
    )
    max_concurrent: int = Field(default=10, ge=1, le=100, description="Maximum vehicles to queue")
    soc_threshold: float = Field(default=0.40, ge=0, le=1.0, description="Queue vehicles below this SOC")
    dry_run: bool = Field(default=True, description="When false, queued vehicles are booked on stalls")
    duration_minutes: int | None = Field(
        default=None, ge=1, le=1440, description="Booking length when committing",
    )


class AutoQueueChargingResponse(BaseModel):
    result: AutoQueueResult
    commits: list[ChargingCommit] = Field(default_factory=list)


class AutoQueueMaintenanceRequest(BaseModel):
    """Propose maintenance jobs for high-risk vehicles."""
    risk_threshold: float = Field(default=0.6, ge=0, le=1.0)
    categories: list[str] | None = None
    depot_id: str | None = None
    city: str | None = None
    dry_run: bool = True


class RebalanceRequest(BaseModel):
    """Plan idle-vehicle moves from a busy depot to a quiet one."""
    source_depot_id: str | None = Field(default=None, description="Defaults to the most utilized depot")
    target_depot_id: str | None = Field(default=None, description="Defaults to the least utilized depot")
    vehicle_count: int = Field(default=3, ge=1, le=50)
    selection_criteria: RebalanceCriteria = Field(default="highest_soc")
    execute: bool = False


class EvaluateResponse(BaseModel):
    executions: list[AutomationExecution]
    rules_fired: int


class ToolBundle(BaseModel):
    tools: list[dict[str, Any]]
    system_prompt: str
    usage: str
