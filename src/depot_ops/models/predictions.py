"""Prediction result types — the contract between the risk engine and its callers.

Every prediction is wrapped in a ``PredictionResult[T]`` carrying a confidence
score and the named factors that produced it.  Results are recomputed per call
and never stored.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from depot_ops.models.fleet import Priority

T = TypeVar("T")

FactorDirection = Literal["positive", "negative", "neutral"]


class PredictionFactor(BaseModel):
    name: str
    weight: float
    value: float | str
    direction: FactorDirection
    description: str = ""


class PredictionResult(BaseModel, Generic[T]):
    prediction: T
    confidence: float = Field(ge=0, le=1.0)
    factors: list[PredictionFactor] = Field(default_factory=list)
    timestamp: datetime
    model_version: str


# ═══════════════════════════════════════════════════════════════════════════
# Charging
# ═══════════════════════════════════════════════════════════════════════════

class ChargingPrediction(BaseModel):
    vehicle_id: str
    vehicle_name: str
    current_soc: float
    predicted_soc: float
    """SOC projected at the end of the horizon (fraction, floored at 0)."""
    recommended_charge_time: datetime | None
    """When SOC crosses the threshold at the current drain; ``None`` if it never does."""
    urgency: Priority
    estimated_charge_minutes: int
    suggested_depot_id: str | None
    reason: str
    drain_rate_pct_per_hour: float


# ═══════════════════════════════════════════════════════════════════════════
# Maintenance
# ═══════════════════════════════════════════════════════════════════════════

class ComponentRisk(BaseModel):
    component: str
    risk_score: float
    indicators: list[str] = Field(default_factory=list)


class FailureWindow(BaseModel):
    earliest: date
    latest: date


class MaintenanceRisk(BaseModel):
    vehicle_id: str
    vehicle_name: str
    risk_score: float
    category: str
    predicted_failure_window: FailureWindow
    recommended_action: str
    estimated_cost: float
    components: list[ComponentRisk] = Field(default_factory=list)
    urgency: Priority


# ═══════════════════════════════════════════════════════════════════════════
# Incidents
# ═══════════════════════════════════════════════════════════════════════════

class IncidentRisk(BaseModel):
    vehicle_id: str
    vehicle_name: str
    risk_score: float
    primary_factors: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list)
    affected_routes: list[str] = Field(default_factory=list)
    urgency: Priority


# ═══════════════════════════════════════════════════════════════════════════
# Depot demand
# ═══════════════════════════════════════════════════════════════════════════

DemandGranularity = Literal["hourly", "shift", "daily"]


class DemandForecastPoint(BaseModel):
    timestamp: datetime
    hour: int
    resource_type: str = "charging_stall"
    predicted_demand: int
    capacity: int
    utilization_percent: int
    is_peak: bool
    recommendation: str
    confidence: float


class DepotDemandForecast(BaseModel):
    depot_id: str
    depot_name: str
    granularity: DemandGranularity
    forecasts: list[DemandForecastPoint] = Field(default_factory=list)
    peak_hours: list[int] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════
# Fleet summary
# ═══════════════════════════════════════════════════════════════════════════

class UrgencyCounts(BaseModel):
    critical: int = 0
    high: int = 0
    total: int = 0


class FleetPredictionSummary(BaseModel):
    generated_at: datetime
    city: str | None = None
    charging_needs: UrgencyCounts
    maintenance_risks: UrgencyCounts
    elevated_incident_risks: int
    recommendations: list[str] = Field(default_factory=list)
