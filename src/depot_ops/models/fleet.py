"""Fleet state — vehicles, depots, depot resources and fleet events.

These are the records the scheduler mutates and every other component reads.
All ratios are fractions in ``[0, 1]``; all instants are UTC.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    CHARGING = "charging"
    DETAILING = "detailing"
    MAINTENANCE = "maintenance"
    ACTIVE = "active"
    IDLE = "idle"


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"


class Priority(str, Enum):
    """Ordinal urgency bucket shared by predictions and automation."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """critical=0 … low=3 — sort key for "most urgent first"."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}


# ═══════════════════════════════════════════════════════════════════════════
# Vehicle
# ═══════════════════════════════════════════════════════════════════════════

class OperationalMetrics(BaseModel):
    """Usage profile — drives SOC drain and operational wear risk."""

    avg_daily_distance: float = Field(default=150.0, ge=0, description="Distance units per day")
    energy_consumption_per_100: float = Field(
        default=90.0, ge=0, description="kWh per 100 distance units",
    )
    utilization_rate: float = Field(default=0.8, ge=0, le=1.0)
    uptime: float = Field(default=0.9, ge=0, le=1.0)
    maintenance_cost_per_km: float = Field(default=0.08, ge=0)


class SafetyMetrics(BaseModel):
    safety_score: float = Field(default=98.0, ge=0, le=100)
    disengagement_rate: float = Field(default=0.0001, ge=0, description="Disengagements per distance unit")


class MaintenanceAlert(BaseModel):
    """A component-level alert raised by on-board diagnostics."""

    component: str
    confidence: float = Field(ge=0, le=1.0)
    recommendation: str
    cost_impact: float | None = Field(default=None, ge=0)


class Vehicle(BaseModel):
    id: str
    name: str = ""
    city: str | None = None
    state_of_charge: float = Field(ge=0, le=1.0, description="Battery SOC as a fraction")
    status: VehicleStatus = VehicleStatus.AVAILABLE
    battery_capacity_kwh: float = Field(default=100.0, gt=0)
    current_depot_id: str | None = None
    current_resource_id: str | None = None
    autonomy_level: Literal["L2", "L3", "L4", "L5"] = "L4"
    operational_metrics: OperationalMetrics = Field(default_factory=OperationalMetrics)
    safety_metrics: SafetyMetrics = Field(default_factory=SafetyMetrics)
    mileage: float = Field(default=0.0, ge=0)
    engine_hours: float = Field(default=0.0, ge=0)
    next_maintenance_date: datetime | None = None
    revenue_per_day: float = Field(default=0.0, ge=0)
    current_route: str | None = None
    idle_since: datetime | None = None
    predictive_alerts: list[MaintenanceAlert] = Field(default_factory=list)

    @property
    def soc(self) -> float:
        """Short alias used by rule conditions (``field="soc"``)."""
        return self.state_of_charge

    @property
    def display_name(self) -> str:
        return self.name or self.id


# ═══════════════════════════════════════════════════════════════════════════
# Depot & resources
# ═══════════════════════════════════════════════════════════════════════════

class Depot(BaseModel):
    id: str
    name: str
    city: str | None = None
    capacity: int = Field(default=20, ge=0, description="Vehicles the depot can hold")
    charging_capacity: int = Field(default=10, ge=0, description="Charging positions for demand forecasts")


class _ResourceBase(BaseModel):
    id: str
    depot_id: str
    status: ResourceStatus = ResourceStatus.AVAILABLE
    occupying_vehicle_id: str | None = None
    reserved_until: datetime | None = None


class ChargingStall(_ResourceBase):
    kind: Literal["charging_stall"] = "charging_stall"
    power_kw: float = Field(default=150.0, gt=0)


class DetailingBay(_ResourceBase):
    kind: Literal["detailing_bay"] = "detailing_bay"

    @property
    def power_kw(self) -> float:
        return 0.0


Resource = Annotated[Union[ChargingStall, DetailingBay], Field(discriminator="kind")]


# ═══════════════════════════════════════════════════════════════════════════
# Fleet events & context
# ═══════════════════════════════════════════════════════════════════════════

class Incident(BaseModel):
    id: str
    vehicle_id: str
    incident_type: str = Field(description="e.g. collision, breakdown, flat_tire")
    severity: str = Field(default="medium")
    created_at: datetime


class Anomaly(BaseModel):
    id: str
    vehicle_id: str
    anomaly_type: str = Field(description="e.g. battery_temperature, sensor_drift")
    detected_at: datetime


ADVERSE_WEATHER = frozenset({"rain", "snow", "fog", "storm", "ice"})


class FleetConditions(BaseModel):
    """Ambient operating conditions used by incident prediction."""

    weather: str = "clear"
    traffic: Literal["light", "moderate", "heavy"] = "moderate"

    @property
    def adverse_weather(self) -> bool:
        return self.weather.lower() in ADVERSE_WEATHER

    @property
    def heavy_traffic(self) -> bool:
        return self.traffic == "heavy"
