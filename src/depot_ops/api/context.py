"""Context manifest generator — makes the fleet operations API self-describing for LLMs.

Produces structured context at two detail levels:
  - ``compact``: depots, settings schemas and endpoints
  - ``full``:    adds the decision formulas and an interpretation guide
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from depot_ops.config import AutomationSettings, FleetOpsSettings, PredictionSettings, SchedulerSettings
from depot_ops.store import FleetSnapshot


# ═══════════════════════════════════════════════════════════════════════════
# Public response models
# ═══════════════════════════════════════════════════════════════════════════

class ParameterInfo(BaseModel):
    """One configurable parameter, machine-readable."""
    name: str
    type: str
    default: Any
    description: str
    constraints: dict[str, Any] = Field(default_factory=dict)


class SectionSchema(BaseModel):
    """Schema for one settings section (e.g. scheduler, prediction)."""
    section: str
    description: str
    parameters: list[ParameterInfo]


class DepotInfo(BaseModel):
    id: str
    name: str
    city: str | None
    vehicles: int
    charging_stalls: int
    detailing_bays: int


class EndpointInfo(BaseModel):
    """Description of one API endpoint."""
    method: str
    path: str
    description: str


class FleetOpsContext(BaseModel):
    """Full self-describing context for LLM consumption."""
    name: str
    version: str
    description: str
    depots: list[DepotInfo]
    key_formulas: list[dict[str, str]]
    settings_sections: list[SectionSchema]
    endpoints: list[EndpointInfo]
    interpretation_guide: str


# ═══════════════════════════════════════════════════════════════════════════
# Schema extraction from Pydantic models
# ═══════════════════════════════════════════════════════════════════════════

def _extract_params(model_cls: type[BaseModel]) -> list[ParameterInfo]:
    """Extract parameter info from a Pydantic model class."""
    params: list[ParameterInfo] = []
    for name, field_info in model_cls.model_fields.items():
        constraints: dict[str, Any] = {}
        for meta in field_info.metadata:
            for attr in ("ge", "gt", "le", "lt"):
                value = getattr(meta, attr, None)
                if value is not None:
                    constraints[attr] = value

        type_str = str(field_info.annotation) if field_info.annotation else "Any"
        type_str = type_str.replace("typing.", "").replace("<class '", "").replace("'>", "")

        params.append(ParameterInfo(
            name=name,
            type=type_str,
            default=field_info.default,
            description=field_info.description or "",
            constraints=constraints,
        ))
    return params


# ═══════════════════════════════════════════════════════════════════════════
# Static content
# ═══════════════════════════════════════════════════════════════════════════

_INTERPRETATION_GUIDE = """
HOW TO INTERPRET RESULTS:

1. BOOKINGS:
   success=false is a normal outcome, not an error. The reason code says why:
   double_booking (stall taken for that window), resource_unavailable (stall in
   maintenance), vehicle_unavailable (vehicle already charging, detailing or in
   maintenance), invalid_range (end not after start), not_found.
   Back-to-back windows (one ends exactly when the next starts) do not conflict.

2. URGENCY:
   critical > high > medium > low. Lists are sorted most urgent first.

3. CONFIDENCE:
   0.3 to 0.95. More data points raise it; each negative factor lowers it by 0.05.
   A confidence of 0 means the request could not be answered (e.g. unknown depot).

4. DRY RUNS:
   Automation endpoints default to dry_run=true and only propose. Set
   dry_run=false to book stalls through the same path as manual bookings.
"""

_KEY_FORMULAS = [
    {
        "name": "SOC drain per hour",
        "formula": "(avg_daily_distance / 100 × consumption_per_100) / battery_kwh / 12",
        "meaning": "Assumes 12 active hours a day",
    },
    {
        "name": "Charging duration (plan)",
        "formula": "((0.80 − soc) × battery_kwh) / (stall_kw / 60), capped at the horizon",
        "meaning": "Minutes to reach 80% on a given stall",
    },
    {
        "name": "Maintenance risk",
        "formula": "0.25 × mileage + 0.15 × age + 0.35 × maintenance_due + 0.25 × operational",
        "meaning": "Each term is a step function in [0, 1]",
    },
    {
        "name": "Incident risk",
        "formula": "((100 − safety) / 100 + 1000 × disengagement) × autonomy × weather × traffic",
        "meaning": "L3 × 1.2, L5 × 0.8, adverse weather × 1.3, heavy traffic × 1.2; clamped to [0, 1]",
    },
    {
        "name": "Depot demand",
        "formula": "round(0.3 × vehicles_at_depot) × hour multiplier",
        "meaning": "06–09h × 1.5, 17–20h × 1.6, 22–05h × 1.3 (UTC)",
    },
]

_ENDPOINTS = [
    EndpointInfo(method="GET", path="/context", description="This manifest"),
    EndpointInfo(method="GET", path="/settings/schema", description="JSON Schema of engine settings"),
    EndpointInfo(method="GET", path="/depots/{depot_id}/resources", description="Stalls and bays, highest power first"),
    EndpointInfo(method="GET", path="/depots/{depot_id}/charging-queue", description="Vehicles waiting to charge, lowest SOC first"),
    EndpointInfo(method="POST", path="/schedule/charging", description="Book a charging stall"),
    EndpointInfo(method="POST", path="/schedule/detailing", description="Book a detailing bay"),
    EndpointInfo(method="POST", path="/schedule/{assignment_id}/release", description="Complete or cancel a booking"),
    EndpointInfo(method="POST", path="/depots/{depot_id}/optimize", description="Greedy charging plan, optionally applied"),
    EndpointInfo(method="GET", path="/depots/{depot_id}/utilization", description="Utilization report for a window"),
    EndpointInfo(method="POST", path="/predictions/charging", description="Charging needs forecast"),
    EndpointInfo(method="POST", path="/predictions/maintenance", description="Maintenance risk forecast"),
    EndpointInfo(method="POST", path="/predictions/incidents", description="Incident likelihood forecast"),
    EndpointInfo(method="POST", path="/predictions/demand", description="Depot demand forecast"),
    EndpointInfo(method="GET", path="/predictions/summary", description="Fleet prediction summary"),
    EndpointInfo(method="GET", path="/briefing", description="Plain-English fleet briefing"),
    EndpointInfo(method="POST", path="/incidents", description="Record an incident for event-driven rules"),
    EndpointInfo(method="POST", path="/anomalies", description="Record a telemetry anomaly for event-driven rules"),
    EndpointInfo(method="GET", path="/conditions", description="Current weather and traffic"),
    EndpointInfo(method="PUT", path="/conditions", description="Replace weather and traffic used by incident prediction"),
    EndpointInfo(method="GET", path="/automation/rules", description="List automation rules"),
    EndpointInfo(method="POST", path="/automation/evaluate", description="Run one rule evaluation pass"),
    EndpointInfo(method="POST", path="/automation/queue/charging", description="Auto-queue charging"),
    EndpointInfo(method="POST", path="/automation/queue/maintenance", description="Auto-queue maintenance"),
    EndpointInfo(method="POST", path="/automation/rebalance", description="Plan fleet rebalancing"),
    EndpointInfo(method="GET", path="/automation/log", description="Execution log"),
]

_SETTINGS_SECTIONS = [
    ("scheduler", SchedulerSettings, "Booking, greedy plan and utilization advice"),
    ("prediction", PredictionSettings, "Forecast constants and confidence bounds"),
    ("automation", AutomationSettings, "Off-peak window, commit durations, log size"),
]


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def build_context(
    snapshot: FleetSnapshot,
    detail_level: Literal["compact", "full"] = "full",
) -> FleetOpsContext:
    """Build the self-describing context manifest for the current fleet."""
    depots = [
        DepotInfo(
            id=d.id,
            name=d.name,
            city=d.city,
            vehicles=len(snapshot.vehicles_at(d.id)),
            charging_stalls=len(snapshot.stalls_at(d.id)),
            detailing_bays=len(snapshot.bays_at(d.id)),
        )
        for d in snapshot.depots
    ]
    sections = [
        SectionSchema(section=name, description=desc, parameters=_extract_params(model_cls))
        for name, model_cls, desc in _SETTINGS_SECTIONS
    ]
    full = detail_level == "full"
    return FleetOpsContext(
        name="Depot Operations API",
        version="1.0",
        description=(
            "Depot resource scheduling, fleet risk prediction and rule-based automation "
            "for autonomous vehicle fleets."
        ),
        depots=depots,
        key_formulas=_KEY_FORMULAS if full else [],
        settings_sections=sections,
        endpoints=_ENDPOINTS,
        interpretation_guide=_INTERPRETATION_GUIDE.strip() if full else "",
    )


def get_settings_schema() -> dict:
    """Return the full JSON Schema for the engine settings."""
    return FleetOpsSettings.model_json_schema()
