"""Pre-built tool/function definitions for LLM integration frameworks.

Generates tool schemas in OpenAI and Anthropic formats, auto-derived
from the request models in ``depot_ops.api.schemas``. An LLM can use these
to call the fleet operations API.

Usage:
    from depot_ops.api.tools import get_openai_tools, get_anthropic_tools
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from depot_ops.api.schemas import (
    AutoQueueChargingRequest,
    AutoQueueMaintenanceRequest,
    BookingRequest,
    ChargingNeedsRequest,
    DepotDemandRequest,
    EvaluateRequest,
    IncidentRiskRequest,
    MaintenanceRiskRequest,
    RebalanceRequest,
)

# (tool name, description, request model or None, HTTP route it maps to)
_TOOL_SPECS: list[tuple[str, str, type[BaseModel] | None, str]] = [
    (
        "get_fleet_context",
        "Get the self-describing context of the fleet operations API. "
        "Call this FIRST to learn the depots, formulas and available operations.",
        None,
        "GET /context",
    ),
    (
        "schedule_charging",
        "Book a charging stall for a vehicle over a time window. Fails (success=false) "
        "with a reason code on double booking, unavailable stall or busy vehicle.",
        BookingRequest,
        "POST /schedule/charging",
    ),
    (
        "predict_charging_needs",
        "Forecast which vehicles will need charging within the horizon, most urgent first.",
        ChargingNeedsRequest,
        "POST /predictions/charging",
    ),
    (
        "predict_maintenance_risks",
        "Score vehicles for maintenance risk (mileage, age, due date, operations) "
        "with a predicted failure window and estimated cost.",
        MaintenanceRiskRequest,
        "POST /predictions/maintenance",
    ),
    (
        "predict_incident_likelihood",
        "Score vehicles for incident risk under current weather and traffic.",
        IncidentRiskRequest,
        "POST /predictions/incidents",
    ),
    (
        "predict_depot_demand",
        "Forecast charging-stall demand and peak hours at one depot.",
        DepotDemandRequest,
        "POST /predictions/demand",
    ),
    (
        "auto_queue_charging",
        "Queue low-SOC vehicles for charging using a strategy. Dry run by default; "
        "set dry_run=false to book stalls.",
        AutoQueueChargingRequest,
        "POST /automation/queue/charging",
    ),
    (
        "auto_queue_maintenance",
        "Queue high-risk vehicles for maintenance based on predicted risk.",
        AutoQueueMaintenanceRequest,
        "POST /automation/queue/maintenance",
    ),
    (
        "rebalance_fleet",
        "Plan moving idle vehicles from the busiest depot to the least utilized one.",
        RebalanceRequest,
        "POST /automation/rebalance",
    ),
    (
        "evaluate_automation_rules",
        "Run one pass of the automation rules and report which fired.",
        EvaluateRequest,
        "POST /automation/evaluate",
    ),
    (
        "get_fleet_briefing",
        "Get a plain-English fleet briefing: charging needs, maintenance risks and incident risks.",
        None,
        "GET /briefing",
    ),
]


def _parameters(model: type[BaseModel] | None) -> dict[str, Any]:
    """JSON Schema for a request model, trimmed to what tool-calling APIs expect."""
    if model is None:
        return {"type": "object", "properties": {}, "required": []}
    schema = model.model_json_schema()
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": schema.get("properties", {}),
        "required": schema.get("required", []),
    }
    if "$defs" in schema:
        parameters["$defs"] = schema["$defs"]
    return parameters


def tool_routes() -> dict[str, str]:
    """Tool name → HTTP route, for dispatching tool calls."""
    return {name: route for name, _, _, route in _TOOL_SPECS}


def get_openai_tools() -> list[dict[str, Any]]:
    """Return tool definitions in OpenAI function-calling format.

    These can be passed directly to ``tools`` parameter in OpenAI chat completions.
    """
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": _parameters(model),
            },
        }
        for name, description, model, _ in _TOOL_SPECS
    ]


def get_anthropic_tools() -> list[dict[str, Any]]:
    """Return tool definitions in Anthropic tool-use format.

    These can be passed directly to ``tools`` parameter in Anthropic messages API.
    """
    anthropic_tools: list[dict[str, Any]] = []
    for tool in get_openai_tools():
        func = tool["function"]
        anthropic_tools.append({
            "name": func["name"],
            "description": func["description"],
            "input_schema": func["parameters"],
        })
    return anthropic_tools


def get_system_prompt(base_url: str = "http://localhost:8000") -> str:
    """Generate a system prompt for an LLM that has access to the fleet operations API."""
    capabilities = "\n".join(
        f"{i}. {name} — {route}" for i, (name, _, _, route) in enumerate(_TOOL_SPECS, start=1)
    )
    return f"""You are an AI fleet operations assistant for autonomous vehicle depots.

WHAT THE API DOES:
It books depot charging stalls and detailing bays without double booking,
forecasts charging urgency, maintenance risk, incident likelihood and depot
demand, and runs automation rules that react to fleet conditions.

YOUR CAPABILITIES:
{capabilities}

API BASE URL: {base_url}

WORKFLOW:
1. Understand the operator's question
2. Call get_fleet_context if you need depot ids or formulas
3. Prefer predictions and dry runs before booking anything
4. Book (schedule_charging, or auto_queue_charging with dry_run=false) only when asked
5. Explain results in operational terms

CONVENTIONS:
- SOC, thresholds and risk scores are fractions between 0 and 1
- All times are UTC (ISO-8601)
- A failed booking returns success=false with a reason code; try another stall or time

IMPORTANT: Always say what the operator should do next, not just the numbers.
"""
