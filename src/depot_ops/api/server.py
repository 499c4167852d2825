"""FastAPI server — HTTP dispatch layer over the fleet operations core.

Run with:
    uvicorn depot_ops.api.server:app --reload --port 8000

Or:
    python -m depot_ops.api.server

Endpoints:
    GET  /context                          — self-describing manifest
    GET  /depots/{id}/resources            — stalls and bays, highest power first
    GET  /depots/{id}/charging-queue       — vehicles waiting to charge
    POST /schedule/charging                — book a stall (success=false on rejection)
    POST /schedule/detailing               — book a bay
    POST /depots/{id}/optimize             — greedy charging plan
    GET  /depots/{id}/utilization          — utilization report
    POST /predictions/*                    — charging / maintenance / incidents / demand
    GET  /briefing                         — plain-English fleet briefing
    POST /incidents, /anomalies            — record fleet events for event-driven rules
    GET|PUT /conditions                    — weather and traffic for incident prediction
    *    /automation/*                     — rules, evaluation, auto-queue, rebalance, log

Unknown identifiers map to 404, out-of-range parameters to 422.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from depot_ops.api.context import FleetOpsContext, build_context, get_settings_schema
from depot_ops.api.narrative import generate_fleet_briefing
from depot_ops.api.schemas import (
    AnomalyReport,
    AutoQueueChargingRequest,
    AutoQueueChargingResponse,
    AutoQueueMaintenanceRequest,
    BookingRequest,
    BriefingResponse,
    ChargingNeedsRequest,
    DepotDemandRequest,
    EvaluateRequest,
    EvaluateResponse,
    IncidentReport,
    IncidentRiskRequest,
    MaintenanceRiskRequest,
    OptimizeRequest,
    OptimizeResponse,
    RebalanceRequest,
    ReleaseRequest,
    ToolBundle,
)
from depot_ops.api.tools import get_anthropic_tools, get_openai_tools, get_system_prompt
from depot_ops.clock import ensure_utc
from depot_ops.data import build_demo_store
from depot_ops.engine.runtime import FleetOpsRuntime, build_runtime
from depot_ops.exceptions import InvalidParameterError, NotFoundError, RuleError
from depot_ops.models.automation import AutomationExecution, AutomationRule, AutoQueueResult, RebalancePlan
from depot_ops.models.fleet import Anomaly, FleetConditions, Incident, Resource, ResourceStatus
from depot_ops.models.schedule import (
    AssignmentStatus,
    BookingResult,
    ChargingQueue,
    ScheduleAssignment,
    UtilizationReport,
)
from depot_ops.models.predictions import (
    ChargingPrediction,
    DepotDemandForecast,
    FleetPredictionSummary,
    IncidentRisk,
    MaintenanceRisk,
    PredictionResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_runtime(request: Request) -> FleetOpsRuntime:
    return request.app.state.runtime


# ═══════════════════════════════════════════════════════════════════════════
# Meta
# ═══════════════════════════════════════════════════════════════════════════

@router.get("/health")
def health_check():
    """Health check for deployment platforms."""
    return {"status": "ok"}


@router.get("/")
def root():
    """API root — returns a welcome message and pointer to /context."""
    return {
        "name": "Depot Operations API",
        "version": "1.0",
        "start_here": "GET /context?detail_level=full",
        "docs": "GET /docs (interactive Swagger UI)",
    }


@router.get("/context", response_model=FleetOpsContext)
def get_context(
    detail_level: Literal["compact", "full"] = Query(
        default="full",
        description="'compact' for depots, settings and endpoints; 'full' adds formulas and guide",
    ),
    runtime: FleetOpsRuntime = Depends(get_runtime),
):
    """Self-describing context manifest for LLM consumption."""
    return build_context(runtime.store.snapshot(runtime.clock.now()), detail_level)


@router.get("/settings/schema")
def settings_schema():
    return get_settings_schema()


@router.get("/tools/openai", response_model=ToolBundle)
def get_openai_tool_definitions():
    """Pre-built tool definitions in OpenAI function-calling format."""
    return ToolBundle(
        tools=get_openai_tools(),
        system_prompt=get_system_prompt(),
        usage=(
            "1. Add these tools to your OpenAI chat completion request\n"
            "2. Use the system_prompt as your system message\n"
            "3. Map function calls to the corresponding API endpoints"
        ),
    )


@router.get("/tools/anthropic", response_model=ToolBundle)
def get_anthropic_tool_definitions():
    """Pre-built tool definitions in Anthropic tool-use format."""
    return ToolBundle(
        tools=get_anthropic_tools(),
        system_prompt=get_system_prompt(),
        usage=(
            "1. Add these tools to your Anthropic messages API request\n"
            "2. Use the system_prompt as your system message\n"
            "3. Map tool_use blocks to the corresponding API endpoints"
        ),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Scheduler
# ═══════════════════════════════════════════════════════════════════════════

@router.get("/depots/{depot_id}/resources", response_model=list[Resource])
def list_resources(
    depot_id: str,
    status: ResourceStatus | None = None,
    kind: Literal["charging_stall", "detailing_bay"] | None = None,
    runtime: FleetOpsRuntime = Depends(get_runtime),
):
    runtime.store.get_depot(depot_id)
    return runtime.scheduler.list_resources(depot_id, status=status, kind=kind)


@router.get("/depots/{depot_id}/charging-queue", response_model=ChargingQueue)
def charging_queue(depot_id: str, runtime: FleetOpsRuntime = Depends(get_runtime)):
    runtime.store.get_depot(depot_id)
    return runtime.scheduler.get_charging_queue(depot_id)


@router.post("/schedule/charging", response_model=BookingResult)
def schedule_charging(req: BookingRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    """Book a charging stall. Rejections come back as ``success=false`` with a reason code."""
    return runtime.scheduler.schedule_vehicle(
        req.vehicle_id, req.resource_id, ensure_utc(req.start), ensure_utc(req.end),
    )


@router.post("/schedule/detailing", response_model=BookingResult)
def schedule_detailing(req: BookingRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.scheduler.assign_detailing(
        req.vehicle_id, req.resource_id, ensure_utc(req.start), ensure_utc(req.end),
    )


@router.post("/schedule/{assignment_id}/release", response_model=ScheduleAssignment)
def release_assignment(
    assignment_id: str,
    req: ReleaseRequest,
    runtime: FleetOpsRuntime = Depends(get_runtime),
):
    return runtime.scheduler.release(assignment_id, AssignmentStatus(req.status))


@router.post("/depots/{depot_id}/optimize", response_model=OptimizeResponse)
def optimize_depot(
    depot_id: str,
    req: OptimizeRequest,
    runtime: FleetOpsRuntime = Depends(get_runtime),
):
    """Greedy charging plan; ``apply=true`` commits it pair by pair."""
    runtime.store.get_depot(depot_id)
    plan = runtime.scheduler.optimize(depot_id, req.horizon_minutes, req.objective)
    bookings = runtime.scheduler.apply_plan(plan) if req.apply else []
    return OptimizeResponse(plan=plan, bookings=bookings)


@router.get("/depots/{depot_id}/utilization", response_model=UtilizationReport)
def utilization(
    depot_id: str,
    start: datetime = Query(..., description="Window start (ISO-8601)"),
    end: datetime = Query(..., description="Window end (ISO-8601, exclusive)"),
    runtime: FleetOpsRuntime = Depends(get_runtime),
):
    start, end = ensure_utc(start), ensure_utc(end)
    if end <= start:
        raise InvalidParameterError("end must be after start")
    runtime.store.get_depot(depot_id)
    return runtime.scheduler.utilization_report(depot_id, start, end)


# ═══════════════════════════════════════════════════════════════════════════
# Predictions
# ═══════════════════════════════════════════════════════════════════════════

@router.post("/predictions/charging", response_model=PredictionResult[list[ChargingPrediction]])
def predict_charging(req: ChargingNeedsRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.predictor.predict_charging_needs(
        horizon_hours=req.horizon_hours,
        soc_threshold=req.soc_threshold,
        city=req.city,
        depot_id=req.depot_id,
    )


@router.post("/predictions/maintenance", response_model=PredictionResult[list[MaintenanceRisk]])
def predict_maintenance(req: MaintenanceRiskRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.predictor.predict_maintenance_risks(
        risk_threshold=req.risk_threshold,
        categories=req.categories,
        city=req.city,
        vehicle_ids=req.vehicle_ids,
    )


@router.post("/predictions/incidents", response_model=PredictionResult[list[IncidentRisk]])
def predict_incidents(req: IncidentRiskRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.predictor.predict_incident_likelihood(city=req.city, vehicle_ids=req.vehicle_ids)


@router.post("/predictions/demand", response_model=PredictionResult[DepotDemandForecast])
def predict_demand(req: DepotDemandRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    """Unknown depots return an empty forecast with confidence 0 rather than 404."""
    return runtime.predictor.predict_depot_demand(req.depot_id, req.horizon_hours, req.granularity)


@router.get("/predictions/summary", response_model=FleetPredictionSummary)
def prediction_summary(city: str | None = None, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.predictor.get_fleet_prediction_summary(city=city)


@router.get("/briefing", response_model=BriefingResponse)
def briefing(city: str | None = None, runtime: FleetOpsRuntime = Depends(get_runtime)):
    """Plain-English briefing built from one consistent fleet snapshot."""
    predictor = runtime.predictor
    snapshot = runtime.store.snapshot(runtime.clock.now())
    summary = predictor.get_fleet_prediction_summary(city=city, snapshot=snapshot)
    narrative = generate_fleet_briefing(
        summary,
        predictor.predict_charging_needs(city=city, snapshot=snapshot).prediction,
        predictor.predict_maintenance_risks(risk_threshold=0.5, city=city, snapshot=snapshot).prediction,
        predictor.predict_incident_likelihood(city=city, snapshot=snapshot).prediction,
        runtime.automation.get_execution_log(limit=5),
    )
    return BriefingResponse(summary=summary, narrative=narrative)


# ═══════════════════════════════════════════════════════════════════════════
# Fleet events
# ═══════════════════════════════════════════════════════════════════════════

@router.post("/incidents", response_model=Incident, status_code=201)
def report_incident(req: IncidentReport, runtime: FleetOpsRuntime = Depends(get_runtime)):
    """Record an incident for ``incident_created`` rules and incident briefings."""
    incident = Incident(
        id=f"INC-{uuid.uuid4().hex[:8]}",
        vehicle_id=req.vehicle_id,
        incident_type=req.incident_type,
        severity=req.severity,
        created_at=ensure_utc(req.created_at) if req.created_at else runtime.clock.now(),
    )
    runtime.store.record_incident(incident)
    logger.info("Recorded %s incident %s for %s", incident.incident_type, incident.id, incident.vehicle_id)
    return incident


@router.post("/anomalies", response_model=Anomaly, status_code=201)
def report_anomaly(req: AnomalyReport, runtime: FleetOpsRuntime = Depends(get_runtime)):
    anomaly = Anomaly(
        id=f"ANM-{uuid.uuid4().hex[:8]}",
        vehicle_id=req.vehicle_id,
        anomaly_type=req.anomaly_type,
        detected_at=ensure_utc(req.detected_at) if req.detected_at else runtime.clock.now(),
    )
    runtime.store.record_anomaly(anomaly)
    logger.info("Recorded %s anomaly %s for %s", anomaly.anomaly_type, anomaly.id, anomaly.vehicle_id)
    return anomaly


@router.get("/conditions", response_model=FleetConditions)
def get_conditions(runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.store.conditions()


@router.put("/conditions", response_model=FleetConditions)
def set_conditions(conditions: FleetConditions, runtime: FleetOpsRuntime = Depends(get_runtime)):
    """Replace the weather and traffic used by incident prediction."""
    runtime.store.set_conditions(conditions)
    return conditions


# ═══════════════════════════════════════════════════════════════════════════
# Automation
# ═══════════════════════════════════════════════════════════════════════════

@router.get("/automation/rules", response_model=list[AutomationRule])
def list_rules(runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.get_rules()


@router.get("/automation/rules/{rule_id}", response_model=AutomationRule)
def get_rule(rule_id: str, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.get_rule(rule_id)


@router.post("/automation/rules", response_model=AutomationRule, status_code=201)
def add_rule(rule: AutomationRule, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.add_rule(rule)


@router.delete("/automation/rules/{rule_id}", status_code=204)
def remove_rule(rule_id: str, runtime: FleetOpsRuntime = Depends(get_runtime)):
    runtime.automation.remove_rule(rule_id)


@router.post("/automation/rules/{rule_id}/enable", response_model=AutomationRule)
def enable_rule(rule_id: str, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.enable_rule(rule_id)


@router.post("/automation/rules/{rule_id}/disable", response_model=AutomationRule)
def disable_rule(rule_id: str, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.disable_rule(rule_id)


@router.post("/automation/evaluate", response_model=EvaluateResponse)
def evaluate_rules(req: EvaluateRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    executions = runtime.automation.evaluate_rules(dry_run=req.dry_run)
    return EvaluateResponse(
        executions=executions,
        rules_fired=sum(1 for e in executions if e.success),
    )


@router.post("/automation/queue/charging", response_model=AutoQueueChargingResponse)
def auto_queue_charging(req: AutoQueueChargingRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    """Propose charging jobs; with ``dry_run=false`` also book them on stalls."""
    automation = runtime.automation
    result = automation.auto_queue_charging(
        depot_id=req.depot_id,
        city=req.city,
        strategy=req.strategy,
        max_concurrent=req.max_concurrent,
        soc_threshold=req.soc_threshold,
        dry_run=req.dry_run,
    )
    commits = [] if req.dry_run else automation.commit_charging_queue(result, req.duration_minutes)
    return AutoQueueChargingResponse(result=result, commits=commits)


@router.post("/automation/queue/maintenance", response_model=AutoQueueResult)
def auto_queue_maintenance(req: AutoQueueMaintenanceRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.auto_queue_maintenance(
        risk_threshold=req.risk_threshold,
        categories=req.categories,
        depot_id=req.depot_id,
        city=req.city,
        dry_run=req.dry_run,
    )


@router.post("/automation/rebalance", response_model=RebalancePlan)
def auto_rebalance(req: RebalanceRequest, runtime: FleetOpsRuntime = Depends(get_runtime)):
    return runtime.automation.auto_rebalance_fleet(
        source_depot_id=req.source_depot_id,
        target_depot_id=req.target_depot_id,
        vehicle_count=req.vehicle_count,
        selection_criteria=req.selection_criteria,
        execute=req.execute,
    )


@router.get("/automation/log", response_model=list[AutomationExecution])
def execution_log(
    rule_id: str | None = None,
    limit: int | None = Query(default=None, ge=1, le=1000),
    runtime: FleetOpsRuntime = Depends(get_runtime),
):
    return runtime.automation.get_execution_log(rule_id=rule_id, limit=limit)


@router.delete("/automation/log", status_code=204)
def clear_execution_log(runtime: FleetOpsRuntime = Depends(get_runtime)):
    runtime.automation.clear_execution_log()


# ═══════════════════════════════════════════════════════════════════════════
# App setup
# ═══════════════════════════════════════════════════════════════════════════

def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def _invalid_parameter(request: Request, exc: InvalidParameterError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def _rule_conflict(request: Request, exc: RuleError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app(runtime: FleetOpsRuntime | None = None) -> FastAPI:
    """Build the FastAPI app around ``runtime`` (the demo fleet when omitted)."""
    app = FastAPI(
        title="Depot Operations API",
        version="1.0",
        description=(
            "Depot resource scheduling, fleet risk prediction and rule automation. "
            "Start by calling GET /context to see depots, formulas and endpoints."
        ),
    )
    # Allow all origins for LLM tool access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(InvalidParameterError, _invalid_parameter)
    app.add_exception_handler(RuleError, _rule_conflict)
    app.include_router(router)
    app.state.runtime = runtime or build_runtime(build_demo_store())
    return app


app = create_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI entry point
# ═══════════════════════════════════════════════════════════════════════════

def main():
    """Run the API server."""
    import uvicorn
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "depot_ops.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )


if __name__ == "__main__":
    main()
