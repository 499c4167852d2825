"""Domain models — fleet state, scheduling, prediction and automation contracts."""

from depot_ops.models.fleet import (
    Anomaly,
    ChargingStall,
    Depot,
    DetailingBay,
    FleetConditions,
    Incident,
    MaintenanceAlert,
    OperationalMetrics,
    Priority,
    Resource,
    ResourceStatus,
    SafetyMetrics,
    Vehicle,
    VehicleStatus,
)
from depot_ops.models.schedule import (
    AssignmentKind,
    AssignmentStatus,
    BookingError,
    BookingResult,
    ChargingQueue,
    OptimizationPlan,
    ScheduleAssignment,
    UtilizationReport,
)
from depot_ops.models.predictions import (
    ChargingPrediction,
    DepotDemandForecast,
    FleetPredictionSummary,
    IncidentRisk,
    MaintenanceRisk,
    PredictionFactor,
    PredictionResult,
)
from depot_ops.models.automation import (
    AutomationExecution,
    AutomationRule,
    AutoQueueResult,
    JobType,
    RebalancePlan,
)

__all__ = [
    "Anomaly",
    "ChargingStall",
    "Depot",
    "DetailingBay",
    "FleetConditions",
    "Incident",
    "MaintenanceAlert",
    "OperationalMetrics",
    "Priority",
    "Resource",
    "ResourceStatus",
    "SafetyMetrics",
    "Vehicle",
    "VehicleStatus",
    "AssignmentKind",
    "AssignmentStatus",
    "BookingError",
    "BookingResult",
    "ChargingQueue",
    "OptimizationPlan",
    "ScheduleAssignment",
    "UtilizationReport",
    "ChargingPrediction",
    "DepotDemandForecast",
    "FleetPredictionSummary",
    "IncidentRisk",
    "MaintenanceRisk",
    "PredictionFactor",
    "PredictionResult",
    "AutomationExecution",
    "AutomationRule",
    "AutoQueueResult",
    "JobType",
    "RebalancePlan",
]
