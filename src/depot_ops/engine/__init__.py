"""Engine — resource scheduling, risk prediction and rule automation."""

from depot_ops.engine.scheduler import ResourceScheduler
from depot_ops.engine.predictive import RiskPredictionEngine
from depot_ops.engine.automation import AutomationEngine
from depot_ops.engine.rulebook import default_rules
from depot_ops.engine.runtime import FleetOpsRuntime, build_runtime

__all__ = [
    "ResourceScheduler",
    "RiskPredictionEngine",
    "AutomationEngine",
    "default_rules",
    "FleetOpsRuntime",
    "build_runtime",
]
