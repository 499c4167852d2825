"""Configuration models for the scheduler, predictor and automation engine."""

from depot_ops.config.scheduler import SchedulerSettings
from depot_ops.config.prediction import PredictionSettings
from depot_ops.config.automation import AutomationSettings
from depot_ops.config.settings import DEFAULT_CHARGE_TARGET_SOC, FleetOpsSettings

__all__ = [
    "SchedulerSettings",
    "PredictionSettings",
    "AutomationSettings",
    "FleetOpsSettings",
    "DEFAULT_CHARGE_TARGET_SOC",
]
