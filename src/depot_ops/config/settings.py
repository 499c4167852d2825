"""Top-level settings — bundles every component's configuration."""

from pydantic import BaseModel, Field

from depot_ops.config.scheduler import SchedulerSettings
from depot_ops.config.prediction import PredictionSettings
from depot_ops.config.automation import AutomationSettings

DEFAULT_CHARGE_TARGET_SOC = 0.80


class FleetOpsSettings(BaseModel):
    charge_target_soc: float = Field(
        default=DEFAULT_CHARGE_TARGET_SOC, gt=0, le=1.0,
        description="SOC charging aims for: the scheduler queues and plans up to it, "
                    "the predictor sizes charge-time estimates against it",
    )
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    prediction: PredictionSettings = Field(default_factory=PredictionSettings)
    automation: AutomationSettings = Field(default_factory=AutomationSettings)
