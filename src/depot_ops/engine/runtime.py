"""Runtime wiring — one store, one clock, one instance of each engine.

The dispatch layer owns a ``FleetOpsRuntime``; nothing in the core reaches
for a module-level engine.
"""

from __future__ import annotations

from dataclasses import dataclass

from depot_ops.clock import Clock, SystemClock
from depot_ops.config.settings import FleetOpsSettings
from depot_ops.engine.automation import AutomationEngine
from depot_ops.engine.predictive import RiskPredictionEngine
from depot_ops.engine.scheduler import ResourceScheduler
from depot_ops.models.automation import AutomationRule
from depot_ops.store import FleetStore


@dataclass
class FleetOpsRuntime:
    store: FleetStore
    clock: Clock
    settings: FleetOpsSettings
    scheduler: ResourceScheduler
    predictor: RiskPredictionEngine
    automation: AutomationEngine


def build_runtime(
    store: FleetStore,
    settings: FleetOpsSettings | None = None,
    clock: Clock | None = None,
    rules: list[AutomationRule] | None = None,
) -> FleetOpsRuntime:
    """Wire the scheduler, predictor and automation engine over ``store``."""
    settings = settings or FleetOpsSettings()
    clock = clock or SystemClock()
    scheduler = ResourceScheduler(store, settings.scheduler, clock, settings.charge_target_soc)
    predictor = RiskPredictionEngine(store, settings.prediction, clock, settings.charge_target_soc)
    automation = AutomationEngine(
        store, scheduler, predictor, rules=rules, settings=settings.automation, clock=clock,
    )
    return FleetOpsRuntime(
        store=store,
        clock=clock,
        settings=settings,
        scheduler=scheduler,
        predictor=predictor,
        automation=automation,
    )
