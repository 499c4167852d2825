"""Shared test fixtures — a small single-depot fleet on a fixed clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from depot_ops.clock import FixedClock
from depot_ops.data import build_demo_store
from depot_ops.engine import (
    AutomationEngine,
    FleetOpsRuntime,
    ResourceScheduler,
    RiskPredictionEngine,
    build_runtime,
)
from depot_ops.models.fleet import (
    ChargingStall,
    Depot,
    DetailingBay,
    ResourceStatus,
    Vehicle,
    VehicleStatus,
)
from depot_ops.store import FleetStore

# Monday, midday UTC
NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def depot() -> Depot:
    return Depot(id="D1", name="Test Depot", city="Testville", capacity=10, charging_capacity=2)


@pytest.fixture
def vehicles() -> list[Vehicle]:
    return [
        Vehicle(
            id="V1", name="Low Battery", city="Testville", current_depot_id="D1",
            state_of_charge=0.10, battery_capacity_kwh=75,
        ),
        Vehicle(
            id="V2", name="Half Full", city="Testville", current_depot_id="D1",
            state_of_charge=0.50, battery_capacity_kwh=100,
        ),
        Vehicle(
            id="V3", name="Parked", city="Testville", current_depot_id="D1",
            state_of_charge=0.90, status=VehicleStatus.IDLE,
            idle_since=NOW - timedelta(hours=3),
        ),
    ]


@pytest.fixture
def store(depot: Depot, vehicles: list[Vehicle]) -> FleetStore:
    return FleetStore(
        vehicles=vehicles,
        depots=[depot],
        resources=[
            ChargingStall(id="S1", depot_id="D1", power_kw=150),
            ChargingStall(id="S2", depot_id="D1", power_kw=50),
            ChargingStall(id="S3", depot_id="D1", power_kw=100, status=ResourceStatus.MAINTENANCE),
            DetailingBay(id="B1", depot_id="D1"),
        ],
    )


@pytest.fixture
def scheduler(store: FleetStore, clock: FixedClock) -> ResourceScheduler:
    return ResourceScheduler(store, clock=clock)


@pytest.fixture
def predictor(store: FleetStore, clock: FixedClock) -> RiskPredictionEngine:
    return RiskPredictionEngine(store, clock=clock)


@pytest.fixture
def automation(
    store: FleetStore,
    scheduler: ResourceScheduler,
    predictor: RiskPredictionEngine,
    clock: FixedClock,
) -> AutomationEngine:
    return AutomationEngine(store, scheduler, predictor, clock=clock)


@pytest.fixture
def demo_runtime() -> FleetOpsRuntime:
    """The bundled three-depot demo fleet, pinned to ``NOW``."""
    return build_runtime(build_demo_store(NOW), clock=FixedClock(NOW))
