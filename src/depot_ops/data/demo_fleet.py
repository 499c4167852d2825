"""Demo fleet — three depots, their stalls and bays, and a mixed vehicle fleet.

Backs the HTTP layer out of the box.  Everything is deterministic; dates are
placed relative to ``now`` so maintenance-due and idle triggers behave the
same whenever the demo is loaded.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from depot_ops.models.fleet import (
    ChargingStall,
    Depot,
    DetailingBay,
    FleetConditions,
    Incident,
    MaintenanceAlert,
    OperationalMetrics,
    ResourceStatus,
    SafetyMetrics,
    Vehicle,
    VehicleStatus,
)
from depot_ops.store import FleetStore

NASHVILLE = "depot-mini-nash"
AUSTIN = "depot-max-aus"
PHOENIX = "depot-hub-phx"

DEPOTS = [
    Depot(id=NASHVILLE, name="OTTOYARD Mini - Nashville", city="Nashville", capacity=20, charging_capacity=8),
    Depot(id=AUSTIN, name="OTTOYARD Max - Austin", city="Austin", capacity=40, charging_capacity=16),
    Depot(id=PHOENIX, name="OTTOYARD Hub - Phoenix", city="Phoenix", capacity=30, charging_capacity=12),
]


def _stalls() -> list[ChargingStall]:
    stalls: list[ChargingStall] = []
    for i in range(8):
        stalls.append(ChargingStall(
            id=f"N-{i + 1}",
            depot_id=NASHVILLE,
            power_kw=150.0 if i % 3 == 0 else 250.0 if i % 5 == 0 else 75.0,
            status=ResourceStatus.MAINTENANCE if i == 7 else ResourceStatus.AVAILABLE,
        ))
    for i in range(16):
        stalls.append(ChargingStall(
            id=f"A-{i + 1}",
            depot_id=AUSTIN,
            power_kw=250.0 if i % 2 == 0 else 350.0 if i % 7 == 0 else 150.0,
            status=ResourceStatus.MAINTENANCE if i % 10 == 9 else ResourceStatus.AVAILABLE,
        ))
    for i in range(12):
        stalls.append(ChargingStall(
            id=f"P-{i + 1}",
            depot_id=PHOENIX,
            power_kw=350.0 if i < 2 else 150.0,
        ))
    return stalls


def _bays() -> list[DetailingBay]:
    counts = {NASHVILLE: ("NB", 3), AUSTIN: ("AB", 6), PHOENIX: ("PB", 4)}
    return [
        DetailingBay(id=f"{prefix}-{i + 1}", depot_id=depot_id)
        for depot_id, (prefix, count) in counts.items()
        for i in range(count)
    ]


def _vehicles(now: datetime) -> list[Vehicle]:
    day = timedelta(days=1)
    return [
        Vehicle(
            id="V-001", name="Waymo Jaguar I-PACE", city="Nashville", current_depot_id=NASHVILLE,
            state_of_charge=0.12, battery_capacity_kwh=90, autonomy_level="L4",
            mileage=52_000, engine_hours=2_400, next_maintenance_date=now + 5 * day,
            revenue_per_day=620, current_route="route-001",
        ),
        Vehicle(
            id="V-002", name="Zoox Robotaxi", city="Nashville", current_depot_id=NASHVILLE,
            state_of_charge=0.34, battery_capacity_kwh=133, autonomy_level="L5",
            mileage=18_500, engine_hours=800, next_maintenance_date=now + 40 * day,
            revenue_per_day=710, current_route="route-001",
        ),
        Vehicle(
            id="V-003", name="Cruise Origin", city="Nashville", current_depot_id=NASHVILLE,
            state_of_charge=0.81, status=VehicleStatus.IDLE, idle_since=now - timedelta(hours=3),
            battery_capacity_kwh=100, autonomy_level="L4", mileage=33_000, engine_hours=1_500,
            next_maintenance_date=now + 20 * day, revenue_per_day=540,
        ),
        Vehicle(
            id="V-004", name="Tesla Model Y", city="Nashville", current_depot_id=NASHVILLE,
            state_of_charge=0.58, status=VehicleStatus.ACTIVE, battery_capacity_kwh=75,
            autonomy_level="L3", mileage=71_000, engine_hours=3_200,
            next_maintenance_date=now - 2 * day, revenue_per_day=480, current_route="route-003",
            operational_metrics=OperationalMetrics(uptime=0.82, utilization_rate=0.93, maintenance_cost_per_km=0.12),
            safety_metrics=SafetyMetrics(safety_score=95.5, disengagement_rate=0.00015),
        ),
        Vehicle(
            id="V-005", name="Waymo Jaguar I-PACE", city="Austin", current_depot_id=AUSTIN,
            state_of_charge=0.08, battery_capacity_kwh=90, autonomy_level="L4",
            mileage=88_000, engine_hours=3_600, next_maintenance_date=now + 3 * day,
            revenue_per_day=650, current_route="route-002",
            predictive_alerts=[MaintenanceAlert(
                component="battery", confidence=0.82,
                recommendation="Battery cell imbalance detected", cost_impact=4_200,
            )],
        ),
        Vehicle(
            id="V-006", name="Zoox Robotaxi", city="Austin", current_depot_id=AUSTIN,
            state_of_charge=0.22, battery_capacity_kwh=133, autonomy_level="L5",
            mileage=41_000, engine_hours=1_900, next_maintenance_date=now + 12 * day,
            revenue_per_day=700,
        ),
        Vehicle(
            id="V-007", name="Cruise Origin", city="Austin", current_depot_id=AUSTIN,
            state_of_charge=0.67, status=VehicleStatus.IDLE, idle_since=now - timedelta(minutes=45),
            battery_capacity_kwh=100, autonomy_level="L4", mileage=27_000, engine_hours=1_100,
            next_maintenance_date=now + 25 * day, revenue_per_day=560,
        ),
        Vehicle(
            id="V-008", name="Motional IONIQ 5", city="Austin", current_depot_id=AUSTIN,
            state_of_charge=0.45, status=VehicleStatus.MAINTENANCE, battery_capacity_kwh=77,
            autonomy_level="L4", mileage=64_000, engine_hours=2_800,
            next_maintenance_date=now - 1 * day, revenue_per_day=0,
            operational_metrics=OperationalMetrics(uptime=0.78),
        ),
        Vehicle(
            id="V-009", name="Tesla Model Y", city="Austin", current_depot_id=AUSTIN,
            state_of_charge=0.91, status=VehicleStatus.IDLE, idle_since=now - timedelta(hours=5),
            battery_capacity_kwh=75, autonomy_level="L3", mileage=15_000, engine_hours=600,
            next_maintenance_date=now + 60 * day, revenue_per_day=430,
        ),
        Vehicle(
            id="V-010", name="May Mobility Sienna", city="Phoenix", current_depot_id=PHOENIX,
            state_of_charge=0.29, battery_capacity_kwh=60, autonomy_level="L4",
            mileage=46_000, engine_hours=2_100, next_maintenance_date=now + 9 * day,
            revenue_per_day=390, current_route="route-004",
            safety_metrics=SafetyMetrics(safety_score=96.8, disengagement_rate=0.00012),
        ),
        Vehicle(
            id="V-011", name="Waymo Jaguar I-PACE", city="Phoenix", current_depot_id=PHOENIX,
            state_of_charge=0.74, status=VehicleStatus.ACTIVE, battery_capacity_kwh=90,
            autonomy_level="L4", mileage=9_000, engine_hours=400,
            next_maintenance_date=now + 75 * day, revenue_per_day=690, current_route="route-004",
        ),
        Vehicle(
            id="V-012", name="Zoox Robotaxi", city="Phoenix", current_depot_id=PHOENIX,
            state_of_charge=0.17, battery_capacity_kwh=133, autonomy_level="L5",
            mileage=58_000, engine_hours=2_500, next_maintenance_date=None,
            revenue_per_day=720,
        ),
    ]


def build_demo_store(now: datetime | None = None) -> FleetStore:
    """A fresh, independent demo ``FleetStore``."""
    now = now or datetime.now(timezone.utc)
    return FleetStore(
        vehicles=_vehicles(now),
        depots=[d.model_copy() for d in DEPOTS],
        resources=[*_stalls(), *_bays()],
        incidents=[
            Incident(
                id="INC-001", vehicle_id="V-004", incident_type="collision",
                severity="high", created_at=now - timedelta(minutes=20),
            ),
        ],
        conditions=FleetConditions(weather="clear", traffic="moderate"),
    )
