"""Fleet store — the single owner of vehicle, resource and assignment state.

The scheduler is the only writer.  Writers and snapshot readers serialize on
one re-entrant lock; predictions and rule evaluation work from an immutable
``FleetSnapshot`` so they never observe a half-applied booking.

Usage::

    store = FleetStore(vehicles=[...], depots=[...], resources=[...])
    with store.locked():
        vehicle = store.get_vehicle("V1")
        vehicle.status = VehicleStatus.CHARGING
    snap = store.snapshot()
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator

from pydantic import BaseModel, Field

from depot_ops.exceptions import NotFoundError
from depot_ops.models.fleet import (
    Anomaly,
    ChargingStall,
    Depot,
    DetailingBay,
    FleetConditions,
    Incident,
    Resource,
    Vehicle,
)
from depot_ops.models.schedule import ScheduleAssignment


# ═══════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════

class FleetSnapshot(BaseModel):
    """Read-only copy of fleet state taken under the store lock."""

    taken_at: datetime
    vehicles: list[Vehicle] = Field(default_factory=list)
    depots: list[Depot] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    assignments: list[ScheduleAssignment] = Field(default_factory=list)
    incidents: list[Incident] = Field(default_factory=list)
    anomalies: list[Anomaly] = Field(default_factory=list)
    conditions: FleetConditions = Field(default_factory=FleetConditions)

    def vehicle(self, vehicle_id: str) -> Vehicle | None:
        return next((v for v in self.vehicles if v.id == vehicle_id), None)

    def depot(self, depot_id: str) -> Depot | None:
        return next((d for d in self.depots if d.id == depot_id), None)

    def vehicles_at(self, depot_id: str) -> list[Vehicle]:
        return [v for v in self.vehicles if v.current_depot_id == depot_id]

    def stalls_at(self, depot_id: str) -> list[ChargingStall]:
        return [
            r for r in self.resources
            if isinstance(r, ChargingStall) and r.depot_id == depot_id
        ]

    def bays_at(self, depot_id: str) -> list[DetailingBay]:
        return [
            r for r in self.resources
            if isinstance(r, DetailingBay) and r.depot_id == depot_id
        ]


# ═══════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════

class FleetStore:
    """In-memory fleet state guarded by a single re-entrant lock."""

    def __init__(
        self,
        vehicles: Iterable[Vehicle] = (),
        depots: Iterable[Depot] = (),
        resources: Iterable[ChargingStall | DetailingBay] = (),
        assignments: Iterable[ScheduleAssignment] = (),
        incidents: Iterable[Incident] = (),
        anomalies: Iterable[Anomaly] = (),
        conditions: FleetConditions | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._vehicles: dict[str, Vehicle] = {v.id: v for v in vehicles}
        self._depots: dict[str, Depot] = {d.id: d for d in depots}
        self._resources: dict[str, ChargingStall | DetailingBay] = {r.id: r for r in resources}
        self._assignments: dict[str, ScheduleAssignment] = {a.id: a for a in assignments}
        self._incidents: list[Incident] = list(incidents)
        self._anomalies: list[Anomaly] = list(anomalies)
        self._conditions = conditions or FleetConditions()

    @contextmanager
    def locked(self) -> Iterator[FleetStore]:
        with self._lock:
            yield self

    # ── Lookups ─────────────────────────────────────────────────────────

    def find_vehicle(self, vehicle_id: str) -> Vehicle | None:
        return self._vehicles.get(vehicle_id)

    def get_vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self._vehicles.get(vehicle_id)
        if vehicle is None:
            raise NotFoundError("vehicle", vehicle_id)
        return vehicle

    def find_resource(self, resource_id: str) -> ChargingStall | DetailingBay | None:
        return self._resources.get(resource_id)

    def get_resource(self, resource_id: str) -> ChargingStall | DetailingBay:
        resource = self._resources.get(resource_id)
        if resource is None:
            raise NotFoundError("resource", resource_id)
        return resource

    def get_depot(self, depot_id: str) -> Depot:
        depot = self._depots.get(depot_id)
        if depot is None:
            raise NotFoundError("depot", depot_id)
        return depot

    def get_assignment(self, assignment_id: str) -> ScheduleAssignment:
        assignment = self._assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError("assignment", assignment_id)
        return assignment

    def vehicles(self) -> list[Vehicle]:
        return list(self._vehicles.values())

    def depots(self) -> list[Depot]:
        return list(self._depots.values())

    def resources(self) -> list[ChargingStall | DetailingBay]:
        return list(self._resources.values())

    def assignments(self) -> list[ScheduleAssignment]:
        return list(self._assignments.values())

    def conditions(self) -> FleetConditions:
        return self._conditions.model_copy()

    def live_assignments_for_resource(self, resource_id: str) -> list[ScheduleAssignment]:
        return [a for a in self._assignments.values() if a.resource_id == resource_id and a.is_live]

    def live_assignments_for_vehicle(self, vehicle_id: str) -> list[ScheduleAssignment]:
        return [a for a in self._assignments.values() if a.vehicle_id == vehicle_id and a.is_live]

    # ── Writes ──────────────────────────────────────────────────────────

    def upsert_vehicle(self, vehicle: Vehicle) -> None:
        with self._lock:
            self._vehicles[vehicle.id] = vehicle

    def add_assignment(self, assignment: ScheduleAssignment) -> None:
        with self._lock:
            self._assignments[assignment.id] = assignment

    def record_incident(self, incident: Incident) -> None:
        """Append a fleet event.  Raises ``NotFoundError`` for an unknown vehicle."""
        with self._lock:
            self.get_vehicle(incident.vehicle_id)
            self._incidents.append(incident)

    def record_anomaly(self, anomaly: Anomaly) -> None:
        with self._lock:
            self.get_vehicle(anomaly.vehicle_id)
            self._anomalies.append(anomaly)

    def set_conditions(self, conditions: FleetConditions) -> None:
        with self._lock:
            self._conditions = conditions

    # ── Snapshot ────────────────────────────────────────────────────────

    def snapshot(self, taken_at: datetime | None = None) -> FleetSnapshot:
        """Deep copy of the whole fleet state, consistent as of one instant."""
        with self._lock:
            return FleetSnapshot(
                taken_at=taken_at or datetime.now(timezone.utc),
                vehicles=[v.model_copy(deep=True) for v in self._vehicles.values()],
                depots=[d.model_copy(deep=True) for d in self._depots.values()],
                resources=[r.model_copy(deep=True) for r in self._resources.values()],
                assignments=[a.model_copy(deep=True) for a in self._assignments.values()],
                incidents=[i.model_copy(deep=True) for i in self._incidents],
                anomalies=[a.model_copy(deep=True) for a in self._anomalies],
                conditions=self._conditions.model_copy(deep=True),
            )
