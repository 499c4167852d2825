"""Resource scheduler — depot stall/bay booking, greedy planning, utilization.

The booking path (``schedule_vehicle`` / ``assign_detailing``) is the single
mutation point for vehicle and resource state.  It runs under the store lock
and enforces, per resource:

    for every pair of live assignments A, B:
        not (A.start < B.end and A.end > B.start)

Rejected bookings return a ``BookingResult`` with a reason code and leave
state untouched.  No retries happen here; callers choose another stall/time.

Greedy charging plan (``optimize``):
  1. Vehicles: available, SOC < target, ascending SOC
  2. Stalls:   available, descending power (ties by id)
  3. Pair vehicle i with stall i, up to min(|vehicles|, |stalls|)
  4. duration = ((target − soc) × capacity_kWh) / (power_kW / 60), capped at horizon
  5. start_i = now + i × stagger;  end = start + duration

The ``objective`` is echoed in the plan metrics but does not change the
pairing.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta

import numpy as np

from depot_ops.clock import Clock, SystemClock, ensure_utc
from depot_ops.config.scheduler import SchedulerSettings
from depot_ops.config.settings import DEFAULT_CHARGE_TARGET_SOC
from depot_ops.engine.helpers import safe_ratio
from depot_ops.exceptions import InvalidParameterError
from depot_ops.models.fleet import (
    ChargingStall,
    DetailingBay,
    ResourceStatus,
    Vehicle,
    VehicleStatus,
)
from depot_ops.models.schedule import (
    AssignmentKind,
    AssignmentStatus,
    BookingError,
    BookingResult,
    ChargingQueue,
    OptimizationObjective,
    OptimizationPlan,
    PlanMetrics,
    ScheduleAssignment,
    SessionStats,
    UtilizationReport,
)
from depot_ops.store import FleetSnapshot, FleetStore

logger = logging.getLogger(__name__)

_BUSY_VEHICLE_STATUSES = (
    VehicleStatus.CHARGING,
    VehicleStatus.DETAILING,
    VehicleStatus.MAINTENANCE,
)


def _resource_sort_key(resource: ChargingStall | DetailingBay) -> tuple[float, str]:
    return (-resource.power_kw, resource.id)


def _new_assignment_id(kind: AssignmentKind) -> str:
    prefix = "SA" if kind == AssignmentKind.CHARGING else "DA"
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class ResourceScheduler:
    """Books depot resources for vehicles and reports on their use."""

    def __init__(
        self,
        store: FleetStore,
        settings: SchedulerSettings | None = None,
        clock: Clock | None = None,
        charge_target_soc: float = DEFAULT_CHARGE_TARGET_SOC,
    ) -> None:
        self._store = store
        self._settings = settings or SchedulerSettings()
        self._clock = clock or SystemClock()
        self._charge_target_soc = charge_target_soc

    @property
    def settings(self) -> SchedulerSettings:
        return self._settings

    @property
    def charge_target_soc(self) -> float:
        return self._charge_target_soc

    # ── Queries ─────────────────────────────────────────────────────────

    def list_resources(
        self,
        depot_id: str,
        status: ResourceStatus | str | None = None,
        kind: str | None = None,
    ) -> list[ChargingStall | DetailingBay]:
        """Depot resources, highest power first (bays count as 0 kW)."""
        with self._store.locked():
            resources = [
                r.model_copy(deep=True)
                for r in self._store.resources()
                if r.depot_id == depot_id
                and (status is None or r.status == status)
                and (kind is None or r.kind == kind)
            ]
        return sorted(resources, key=_resource_sort_key)

    def list_stalls(self, depot_id: str, status: ResourceStatus | str | None = None) -> list[ChargingStall]:
        return self.list_resources(depot_id, status=status, kind="charging_stall")

    def get_charging_queue(self, depot_id: str) -> ChargingQueue:
        """Available vehicles below the charge target, most urgent (lowest SOC) first."""
        snapshot = self._store.snapshot(self._clock.now())
        vehicles = self._queue_candidates(snapshot, depot_id)
        available_stalls = [
            s for s in snapshot.stalls_at(depot_id) if s.status == ResourceStatus.AVAILABLE
        ]
        return ChargingQueue(
            depot_id=depot_id,
            vehicles=vehicles,
            estimated_wait_minutes=self._estimate_waits(vehicles, len(available_stalls)),
        )

    def _queue_candidates(self, snapshot: FleetSnapshot, depot_id: str) -> list[Vehicle]:
        target = self._charge_target_soc
        candidates = [
            v for v in snapshot.vehicles_at(depot_id)
            if v.status == VehicleStatus.AVAILABLE and v.state_of_charge < target
        ]
        return sorted(candidates, key=lambda v: v.state_of_charge)

    def _estimate_waits(self, vehicles: list[Vehicle], available_stalls: int) -> dict[str, int]:
        waits: dict[str, int] = {}
        for index, vehicle in enumerate(vehicles):
            if min(index, available_stalls) == 0:
                waits[vehicle.id] = 0
            else:
                waits[vehicle.id] = math.ceil(index / available_stalls) * self._settings.avg_session_minutes
        return waits

    # ── Booking ─────────────────────────────────────────────────────────

    def schedule_vehicle(
        self,
        vehicle_id: str,
        resource_id: str,
        start: datetime,
        end: datetime,
    ) -> BookingResult:
        """Book a charging stall for ``[start, end)``."""
        return self._book(vehicle_id, resource_id, start, end, AssignmentKind.CHARGING)

    def assign_detailing(
        self,
        vehicle_id: str,
        bay_id: str,
        start: datetime,
        end: datetime,
    ) -> BookingResult:
        """Book a detailing bay for ``[start, end)``."""
        return self._book(vehicle_id, bay_id, start, end, AssignmentKind.DETAILING)

    def _book(
        self,
        vehicle_id: str,
        resource_id: str,
        start: datetime,
        end: datetime,
        kind: AssignmentKind,
    ) -> BookingResult:
        start, end = ensure_utc(start), ensure_utc(end)
        expected_type = ChargingStall if kind == AssignmentKind.CHARGING else DetailingBay
        label = "Charging stall" if kind == AssignmentKind.CHARGING else "Detailing bay"

        with self._store.locked():
            vehicle = self._store.find_vehicle(vehicle_id)
            if vehicle is None:
                return self._reject(BookingError.NOT_FOUND, f"Vehicle {vehicle_id} not found")

            resource = self._store.find_resource(resource_id)
            if not isinstance(resource, expected_type):
                return self._reject(BookingError.NOT_FOUND, f"{label} {resource_id} not found")

            if start >= end:
                return self._reject(
                    BookingError.INVALID_RANGE,
                    f"Start {start.isoformat()} must be before end {end.isoformat()}",
                )

            if not self._is_bookable(resource):
                return self._reject(
                    BookingError.RESOURCE_UNAVAILABLE,
                    f"{label} {resource_id} is not available ({resource.status.value})",
                )

            if vehicle.status in _BUSY_VEHICLE_STATUSES:
                return self._reject(
                    BookingError.VEHICLE_UNAVAILABLE,
                    f"Vehicle {vehicle_id} is already {vehicle.status.value}",
                )

            for other in self._store.live_assignments_for_resource(resource_id):
                if other.overlaps(start, end):
                    return self._reject(
                        BookingError.DOUBLE_BOOKING,
                        f"{label} {resource_id} is already booked from "
                        f"{other.start_time.isoformat()} to {other.end_time.isoformat()}",
                        conflicting_assignment_id=other.id,
                    )

            assignment = ScheduleAssignment(
                id=_new_assignment_id(kind),
                vehicle_id=vehicle_id,
                resource_id=resource_id,
                start_time=start,
                end_time=end,
                kind=kind,
                status=AssignmentStatus.SCHEDULED,
            )
            self._store.add_assignment(assignment)

            self._refresh_resource(resource)
            vehicle.status = (
                VehicleStatus.CHARGING if kind == AssignmentKind.CHARGING else VehicleStatus.DETAILING
            )
            vehicle.current_resource_id = resource.id
            vehicle.current_depot_id = resource.depot_id

        logger.info(
            "Booked %s %s for vehicle %s (%s → %s)",
            resource.kind, resource_id, vehicle_id, start.isoformat(), end.isoformat(),
        )
        return BookingResult.ok(assignment.model_copy(deep=True))

    def _reject(
        self,
        error: BookingError,
        message: str,
        conflicting_assignment_id: str | None = None,
    ) -> BookingResult:
        logger.warning("Booking rejected (%s): %s", error.value, message)
        return BookingResult.fail(error, message, conflicting_assignment_id)

    def _is_bookable(self, resource: ChargingStall | DetailingBay) -> bool:
        """Available resources are bookable; reserved/occupied ones only when
        the hold comes from this scheduler's own live assignments."""
        if resource.status == ResourceStatus.AVAILABLE:
            return True
        if resource.status == ResourceStatus.MAINTENANCE:
            return False
        return bool(self._store.live_assignments_for_resource(resource.id))

    def _refresh_resource(self, resource: ChargingStall | DetailingBay) -> None:
        """Derive resource status from its live assignments (caller holds the lock)."""
        live = self._store.live_assignments_for_resource(resource.id)
        if not live:
            resource.status = ResourceStatus.AVAILABLE
            resource.occupying_vehicle_id = None
            resource.reserved_until = None
            return
        now = self._clock.now()
        current = [a for a in live if a.start_time <= now < a.end_time]
        resource.status = ResourceStatus.OCCUPIED if current else ResourceStatus.RESERVED
        resource.reserved_until = max(a.end_time for a in live)
        holder = current[0] if current else min(live, key=lambda a: a.start_time)
        resource.occupying_vehicle_id = holder.vehicle_id

    def release(
        self,
        assignment_id: str,
        status: AssignmentStatus = AssignmentStatus.COMPLETED,
    ) -> ScheduleAssignment:
        """Move an assignment to a terminal state and free what it held."""
        if not status.is_terminal:
            raise InvalidParameterError(f"release status must be terminal, got {status.value}")

        with self._store.locked():
            assignment = self._store.get_assignment(assignment_id)
            if assignment.is_live:
                assignment.status = status

                resource = self._store.get_resource(assignment.resource_id)
                self._refresh_resource(resource)

                vehicle = self._store.find_vehicle(assignment.vehicle_id)
                if (
                    vehicle is not None
                    and not self._store.live_assignments_for_vehicle(vehicle.id)
                    and vehicle.status in (VehicleStatus.CHARGING, VehicleStatus.DETAILING)
                ):
                    vehicle.status = VehicleStatus.AVAILABLE
                    vehicle.current_resource_id = None
                logger.info("Released %s as %s", assignment_id, status.value)
            return assignment.model_copy(deep=True)

    # ── Planning ────────────────────────────────────────────────────────

    def optimize(
        self,
        depot_id: str,
        horizon_minutes: int = 120,
        objective: OptimizationObjective = "minimize_wait",
    ) -> OptimizationPlan:
        """Greedy SOC-ascending × power-descending pairing.  Proposal only."""
        now = self._clock.now()
        snapshot = self._store.snapshot(now)
        target = self._charge_target_soc

        vehicles = self._queue_candidates(snapshot, depot_id)
        stalls = sorted(
            (s for s in snapshot.stalls_at(depot_id) if s.status == ResourceStatus.AVAILABLE),
            key=_resource_sort_key,
        )

        assignments: list[ScheduleAssignment] = []
        durations: list[float] = []
        batch = uuid.uuid4().hex[:8]
        for index, (vehicle, stall) in enumerate(zip(vehicles, stalls)):
            energy_kwh = (target - vehicle.state_of_charge) * vehicle.battery_capacity_kwh
            duration = min(energy_kwh / (stall.power_kw / 60.0), float(horizon_minutes))
            start = now + timedelta(minutes=index * self._settings.stagger_minutes)
            assignments.append(
                ScheduleAssignment(
                    id=f"OPT-{batch}-{index}",
                    vehicle_id=vehicle.id,
                    resource_id=stall.id,
                    start_time=start,
                    end_time=start + timedelta(minutes=duration),
                    kind=AssignmentKind.CHARGING,
                    status=AssignmentStatus.SCHEDULED,
                )
            )
            durations.append(duration)

        waits = self._estimate_waits(vehicles, len(stalls))
        avg_wait = float(np.mean(list(waits.values()))) if waits else 0.0

        return OptimizationPlan(
            depot_id=depot_id,
            horizon_minutes=horizon_minutes,
            generated_at=now,
            assignments=assignments,
            metrics=PlanMetrics(
                objective=objective,
                total_charging_minutes=round(sum(durations), 2),
                utilization_rate=round(safe_ratio(len(assignments), len(stalls)), 4),
                avg_wait_minutes=round(avg_wait, 2),
                vehicles_considered=len(vehicles),
                stalls_considered=len(stalls),
            ),
        )

    def apply_plan(self, plan: OptimizationPlan) -> list[BookingResult]:
        """Commit a plan pair by pair through the normal booking path."""
        results = [
            self.schedule_vehicle(a.vehicle_id, a.resource_id, a.start_time, a.end_time)
            for a in plan.assignments
        ]
        booked = sum(1 for r in results if r.success)
        logger.info("Applied plan for %s: %d/%d booked", plan.depot_id, booked, len(results))
        return results

    # ── Reporting ───────────────────────────────────────────────────────

    def utilization_report(self, depot_id: str, start: datetime, end: datetime) -> UtilizationReport:
        start, end = ensure_utc(start), ensure_utc(end)
        s = self._settings
        snapshot = self._store.snapshot(self._clock.now())

        stalls = snapshot.stalls_at(depot_id)
        bays = snapshot.bays_at(depot_id)
        depot_resource_ids = {r.id for r in stalls} | {r.id for r in bays}
        vehicles = snapshot.vehicles_at(depot_id)

        in_window = [
            a for a in snapshot.assignments
            if a.is_live and a.resource_id in depot_resource_ids and a.overlaps(start, end)
        ]
        charging = [a for a in in_window if a.kind == AssignmentKind.CHARGING]
        detailing = [a for a in in_window if a.kind == AssignmentKind.DETAILING]

        vehicle_util = safe_ratio(len(in_window), len(vehicles))
        stall_util = safe_ratio(len(charging), len(stalls))
        bay_util = safe_ratio(len(detailing), len(bays))
        avg_soc = float(np.mean([v.state_of_charge for v in vehicles])) if vehicles else 0.0

        charging_stats = SessionStats(
            total_sessions=len(charging),
            avg_session_minutes=_avg_minutes(charging),
            utilization=round(stall_util, 4),
        )
        detailing_stats = SessionStats(
            total_sessions=len(detailing),
            avg_session_minutes=_avg_minutes(detailing),
            utilization=round(bay_util, 4),
        )

        recommendations: list[str] = []
        if stall_util < s.low_stall_utilization:
            recommendations.append(
                f"Low stall utilization ({stall_util:.0%}) - consolidate charging windows "
                f"or route more vehicles to this depot"
            )
        if vehicle_util > s.high_vehicle_utilization:
            recommendations.append(
                f"Vehicle utilization is high ({vehicle_util:.0%}) - consider adding vehicles "
                f"or staggering bookings"
            )
        if bay_util < s.low_bay_utilization:
            recommendations.append(
                f"Low bay utilization ({bay_util:.0%}) - schedule additional detailing work"
            )
        if charging_stats.avg_session_minutes > s.long_session_minutes:
            recommendations.append(
                "Average charging time is high - consider upgrading to higher power stalls"
            )

        return UtilizationReport(
            depot_id=depot_id,
            period_start=start,
            period_end=end,
            vehicle_utilization=round(vehicle_util, 4),
            stall_utilization=round(stall_util, 4),
            bay_utilization=round(bay_util, 4),
            peak_hour=start + timedelta(hours=s.peak_hour_offset_hours),
            avg_state_of_charge=round(avg_soc, 4),
            charging=charging_stats,
            detailing=detailing_stats,
            recommendations=recommendations,
        )


def _avg_minutes(assignments: list[ScheduleAssignment]) -> float:
    if not assignments:
        return 0.0
    minutes = [(a.end_time - a.start_time).total_seconds() / 60.0 for a in assignments]
    return round(float(np.mean(minutes)), 2)
