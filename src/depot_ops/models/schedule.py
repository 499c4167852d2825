"""Scheduling contracts — assignments, booking results, plans and reports."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from depot_ops.models.fleet import Vehicle


class AssignmentKind(str, Enum):
    CHARGING = "charging"
    DETAILING = "detailing"


class AssignmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED)


class ScheduleAssignment(BaseModel):
    """One booking of a resource by a vehicle over ``[start_time, end_time)``."""

    id: str
    vehicle_id: str
    resource_id: str
    start_time: datetime
    end_time: datetime
    kind: AssignmentKind
    status: AssignmentStatus = AssignmentStatus.SCHEDULED

    @property
    def is_live(self) -> bool:
        return not self.status.is_terminal

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test: back-to-back windows do not conflict."""
        return start < self.end_time and end > self.start_time


class BookingError(str, Enum):
    """Reason codes for a rejected booking."""

    NOT_FOUND = "not_found"
    INVALID_RANGE = "invalid_range"
    RESOURCE_UNAVAILABLE = "resource_unavailable"
    VEHICLE_UNAVAILABLE = "vehicle_unavailable"
    DOUBLE_BOOKING = "double_booking"


class BookingResult(BaseModel):
    """Typed outcome of ``schedule_vehicle`` / ``assign_detailing``.

    Failures carry a reason code and never raise, so batch callers can report
    partial success.
    """

    success: bool
    assignment: ScheduleAssignment | None = None
    error: BookingError | None = None
    message: str = ""
    conflicting_assignment_id: str | None = None

    @classmethod
    def ok(cls, assignment: ScheduleAssignment) -> BookingResult:
        return cls(success=True, assignment=assignment, message="Booked")

    @classmethod
    def fail(
        cls,
        error: BookingError,
        message: str,
        conflicting_assignment_id: str | None = None,
    ) -> BookingResult:
        return cls(
            success=False,
            error=error,
            message=message,
            conflicting_assignment_id=conflicting_assignment_id,
        )


class ChargingQueue(BaseModel):
    depot_id: str
    vehicles: list[Vehicle]
    estimated_wait_minutes: dict[str, int] = Field(default_factory=dict)


OptimizationObjective = Literal["minimize_wait", "maximize_utilization", "minimize_energy_cost"]


class PlanMetrics(BaseModel):
    objective: OptimizationObjective
    total_charging_minutes: float
    utilization_rate: float
    """assignments / available stalls (0 when no stall is available)."""
    avg_wait_minutes: float
    vehicles_considered: int
    stalls_considered: int


class OptimizationPlan(BaseModel):
    """Proposed batch of charging assignments. Never persisted."""

    depot_id: str
    horizon_minutes: int
    generated_at: datetime
    assignments: list[ScheduleAssignment]
    metrics: PlanMetrics


class SessionStats(BaseModel):
    total_sessions: int
    avg_session_minutes: float
    utilization: float


class UtilizationReport(BaseModel):
    depot_id: str
    period_start: datetime
    period_end: datetime
    vehicle_utilization: float
    stall_utilization: float
    bay_utilization: float
    peak_hour: datetime
    avg_state_of_charge: float
    charging: SessionStats
    detailing: SessionStats
    recommendations: list[str]
