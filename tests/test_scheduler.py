"""Tests for the resource scheduler.

Covers:
  - Booking path: success, half-open overlaps, reason codes, no mutation on rejection
  - Concurrent bookings on one stall
  - Release back to available
  - Charging queue ordering and wait estimates
  - Greedy optimization plan and applying it
  - Utilization report
"""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from conftest import NOW
from depot_ops.engine.scheduler import ResourceScheduler
from depot_ops.exceptions import InvalidParameterError, NotFoundError
from depot_ops.models.fleet import ChargingStall, Depot, ResourceStatus, Vehicle, VehicleStatus
from depot_ops.models.schedule import AssignmentStatus, BookingError
from depot_ops.store import FleetStore


def _hours(h: float):
    return NOW + timedelta(hours=h)


# ═══════════════════════════════════════════════════════════════════════════
# Booking
# ═══════════════════════════════════════════════════════════════════════════


class TestBooking:
    def test_successful_booking_updates_state(self, scheduler, store):
        result = scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        assert result.success
        assert result.error is None
        assert result.assignment.resource_id == "S1"
        assert result.assignment.status == AssignmentStatus.SCHEDULED

        vehicle = store.get_vehicle("V1")
        assert vehicle.status == VehicleStatus.CHARGING
        assert vehicle.current_resource_id == "S1"
        stall = store.get_resource("S1")
        assert stall.status == ResourceStatus.OCCUPIED
        assert stall.occupying_vehicle_id == "V1"
        assert stall.reserved_until == _hours(1)

    def test_future_booking_reserves(self, scheduler, store):
        scheduler.schedule_vehicle("V1", "S1", _hours(2), _hours(3))
        assert store.get_resource("S1").status == ResourceStatus.RESERVED

    def test_overlapping_booking_is_double_booking(self, scheduler):
        first = scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        second = scheduler.schedule_vehicle("V2", "S1", _hours(0.5), _hours(1.5))
        assert not second.success
        assert second.error == BookingError.DOUBLE_BOOKING
        assert second.conflicting_assignment_id == first.assignment.id

    def test_back_to_back_bookings_do_not_conflict(self, scheduler):
        scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        result = scheduler.schedule_vehicle("V2", "S1", _hours(1), _hours(2))
        assert result.success

    def test_rejection_leaves_state_untouched(self, scheduler, store):
        scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        before = store.snapshot(NOW)
        scheduler.schedule_vehicle("V2", "S1", _hours(0.5), _hours(1.5))
        after = store.snapshot(NOW)
        assert after.assignments == before.assignments
        assert store.get_vehicle("V2").status == VehicleStatus.AVAILABLE
        assert store.get_resource("S1").occupying_vehicle_id == "V1"

    def test_unknown_vehicle(self, scheduler):
        result = scheduler.schedule_vehicle("V-404", "S1", _hours(0), _hours(1))
        assert result.error == BookingError.NOT_FOUND

    def test_unknown_stall(self, scheduler):
        result = scheduler.schedule_vehicle("V1", "S-404", _hours(0), _hours(1))
        assert result.error == BookingError.NOT_FOUND

    def test_bay_is_not_a_charging_stall(self, scheduler):
        result = scheduler.schedule_vehicle("V1", "B1", _hours(0), _hours(1))
        assert result.error == BookingError.NOT_FOUND

    def test_stall_is_not_a_detailing_bay(self, scheduler):
        result = scheduler.assign_detailing("V1", "S1", _hours(0), _hours(1))
        assert result.error == BookingError.NOT_FOUND

    @pytest.mark.parametrize("start, end", [(0, 0), (2, 1)])
    def test_invalid_range(self, scheduler, start, end):
        result = scheduler.schedule_vehicle("V1", "S1", _hours(start), _hours(end))
        assert result.error == BookingError.INVALID_RANGE

    def test_stall_in_maintenance(self, scheduler):
        result = scheduler.schedule_vehicle("V1", "S3", _hours(0), _hours(1))
        assert result.error == BookingError.RESOURCE_UNAVAILABLE

    def test_busy_vehicle(self, scheduler):
        scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        result = scheduler.schedule_vehicle("V1", "S2", _hours(2), _hours(3))
        assert result.error == BookingError.VEHICLE_UNAVAILABLE

    def test_detailing_booking(self, scheduler, store):
        result = scheduler.assign_detailing("V2", "B1", _hours(0), _hours(1))
        assert result.success
        assert result.assignment.kind.value == "detailing"
        assert store.get_vehicle("V2").status == VehicleStatus.DETAILING

    def test_naive_datetimes_are_utc(self, scheduler):
        naive = NOW.replace(tzinfo=None)
        result = scheduler.schedule_vehicle("V1", "S1", naive, naive + timedelta(hours=1))
        assert result.success
        assert result.assignment.start_time == NOW

    def test_concurrent_bookings_never_overlap(self, clock):
        count = 40
        store = FleetStore(
            vehicles=[Vehicle(id=f"C{i:02d}", current_depot_id="D1", state_of_charge=0.3) for i in range(count)],
            depots=[Depot(id="D1", name="Busy Depot", charging_capacity=1)],
            resources=[ChargingStall(id="S1", depot_id="D1", power_kw=150)],
        )
        scheduler = ResourceScheduler(store, clock=clock)
        barrier = threading.Barrier(count)
        results = [None] * count

        def book(i: int) -> None:
            barrier.wait()
            # 30-minute windows starting every 6 minutes, so each overlaps its neighbours
            results[i] = scheduler.schedule_vehicle(f"C{i:02d}", "S1", _hours(i * 0.1), _hours(i * 0.1 + 0.5))

        threads = [threading.Thread(target=book, args=(i,)) for i in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        live = store.live_assignments_for_resource("S1")
        assert sum(r.success for r in results) == len(live) > 0
        for i, a in enumerate(live):
            for b in live[i + 1:]:
                assert not a.overlaps(b.start_time, b.end_time)
        rejected = {r.error for r in results if not r.success}
        assert rejected <= {BookingError.DOUBLE_BOOKING}


# ═══════════════════════════════════════════════════════════════════════════
# Release
# ═══════════════════════════════════════════════════════════════════════════


class TestRelease:
    def test_release_frees_stall_and_vehicle(self, scheduler, store):
        booking = scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        released = scheduler.release(booking.assignment.id)
        assert released.status == AssignmentStatus.COMPLETED
        assert store.get_resource("S1").status == ResourceStatus.AVAILABLE
        assert store.get_resource("S1").occupying_vehicle_id is None
        assert store.get_vehicle("V1").status == VehicleStatus.AVAILABLE

    def test_released_window_can_be_rebooked(self, scheduler):
        booking = scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        scheduler.release(booking.assignment.id, AssignmentStatus.CANCELLED)
        assert scheduler.schedule_vehicle("V2", "S1", _hours(0), _hours(1)).success

    def test_release_requires_terminal_status(self, scheduler):
        booking = scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        with pytest.raises(InvalidParameterError):
            scheduler.release(booking.assignment.id, AssignmentStatus.ACTIVE)

    def test_release_unknown_assignment(self, scheduler):
        with pytest.raises(NotFoundError):
            scheduler.release("SA-missing")


# ═══════════════════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════════════════


class TestQueries:
    def test_list_resources_highest_power_first(self, scheduler):
        ids = [r.id for r in scheduler.list_resources("D1")]
        assert ids == ["S1", "S3", "S2", "B1"]

    def test_list_resources_filters(self, scheduler):
        available = scheduler.list_stalls("D1", status=ResourceStatus.AVAILABLE)
        assert [s.id for s in available] == ["S1", "S2"]
        bays = scheduler.list_resources("D1", kind="detailing_bay")
        assert [b.id for b in bays] == ["B1"]

    def test_listed_resources_are_copies(self, scheduler, store):
        stall = scheduler.list_stalls("D1")[0]
        stall.status = ResourceStatus.MAINTENANCE
        assert store.get_resource(stall.id).status == ResourceStatus.AVAILABLE

    def test_charging_queue_lowest_soc_first(self, scheduler):
        queue = scheduler.get_charging_queue("D1")
        # V3 is idle, not available
        assert [v.id for v in queue.vehicles] == ["V1", "V2"]
        assert queue.estimated_wait_minutes == {"V1": 0, "V2": 45}

    def test_charging_queue_excludes_charging_vehicles(self, scheduler):
        scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        queue = scheduler.get_charging_queue("D1")
        assert [v.id for v in queue.vehicles] == ["V2"]


# ═══════════════════════════════════════════════════════════════════════════
# Optimization
# ═══════════════════════════════════════════════════════════════════════════


class TestOptimize:
    def test_greedy_pairing(self, scheduler):
        plan = scheduler.optimize("D1")
        pairs = [(a.vehicle_id, a.resource_id) for a in plan.assignments]
        assert pairs == [("V1", "S1"), ("V2", "S2")]

    def test_durations_and_stagger(self, scheduler):
        plan = scheduler.optimize("D1", horizon_minutes=120)
        first, second = plan.assignments
        # (0.8 - 0.1) × 75 kWh / (150 kW / 60)
        assert first.start_time == NOW
        assert (first.end_time - first.start_time) == timedelta(minutes=21)
        # (0.8 - 0.5) × 100 kWh / (50 kW / 60)
        assert second.start_time == NOW + timedelta(minutes=10)
        assert (second.end_time - second.start_time).total_seconds() == pytest.approx(36 * 60)

    def test_duration_capped_at_horizon(self, scheduler):
        plan = scheduler.optimize("D1", horizon_minutes=30)
        second = plan.assignments[1]
        assert (second.end_time - second.start_time) == timedelta(minutes=30)

    def test_metrics(self, scheduler):
        plan = scheduler.optimize("D1", objective="maximize_utilization")
        assert plan.metrics.objective == "maximize_utilization"
        assert plan.metrics.vehicles_considered == 2
        assert plan.metrics.stalls_considered == 2
        assert plan.metrics.utilization_rate == 1.0
        assert plan.metrics.total_charging_minutes == pytest.approx(57.0)

    def test_plan_is_not_persisted(self, scheduler, store):
        scheduler.optimize("D1")
        assert store.assignments() == []
        assert store.get_vehicle("V1").status == VehicleStatus.AVAILABLE

    def test_no_stalls_means_empty_plan(self, scheduler):
        plan = scheduler.optimize("D-empty")
        assert plan.assignments == []
        assert plan.metrics.utilization_rate == 0.0

    def test_apply_plan_books_every_pair(self, scheduler, store):
        results = scheduler.apply_plan(scheduler.optimize("D1"))
        assert all(r.success for r in results)
        assert store.get_vehicle("V1").status == VehicleStatus.CHARGING
        assert store.get_vehicle("V2").status == VehicleStatus.CHARGING

    def test_stale_plan_reports_rejections(self, scheduler):
        plan = scheduler.optimize("D1")
        scheduler.schedule_vehicle("V1", "S2", _hours(0), _hours(1))
        results = scheduler.apply_plan(plan)
        assert results[0].error == BookingError.VEHICLE_UNAVAILABLE
        assert results[1].error == BookingError.DOUBLE_BOOKING


# ═══════════════════════════════════════════════════════════════════════════
# Utilization
# ═══════════════════════════════════════════════════════════════════════════


class TestUtilization:
    def test_empty_window(self, scheduler):
        report = scheduler.utilization_report("D1", _hours(0), _hours(2))
        assert report.stall_utilization == 0.0
        assert report.charging.total_sessions == 0
        assert any(r.startswith("Low stall utilization (0%)") for r in report.recommendations)
        assert any(r.startswith("Low bay utilization") for r in report.recommendations)
        assert report.peak_hour == _hours(2)

    def test_sessions_in_window(self, scheduler):
        scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(1))
        scheduler.assign_detailing("V2", "B1", _hours(0), _hours(0.5))
        report = scheduler.utilization_report("D1", _hours(0), _hours(2))
        # three stalls at the depot, including the one in maintenance
        assert report.stall_utilization == pytest.approx(0.3333)
        assert report.bay_utilization == 1.0
        assert report.vehicle_utilization == pytest.approx(0.6667)
        assert report.charging.avg_session_minutes == 60.0
        assert report.detailing.avg_session_minutes == 30.0
        assert report.avg_state_of_charge == pytest.approx(0.5)

    def test_sessions_outside_window_ignored(self, scheduler):
        scheduler.schedule_vehicle("V1", "S1", _hours(3), _hours(4))
        report = scheduler.utilization_report("D1", _hours(0), _hours(3))
        assert report.charging.total_sessions == 0

    def test_long_sessions_recommend_faster_stalls(self, scheduler):
        scheduler.schedule_vehicle("V1", "S1", _hours(0), _hours(3))
        report = scheduler.utilization_report("D1", _hours(0), _hours(4))
        assert any("higher power stalls" in r for r in report.recommendations)
