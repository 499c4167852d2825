"""Automation rule engine — rule management, evaluation and auto-queue proposals.

Rule lifecycle:
  - management toggles ``enabled`` (enable/disable) and adds/removes rules
  - every evaluation pass takes one fleet snapshot; for each enabled rule
    whose cooldown has elapsed, the trigger selects vehicles and the
    conditions narrow them (AND).  A non-empty match records an execution,
    stamps ``last_triggered_at`` and bumps ``execution_count``.

Rules are evaluated in insertion order and cannot observe each other's
effects within a pass: bookings requested by ``queue_for_charging`` actions
(non-dry-run passes only) are committed after the whole pass.

Auto-queue operations return proposals.  ``commit_charging_queue`` is the
only path here that books, and it goes through ``ResourceScheduler``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timedelta

from depot_ops.clock import Clock, SystemClock
from depot_ops.config.automation import AutomationSettings
from depot_ops.engine.helpers import round_half_up, safe_ratio
from depot_ops.engine.predictive import RiskPredictionEngine, filter_vehicles
from depot_ops.engine.rulebook import default_rules
from depot_ops.engine.scheduler import ResourceScheduler
from depot_ops.engine.triggers import TriggerContext, match_rule
from depot_ops.exceptions import NotFoundError, RuleError
from depot_ops.models.automation import (
    AutomationExecution,
    AutomationRule,
    AutoQueueResult,
    ChargingCommit,
    ChargingStrategy,
    JobType,
    QueueForChargingAction,
    QueuedJob,
    RebalanceCriteria,
    RebalancePlan,
    SkippedVehicle,
    VehicleMove,
)
from depot_ops.models.fleet import Priority, Vehicle, VehicleStatus
from depot_ops.models.schedule import BookingError
from depot_ops.store import FleetSnapshot, FleetStore

logger = logging.getLogger(__name__)

_IN_PROCESS = (VehicleStatus.CHARGING, VehicleStatus.MAINTENANCE)

# Booking rejections after which the next stall at the depot is tried.
_RETRYABLE = (BookingError.DOUBLE_BOOKING, BookingError.RESOURCE_UNAVAILABLE)


def charging_priority(soc: float) -> Priority:
    """SOC-derived priority for a queued charging job."""
    if soc < 0.10:
        return Priority.CRITICAL
    if soc < 0.20:
        return Priority.HIGH
    if soc < 0.35:
        return Priority.MEDIUM
    return Priority.LOW


def sort_by_strategy(vehicles: list[Vehicle], strategy: ChargingStrategy) -> list[Vehicle]:
    if strategy in ("urgent_first", "off_peak"):
        return sorted(vehicles, key=lambda v: v.state_of_charge)
    if strategy == "balanced":
        return sorted(
            vehicles,
            key=lambda v: v.state_of_charge + v.operational_metrics.utilization_rate,
        )
    if strategy == "revenue_optimal":
        return sorted(vehicles, key=lambda v: v.revenue_per_day, reverse=True)
    return list(vehicles)


class AutomationEngine:
    """Owns the rule set and the execution log; books only via the scheduler."""

    def __init__(
        self,
        store: FleetStore,
        scheduler: ResourceScheduler,
        predictor: RiskPredictionEngine,
        rules: list[AutomationRule] | None = None,
        settings: AutomationSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._predictor = predictor
        self._settings = settings or AutomationSettings()
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._rules: list[AutomationRule] = list(rules) if rules is not None else default_rules()
        self._log: deque[AutomationExecution] = deque(maxlen=self._settings.max_log_entries)

    @property
    def settings(self) -> AutomationSettings:
        return self._settings

    # ═══════════════════════════════════════════════════════════════════
    # Rule management
    # ═══════════════════════════════════════════════════════════════════

    def get_rules(self) -> list[AutomationRule]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._rules]

    def get_rule(self, rule_id: str) -> AutomationRule:
        with self._lock:
            return self._find(rule_id).model_copy(deep=True)

    def add_rule(self, rule: AutomationRule) -> AutomationRule:
        """Register a rule with fresh execution state.  Raises ``RuleError`` on a duplicate id."""
        now = self._clock.now()
        with self._lock:
            if any(r.id == rule.id for r in self._rules):
                raise RuleError(f"Rule already exists: {rule.id}")
            added = rule.model_copy(update={
                "execution_count": 0,
                "last_triggered_at": None,
                "created_at": now,
                "updated_at": now,
            }, deep=True)
            self._rules.append(added)
            logger.info("Added rule %s (%s)", added.id, added.trigger.type)
            return added.model_copy(deep=True)

    def remove_rule(self, rule_id: str) -> None:
        with self._lock:
            self._rules.remove(self._find(rule_id))
        logger.info("Removed rule %s", rule_id)

    def enable_rule(self, rule_id: str) -> AutomationRule:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> AutomationRule:
        return self._set_enabled(rule_id, False)

    def _set_enabled(self, rule_id: str, enabled: bool) -> AutomationRule:
        with self._lock:
            rule = self._find(rule_id)
            rule.enabled = enabled
            rule.updated_at = self._clock.now()
            return rule.model_copy(deep=True)

    def _find(self, rule_id: str) -> AutomationRule:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        raise NotFoundError("rule", rule_id)

    # ═══════════════════════════════════════════════════════════════════
    # Evaluation
    # ═══════════════════════════════════════════════════════════════════

    def evaluate_rules(self, dry_run: bool = True) -> list[AutomationExecution]:
        """Run one evaluation pass over every enabled rule.

        A rule that raises is logged and recorded as a failed execution; the
        remaining rules still run.  With ``dry_run=False``, charging actions
        are committed through the scheduler once the pass is complete.
        """
        with self._lock:
            now = self._clock.now()
            snapshot = self._store.snapshot(now)
            executions: list[AutomationExecution] = []
            pending: list[tuple[QueueForChargingAction, list[str]]] = []

            for rule in self._rules:
                if not rule.enabled:
                    continue
                try:
                    if not rule.cooldown_elapsed(now):
                        continue
                    ctx = TriggerContext(snapshot, now, self._predictor, last_fired=rule.last_triggered_at)
                    matched = match_rule(rule, ctx)
                except Exception as exc:
                    logger.exception("Rule %s failed during evaluation", rule.id)
                    executions.append(AutomationExecution(
                        rule_id=rule.id,
                        rule_name=rule.name,
                        triggered_at=now,
                        vehicles_affected=[],
                        actions_executed=[],
                        success=False,
                        message=f'Rule "{rule.name}" failed: {exc}',
                        dry_run=dry_run,
                    ))
                    continue

                if not matched:
                    continue

                vehicle_ids = [v.id for v in matched]
                executions.append(AutomationExecution(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    triggered_at=now,
                    vehicles_affected=vehicle_ids,
                    actions_executed=[a.type for a in rule.actions],
                    success=True,
                    message=f'Rule "{rule.name}" triggered for {len(matched)} vehicles',
                    dry_run=dry_run,
                ))
                rule.last_triggered_at = now
                rule.execution_count += 1
                logger.info("Rule %s fired for %d vehicles", rule.id, len(matched))

                if not dry_run:
                    pending.extend(
                        (action, vehicle_ids)
                        for action in rule.actions
                        if isinstance(action, QueueForChargingAction)
                    )

            self._log.extend(executions)

            for action, vehicle_ids in pending:
                proposal = self.auto_queue_charging(
                    strategy=action.strategy,
                    priority=action.priority,
                    vehicle_ids=vehicle_ids,
                    dry_run=False,
                )
                self.commit_charging_queue(proposal)

        return executions

    # ═══════════════════════════════════════════════════════════════════
    # Auto-queue: charging
    # ═══════════════════════════════════════════════════════════════════

    def auto_queue_charging(
        self,
        depot_id: str | None = None,
        city: str | None = None,
        strategy: ChargingStrategy = "balanced",
        max_concurrent: int = 10,
        soc_threshold: float = 0.40,
        dry_run: bool = True,
        priority: Priority | None = None,
        vehicle_ids: list[str] | None = None,
        snapshot: FleetSnapshot | None = None,
    ) -> AutoQueueResult:
        """Propose charging jobs for vehicles below ``soc_threshold``.

        Eligible vehicles are ordered by ``strategy`` and truncated to
        ``max_concurrent``; the overflow and any vehicle already charging or
        in maintenance come back as skipped.  Nothing is booked here.
        """
        now = self._clock.now()
        snap = snapshot if snapshot is not None else self._store.snapshot(now)
        targets = filter_vehicles(snap.vehicles, city=city, depot_id=depot_id, vehicle_ids=vehicle_ids)

        eligible = [
            v for v in targets
            if v.state_of_charge < soc_threshold and v.status not in _IN_PROCESS
        ]
        ordered = sort_by_strategy(eligible, strategy)
        start = self._next_off_peak(now) if strategy == "off_peak" else now

        queued = [
            QueuedJob(
                vehicle_id=v.id,
                vehicle_name=v.display_name,
                job_type=JobType.CHARGE,
                priority=priority or charging_priority(v.state_of_charge),
                reason=(
                    f"SOC at {round_half_up(v.state_of_charge * 100):.0f}% - "
                    f"below {soc_threshold * 100:g}% threshold"
                ),
                estimated_start=start,
                depot_id=v.current_depot_id,
            )
            for v in ordered[:max_concurrent]
        ]
        skipped = [
            SkippedVehicle(vehicle_id=v.id, reason=f"exceeds concurrent limit of {max_concurrent}")
            for v in ordered[max_concurrent:]
        ]
        skipped.extend(
            SkippedVehicle(vehicle_id=v.id, reason=f"already {v.status.value}")
            for v in targets
            if v.status in _IN_PROCESS
        )

        prefix = "[DRY RUN] " if dry_run else ""
        if queued:
            summary = f'{prefix}Queued {len(queued)} vehicles for charging using "{strategy}" strategy'
        else:
            summary = f"{prefix}No vehicles below {soc_threshold * 100:g}% SOC need charging"
        return AutoQueueResult(
            success=True,
            vehicles_queued=queued,
            vehicles_skipped=skipped,
            summary=summary,
            dry_run=dry_run,
        )

    def _next_off_peak(self, now: datetime) -> datetime:
        start = now.replace(
            hour=self._settings.off_peak_start_hour, minute=0, second=0, microsecond=0,
        )
        if start < now:
            start += timedelta(days=1)
        return start

    def commit_charging_queue(
        self,
        result: AutoQueueResult,
        duration_minutes: int | None = None,
    ) -> list[ChargingCommit]:
        """Book each queued vehicle on the most powerful stall at its depot that accepts it.

        A ``DoubleBooking`` or ``ResourceUnavailable`` rejection moves on to
        the next stall; any other rejection ends the attempt for that vehicle.
        """
        minutes = duration_minutes or self._settings.default_charge_minutes
        commits: list[ChargingCommit] = []

        for job in result.vehicles_queued:
            if job.depot_id is None:
                commits.append(ChargingCommit(
                    vehicle_id=job.vehicle_id, success=False, message="Vehicle is not at a depot",
                ))
                continue

            start = job.estimated_start or self._clock.now()
            end = start + timedelta(minutes=minutes)
            rejections: list[BookingError] = []
            commit: ChargingCommit | None = None

            for stall in self._scheduler.list_stalls(job.depot_id):
                booking = self._scheduler.schedule_vehicle(job.vehicle_id, stall.id, start, end)
                if booking.success:
                    commit = ChargingCommit(
                        vehicle_id=job.vehicle_id,
                        success=True,
                        assignment=booking.assignment,
                        rejections=rejections,
                        message=f"Booked {stall.id}",
                    )
                    break
                rejections.append(booking.error)
                if booking.error not in _RETRYABLE:
                    commit = ChargingCommit(
                        vehicle_id=job.vehicle_id,
                        success=False,
                        rejections=rejections,
                        message=booking.message,
                    )
                    break

            if commit is None:
                commit = ChargingCommit(
                    vehicle_id=job.vehicle_id,
                    success=False,
                    rejections=rejections,
                    message=f"No charging stall at {job.depot_id} accepted the booking",
                )
            commits.append(commit)

        booked = sum(1 for c in commits if c.success)
        logger.info("Committed charging queue: %d/%d booked", booked, len(commits))
        return commits

    # ═══════════════════════════════════════════════════════════════════
    # Auto-queue: maintenance
    # ═══════════════════════════════════════════════════════════════════

    def auto_queue_maintenance(
        self,
        risk_threshold: float = 0.6,
        categories: list[str] | None = None,
        depot_id: str | None = None,
        city: str | None = None,
        dry_run: bool = True,
    ) -> AutoQueueResult:
        now = self._clock.now()
        snap = self._store.snapshot(now)
        risks = self._predictor.predict_maintenance_risks(
            risk_threshold=risk_threshold, categories=categories, city=city, snapshot=snap,
        ).prediction

        depot_of = {v.id: v.current_depot_id for v in snap.vehicles}
        if depot_id:
            risks = [r for r in risks if depot_of.get(r.vehicle_id) == depot_id]

        start = now + timedelta(hours=self._settings.maintenance_lead_hours)
        queued = [
            QueuedJob(
                vehicle_id=r.vehicle_id,
                vehicle_name=r.vehicle_name,
                job_type=JobType.MAINTENANCE,
                priority=r.urgency,
                reason=f"Risk score: {round_half_up(r.risk_score * 100):.0f}% - {r.recommended_action}",
                estimated_start=start,
                depot_id=depot_of.get(r.vehicle_id),
            )
            for r in risks
        ]
        prefix = "[DRY RUN] " if dry_run else ""
        return AutoQueueResult(
            success=True,
            vehicles_queued=queued,
            summary=(
                f"{prefix}Identified {len(queued)} vehicles for maintenance "
                f"based on risk threshold {risk_threshold * 100:g}%"
            ),
            dry_run=dry_run,
        )

    # ═══════════════════════════════════════════════════════════════════
    # Rebalancing
    # ═══════════════════════════════════════════════════════════════════

    def auto_rebalance_fleet(
        self,
        source_depot_id: str | None = None,
        target_depot_id: str | None = None,
        vehicle_count: int = 3,
        selection_criteria: RebalanceCriteria = "highest_soc",
        execute: bool = False,
    ) -> RebalancePlan:
        """Plan moving idle vehicles from the busiest depot to the emptiest one."""
        snap = self._store.snapshot(self._clock.now())
        utilization = {
            d.id: safe_ratio(len(snap.vehicles_at(d.id)), d.capacity) for d in snap.depots
        }

        if source_depot_id:
            source = snap.depot(source_depot_id)
        else:
            source = max(snap.depots, key=lambda d: utilization[d.id], default=None)
        if target_depot_id:
            target = snap.depot(target_depot_id)
        else:
            target = min(snap.depots, key=lambda d: utilization[d.id], default=None)

        if source is None or target is None or source.id == target.id:
            return RebalancePlan(
                success=False,
                recommendation="Unable to determine valid source and target depots",
            )

        candidates = [v for v in snap.vehicles_at(source.id) if v.status == VehicleStatus.IDLE]
        if selection_criteria == "highest_soc":
            candidates.sort(key=lambda v: v.state_of_charge, reverse=True)
        elif selection_criteria == "lowest_utilization":
            candidates.sort(key=lambda v: v.operational_metrics.utilization_rate)
        elif selection_criteria == "oldest_at_depot":
            candidates.sort(key=lambda v: v.mileage, reverse=True)

        moves = [
            VehicleMove(
                vehicle_id=v.id,
                from_depot_id=source.id,
                to_depot_id=target.id,
                reason=(
                    f'Selected by "{selection_criteria}" - '
                    f"SOC: {round_half_up(v.state_of_charge * 100):.0f}%"
                ),
            )
            for v in candidates[:vehicle_count]
        ]
        if moves:
            recommendation = (
                f"Recommend moving {len(moves)} vehicles from {source.name} "
                f"({round_half_up(utilization[source.id] * 100):.0f}% utilized) to {target.name} "
                f"({round_half_up(utilization[target.id] * 100):.0f}% utilized)"
            )
        else:
            recommendation = "No idle vehicles available for rebalancing"

        return RebalancePlan(
            success=bool(moves),
            vehicles_to_move=moves,
            recommendation=recommendation,
            execute=execute,
            source_depot_id=source.id,
            target_depot_id=target.id,
        )

    # ═══════════════════════════════════════════════════════════════════
    # Execution log
    # ═══════════════════════════════════════════════════════════════════

    def get_execution_log(self, rule_id: str | None = None, limit: int | None = None) -> list[AutomationExecution]:
        """Logged executions, oldest first; ``limit`` keeps the most recent N."""
        with self._lock:
            entries = [e for e in self._log if rule_id is None or e.rule_id == rule_id]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def clear_execution_log(self) -> None:
        with self._lock:
            self._log.clear()
