"""Default automation rule set.

Eight rules covering the everyday depot loop: critical/low SOC charging,
predictive and scheduled maintenance, collision escalation, overnight
charging, idle staging and depot capacity warnings.
"""

from __future__ import annotations

from datetime import time

from depot_ops.models.automation import (
    AutomationRule,
    CreateAlertAction,
    CreateJobAction,
    DepotCapacityTrigger,
    EscalateAction,
    GtCondition,
    IncidentCreatedTrigger,
    JobType,
    MaintenanceDueTrigger,
    NeCondition,
    NotifyAction,
    PredictionConfidenceTrigger,
    QueueForChargingAction,
    QueueForMaintenanceAction,
    ScheduleTrigger,
    SocThresholdTrigger,
    VehicleIdleTrigger,
)
from depot_ops.models.fleet import Priority


def default_rules() -> list[AutomationRule]:
    """Fresh copies of the built-in rules (never shared between engines)."""
    return [
        AutomationRule(
            id="auto-charge-critical",
            name="Critical SOC Auto-Charging",
            description="Automatically queue vehicles with SOC < 15% for charging",
            trigger=SocThresholdTrigger(threshold=0.15, direction="below"),
            conditions=[
                NeCondition(field="status", value="charging"),
                NeCondition(field="status", value="maintenance"),
            ],
            actions=[
                CreateJobAction(job_type=JobType.CHARGE, priority=Priority.CRITICAL),
                NotifyAction(channels=["slack"], template="critical_soc_alert"),
                CreateAlertAction(severity=Priority.CRITICAL, message="Vehicle SOC critically low"),
            ],
            cooldown_minutes=30,
        ),
        AutomationRule(
            id="auto-charge-low",
            name="Low SOC Auto-Charging",
            description="Queue vehicles with SOC < 25% for charging during non-peak hours",
            trigger=SocThresholdTrigger(threshold=0.25, direction="below"),
            conditions=[
                NeCondition(field="status", value="charging"),
                NeCondition(field="status", value="maintenance"),
                NeCondition(field="status", value="active"),
            ],
            actions=[QueueForChargingAction(strategy="balanced", priority=Priority.HIGH)],
            cooldown_minutes=60,
        ),
        AutomationRule(
            id="predictive-maintenance-queue",
            name="Predictive Maintenance Auto-Queue",
            description="Queue vehicles when maintenance risk > 70%",
            trigger=PredictionConfidenceTrigger(prediction_type="maintenance_risk", threshold=0.7),
            actions=[
                QueueForMaintenanceAction(maintenance_type="predictive", priority=Priority.HIGH),
                CreateAlertAction(severity=Priority.HIGH, message="Predictive maintenance scheduled"),
            ],
            cooldown_minutes=1440,
        ),
        AutomationRule(
            id="maintenance-due-alert",
            name="Maintenance Due Alert",
            description="Alert when vehicle maintenance is due within 7 days",
            trigger=MaintenanceDueTrigger(days_until=7),
            actions=[
                NotifyAction(channels=["email", "slack"], template="maintenance_due"),
                CreateAlertAction(severity=Priority.MEDIUM, message="Scheduled maintenance approaching"),
            ],
            cooldown_minutes=1440,
        ),
        AutomationRule(
            id="incident-auto-escalate",
            name="Critical Incident Auto-Escalation",
            description="Auto-escalate collision incidents",
            trigger=IncidentCreatedTrigger(incident_types=["collision"]),
            actions=[
                EscalateAction(notify_roles=["fleet_manager", "safety_team"]),
                NotifyAction(channels=["sms", "slack"], template="collision_alert"),
            ],
            cooldown_minutes=0,
        ),
        AutomationRule(
            id="overnight-charging-optimization",
            name="Overnight Charging Optimization",
            description="Optimize charging schedule during off-peak hours (10 PM)",
            trigger=ScheduleTrigger(at=time(22, 0)),
            actions=[QueueForChargingAction(strategy="off_peak")],
            cooldown_minutes=1440,
        ),
        AutomationRule(
            id="idle-vehicle-staging",
            name="Idle Vehicle Auto-Staging",
            description="Move idle vehicles to staging after 2 hours",
            trigger=VehicleIdleTrigger(duration_minutes=120),
            conditions=[GtCondition(field="soc", value=0.50)],
            actions=[CreateJobAction(job_type=JobType.DOWNTIME_PARK, priority=Priority.LOW)],
            cooldown_minutes=240,
        ),
        AutomationRule(
            id="depot-capacity-alert",
            name="Depot Capacity Alert",
            description="Alert when depot charging capacity exceeds 90%",
            trigger=DepotCapacityTrigger(resource_type="charging_stall", threshold=0.9, direction="above"),
            actions=[
                NotifyAction(channels=["slack"], template="capacity_warning"),
                CreateAlertAction(severity=Priority.HIGH, message="Depot charging capacity near limit"),
            ],
            cooldown_minutes=60,
        ),
    ]
