"""Narrative generator — plain-English fleet briefing.

Converts the prediction outputs into structured, LLM-friendly text that
explains the fleet's state, the most urgent vehicles, and recommended actions.
"""

from __future__ import annotations

from depot_ops.models.automation import AutomationExecution
from depot_ops.models.predictions import (
    ChargingPrediction,
    FleetPredictionSummary,
    IncidentRisk,
    MaintenanceRisk,
)

_TOP_N = 5


def _heading(sections: list[str], title: str) -> None:
    if sections:
        sections.append("")
    sections.append("=" * 60)
    sections.append(title)
    sections.append("=" * 60)


def generate_fleet_briefing(
    summary: FleetPredictionSummary,
    charging: list[ChargingPrediction],
    maintenance: list[MaintenanceRisk],
    incidents: list[IncidentRisk],
    executions: list[AutomationExecution] | None = None,
) -> str:
    """Generate a plain-English briefing from the current forecasts.

    Returns a structured text block covering:
      1. Fleet overview
      2. Charging needs (most urgent first)
      3. Maintenance risks
      4. Incident risks
      5. Recent automation activity (when given)
      6. Recommendations
    """
    sections: list[str] = []

    # ── 1. Overview ──
    _heading(sections, "FLEET BRIEFING")
    scope = summary.city or "all cities"
    sections.append(
        f"Generated: {summary.generated_at:%Y-%m-%d %H:%M} UTC\n"
        f"Scope: {scope}\n"
        f"Charging needs: {summary.charging_needs.total} "
        f"({summary.charging_needs.critical} critical, {summary.charging_needs.high} high)\n"
        f"Maintenance risks: {summary.maintenance_risks.total} "
        f"({summary.maintenance_risks.critical} critical, {summary.maintenance_risks.high} high)\n"
        f"Elevated incident risks: {summary.elevated_incident_risks}"
    )

    # ── 2. Charging ──
    _heading(sections, "CHARGING NEEDS")
    if charging:
        for p in charging[:_TOP_N]:
            sections.append(
                f"  {p.vehicle_id:8s} {p.vehicle_name:24s} SOC {p.current_soc * 100:5.1f}% → "
                f"{p.predicted_soc * 100:5.1f}%  [{p.urgency.value}]  {p.reason}"
            )
        if len(charging) > _TOP_N:
            sections.append(f"  ... and {len(charging) - _TOP_N} more")
    else:
        sections.append("No vehicles need charging within the forecast window.")

    # ── 3. Maintenance ──
    _heading(sections, "MAINTENANCE RISKS")
    if maintenance:
        for r in maintenance[:_TOP_N]:
            window = r.predicted_failure_window
            sections.append(
                f"  {r.vehicle_id:8s} risk {r.risk_score:.2f} [{r.urgency.value}] "
                f"window {window.earliest:%b %d}–{window.latest:%b %d}  "
                f"est. ${r.estimated_cost:,.0f}  {r.recommended_action}"
            )
    else:
        sections.append("No vehicles above the maintenance risk threshold.")

    # ── 4. Incidents ──
    _heading(sections, "INCIDENT RISKS")
    if incidents:
        for r in incidents[:_TOP_N]:
            factors = "; ".join(r.primary_factors) or "no dominant factor"
            sections.append(f"  {r.vehicle_id:8s} risk {r.risk_score:.2f} [{r.urgency.value}]  {factors}")
    else:
        sections.append("No vehicles with notable incident risk.")

    # ── 5. Automation ──
    if executions:
        _heading(sections, "RECENT AUTOMATION")
        for e in executions[-_TOP_N:]:
            status = "ok" if e.success else "FAILED"
            sections.append(f"  {e.triggered_at:%H:%M} {e.rule_name} ({status}): {e.message}")

    # ── 6. Recommendations ──
    _heading(sections, "RECOMMENDATIONS")
    recs = list(summary.recommendations)
    if not recs:
        recs.append("No critical issues identified. Keep monitoring on the regular cadence.")
    for i, rec in enumerate(recs, 1):
        sections.append(f"  {i}. {rec}")

    return "\n".join(sections)
