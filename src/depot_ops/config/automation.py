"""Automation engine settings."""

from pydantic import BaseModel, Field


class AutomationSettings(BaseModel):
    off_peak_start_hour: int = Field(
        default=22, ge=0, le=23, description="UTC hour at which off-peak charging starts",
    )
    default_charge_minutes: int = Field(
        default=60, gt=0,
        description="Booking length when committing a queued vehicle without a computed duration",
    )
    maintenance_lead_hours: int = Field(
        default=24, ge=0, description="Estimated start offset for auto-queued maintenance",
    )
    max_log_entries: int = Field(
        default=1_000, ge=1, description="Execution log keeps the most recent N entries",
    )
