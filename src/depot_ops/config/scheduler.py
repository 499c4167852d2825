"""Resource scheduler settings."""

from pydantic import BaseModel, Field


class SchedulerSettings(BaseModel):
    """Constants behind the greedy charging plan and utilization advice."""

    stagger_minutes: int = Field(
        default=10, ge=0,
        description="Plan start offset per pair (pair i starts i × stagger after now)",
    )
    avg_session_minutes: int = Field(
        default=45, gt=0, description="Average charging session used for queue wait estimates",
    )
    peak_hour_offset_hours: float = Field(
        default=2.0, ge=0, description="Heuristic peak hour = report start + offset",
    )
    low_stall_utilization: float = Field(default=0.70, ge=0, le=1.0)
    high_vehicle_utilization: float = Field(default=0.90, ge=0)
    low_bay_utilization: float = Field(default=0.50, ge=0, le=1.0)
    long_session_minutes: float = Field(
        default=90.0, gt=0, description="Average charging session above which faster stalls are advised",
    )
