"""Risk prediction engine settings."""

from pydantic import BaseModel, Field


class PredictionSettings(BaseModel):
    """Model constants for the charging, maintenance, incident and demand forecasts."""

    model_version: str = Field(default="1.0.0")
    active_hours_per_day: float = Field(
        default=12.0, gt=0, description="Hours per day a vehicle drains its battery",
    )
    avg_charging_power_kw: float = Field(
        default=250.0, gt=0, description="Fleet-average charger power for charge-time estimates",
    )

    # --- confidence ---
    confidence_base: float = Field(default=0.5, ge=0, le=1.0)
    confidence_per_data_point: float = Field(default=0.02, ge=0)
    confidence_negative_penalty: float = Field(default=0.05, ge=0)
    confidence_floor: float = Field(default=0.3, ge=0, le=1.0)
    confidence_ceiling: float = Field(default=0.95, ge=0, le=1.0)

    # --- demand ---
    demand_base_rate: float = Field(
        default=0.3, ge=0, description="Share of depot vehicles needing a stall per interval",
    )
    demand_confidence_base: float = Field(default=0.75, ge=0, le=1.0)
    demand_confidence_step: float = Field(default=0.02, ge=0)
    peak_utilization_pct: int = Field(default=80, ge=0, description="Points above this are peaks")
