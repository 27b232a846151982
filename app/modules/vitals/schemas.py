from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator

from app.modules.alerts.schemas import AlertResponse
from app.shared.schemas import CamelModel


class VitalSignCreate(CamelModel):
    """Inbound payload for one vital-sign reading. Ranges reject obvious entry errors."""

    patient_id: str = Field(min_length=1)
    measured_at: Optional[datetime] = None
    blood_pressure_systolic: int | None = Field(default=None, ge=40, le=250)
    blood_pressure_diastolic: int | None = Field(default=None, ge=20, le=150)
    heart_rate: int | None = Field(default=None, ge=30, le=200)
    temperature: float | None = Field(default=None, ge=32.0, le=45.0)
    respiratory_rate: int | None = Field(default=None, ge=5, le=60)
    oxygen_saturation: int | None = Field(default=None, ge=50, le=100)
    position: Literal["SITTING", "STANDING", "LYING"] | None = None
    measurement_method: Literal["MANUAL", "AUTOMATED"] | None = None
    notes: str | None = Field(default=None, max_length=500)

    # Allow integer/float epoch seconds as timestamp input
    @field_validator("measured_at", mode="before")
    @classmethod
    def parse_epoch_timestamp(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        return value

    @model_validator(mode="after")
    def require_a_measurement(self) -> "VitalSignCreate":
        channels = (
            self.blood_pressure_systolic,
            self.blood_pressure_diastolic,
            self.heart_rate,
            self.temperature,
            self.respiratory_rate,
            self.oxygen_saturation,
        )
        if all(value is None for value in channels):
            raise ValueError("at least one vital-sign measurement is required")
        return self


class VitalSignResponse(CamelModel):
    id: str
    patient_id: str
    measured_at: datetime
    blood_pressure_systolic: int | None = None
    blood_pressure_diastolic: int | None = None
    heart_rate: int | None = None
    temperature: float | None = None
    respiratory_rate: int | None = None
    oxygen_saturation: int | None = None
    position: str | None = None
    measurement_method: str | None = None
    notes: str | None = None
    recorded_by: str | None = None


class RecordedVitalSignResponse(CamelModel):
    """A stored reading together with the alerts its evaluation created."""

    vital_sign: VitalSignResponse
    alerts: list[AlertResponse] = Field(default_factory=list)
