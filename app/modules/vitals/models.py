from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel

from app.modules.alerts.models import new_id


class VitalSignDocument(Document):
    """Persisted vital-sign reading. Each channel is optional."""

    id: str = Field(default_factory=new_id)
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
    notes: str | None = Field(default=None, max_length=500)
    recorded_by: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "vital_signs"
        indexes = [
            IndexModel([("patient_id", 1), ("measured_at", -1)]),
            IndexModel([("measured_at", -1)]),
        ]
