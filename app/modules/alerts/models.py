import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime

from app.modules.alerts.constants import (
    AlertSeverity,
    AlertStatus,
    ComparisonOperator,
    VitalSignType,
)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class AlertRule:
    vital_sign_type: VitalSignType
    severity: AlertSeverity
    comparator: ComparisonOperator
    threshold: float
    message_template: str
    threshold_max: float | None = None
    patient_id: str | None = None
    active: bool = True
    cooldown_minutes: int = 30
    id: str = field(default_factory=new_id)
    seed_key: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_global(self) -> bool:
        return self.patient_id is None


@dataclass
class VitalSignReading:
    patient_id: str
    measured_at: datetime
    id: str = field(default_factory=new_id)
    systolic: int | None = None
    diastolic: int | None = None
    heart_rate: int | None = None
    temperature: float | None = None
    respiratory_rate: int | None = None
    oxygen_saturation: int | None = None

    def channel_values(self) -> list[tuple[VitalSignType, float]]:
        """Present channels in evaluation order; blood pressure is judged on systolic."""
        candidates = [
            (VitalSignType.BLOOD_PRESSURE, self.systolic),
            (VitalSignType.HEART_RATE, self.heart_rate),
            (VitalSignType.TEMPERATURE, self.temperature),
            (VitalSignType.RESPIRATORY_RATE, self.respiratory_rate),
            (VitalSignType.OXYGEN_SATURATION, self.oxygen_saturation),
        ]
        return [(kind, float(value)) for kind, value in candidates if value is not None]


@dataclass
class Alert:
    patient_id: str
    vital_sign_id: str
    rule_id: str
    severity: AlertSeverity
    message: str
    triggered_at: datetime
    status: AlertStatus = AlertStatus.NEW
    id: str = field(default_factory=new_id)
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    def copy(self, **changes: object) -> "Alert":
        return replace(self, **changes)
