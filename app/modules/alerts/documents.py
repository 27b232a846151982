from datetime import datetime, timezone

from beanie import Document
from pydantic import Field
from pymongo import IndexModel

from app.modules.alerts.constants import (
    AlertSeverity,
    AlertStatus,
    ComparisonOperator,
    VitalSignType,
)
from app.modules.alerts.models import new_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertRuleDocument(Document):
    """Persisted alert rule. `patient_id=None` marks a global rule."""

    id: str = Field(default_factory=new_id)
    patient_id: str | None = None
    vital_sign_type: VitalSignType
    severity: AlertSeverity
    comparison_operator: ComparisonOperator
    threshold_value: float
    threshold_value_max: float | None = None
    alert_message: str = Field(max_length=500)
    is_active: bool = True
    cooldown_minutes: int = 30
    seed_key: str | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "alert_rules"
        indexes = [
            IndexModel([("vital_sign_type", 1), ("is_active", 1), ("patient_id", 1)]),
            IndexModel([("patient_id", 1), ("is_active", 1)]),
            IndexModel([("seed_key", 1)], unique=True, sparse=True),
        ]


class AlertDocument(Document):
    """Persisted alert. Alerts are never deleted; status carries their lifecycle."""

    id: str = Field(default_factory=new_id)
    patient_id: str
    vital_sign_id: str
    triggered_rule_id: str
    severity: AlertSeverity
    message: str = Field(max_length=500)
    triggered_at: datetime
    status: AlertStatus = AlertStatus.NEW
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    notes: str | None = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "alerts"
        indexes = [
            IndexModel([("patient_id", 1), ("status", 1), ("triggered_at", -1)]),
            IndexModel([("vital_sign_id", 1), ("triggered_rule_id", 1), ("triggered_at", -1)]),
        ]
