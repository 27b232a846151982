from datetime import datetime

from pydantic import Field, model_validator

from app.modules.alerts.constants import (
    AlertSeverity,
    AlertStatus,
    ComparisonOperator,
    VitalSignType,
)
from app.modules.alerts.models import Alert, AlertRule
from app.shared.schemas import CamelModel


class AlertRuleRequest(CamelModel):
    """Body for creating or replacing an alert rule."""

    patient_id: str | None = Field(None, description="Omit for a global rule")
    vital_sign_type: VitalSignType
    severity: AlertSeverity
    comparison_operator: ComparisonOperator
    threshold_value: float
    threshold_value_max: float | None = Field(None, description="Upper bound, BETWEEN only")
    alert_message: str = Field(min_length=1, max_length=500)
    cooldown_minutes: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_between_bounds(self) -> "AlertRuleRequest":
        if self.comparison_operator == ComparisonOperator.BETWEEN:
            if self.threshold_value_max is None:
                raise ValueError("BETWEEN requires thresholdValueMax")
            if self.threshold_value > self.threshold_value_max:
                raise ValueError("BETWEEN requires thresholdValue <= thresholdValueMax")
        return self


class AlertRuleResponse(CamelModel):
    id: str
    patient_id: str | None
    vital_sign_type: VitalSignType
    severity: AlertSeverity
    comparison_operator: ComparisonOperator
    threshold_value: float
    threshold_value_max: float | None
    alert_message: str
    is_active: bool
    cooldown_minutes: int
    created_by: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_rule(cls, rule: AlertRule) -> "AlertRuleResponse":
        return cls(
            id=rule.id,
            patient_id=rule.patient_id,
            vital_sign_type=rule.vital_sign_type,
            severity=rule.severity,
            comparison_operator=rule.comparator,
            threshold_value=rule.threshold,
            threshold_value_max=rule.threshold_max,
            alert_message=rule.message_template,
            is_active=rule.active,
            cooldown_minutes=rule.cooldown_minutes,
            created_by=rule.created_by,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class AlertResponse(CamelModel):
    id: str
    patient_id: str
    vital_sign_id: str
    triggered_rule_id: str
    severity: AlertSeverity
    message: str
    triggered_at: datetime
    status: AlertStatus
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertResponse":
        return cls(
            id=alert.id,
            patient_id=alert.patient_id,
            vital_sign_id=alert.vital_sign_id,
            triggered_rule_id=alert.rule_id,
            severity=alert.severity,
            message=alert.message,
            triggered_at=alert.triggered_at,
            status=alert.status,
            acknowledged_at=alert.acknowledged_at,
            acknowledged_by=alert.acknowledged_by,
            resolved_at=alert.resolved_at,
            resolved_by=alert.resolved_by,
            notes=alert.notes,
            created_at=alert.created_at,
        )


class AlertResolveRequest(CamelModel):
    notes: str | None = Field(None, max_length=1000, description="Resolution notes")


class AlertCountResponse(CamelModel):
    patient_id: str
    status: AlertStatus = AlertStatus.NEW
    count: int
