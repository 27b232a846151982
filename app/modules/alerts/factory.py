import structlog

from app.core.clock import Clock
from app.modules.alerts.constants import AlertStatus
from app.modules.alerts.models import Alert, AlertRule, VitalSignReading

log = structlog.get_logger(__name__)


def render_message(template: str, value: float) -> str:
    """Format the rule's printf-style template (`%.0f`, `%.1f`, ...) with the value."""
    try:
        return template % value
    except (TypeError, ValueError):
        log.warning("alert_template_unformattable", template=template)
        return f"{template} ({value:g})"


class AlertFactory:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock

    def build(self, reading: VitalSignReading, rule: AlertRule, value: float) -> Alert:
        now = self._clock.now()
        return Alert(
            patient_id=reading.patient_id,
            vital_sign_id=reading.id,
            rule_id=rule.id,
            severity=rule.severity,
            message=render_message(rule.message_template, value),
            triggered_at=now,
            status=AlertStatus.NEW,
            created_at=now,
        )
