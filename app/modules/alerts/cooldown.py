from datetime import timedelta

import structlog

from app.core.clock import Clock
from app.modules.alerts.models import AlertRule
from app.modules.alerts.store import AlertStore

log = structlog.get_logger(__name__)


class CooldownDeduplicator:
    """
    Suppress a rule that already fired for the same reading within its cooldown.

    The key is (vital-sign reading, rule). A different reading for the same patient is not
    suppressed, so this guards against retried or re-processed submissions rather than
    throttling a patient's alert rate.
    """

    def __init__(self, alert_store: AlertStore, clock: Clock) -> None:
        self._alert_store = alert_store
        self._clock = clock

    async def should_suppress(self, vital_sign_id: str, rule: AlertRule) -> bool:
        if rule.cooldown_minutes <= 0:
            return False
        since = self._clock.now() - timedelta(minutes=rule.cooldown_minutes)
        recent = await self._alert_store.find_recent_similar_alerts(
            vital_sign_id, rule.id, since
        )
        if recent:
            log.debug(
                "alert_suppressed_by_cooldown",
                vital_sign_id=vital_sign_id,
                rule_id=rule.id,
                cooldown_minutes=rule.cooldown_minutes,
                recent_alert_id=recent[0].id,
            )
            return True
        return False
