from __future__ import annotations

import structlog

from app.core.clock import Clock
from app.core.locking import KeyedLock
from app.modules.alerts.comparators import build_comparator
from app.modules.alerts.cooldown import CooldownDeduplicator
from app.modules.alerts.exceptions import StoreError
from app.modules.alerts.factory import AlertFactory
from app.modules.alerts.matcher import RuleMatcher
from app.modules.alerts.models import Alert, VitalSignReading
from app.modules.alerts.store import AlertStore, RuleStore

log = structlog.get_logger(__name__)


class EvaluationOrchestrator:
    """
    Turn one recorded vital-sign reading into the alerts it triggers.

    Channels are walked in a fixed order (blood pressure, heart rate, temperature,
    respiratory rate, oxygen saturation). For every matching rule that fires and is not
    inside its cooldown an alert is built; the whole batch is then written with one
    `save_all`, so a store failure leaves no partial alert set behind.

    Evaluations of the same reading id are serialized. Otherwise two concurrent runs could
    both pass the cooldown check before either writes.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        alert_store: AlertStore,
        clock: Clock,
        reading_lock: KeyedLock | None = None,
    ) -> None:
        self._alert_store = alert_store
        self._matcher = RuleMatcher(rule_store)
        self._deduplicator = CooldownDeduplicator(alert_store, clock)
        self._factory = AlertFactory(clock)
        self._reading_lock = reading_lock or KeyedLock("alerts:evaluate")

    async def evaluate(self, reading: VitalSignReading) -> list[Alert]:
        try:
            async with self._reading_lock.hold(reading.id):
                alerts = await self._collect(reading)
                if alerts:
                    await self._alert_store.save_all(alerts)
        except TimeoutError as exc:
            raise StoreError(f"evaluation of {reading.id} timed out waiting for its lock") from exc

        for alert in alerts:
            log.info(
                "alert_created",
                alert_id=alert.id,
                patient_id=alert.patient_id,
                vital_sign_id=alert.vital_sign_id,
                rule_id=alert.rule_id,
                severity=alert.severity.value,
                alert_message=alert.message,
            )
        log.info(
            "vital_sign_evaluated",
            vital_sign_id=reading.id,
            patient_id=reading.patient_id,
            alerts_created=len(alerts),
        )
        return alerts

    async def _collect(self, reading: VitalSignReading) -> list[Alert]:
        alerts: list[Alert] = []
        for vital_sign_type, value in reading.channel_values():
            rules = await self._matcher.match(reading.patient_id, vital_sign_type)
            for rule in rules:
                if not build_comparator(rule).matches(value):
                    continue
                if await self._deduplicator.should_suppress(reading.id, rule):
                    continue
                alerts.append(self._factory.build(reading, rule, value))
        return alerts
