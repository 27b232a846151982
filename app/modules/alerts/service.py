from __future__ import annotations

import structlog

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.modules.alerts.comparators import validate_bounds
from app.modules.alerts.constants import OPEN_STATUSES, AlertStatus
from app.modules.alerts.engine import EvaluationOrchestrator
from app.modules.alerts.exceptions import NotFound
from app.modules.alerts.lifecycle import AlertLifecycleManager
from app.modules.alerts.models import Alert, AlertRule, VitalSignReading
from app.modules.alerts.repository import MongoAlertStore, MongoRuleStore
from app.modules.alerts.schemas import AlertRuleRequest
from app.modules.alerts.seeder import DefaultRuleSeeder
from app.modules.alerts.store import (
    AlertStore,
    InMemoryAlertStore,
    InMemoryRuleStore,
    RuleStore,
)

log = structlog.get_logger(__name__)


class AlertRuleService:
    """Rule CRUD. Thin over the store apart from bound validation and audit fields."""

    def __init__(self, rule_store: RuleStore, clock: Clock) -> None:
        self._rule_store = rule_store
        self._clock = clock

    async def create(self, request: AlertRuleRequest, actor_id: str | None = None) -> AlertRule:
        validate_bounds(
            request.comparison_operator, request.threshold_value, request.threshold_value_max
        )
        now = self._clock.now()
        rule = AlertRule(
            patient_id=request.patient_id,
            vital_sign_type=request.vital_sign_type,
            severity=request.severity,
            comparator=request.comparison_operator,
            threshold=request.threshold_value,
            threshold_max=request.threshold_value_max,
            message_template=request.alert_message,
            active=True,
            cooldown_minutes=(
                request.cooldown_minutes
                if request.cooldown_minutes is not None
                else settings.DEFAULT_RULE_COOLDOWN_MINUTES
            ),
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        saved = await self._rule_store.save(rule)
        log.info(
            "alert_rule_created",
            rule_id=saved.id,
            vital_sign_type=saved.vital_sign_type.value,
            patient_id=saved.patient_id,
        )
        return saved

    async def get(self, rule_id: str) -> AlertRule:
        rule = await self._rule_store.get(rule_id)
        if rule is None:
            raise NotFound("alert rule", rule_id)
        return rule

    async def list_all(self) -> list[AlertRule]:
        return await self._rule_store.list_all()

    async def list_active(self) -> list[AlertRule]:
        return await self._rule_store.list_active()

    async def list_for_patient(self, patient_id: str) -> list[AlertRule]:
        return await self._rule_store.list_for_patient(patient_id)

    async def update(self, rule_id: str, request: AlertRuleRequest) -> AlertRule:
        """Replace the rule definition. Scope (patient) and active flag are not changed here."""
        validate_bounds(
            request.comparison_operator, request.threshold_value, request.threshold_value_max
        )
        rule = await self.get(rule_id)
        rule.vital_sign_type = request.vital_sign_type
        rule.severity = request.severity
        rule.comparator = request.comparison_operator
        rule.threshold = request.threshold_value
        rule.threshold_max = request.threshold_value_max
        rule.message_template = request.alert_message
        if request.cooldown_minutes is not None:
            rule.cooldown_minutes = request.cooldown_minutes
        rule.updated_at = self._clock.now()

        saved = await self._rule_store.save(rule)
        log.info("alert_rule_updated", rule_id=rule_id)
        return saved

    async def deactivate(self, rule_id: str) -> AlertRule:
        rule = await self.get(rule_id)
        rule.active = False
        rule.updated_at = self._clock.now()
        saved = await self._rule_store.save(rule)
        log.info("alert_rule_deactivated", rule_id=rule_id)
        return saved

    async def delete(self, rule_id: str) -> None:
        if not await self._rule_store.delete(rule_id):
            raise NotFound("alert rule", rule_id)
        log.info("alert_rule_deleted", rule_id=rule_id)


class AlertService:
    """Entry point for evaluation, lifecycle transitions and alert reads."""

    def __init__(self, rule_store: RuleStore, alert_store: AlertStore, clock: Clock) -> None:
        self._alert_store = alert_store
        self._orchestrator = EvaluationOrchestrator(rule_store, alert_store, clock)
        self._lifecycle = AlertLifecycleManager(alert_store, clock)

    async def evaluate(self, reading: VitalSignReading) -> list[Alert]:
        return await self._orchestrator.evaluate(reading)

    async def acknowledge(self, alert_id: str, actor_id: str) -> Alert:
        return await self._lifecycle.acknowledge(alert_id, actor_id)

    async def resolve(self, alert_id: str, actor_id: str, notes: str | None = None) -> Alert:
        return await self._lifecycle.resolve(alert_id, actor_id, notes)

    async def get_alert(self, alert_id: str) -> Alert:
        alert = await self._alert_store.get(alert_id)
        if alert is None:
            raise NotFound("alert", alert_id)
        return alert

    async def get_active_alerts(self, patient_id: str) -> list[Alert]:
        """Unacknowledged alerts, newest first."""
        return await self._alert_store.list_by_patient(patient_id, [AlertStatus.NEW])

    async def get_open_alerts(self, patient_id: str) -> list[Alert]:
        """NEW and ACKNOWLEDGED alerts, newest first."""
        return await self._alert_store.list_by_patient(patient_id, OPEN_STATUSES)

    async def get_alerts_page(
        self, patient_id: str, page: int = 0, size: int = 20
    ) -> tuple[list[Alert], int]:
        return await self._alert_store.page_by_patient(patient_id, skip=page * size, limit=size)

    async def get_active_alert_count(self, patient_id: str) -> int:
        return await self._alert_store.count_by_patient(patient_id, AlertStatus.NEW)


def build_stores(backend: str) -> tuple[RuleStore, AlertStore]:
    if backend == "memory":
        return InMemoryRuleStore(), InMemoryAlertStore()
    return MongoRuleStore(), MongoAlertStore()


clock = SystemClock()
rule_store, alert_store = build_stores(settings.STORE_BACKEND)
alert_rule_service = AlertRuleService(rule_store=rule_store, clock=clock)
alert_service = AlertService(rule_store=rule_store, alert_store=alert_store, clock=clock)


def get_alert_service() -> AlertService:
    return alert_service


def get_alert_rule_service() -> AlertRuleService:
    return alert_rule_service


async def seed_default_rules() -> list[AlertRule]:
    """Bootstrap step run once from the application lifespan."""
    if not settings.SEED_DEFAULT_ALERT_RULES:
        log.info("default_rules_skipped", reason="disabled")
        return []
    return await DefaultRuleSeeder(rule_store=rule_store, clock=clock).seed()
