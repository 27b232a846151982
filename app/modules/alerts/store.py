"""
Store contracts consumed by the alert engine, plus in-memory implementations.

The in-memory stores back local runs (`STORE_BACKEND=memory`) and the test-suite. The
Mongo-backed implementations live in `app.modules.alerts.repository`.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Protocol, Sequence

from app.modules.alerts.constants import AlertStatus, VitalSignType
from app.modules.alerts.models import Alert, AlertRule


class RuleStore(Protocol):
    async def find_applicable_rules(
        self, patient_id: str, vital_sign_type: VitalSignType
    ) -> list[AlertRule]:
        """Active rules that are global or scoped to `patient_id`, for one channel."""
        ...

    async def count(self) -> int: ...

    async def save(self, rule: AlertRule) -> AlertRule: ...

    async def save_all(self, rules: Sequence[AlertRule]) -> list[AlertRule]:
        """
        Insert rules in one batch and return the ones written.

        `seed_key` is unique: a rule whose key is already stored is skipped, not an error.
        """
        ...

    async def get(self, rule_id: str) -> AlertRule | None: ...

    async def delete(self, rule_id: str) -> bool: ...

    async def list_all(self) -> list[AlertRule]: ...

    async def list_active(self) -> list[AlertRule]: ...

    async def list_for_patient(self, patient_id: str) -> list[AlertRule]: ...

    async def seed_keys(self) -> set[str]: ...


class AlertStore(Protocol):
    async def find_recent_similar_alerts(
        self, vital_sign_id: str, rule_id: str, since: datetime
    ) -> list[Alert]: ...

    async def save(self, alert: Alert) -> Alert: ...

    async def save_all(self, alerts: Sequence[Alert]) -> list[Alert]:
        """Insert all alerts or none of them."""
        ...

    async def get(self, alert_id: str) -> Alert | None: ...

    async def list_by_patient(
        self, patient_id: str, statuses: Iterable[AlertStatus] | None = None
    ) -> list[Alert]:
        """Newest first."""
        ...

    async def page_by_patient(
        self, patient_id: str, skip: int, limit: int
    ) -> tuple[list[Alert], int]: ...

    async def count_by_patient(self, patient_id: str, status: AlertStatus) -> int: ...


class InMemoryRuleStore:
    def __init__(self, rules: Iterable[AlertRule] = ()) -> None:
        self._rules: dict[str, AlertRule] = {rule.id: replace(rule) for rule in rules}
        self._lock = asyncio.Lock()

    async def find_applicable_rules(
        self, patient_id: str, vital_sign_type: VitalSignType
    ) -> list[AlertRule]:
        return [
            replace(rule)
            for rule in self._rules.values()
            if rule.active
            and rule.vital_sign_type == vital_sign_type
            and (rule.patient_id is None or rule.patient_id == patient_id)
        ]

    async def count(self) -> int:
        return len(self._rules)

    async def save(self, rule: AlertRule) -> AlertRule:
        async with self._lock:
            self._rules[rule.id] = replace(rule)
        return rule

    async def save_all(self, rules: Sequence[AlertRule]) -> list[AlertRule]:
        inserted: list[AlertRule] = []
        async with self._lock:
            taken = {rule.seed_key for rule in self._rules.values() if rule.seed_key}
            for rule in rules:
                if rule.seed_key and rule.seed_key in taken:
                    continue
                if rule.seed_key:
                    taken.add(rule.seed_key)
                self._rules[rule.id] = replace(rule)
                inserted.append(rule)
        return inserted

    async def get(self, rule_id: str) -> AlertRule | None:
        rule = self._rules.get(rule_id)
        return replace(rule) if rule else None

    async def delete(self, rule_id: str) -> bool:
        async with self._lock:
            return self._rules.pop(rule_id, None) is not None

    async def list_all(self) -> list[AlertRule]:
        return [replace(rule) for rule in self._rules.values()]

    async def list_active(self) -> list[AlertRule]:
        return [replace(rule) for rule in self._rules.values() if rule.active]

    async def list_for_patient(self, patient_id: str) -> list[AlertRule]:
        return [
            replace(rule)
            for rule in self._rules.values()
            if rule.active and rule.patient_id == patient_id
        ]

    async def seed_keys(self) -> set[str]:
        return {rule.seed_key for rule in self._rules.values() if rule.seed_key}


class InMemoryAlertStore:
    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}
        self._lock = asyncio.Lock()

    async def find_recent_similar_alerts(
        self, vital_sign_id: str, rule_id: str, since: datetime
    ) -> list[Alert]:
        return [
            alert.copy()
            for alert in self._alerts.values()
            if alert.vital_sign_id == vital_sign_id
            and alert.rule_id == rule_id
            and alert.triggered_at >= since
        ]

    async def save(self, alert: Alert) -> Alert:
        async with self._lock:
            self._alerts[alert.id] = alert.copy()
        return alert

    async def save_all(self, alerts: Sequence[Alert]) -> list[Alert]:
        async with self._lock:
            for alert in alerts:
                self._alerts[alert.id] = alert.copy()
        return list(alerts)

    async def get(self, alert_id: str) -> Alert | None:
        alert = self._alerts.get(alert_id)
        return alert.copy() if alert else None

    async def list_by_patient(
        self, patient_id: str, statuses: Iterable[AlertStatus] | None = None
    ) -> list[Alert]:
        wanted = set(statuses) if statuses is not None else None
        items = [
            alert.copy()
            for alert in self._alerts.values()
            if alert.patient_id == patient_id and (wanted is None or alert.status in wanted)
        ]
        items.sort(key=lambda alert: alert.triggered_at, reverse=True)
        return items

    async def page_by_patient(
        self, patient_id: str, skip: int, limit: int
    ) -> tuple[list[Alert], int]:
        items = await self.list_by_patient(patient_id)
        return items[skip : skip + limit], len(items)

    async def count_by_patient(self, patient_id: str, status: AlertStatus) -> int:
        return sum(
            1
            for alert in self._alerts.values()
            if alert.patient_id == patient_id and alert.status == status
        )

    def all(self) -> list[Alert]:
        return [alert.copy() for alert in self._alerts.values()]
