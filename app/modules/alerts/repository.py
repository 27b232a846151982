"""Mongo-backed rule and alert stores. All mapping between documents and domain types lives here."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, Sequence

import structlog
from beanie.operators import In, Or
from pymongo.errors import BulkWriteError, PyMongoError

from app.core import db
from app.core.clock import ensure_utc
from app.core.config import settings
from app.modules.alerts.constants import AlertStatus, VitalSignType
from app.modules.alerts.documents import AlertDocument, AlertRuleDocument
from app.modules.alerts.exceptions import StoreError
from app.modules.alerts.models import Alert, AlertRule

log = structlog.get_logger(__name__)


@asynccontextmanager
async def _store_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except PyMongoError as exc:
        log.error("store_operation_failed", operation=operation, error=str(exc))
        raise StoreError(f"{operation} failed: {exc}") from exc


@asynccontextmanager
async def _transaction() -> AsyncIterator[object | None]:
    """Yield a session inside a transaction when enabled, else None."""
    client = db.MONGO_CLIENT
    if not settings.MONGODB_USE_TRANSACTIONS or client is None:
        yield None
        return
    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


DUPLICATE_KEY = 11000


def _duplicate_key_indexes(exc: BulkWriteError) -> set[int] | None:
    """Batch positions rejected as duplicate keys, or None if anything else failed."""
    details = exc.details or {}
    errors = details.get("writeErrors", [])
    if details.get("writeConcernErrors") or any(
        error.get("code") != DUPLICATE_KEY for error in errors
    ):
        return None
    return {error["index"] for error in errors}


def _optional_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def rule_to_document(rule: AlertRule) -> AlertRuleDocument:
    document = AlertRuleDocument(
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
        seed_key=rule.seed_key,
        created_by=rule.created_by,
    )
    if rule.created_at is not None:
        document.created_at = rule.created_at
    if rule.updated_at is not None:
        document.updated_at = rule.updated_at
    return document


def rule_from_document(document: AlertRuleDocument) -> AlertRule:
    return AlertRule(
        id=str(document.id),
        patient_id=document.patient_id,
        vital_sign_type=document.vital_sign_type,
        severity=document.severity,
        comparator=document.comparison_operator,
        threshold=document.threshold_value,
        threshold_max=document.threshold_value_max,
        message_template=document.alert_message,
        active=document.is_active,
        cooldown_minutes=document.cooldown_minutes,
        seed_key=document.seed_key,
        created_by=document.created_by,
        created_at=_optional_utc(document.created_at),
        updated_at=_optional_utc(document.updated_at),
    )


def alert_to_document(alert: Alert) -> AlertDocument:
    document = AlertDocument(
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
    )
    if alert.created_at is not None:
        document.created_at = alert.created_at
    return document


def alert_from_document(document: AlertDocument) -> Alert:
    return Alert(
        id=str(document.id),
        patient_id=document.patient_id,
        vital_sign_id=document.vital_sign_id,
        rule_id=document.triggered_rule_id,
        severity=document.severity,
        message=document.message,
        triggered_at=ensure_utc(document.triggered_at),
        status=document.status,
        acknowledged_at=_optional_utc(document.acknowledged_at),
        acknowledged_by=document.acknowledged_by,
        resolved_at=_optional_utc(document.resolved_at),
        resolved_by=document.resolved_by,
        notes=document.notes,
        created_at=_optional_utc(document.created_at),
    )


class MongoRuleStore:
    async def find_applicable_rules(
        self, patient_id: str, vital_sign_type: VitalSignType
    ) -> list[AlertRule]:
        async with _store_errors("find_applicable_rules"):
            documents = await AlertRuleDocument.find(
                AlertRuleDocument.vital_sign_type == vital_sign_type,
                AlertRuleDocument.is_active == True,  # noqa: E712
                Or(
                    AlertRuleDocument.patient_id == patient_id,
                    AlertRuleDocument.patient_id == None,  # noqa: E711
                ),
            ).to_list()
        return [rule_from_document(document) for document in documents]

    async def count(self) -> int:
        async with _store_errors("count_rules"):
            return await AlertRuleDocument.find_all().count()

    async def save(self, rule: AlertRule) -> AlertRule:
        async with _store_errors("save_rule"):
            document = rule_to_document(rule)
            await document.save()
        return rule_from_document(document)

    async def save_all(self, rules: Sequence[AlertRule]) -> list[AlertRule]:
        # Unordered and outside a transaction: every new seed_key lands even when another
        # worker inserted some of the same keys first. The seeder completes partial batches.
        documents = [rule_to_document(rule) for rule in rules]
        async with _store_errors("save_rules"):
            try:
                await AlertRuleDocument.insert_many(documents, ordered=False)
            except BulkWriteError as exc:
                duplicates = _duplicate_key_indexes(exc)
                if duplicates is None:
                    raise
                log.warning("duplicate_seed_keys_skipped", skipped=len(duplicates))
                documents = [
                    document for index, document in enumerate(documents) if index not in duplicates
                ]
        return [rule_from_document(document) for document in documents]

    async def get(self, rule_id: str) -> AlertRule | None:
        async with _store_errors("get_rule"):
            document = await AlertRuleDocument.get(rule_id)
        return rule_from_document(document) if document else None

    async def delete(self, rule_id: str) -> bool:
        async with _store_errors("delete_rule"):
            document = await AlertRuleDocument.get(rule_id)
            if document is None:
                return False
            await document.delete()
        return True

    async def list_all(self) -> list[AlertRule]:
        async with _store_errors("list_rules"):
            documents = await AlertRuleDocument.find_all().to_list()
        return [rule_from_document(document) for document in documents]

    async def list_active(self) -> list[AlertRule]:
        async with _store_errors("list_active_rules"):
            documents = await AlertRuleDocument.find(
                AlertRuleDocument.is_active == True  # noqa: E712
            ).to_list()
        return [rule_from_document(document) for document in documents]

    async def list_for_patient(self, patient_id: str) -> list[AlertRule]:
        async with _store_errors("list_patient_rules"):
            documents = await AlertRuleDocument.find(
                AlertRuleDocument.patient_id == patient_id,
                AlertRuleDocument.is_active == True,  # noqa: E712
            ).to_list()
        return [rule_from_document(document) for document in documents]

    async def seed_keys(self) -> set[str]:
        async with _store_errors("seed_keys"):
            documents = await AlertRuleDocument.find(
                AlertRuleDocument.seed_key != None  # noqa: E711
            ).to_list()
        return {document.seed_key for document in documents if document.seed_key}


class MongoAlertStore:
    async def find_recent_similar_alerts(
        self, vital_sign_id: str, rule_id: str, since: datetime
    ) -> list[Alert]:
        async with _store_errors("find_recent_similar_alerts"):
            documents = await AlertDocument.find(
                AlertDocument.vital_sign_id == vital_sign_id,
                AlertDocument.triggered_rule_id == rule_id,
                AlertDocument.triggered_at >= since,
            ).to_list()
        return [alert_from_document(document) for document in documents]

    async def save(self, alert: Alert) -> Alert:
        async with _store_errors("save_alert"):
            document = alert_to_document(alert)
            await document.save()
        return alert_from_document(document)

    async def save_all(self, alerts: Sequence[Alert]) -> list[Alert]:
        documents = [alert_to_document(alert) for alert in alerts]
        async with _store_errors("save_alerts"):
            async with _transaction() as session:
                await AlertDocument.insert_many(documents, session=session)
        return [alert_from_document(document) for document in documents]

    async def get(self, alert_id: str) -> Alert | None:
        async with _store_errors("get_alert"):
            document = await AlertDocument.get(alert_id)
        return alert_from_document(document) if document else None

    async def list_by_patient(
        self, patient_id: str, statuses: Iterable[AlertStatus] | None = None
    ) -> list[Alert]:
        query = AlertDocument.find(AlertDocument.patient_id == patient_id)
        if statuses is not None:
            query = query.find(In(AlertDocument.status, list(statuses)))
        async with _store_errors("list_patient_alerts"):
            documents = await query.sort("-triggered_at").to_list()
        return [alert_from_document(document) for document in documents]

    async def page_by_patient(
        self, patient_id: str, skip: int, limit: int
    ) -> tuple[list[Alert], int]:
        query = AlertDocument.find(AlertDocument.patient_id == patient_id)
        async with _store_errors("page_patient_alerts"):
            total = await query.count()
            documents = await query.sort("-triggered_at").skip(skip).limit(limit).to_list()
        return [alert_from_document(document) for document in documents], total

    async def count_by_patient(self, patient_id: str, status: AlertStatus) -> int:
        async with _store_errors("count_patient_alerts"):
            return await AlertDocument.find(
                AlertDocument.patient_id == patient_id,
                AlertDocument.status == status,
            ).count()
