import pytest
from pydantic import ValidationError

from app.core.config import settings
from app.modules.alerts.constants import (
    AlertSeverity,
    AlertStatus,
    ComparisonOperator,
    VitalSignType,
)
from app.modules.alerts.exceptions import InvalidRuleDefinition, NotFound
from app.modules.alerts.models import VitalSignReading
from app.modules.alerts.schemas import AlertRuleRequest


def _request(**overrides) -> AlertRuleRequest:
    data = {
        "vital_sign_type": VitalSignType.HEART_RATE,
        "severity": AlertSeverity.WARNING,
        "comparison_operator": ComparisonOperator.GREATER_THAN,
        "threshold_value": 100.0,
        "alert_message": "HR %.0f bpm",
    }
    data.update(overrides)
    return AlertRuleRequest(**data)


@pytest.mark.asyncio
async def test_create_rule_applies_defaults(alert_rule_service, clock) -> None:
    rule = await alert_rule_service.create(_request(patient_id="p1"), actor_id="doc-1")

    assert rule.active
    assert rule.patient_id == "p1"
    assert rule.created_by == "doc-1"
    assert rule.created_at == rule.updated_at == clock.now()
    assert rule.cooldown_minutes == settings.DEFAULT_RULE_COOLDOWN_MINUTES


def test_request_rejects_inverted_between() -> None:
    with pytest.raises(ValidationError):
        _request(
            comparison_operator=ComparisonOperator.BETWEEN,
            threshold_value=120.0,
            threshold_value_max=100.0,
        )


@pytest.mark.asyncio
async def test_service_rejects_between_without_max(alert_rule_service, rule_store) -> None:
    # Bypass request validation to reach the service-level check
    request = AlertRuleRequest.model_construct(
        patient_id=None,
        vital_sign_type=VitalSignType.HEART_RATE,
        severity=AlertSeverity.WARNING,
        comparison_operator=ComparisonOperator.BETWEEN,
        threshold_value=100.0,
        threshold_value_max=None,
        alert_message="HR %.0f",
        cooldown_minutes=None,
    )

    with pytest.raises(InvalidRuleDefinition):
        await alert_rule_service.create(request)
    assert await rule_store.count() == 0


@pytest.mark.asyncio
async def test_update_replaces_definition_but_keeps_scope(alert_rule_service, clock) -> None:
    rule = await alert_rule_service.create(_request(patient_id="p1", cooldown_minutes=5))
    clock.advance(minutes=1)

    updated = await alert_rule_service.update(
        rule.id,
        _request(
            patient_id="someone-else",
            comparison_operator=ComparisonOperator.BETWEEN,
            threshold_value=100.0,
            threshold_value_max=110.0,
            severity=AlertSeverity.CRITICAL,
        ),
    )

    assert updated.patient_id == "p1"
    assert updated.comparator == ComparisonOperator.BETWEEN
    assert updated.threshold_max == 110.0
    assert updated.severity == AlertSeverity.CRITICAL
    assert updated.cooldown_minutes == 5
    assert updated.updated_at == clock.now()


@pytest.mark.asyncio
async def test_deactivated_rule_stops_firing(alert_rule_service, alert_service, clock) -> None:
    rule = await alert_rule_service.create(_request())
    await alert_rule_service.deactivate(rule.id)

    created = await alert_service.evaluate(
        VitalSignReading(patient_id="p1", measured_at=clock.now(), heart_rate=130)
    )

    assert created == []
    assert [r.id for r in await alert_rule_service.list_all()] == [rule.id]
    assert await alert_rule_service.list_active() == []


@pytest.mark.asyncio
async def test_list_for_patient_excludes_global(alert_rule_service) -> None:
    await alert_rule_service.create(_request())
    mine = await alert_rule_service.create(_request(patient_id="p1"))

    assert [r.id for r in await alert_rule_service.list_for_patient("p1")] == [mine.id]


@pytest.mark.asyncio
async def test_missing_rule_raises_not_found(alert_rule_service) -> None:
    with pytest.raises(NotFound):
        await alert_rule_service.get("missing")
    with pytest.raises(NotFound):
        await alert_rule_service.delete("missing")
    with pytest.raises(NotFound):
        await alert_rule_service.deactivate("missing")


@pytest.mark.asyncio
async def test_alert_reads(alert_rule_service, alert_service, clock) -> None:
    await alert_rule_service.create(_request(cooldown_minutes=0))
    for heart_rate in (105, 110, 115):
        await alert_service.evaluate(
            VitalSignReading(patient_id="p1", measured_at=clock.now(), heart_rate=heart_rate)
        )
        clock.advance(minutes=1)

    open_alerts = await alert_service.get_open_alerts("p1")
    assert [alert.message for alert in open_alerts] == ["HR 115 bpm", "HR 110 bpm", "HR 105 bpm"]

    await alert_service.acknowledge(open_alerts[0].id, "nurse-1")
    await alert_service.resolve(open_alerts[1].id, "nurse-1")

    assert await alert_service.get_active_alert_count("p1") == 1
    assert [a.status for a in await alert_service.get_active_alerts("p1")] == [AlertStatus.NEW]
    assert len(await alert_service.get_open_alerts("p1")) == 2

    page, total = await alert_service.get_alerts_page("p1", page=1, size=2)
    assert total == 3
    assert [alert.message for alert in page] == ["HR 105 bpm"]
