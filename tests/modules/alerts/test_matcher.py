import pytest

from app.modules.alerts.constants import AlertSeverity, ComparisonOperator, VitalSignType
from app.modules.alerts.matcher import RuleMatcher, select_applicable
from app.modules.alerts.models import AlertRule
from app.modules.alerts.store import InMemoryRuleStore


def _rule(
    rule_id: str,
    patient_id: str | None = None,
    vital_sign_type: VitalSignType = VitalSignType.HEART_RATE,
    severity: AlertSeverity = AlertSeverity.WARNING,
    active: bool = True,
) -> AlertRule:
    return AlertRule(
        id=rule_id,
        patient_id=patient_id,
        vital_sign_type=vital_sign_type,
        severity=severity,
        comparator=ComparisonOperator.GREATER_THAN,
        threshold=100,
        message_template="HR %.0f",
        active=active,
    )


def test_select_applicable_filters_scope_channel_and_active() -> None:
    rules = [
        _rule("global"),
        _rule("mine", patient_id="p1"),
        _rule("theirs", patient_id="p2"),
        _rule("inactive", active=False),
        _rule("other-channel", vital_sign_type=VitalSignType.TEMPERATURE),
    ]

    selected = select_applicable(rules, "p1", VitalSignType.HEART_RATE)

    assert {rule.id for rule in selected} == {"global", "mine"}


def test_select_applicable_orders_patient_rules_then_severity() -> None:
    rules = [
        _rule("a-global-warning"),
        _rule("b-global-critical", severity=AlertSeverity.CRITICAL),
        _rule("c-patient-warning", patient_id="p1"),
        _rule("d-patient-critical", patient_id="p1", severity=AlertSeverity.CRITICAL),
    ]

    selected = select_applicable(rules, "p1", VitalSignType.HEART_RATE)

    assert [rule.id for rule in selected] == [
        "d-patient-critical",
        "c-patient-warning",
        "b-global-critical",
        "a-global-warning",
    ]


@pytest.mark.asyncio
async def test_matcher_reads_from_store() -> None:
    store = InMemoryRuleStore([_rule("global"), _rule("theirs", patient_id="p2")])

    matched = await RuleMatcher(store).match("p1", VitalSignType.HEART_RATE)

    assert [rule.id for rule in matched] == ["global"]


@pytest.mark.asyncio
async def test_matcher_drops_rules_a_store_should_not_have_returned() -> None:
    class _LenientStore(InMemoryRuleStore):
        async def find_applicable_rules(self, patient_id, vital_sign_type):
            return await self.list_all()

    store = _LenientStore([_rule("global"), _rule("theirs", patient_id="p2"), _rule("off", active=False)])

    matched = await RuleMatcher(store).match("p1", VitalSignType.HEART_RATE)

    assert [rule.id for rule in matched] == ["global"]
