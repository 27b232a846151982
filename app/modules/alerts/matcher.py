from app.modules.alerts.constants import VitalSignType
from app.modules.alerts.models import AlertRule
from app.modules.alerts.store import RuleStore


def _precedence(rule: AlertRule) -> tuple[int, int, str]:
    # Patient-specific first, then CRITICAL before WARNING, then id for stability.
    return (0 if rule.patient_id is not None else 1, -rule.severity.rank, rule.id)


def select_applicable(
    rules: list[AlertRule], patient_id: str, vital_sign_type: VitalSignType
) -> list[AlertRule]:
    """
    Every active rule for this patient and channel.

    Patient-specific rules do not shadow global ones: a patient with a stricter personal
    threshold still has the global rule armed, and both fire independently.
    """
    applicable = [
        rule
        for rule in rules
        if rule.active
        and rule.vital_sign_type == vital_sign_type
        and (rule.patient_id is None or rule.patient_id == patient_id)
    ]
    return sorted(applicable, key=_precedence)


class RuleMatcher:
    def __init__(self, rule_store: RuleStore) -> None:
        self._rule_store = rule_store

    async def match(self, patient_id: str, vital_sign_type: VitalSignType) -> list[AlertRule]:
        rules = await self._rule_store.find_applicable_rules(patient_id, vital_sign_type)
        # Re-filter so a lenient store can never arm another patient's rule.
        return select_applicable(rules, patient_id, vital_sign_type)
