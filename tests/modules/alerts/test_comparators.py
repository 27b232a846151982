import pytest

from app.modules.alerts.comparators import (
    COMPARATORS,
    Between,
    Equals,
    GreaterThan,
    LessThan,
    build_comparator,
    check_registry,
    should_trigger,
    validate_bounds,
)
from app.modules.alerts.constants import AlertSeverity, ComparisonOperator, VitalSignType
from app.modules.alerts.exceptions import InvalidRuleDefinition
from app.modules.alerts.models import AlertRule


def _rule(operator: ComparisonOperator, threshold: float, threshold_max: float | None = None) -> AlertRule:
    return AlertRule(
        vital_sign_type=VitalSignType.HEART_RATE,
        severity=AlertSeverity.WARNING,
        comparator=operator,
        threshold=threshold,
        threshold_max=threshold_max,
        message_template="HR %.0f",
    )


def test_every_operator_has_a_comparator() -> None:
    assert set(COMPARATORS) == set(ComparisonOperator)


def test_incomplete_registry_is_rejected() -> None:
    partial = {op: cls for op, cls in COMPARATORS.items() if op != ComparisonOperator.EQUALS}

    with pytest.raises(RuntimeError, match="EQUALS"):
        check_registry(partial)


@pytest.mark.parametrize(
    ("comparator", "value", "expected"),
    [
        (GreaterThan(threshold=180), 180.0, False),
        (GreaterThan(threshold=180), 180.5, True),
        (LessThan(threshold=90), 90.0, False),
        (LessThan(threshold=90), 89.9, True),
        (Between(threshold=160, threshold_max=180), 160.0, True),
        (Between(threshold=160, threshold_max=180), 180.0, True),
        (Between(threshold=160, threshold_max=180), 159.9, False),
        (Between(threshold=160, threshold_max=180), 180.1, False),
        (Equals(threshold=37.0), 37.005, True),
        (Equals(threshold=37.0), 36.995, True),
        (Equals(threshold=37.0), 37.02, False),
        (Equals(threshold=37.0), 36.98, False),
    ],
)
def test_comparator_boundaries(comparator, value: float, expected: bool) -> None:
    assert comparator.matches(value) is expected


def test_build_comparator_dispatches_on_operator() -> None:
    assert isinstance(build_comparator(_rule(ComparisonOperator.GREATER_THAN, 1)), GreaterThan)
    assert isinstance(build_comparator(_rule(ComparisonOperator.LESS_THAN, 1)), LessThan)
    assert isinstance(build_comparator(_rule(ComparisonOperator.EQUALS, 1)), Equals)
    between = build_comparator(_rule(ComparisonOperator.BETWEEN, 88, 92))
    assert isinstance(between, Between)
    assert between.describe() == "88-92"


def test_should_trigger_uses_rule_thresholds() -> None:
    rule = _rule(ComparisonOperator.BETWEEN, 88, 92)

    assert should_trigger(rule, 90.0)
    assert not should_trigger(rule, 87.0)


def test_between_without_upper_bound_is_rejected() -> None:
    with pytest.raises(InvalidRuleDefinition):
        validate_bounds(ComparisonOperator.BETWEEN, 88.0, None)


def test_between_with_inverted_bounds_is_rejected() -> None:
    with pytest.raises(InvalidRuleDefinition):
        build_comparator(_rule(ComparisonOperator.BETWEEN, 92, 88))


def test_between_with_equal_bounds_is_accepted() -> None:
    comparator = build_comparator(_rule(ComparisonOperator.BETWEEN, 90, 90))

    assert comparator.matches(90.0)
    assert not comparator.matches(90.5)


def test_unknown_operator_is_rejected() -> None:
    with pytest.raises(InvalidRuleDefinition):
        validate_bounds("NOT_EQUALS", 1.0, None)  # type: ignore[arg-type]
