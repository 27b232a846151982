"""
Threshold comparators.

Each `ComparisonOperator` has exactly one comparator class. `build_comparator` is the only
way rules get turned into comparators, and it validates bounds, so evaluation never sees
an unknown kind or a malformed BETWEEN.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from app.modules.alerts.constants import EQUALS_TOLERANCE, ComparisonOperator
from app.modules.alerts.exceptions import InvalidRuleDefinition
from app.modules.alerts.models import AlertRule


@dataclass(frozen=True)
class Comparator:
    operator: ClassVar[ComparisonOperator]
    threshold: float

    def matches(self, value: float) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class GreaterThan(Comparator):
    operator: ClassVar[ComparisonOperator] = ComparisonOperator.GREATER_THAN

    def matches(self, value: float) -> bool:
        return value > self.threshold

    def describe(self) -> str:
        return f"> {self.threshold:g}"


@dataclass(frozen=True)
class LessThan(Comparator):
    operator: ClassVar[ComparisonOperator] = ComparisonOperator.LESS_THAN

    def matches(self, value: float) -> bool:
        return value < self.threshold

    def describe(self) -> str:
        return f"< {self.threshold:g}"


@dataclass(frozen=True)
class Between(Comparator):
    """Inclusive on both ends."""

    operator: ClassVar[ComparisonOperator] = ComparisonOperator.BETWEEN
    threshold_max: float = 0.0

    def matches(self, value: float) -> bool:
        return self.threshold <= value <= self.threshold_max

    def describe(self) -> str:
        return f"{self.threshold:g}-{self.threshold_max:g}"


@dataclass(frozen=True)
class Equals(Comparator):
    operator: ClassVar[ComparisonOperator] = ComparisonOperator.EQUALS

    def matches(self, value: float) -> bool:
        return abs(value - self.threshold) < EQUALS_TOLERANCE

    def describe(self) -> str:
        return f"= {self.threshold:g}"


COMPARATORS: dict[ComparisonOperator, type[Comparator]] = {
    cls.operator: cls for cls in (GreaterThan, LessThan, Between, Equals)
}


def check_registry(registry: dict[ComparisonOperator, type[Comparator]]) -> None:
    missing = set(ComparisonOperator) - set(registry)
    if missing:
        raise RuntimeError(f"no comparator for {sorted(op.value for op in missing)}")


check_registry(COMPARATORS)


def validate_bounds(
    operator: ComparisonOperator, threshold: float, threshold_max: float | None
) -> None:
    """Raise InvalidRuleDefinition when the bounds do not fit the operator."""
    if operator not in COMPARATORS:
        raise InvalidRuleDefinition(f"unsupported comparison operator: {operator!r}")
    if operator == ComparisonOperator.BETWEEN:
        if threshold_max is None:
            raise InvalidRuleDefinition("BETWEEN requires thresholdValueMax")
        if threshold > threshold_max:
            raise InvalidRuleDefinition(
                f"BETWEEN requires thresholdValue <= thresholdValueMax "
                f"(got {threshold:g} > {threshold_max:g})"
            )


def build_comparator(rule: AlertRule) -> Comparator:
    validate_bounds(rule.comparator, rule.threshold, rule.threshold_max)
    if rule.comparator == ComparisonOperator.BETWEEN:
        return Between(threshold=rule.threshold, threshold_max=float(rule.threshold_max))
    return COMPARATORS[rule.comparator](threshold=rule.threshold)


def should_trigger(rule: AlertRule, value: float) -> bool:
    return build_comparator(rule).matches(value)
