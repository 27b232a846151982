"""
Baseline alert rules for geriatric patients, based on common clinical thresholds.

`DefaultRuleSeeder.seed()` is called once from the application lifespan. It only writes
when the rule store is empty, or when it holds nothing but an incomplete baseline left by
an earlier failed run, in which case the missing baseline rules are added.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from app.core.clock import Clock
from app.core.locking import KeyedLock
from app.modules.alerts.comparators import validate_bounds
from app.modules.alerts.exceptions import StoreError
from app.modules.alerts.constants import AlertSeverity, ComparisonOperator, VitalSignType
from app.modules.alerts.models import AlertRule
from app.modules.alerts.store import RuleStore

log = structlog.get_logger(__name__)

CRITICAL = AlertSeverity.CRITICAL
WARNING = AlertSeverity.WARNING
GT = ComparisonOperator.GREATER_THAN
LT = ComparisonOperator.LESS_THAN
BETWEEN = ComparisonOperator.BETWEEN

SEEDED_BY = "system"

# Shared by all seeders in the process; held in Redis across workers when REDIS_URL is set.
_seed_lock = KeyedLock("alerts:seed")


@dataclass(frozen=True)
class DefaultRuleSpec:
    key: str
    vital_sign_type: VitalSignType
    severity: AlertSeverity
    comparator: ComparisonOperator
    threshold: float
    threshold_max: float | None
    message_template: str
    cooldown_minutes: int


DEFAULT_RULES: tuple[DefaultRuleSpec, ...] = (
    # Blood pressure (systolic, mmHg)
    DefaultRuleSpec(
        "bp-systolic-crisis", VitalSignType.BLOOD_PRESSURE, CRITICAL, GT, 180.0, None,
        "CRITICAL: Blood pressure systolic %.0f mmHg - Hypertensive crisis risk", 15,
    ),
    DefaultRuleSpec(
        "bp-systolic-severe-low", VitalSignType.BLOOD_PRESSURE, CRITICAL, LT, 90.0, None,
        "CRITICAL: Blood pressure systolic %.0f mmHg - Severe hypotension", 15,
    ),
    DefaultRuleSpec(
        "bp-systolic-stage2", VitalSignType.BLOOD_PRESSURE, WARNING, BETWEEN, 160.0, 180.0,
        "WARNING: Blood pressure systolic %.0f mmHg - Stage 2 hypertension", 30,
    ),
    DefaultRuleSpec(
        "bp-systolic-mild-low", VitalSignType.BLOOD_PRESSURE, WARNING, BETWEEN, 90.0, 100.0,
        "WARNING: Blood pressure systolic %.0f mmHg - Mild hypotension", 30,
    ),
    # Heart rate (bpm)
    DefaultRuleSpec(
        "hr-severe-tachycardia", VitalSignType.HEART_RATE, CRITICAL, GT, 120.0, None,
        "CRITICAL: Heart rate %.0f bpm - Severe tachycardia", 15,
    ),
    DefaultRuleSpec(
        "hr-severe-bradycardia", VitalSignType.HEART_RATE, CRITICAL, LT, 50.0, None,
        "CRITICAL: Heart rate %.0f bpm - Severe bradycardia", 15,
    ),
    DefaultRuleSpec(
        "hr-tachycardia", VitalSignType.HEART_RATE, WARNING, BETWEEN, 100.0, 120.0,
        "WARNING: Heart rate %.0f bpm - Tachycardia", 30,
    ),
    DefaultRuleSpec(
        "hr-bradycardia", VitalSignType.HEART_RATE, WARNING, BETWEEN, 50.0, 60.0,
        "WARNING: Heart rate %.0f bpm - Bradycardia", 30,
    ),
    # Temperature (Celsius)
    DefaultRuleSpec(
        "temp-high-fever", VitalSignType.TEMPERATURE, CRITICAL, GT, 39.0, None,
        "CRITICAL: Temperature %.1f°C - High fever", 15,
    ),
    DefaultRuleSpec(
        "temp-hypothermia", VitalSignType.TEMPERATURE, CRITICAL, LT, 35.0, None,
        "CRITICAL: Temperature %.1f°C - Hypothermia risk", 15,
    ),
    DefaultRuleSpec(
        "temp-fever", VitalSignType.TEMPERATURE, WARNING, BETWEEN, 38.0, 39.0,
        "WARNING: Temperature %.1f°C - Fever", 30,
    ),
    DefaultRuleSpec(
        "temp-low", VitalSignType.TEMPERATURE, WARNING, BETWEEN, 35.0, 35.5,
        "WARNING: Temperature %.1f°C - Low body temperature", 30,
    ),
    # Oxygen saturation (%); shorter cooldowns
    DefaultRuleSpec(
        "spo2-severe-hypoxemia", VitalSignType.OXYGEN_SATURATION, CRITICAL, LT, 88.0, None,
        "CRITICAL: Oxygen saturation %.0f%% - Severe hypoxemia", 10,
    ),
    DefaultRuleSpec(
        "spo2-hypoxemia", VitalSignType.OXYGEN_SATURATION, WARNING, BETWEEN, 88.0, 92.0,
        "WARNING: Oxygen saturation %.0f%% - Hypoxemia", 20,
    ),
    # Respiratory rate (breaths/min)
    DefaultRuleSpec(
        "rr-severe-tachypnea", VitalSignType.RESPIRATORY_RATE, CRITICAL, GT, 30.0, None,
        "CRITICAL: Respiratory rate %.0f breaths/min - Severe tachypnea", 15,
    ),
    DefaultRuleSpec(
        "rr-severe-bradypnea", VitalSignType.RESPIRATORY_RATE, CRITICAL, LT, 8.0, None,
        "CRITICAL: Respiratory rate %.0f breaths/min - Severe bradypnea", 15,
    ),
    DefaultRuleSpec(
        "rr-tachypnea", VitalSignType.RESPIRATORY_RATE, WARNING, BETWEEN, 24.0, 30.0,
        "WARNING: Respiratory rate %.0f breaths/min - Tachypnea", 30,
    ),
    DefaultRuleSpec(
        "rr-bradypnea", VitalSignType.RESPIRATORY_RATE, WARNING, BETWEEN, 8.0, 12.0,
        "WARNING: Respiratory rate %.0f breaths/min - Bradypnea", 30,
    ),
)


class DefaultRuleSeeder:
    def __init__(
        self,
        rule_store: RuleStore,
        clock: Clock,
        specs: tuple[DefaultRuleSpec, ...] = DEFAULT_RULES,
        seed_lock: KeyedLock | None = None,
    ) -> None:
        self._rule_store = rule_store
        self._clock = clock
        self._specs = specs
        self._seed_lock = seed_lock or _seed_lock

    async def seed(self) -> list[AlertRule]:
        """Insert the missing baseline rules; return what was inserted."""
        try:
            async with self._seed_lock.hold("default"):
                return await self._seed()
        except TimeoutError as exc:
            raise StoreError("timed out waiting for the default rule seed lock") from exc

    async def _seed(self) -> list[AlertRule]:
        total = await self._rule_store.count()
        seeded_keys = await self._rule_store.seed_keys()

        if total > len(seeded_keys):
            log.info("default_rules_skipped", reason="custom_rules_present", existing=total)
            return []

        missing = [spec for spec in self._specs if spec.key not in seeded_keys]
        if not missing:
            log.info("default_rules_skipped", reason="already_seeded", existing=total)
            return []

        if seeded_keys:
            log.warning(
                "default_rules_incomplete",
                existing=len(seeded_keys),
                missing=[spec.key for spec in missing],
            )

        rules = [self._build(spec) for spec in missing]
        # Keys seeded concurrently by another worker are skipped by the store.
        inserted = await self._rule_store.save_all(rules)
        log.info("default_rules_seeded", created=len(inserted), skipped=len(rules) - len(inserted))
        return inserted

    def _build(self, spec: DefaultRuleSpec) -> AlertRule:
        validate_bounds(spec.comparator, spec.threshold, spec.threshold_max)
        now = self._clock.now()
        return AlertRule(
            vital_sign_type=spec.vital_sign_type,
            severity=spec.severity,
            comparator=spec.comparator,
            threshold=spec.threshold,
            threshold_max=spec.threshold_max,
            message_template=spec.message_template,
            patient_id=None,
            active=True,
            cooldown_minutes=spec.cooldown_minutes,
            seed_key=spec.key,
            created_by=SEEDED_BY,
            created_at=now,
            updated_at=now,
        )
