from __future__ import annotations

from typing import Protocol

import structlog
from pymongo.errors import PyMongoError

from app.core.clock import Clock, ensure_utc
from app.core.config import settings
from app.modules.alerts.exceptions import NotFound, StoreError
from app.modules.alerts.models import Alert, VitalSignReading, new_id
from app.modules.alerts.service import AlertService, alert_service, clock
from app.modules.vitals.models import VitalSignDocument
from app.modules.vitals.schemas import VitalSignCreate, VitalSignResponse

log = structlog.get_logger(__name__)


class VitalSignStore(Protocol):
    async def save(self, vital_sign: VitalSignResponse) -> VitalSignResponse: ...

    async def get(self, vital_sign_id: str) -> VitalSignResponse | None: ...


class InMemoryVitalSignStore:
    def __init__(self) -> None:
        self._items: dict[str, VitalSignResponse] = {}

    async def save(self, vital_sign: VitalSignResponse) -> VitalSignResponse:
        self._items[vital_sign.id] = vital_sign.model_copy()
        return vital_sign

    async def get(self, vital_sign_id: str) -> VitalSignResponse | None:
        item = self._items.get(vital_sign_id)
        return item.model_copy() if item else None


class MongoVitalSignStore:
    async def save(self, vital_sign: VitalSignResponse) -> VitalSignResponse:
        document = VitalSignDocument(**vital_sign.model_dump())
        try:
            await document.insert()
        except PyMongoError as exc:
            raise StoreError(f"save_vital_sign failed: {exc}") from exc
        return vital_sign

    async def get(self, vital_sign_id: str) -> VitalSignResponse | None:
        try:
            document = await VitalSignDocument.get(vital_sign_id)
        except PyMongoError as exc:
            raise StoreError(f"get_vital_sign failed: {exc}") from exc
        if document is None:
            return None
        data = document.model_dump()
        data["measured_at"] = ensure_utc(document.measured_at)
        return VitalSignResponse.model_validate(data)


def to_reading(vital_sign: VitalSignResponse) -> VitalSignReading:
    """Project a stored reading onto the fields the alert engine evaluates."""
    return VitalSignReading(
        id=vital_sign.id,
        patient_id=vital_sign.patient_id,
        measured_at=vital_sign.measured_at,
        systolic=vital_sign.blood_pressure_systolic,
        diastolic=vital_sign.blood_pressure_diastolic,
        heart_rate=vital_sign.heart_rate,
        temperature=vital_sign.temperature,
        respiratory_rate=vital_sign.respiratory_rate,
        oxygen_saturation=vital_sign.oxygen_saturation,
    )


class VitalSignService:
    """Records readings and hands each stored reading to the alert engine."""

    def __init__(
        self, store: VitalSignStore, alerts: AlertService, clock: Clock
    ) -> None:
        self._store = store
        self._alerts = alerts
        self._clock = clock

    async def record(
        self, vital_in: VitalSignCreate, recorded_by: str | None = None
    ) -> tuple[VitalSignResponse, list[Alert]]:
        measured_at = ensure_utc(vital_in.measured_at) if vital_in.measured_at else self._clock.now()
        vital_sign = VitalSignResponse(
            id=new_id(),
            measured_at=measured_at,
            recorded_by=recorded_by,
            **vital_in.model_dump(exclude={"measured_at"}),
        )
        # The reading must be durable before alerts reference it.
        await self._store.save(vital_sign)
        log.info("vital_sign_recorded", vital_sign_id=vital_sign.id, patient_id=vital_sign.patient_id)

        alerts = await self._alerts.evaluate(to_reading(vital_sign))
        return vital_sign, alerts

    async def get(self, vital_sign_id: str) -> VitalSignResponse:
        vital_sign = await self._store.get(vital_sign_id)
        if vital_sign is None:
            raise NotFound("vital sign", vital_sign_id)
        return vital_sign

    async def reevaluate(self, vital_sign_id: str) -> list[Alert]:
        """Run evaluation again for a stored reading, e.g. after a failed first attempt."""
        vital_sign = await self.get(vital_sign_id)
        return await self._alerts.evaluate(to_reading(vital_sign))


def build_vital_sign_store(backend: str) -> VitalSignStore:
    if backend == "memory":
        return InMemoryVitalSignStore()
    return MongoVitalSignStore()


vital_sign_service = VitalSignService(
    store=build_vital_sign_store(settings.STORE_BACKEND), alerts=alert_service, clock=clock
)


def get_vital_sign_service() -> VitalSignService:
    return vital_sign_service
