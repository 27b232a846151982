from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

from app.core.clock import Clock
from app.core.locking import KeyedLock
from app.modules.alerts.constants import AlertStatus
from app.modules.alerts.exceptions import InvalidAlertTransition, NotFound, StoreError
from app.modules.alerts.models import Alert
from app.modules.alerts.store import AlertStore

log = structlog.get_logger(__name__)


class AlertLifecycleManager:
    """
    Moves alerts through NEW -> ACKNOWLEDGED -> RESOLVED.

    - acknowledge: NEW -> ACKNOWLEDGED. Repeating it on an ACKNOWLEDGED alert is a no-op
      and keeps the first acknowledger.
    - resolve: NEW or ACKNOWLEDGED -> RESOLVED. Acknowledgement fields are left as they are.
    - RESOLVED is terminal; any further transition raises InvalidAlertTransition.

    Transitions of one alert are serialized, so a concurrent acknowledge can never write
    over a resolution.
    """

    def __init__(
        self, alert_store: AlertStore, clock: Clock, alert_lock: KeyedLock | None = None
    ) -> None:
        self._alert_store = alert_store
        self._clock = clock
        self._alert_lock = alert_lock or KeyedLock("alerts:lifecycle")

    async def acknowledge(self, alert_id: str, actor_id: str) -> Alert:
        async with self._locked(alert_id):
            return await self._acknowledge(alert_id, actor_id)

    async def resolve(self, alert_id: str, actor_id: str, notes: str | None = None) -> Alert:
        async with self._locked(alert_id):
            return await self._resolve(alert_id, actor_id, notes)

    @asynccontextmanager
    async def _locked(self, alert_id: str) -> AsyncIterator[None]:
        try:
            async with self._alert_lock.hold(alert_id):
                yield
        except TimeoutError as exc:
            raise StoreError(f"alert {alert_id} is locked by another transition") from exc

    async def _acknowledge(self, alert_id: str, actor_id: str) -> Alert:
        alert = await self._load(alert_id)
        if alert.status == AlertStatus.RESOLVED:
            raise InvalidAlertTransition(alert.id, alert.status.value, "acknowledge")
        if alert.status == AlertStatus.ACKNOWLEDGED:
            log.info(
                "alert_already_acknowledged",
                alert_id=alert.id,
                acknowledged_by=alert.acknowledged_by,
                requested_by=actor_id,
            )
            return alert

        updated = alert.copy(
            status=AlertStatus.ACKNOWLEDGED,
            acknowledged_at=self._clock.now(),
            acknowledged_by=actor_id,
        )
        await self._alert_store.save(updated)
        log.info("alert_acknowledged", alert_id=alert.id, actor_id=actor_id)
        return updated

    async def _resolve(self, alert_id: str, actor_id: str, notes: str | None) -> Alert:
        alert = await self._load(alert_id)
        if alert.status == AlertStatus.RESOLVED:
            raise InvalidAlertTransition(alert.id, alert.status.value, "resolve")

        updated = alert.copy(
            status=AlertStatus.RESOLVED,
            resolved_at=self._clock.now(),
            resolved_by=actor_id,
            notes=notes,
        )
        await self._alert_store.save(updated)
        log.info(
            "alert_resolved",
            alert_id=alert.id,
            actor_id=actor_id,
            skipped_acknowledge=alert.status == AlertStatus.NEW,
        )
        return updated

    async def _load(self, alert_id: str) -> Alert:
        alert = await self._alert_store.get(alert_id)
        if alert is None:
            raise NotFound("alert", alert_id)
        return alert
