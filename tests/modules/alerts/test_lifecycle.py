import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import pytest

from app.modules.alerts.constants import AlertSeverity, AlertStatus
from app.modules.alerts.exceptions import InvalidAlertTransition, NotFound, StoreError
from app.modules.alerts.lifecycle import AlertLifecycleManager
from app.modules.alerts.models import Alert
from app.modules.alerts.store import InMemoryAlertStore


@pytest.fixture
async def stored_alert(alert_store: InMemoryAlertStore, clock) -> Alert:
    alert = Alert(
        patient_id="p1",
        vital_sign_id="v1",
        rule_id="r1",
        severity=AlertSeverity.CRITICAL,
        message="CRITICAL: Heart rate 130 bpm - Severe tachycardia",
        triggered_at=clock.now(),
        created_at=clock.now(),
    )
    await alert_store.save(alert)
    return alert


@pytest.fixture
def lifecycle(alert_store: InMemoryAlertStore, clock) -> AlertLifecycleManager:
    return AlertLifecycleManager(alert_store, clock)


@pytest.mark.asyncio
async def test_acknowledge_then_resolve(lifecycle, alert_store, stored_alert, clock) -> None:
    clock.advance(minutes=2)
    acknowledged = await lifecycle.acknowledge(stored_alert.id, "nurse-1")

    assert acknowledged.status == AlertStatus.ACKNOWLEDGED
    assert acknowledged.acknowledged_by == "nurse-1"
    assert acknowledged.acknowledged_at == clock.now()

    clock.advance(minutes=10)
    resolved = await lifecycle.resolve(stored_alert.id, "doctor-1", notes="Medication adjusted")

    assert resolved.status == AlertStatus.RESOLVED
    assert resolved.resolved_by == "doctor-1"
    assert resolved.resolved_at == clock.now()
    assert resolved.notes == "Medication adjusted"
    # The acknowledgement trail survives resolution
    assert resolved.acknowledged_by == "nurse-1"
    assert (await alert_store.get(stored_alert.id)).status == AlertStatus.RESOLVED


@pytest.mark.asyncio
async def test_resolve_directly_from_new(lifecycle, stored_alert) -> None:
    resolved = await lifecycle.resolve(stored_alert.id, "doctor-1")

    assert resolved.status == AlertStatus.RESOLVED
    assert resolved.acknowledged_at is None
    assert resolved.acknowledged_by is None
    assert resolved.notes is None


@pytest.mark.asyncio
async def test_second_acknowledge_keeps_first_actor(lifecycle, stored_alert, clock) -> None:
    first = await lifecycle.acknowledge(stored_alert.id, "nurse-1")
    clock.advance(minutes=1)
    second = await lifecycle.acknowledge(stored_alert.id, "nurse-2")

    assert second.acknowledged_by == "nurse-1"
    assert second.acknowledged_at == first.acknowledged_at


@pytest.mark.asyncio
async def test_resolved_alert_is_terminal(lifecycle, alert_store, stored_alert) -> None:
    await lifecycle.resolve(stored_alert.id, "doctor-1", notes="ok")

    with pytest.raises(InvalidAlertTransition):
        await lifecycle.acknowledge(stored_alert.id, "nurse-1")
    with pytest.raises(InvalidAlertTransition):
        await lifecycle.resolve(stored_alert.id, "doctor-2")

    stored = await alert_store.get(stored_alert.id)
    assert stored.resolved_by == "doctor-1"
    assert stored.acknowledged_by is None


@pytest.mark.asyncio
async def test_unknown_alert_raises_not_found(lifecycle) -> None:
    with pytest.raises(NotFound):
        await lifecycle.acknowledge("missing", "nurse-1")
    with pytest.raises(NotFound):
        await lifecycle.resolve("missing", "nurse-1")


class _SlowReadAlertStore(InMemoryAlertStore):
    """Yields to the event loop between reading an alert and returning it."""

    async def get(self, alert_id: str) -> Alert | None:
        alert = await super().get(alert_id)
        await asyncio.sleep(0)
        return alert


async def _store_new_alert(store: InMemoryAlertStore, clock) -> Alert:
    alert = Alert(
        patient_id="p1",
        vital_sign_id="v1",
        rule_id="r1",
        severity=AlertSeverity.WARNING,
        message="WARNING: Heart rate 110 bpm - Tachycardia",
        triggered_at=clock.now(),
    )
    await store.save(alert)
    return alert


@pytest.mark.asyncio
async def test_concurrent_acknowledge_cannot_undo_resolution(clock) -> None:
    store = _SlowReadAlertStore()
    lifecycle = AlertLifecycleManager(store, clock)
    alert = await _store_new_alert(store, clock)

    resolved, acknowledged = await asyncio.gather(
        lifecycle.resolve(alert.id, "doctor-1"),
        lifecycle.acknowledge(alert.id, "nurse-1"),
        return_exceptions=True,
    )

    assert resolved.status == AlertStatus.RESOLVED
    assert isinstance(acknowledged, InvalidAlertTransition)
    stored = await store.get(alert.id)
    assert stored.status == AlertStatus.RESOLVED
    assert stored.resolved_by == "doctor-1"


@pytest.mark.asyncio
async def test_concurrent_acknowledge_then_resolve_keeps_both(clock) -> None:
    store = _SlowReadAlertStore()
    lifecycle = AlertLifecycleManager(store, clock)
    alert = await _store_new_alert(store, clock)

    await asyncio.gather(
        lifecycle.acknowledge(alert.id, "nurse-1"),
        lifecycle.resolve(alert.id, "doctor-1"),
    )

    stored = await store.get(alert.id)
    assert stored.status == AlertStatus.RESOLVED
    assert stored.acknowledged_by == "nurse-1"
    assert stored.resolved_by == "doctor-1"


class _BusyLock:
    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        raise TimeoutError(key)
        yield  # pragma: no cover


@pytest.mark.asyncio
async def test_lock_timeout_surfaces_as_store_error(alert_store, stored_alert, clock) -> None:
    lifecycle = AlertLifecycleManager(alert_store, clock, alert_lock=_BusyLock())

    with pytest.raises(StoreError):
        await lifecycle.resolve(stored_alert.id, "doctor-1")
    assert (await alert_store.get(stored_alert.id)).status == AlertStatus.NEW
