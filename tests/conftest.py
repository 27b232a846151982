from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Iterable

import pytest
from httpx import ASGITransport, AsyncClient

from app.core import security
from app.main import app
from app.modules.alerts.service import (
    AlertRuleService,
    AlertService,
    get_alert_rule_service,
    get_alert_service,
)
from app.modules.alerts.store import InMemoryAlertStore, InMemoryRuleStore
from app.modules.vitals.service import (
    InMemoryVitalSignStore,
    VitalSignService,
    get_vital_sign_service,
)
from app.shared.constants import Role


class FrozenClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def rule_store() -> InMemoryRuleStore:
    return InMemoryRuleStore()


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def vital_sign_store() -> InMemoryVitalSignStore:
    return InMemoryVitalSignStore()


@pytest.fixture
def alert_service(
    rule_store: InMemoryRuleStore, alert_store: InMemoryAlertStore, clock: FrozenClock
) -> AlertService:
    return AlertService(rule_store=rule_store, alert_store=alert_store, clock=clock)


@pytest.fixture
def alert_rule_service(rule_store: InMemoryRuleStore, clock: FrozenClock) -> AlertRuleService:
    return AlertRuleService(rule_store=rule_store, clock=clock)


@pytest.fixture
def vital_sign_service(
    vital_sign_store: InMemoryVitalSignStore,
    alert_service: AlertService,
    clock: FrozenClock,
) -> VitalSignService:
    return VitalSignService(store=vital_sign_store, alerts=alert_service, clock=clock)


@pytest.fixture
async def client(
    alert_service: AlertService,
    alert_rule_service: AlertRuleService,
    vital_sign_service: VitalSignService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client bound to the app with in-memory services.

    ASGITransport does not run the lifespan, so no Mongo or Redis connection is attempted.
    """
    app.dependency_overrides[get_alert_service] = lambda: alert_service
    app.dependency_overrides[get_alert_rule_service] = lambda: alert_rule_service
    app.dependency_overrides[get_vital_sign_service] = lambda: vital_sign_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(user_id: str = "user-1", roles: Iterable[Role] = (Role.PHYSICIAN,)) -> dict[str, str]:
        token = security.create_access_token(user_id, roles=[role.value for role in roles])
        return {"Authorization": f"Bearer {token}"}

    return _headers
