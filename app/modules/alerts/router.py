"""HTTP endpoints for alerts and alert rules."""

from typing import List

from fastapi import APIRouter, Body, Depends, Query, Response, status

from app.modules.alerts.schemas import (
    AlertCountResponse,
    AlertResolveRequest,
    AlertResponse,
    AlertRuleRequest,
    AlertRuleResponse,
)
from app.modules.alerts.service import (
    AlertRuleService,
    AlertService,
    get_alert_rule_service,
    get_alert_service,
)
from app.shared.constants import (
    ALERT_READERS,
    ALERT_RESPONDERS,
    RULE_AUTHORS,
    RULE_READERS,
)
from app.shared.deps import Principal, RoleChecker
from app.shared.schemas import Page

router = APIRouter()
rules_router = APIRouter()

allow_alert_read = RoleChecker(ALERT_READERS)
allow_alert_response = RoleChecker(ALERT_RESPONDERS)
allow_rule_read = RoleChecker(RULE_READERS)
allow_rule_write = RoleChecker(RULE_AUTHORS)
allow_admin_only = RoleChecker([])


# ========== Alerts ==========


@router.get("/patient/{patient_id}", response_model=List[AlertResponse])
async def read_open_alerts(
    patient_id: str,
    _: Principal = Depends(allow_alert_read),
    service: AlertService = Depends(get_alert_service),
) -> List[AlertResponse]:
    """NEW and ACKNOWLEDGED alerts for a patient, newest first."""
    alerts = await service.get_open_alerts(patient_id)
    return [AlertResponse.from_alert(alert) for alert in alerts]


@router.get("/patient/{patient_id}/active", response_model=List[AlertResponse])
async def read_active_alerts(
    patient_id: str,
    _: Principal = Depends(allow_alert_read),
    service: AlertService = Depends(get_alert_service),
) -> List[AlertResponse]:
    alerts = await service.get_active_alerts(patient_id)
    return [AlertResponse.from_alert(alert) for alert in alerts]


@router.get("/patient/{patient_id}/paginated", response_model=Page[AlertResponse])
async def read_alerts_page(
    patient_id: str,
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=100),
    _: Principal = Depends(allow_alert_read),
    service: AlertService = Depends(get_alert_service),
) -> Page[AlertResponse]:
    alerts, total = await service.get_alerts_page(patient_id, page=page, size=size)
    return Page[AlertResponse](
        items=[AlertResponse.from_alert(alert) for alert in alerts],
        page=page,
        size=size,
        total=total,
    )


@router.get("/patient/{patient_id}/count", response_model=AlertCountResponse)
async def read_active_alert_count(
    patient_id: str,
    _: Principal = Depends(allow_alert_read),
    service: AlertService = Depends(get_alert_service),
) -> AlertCountResponse:
    count = await service.get_active_alert_count(patient_id)
    return AlertCountResponse(patient_id=patient_id, count=count)


@router.get("/{alert_id}", response_model=AlertResponse)
async def read_alert(
    alert_id: str,
    _: Principal = Depends(allow_alert_read),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    return AlertResponse.from_alert(await service.get_alert(alert_id))


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str,
    principal: Principal = Depends(allow_alert_response),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    alert = await service.acknowledge(alert_id, actor_id=principal.id)
    return AlertResponse.from_alert(alert)


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: str,
    body: AlertResolveRequest | None = Body(None),
    principal: Principal = Depends(allow_alert_response),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    notes = body.notes if body else None
    alert = await service.resolve(alert_id, actor_id=principal.id, notes=notes)
    return AlertResponse.from_alert(alert)


# ========== Alert rules ==========


@rules_router.post("", response_model=AlertRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_alert_rule(
    rule_in: AlertRuleRequest,
    principal: Principal = Depends(allow_rule_write),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> AlertRuleResponse:
    rule = await service.create(rule_in, actor_id=principal.id)
    return AlertRuleResponse.from_rule(rule)


@rules_router.get("", response_model=List[AlertRuleResponse])
async def read_alert_rules(
    _: Principal = Depends(allow_rule_read),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> List[AlertRuleResponse]:
    return [AlertRuleResponse.from_rule(rule) for rule in await service.list_all()]


@rules_router.get("/active", response_model=List[AlertRuleResponse])
async def read_active_alert_rules(
    _: Principal = Depends(allow_rule_read),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> List[AlertRuleResponse]:
    return [AlertRuleResponse.from_rule(rule) for rule in await service.list_active()]


@rules_router.get("/patient/{patient_id}", response_model=List[AlertRuleResponse])
async def read_patient_alert_rules(
    patient_id: str,
    _: Principal = Depends(allow_rule_read),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> List[AlertRuleResponse]:
    rules = await service.list_for_patient(patient_id)
    return [AlertRuleResponse.from_rule(rule) for rule in rules]


@rules_router.get("/{rule_id}", response_model=AlertRuleResponse)
async def read_alert_rule(
    rule_id: str,
    _: Principal = Depends(allow_rule_read),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> AlertRuleResponse:
    return AlertRuleResponse.from_rule(await service.get(rule_id))


@rules_router.put("/{rule_id}", response_model=AlertRuleResponse)
async def update_alert_rule(
    rule_id: str,
    rule_in: AlertRuleRequest,
    _: Principal = Depends(allow_rule_write),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> AlertRuleResponse:
    return AlertRuleResponse.from_rule(await service.update(rule_id, rule_in))


@rules_router.post("/{rule_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_alert_rule(
    rule_id: str,
    _: Principal = Depends(allow_rule_write),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> Response:
    await service.deactivate(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@rules_router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert_rule(
    rule_id: str,
    _: Principal = Depends(allow_admin_only),
    service: AlertRuleService = Depends(get_alert_rule_service),
) -> Response:
    await service.delete(rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
