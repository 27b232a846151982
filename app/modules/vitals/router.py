from fastapi import APIRouter, Depends, status

from app.modules.alerts.schemas import AlertResponse
from app.modules.vitals.schemas import (
    RecordedVitalSignResponse,
    VitalSignCreate,
    VitalSignResponse,
)
from app.modules.vitals.service import VitalSignService, get_vital_sign_service
from app.shared.constants import ALERT_READERS, ALERT_RESPONDERS
from app.shared.deps import Principal, RoleChecker

router = APIRouter()

allow_record = RoleChecker(ALERT_RESPONDERS)
allow_read = RoleChecker(ALERT_READERS)


@router.post(
    "",
    response_model=RecordedVitalSignResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_vital_sign(
    vital_in: VitalSignCreate,
    principal: Principal = Depends(allow_record),
    service: VitalSignService = Depends(get_vital_sign_service),
) -> RecordedVitalSignResponse:
    """Store a reading, then evaluate it against the alert rules."""
    vital_sign, alerts = await service.record(vital_in, recorded_by=principal.id)
    return RecordedVitalSignResponse(
        vital_sign=vital_sign,
        alerts=[AlertResponse.from_alert(alert) for alert in alerts],
    )


@router.get("/{vital_sign_id}", response_model=VitalSignResponse)
async def read_vital_sign(
    vital_sign_id: str,
    _: Principal = Depends(allow_read),
    service: VitalSignService = Depends(get_vital_sign_service),
) -> VitalSignResponse:
    return await service.get(vital_sign_id)


@router.post("/{vital_sign_id}/evaluate", response_model=list[AlertResponse])
async def reevaluate_vital_sign(
    vital_sign_id: str,
    _: Principal = Depends(allow_record),
    service: VitalSignService = Depends(get_vital_sign_service),
) -> list[AlertResponse]:
    """Re-run evaluation for a stored reading. Safe to retry: cooldowns drop duplicates."""
    alerts = await service.reevaluate(vital_sign_id)
    return [AlertResponse.from_alert(alert) for alert in alerts]
