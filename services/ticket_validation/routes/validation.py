"""Rutas de validación en puerta (check-in)"""
from fastapi import APIRouter, Depends, Request
from typing import Dict

from shared.auth.dependencies import get_current_scanner
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from shared.utils.responses import envelope
from services.registrations.dependencies import get_registration_service
from services.registrations.errors import RegistrationError
from services.registrations.models.registration import CheckInRequest, serialize_registration
from services.registrations.routes.registrations import registration_error_to_http
from services.registrations.services.registration_service import RegistrationService
from services.ticket_validation.services.check_in_service import CheckInService


router = APIRouter()


@router.post("/check-in")
@limiter.limit(RATE_LIMITS["check_in"])
async def check_in(
    request: Request,
    payload: CheckInRequest,
    current_user: Dict = Depends(get_current_scanner),
    registrations: RegistrationService = Depends(get_registration_service),
):
    """
    Check-in mediante el contenido del QR

    Requiere rol scanner, manager o admin
    """
    service = CheckInService(registrations)
    try:
        registration = await service.check_in(payload.qr_code, payload.event_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=serialize_registration(registration), message="Check-in successful.")
