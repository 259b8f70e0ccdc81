"""Servicio de check-in de asistentes mediante QR"""
from typing import Optional
from uuid import UUID
import logging

from services.registrations.errors import RegistrationValidationError
from services.registrations.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)


class CheckInService:
    """Valida el QR en la puerta y marca el registro como asistido"""

    def __init__(self, registrations: RegistrationService):
        self.registrations = registrations

    async def check_in(self, qr_code: str, event_id: Optional[UUID] = None):
        """
        Registrar la asistencia del registro codificado en el QR.

        Rechaza QR inválidos, de otro evento o sin pagar (400) y registros ya
        asistidos (409). La marca final es atómica en el store: si dos
        escáneres llegan a la vez, solo uno gana.
        """
        registration = await self.registrations.find_by_qr_code(qr_code)

        if event_id is not None and registration.event_id != event_id:
            raise RegistrationValidationError("Registration does not belong to this event.")

        if registration.payment_status != "paid":
            raise RegistrationValidationError(
                f"Registration payment status is '{registration.payment_status}', check-in requires 'paid'."
            )

        if registration.attended:
            raise RegistrationValidationError(
                f"Registration already checked in at {registration.check_date.isoformat() if registration.check_date else 'an earlier time'}.",
                status_code=409,
            )

        return await self.registrations.mark_attended(registration)
