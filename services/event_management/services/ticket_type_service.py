"""Servicio de tipos de ticket"""
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID
import logging

from shared.cache.cache_keys import ticket_type_invalidation_keys
from services.registrations.errors import TicketTypeNotFoundError, RegistrationValidationError
from services.registrations.services.validation_service import is_within_window
from services.registrations.stores.interfaces import ReferenceStore

logger = logging.getLogger(__name__)


class TicketTypeService:
    """Listado y activación de tipos de ticket"""

    def __init__(self, references: ReferenceStore, cache=None):
        self.references = references
        self.cache = cache

    async def list_for_event(self, event_id: UUID) -> List:
        return await self.references.list_ticket_types(event_id)

    async def set_active(self, ticket_type_id: UUID, is_active: bool, now: Optional[datetime] = None):
        """
        Activar o desactivar un tipo de ticket.

        Solo se puede activar si now cae dentro de su ventana de disponibilidad;
        desactivar siempre está permitido.
        """
        ticket_type = await self.references.get_ticket_type(ticket_type_id)
        if ticket_type is None:
            raise TicketTypeNotFoundError(ticket_type_id)

        now = now or datetime.now(timezone.utc)
        if is_active and not is_within_window(ticket_type, now):
            raise RegistrationValidationError(
                f"Ticket Type '{ticket_type.name}' cannot be activated outside its availability window."
            )

        ticket_type.is_active = is_active
        ticket_type = await self.references.save_ticket_type(ticket_type)
        logger.info(f"Ticket type {ticket_type_id} set is_active={is_active}")

        if self.cache is not None:
            await self.cache.delete(ticket_type_invalidation_keys(ticket_type.event_id))
        return ticket_type
