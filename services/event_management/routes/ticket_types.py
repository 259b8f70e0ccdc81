"""Rutas de tipos de ticket"""
from fastapi import APIRouter, Depends, Query
from typing import Dict
from uuid import UUID

from shared.auth.dependencies import get_current_user, get_current_admin_or_manager
from shared.cache.cache_keys import event_ticket_types_key
from shared.cache.redis_client import RedisCache, get_cache
from shared.utils.responses import envelope
from services.event_management.models.ticket_type import TicketTypeResponse, TicketTypeStatusUpdate
from services.event_management.services.ticket_type_service import TicketTypeService
from services.registrations.dependencies import get_reference_store
from services.registrations.errors import RegistrationError
from services.registrations.routes.registrations import registration_error_to_http
from services.registrations.stores.interfaces import ReferenceStore


router = APIRouter()


def _serialize(ticket_type) -> Dict:
    return TicketTypeResponse.model_validate(ticket_type).model_dump(by_alias=True, mode="json")


@router.get("")
async def list_ticket_types(
    event_id: UUID = Query(..., alias="eventId"),
    current_user: Dict = Depends(get_current_user),
    references: ReferenceStore = Depends(get_reference_store),
    cache: RedisCache = Depends(get_cache),
):
    """Listar los tipos de ticket de un evento"""
    cache_key = event_ticket_types_key(event_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        return envelope(data=cached)

    ticket_types = await TicketTypeService(references).list_for_event(event_id)
    data = [_serialize(ticket_type) for ticket_type in ticket_types]
    await cache.set(cache_key, data)
    return envelope(data=data)


@router.patch("/{ticket_type_id}/status")
async def update_ticket_type_status(
    ticket_type_id: UUID,
    payload: TicketTypeStatusUpdate,
    current_user: Dict = Depends(get_current_admin_or_manager),
    references: ReferenceStore = Depends(get_reference_store),
    cache: RedisCache = Depends(get_cache),
):
    """Activar/desactivar un tipo de ticket (respeta la ventana de disponibilidad)"""
    service = TicketTypeService(references, cache)
    try:
        ticket_type = await service.set_active(ticket_type_id, payload.is_active)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=_serialize(ticket_type), message="Ticket type status updated.")
