"""Rutas de registros a eventos"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from typing import Dict, Iterable, Optional
from uuid import UUID
import logging
import uuid

from app.core.config import settings
from shared.auth.dependencies import (
    ROLE_SCANNER,
    get_current_admin,
    get_current_admin_or_manager,
    get_current_user,
    is_authorized_for_registration,
    is_staff,
)
from shared.cache.cache_keys import event_registrations_key, registration_key, user_summary_key
from shared.cache.redis_client import RedisCache, get_cache
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from shared.utils.responses import envelope
from services.registrations.dependencies import get_registration_service
from services.registrations.errors import RegistrationError
from services.registrations.models.registration import (
    AddTicketsRequest,
    CancelTicketsRequest,
    RegistrationCreate,
    RegistrationUpdate,
    TransferTicketRequest,
    serialize_registration,
)
from services.registrations.services.registration_service import RegistrationService, related_user_ids


router = APIRouter()
logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGE = "You are not authorized to access this registration."


def registration_error_to_http(e: RegistrationError) -> HTTPException:
    """Mapear errores del servicio a HTTPException con el sobre estándar"""
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__}: {e.message}")
    return HTTPException(
        status_code=e.status_code,
        detail={"message": e.message, "errors": e.errors},
    )


def _requester_id(current_user: Dict) -> UUID:
    try:
        return UUID(str(current_user["user_id"]))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: malformed user id")


def _ensure_authorized(current_user: Dict, user_ids: Iterable[object]):
    if not is_authorized_for_registration(current_user, user_ids):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=FORBIDDEN_MESSAGE)


def _cached_user_ids(data: Dict):
    return [data.get("userId"), data.get("buyerId"), *data.get("boughtForIds", [])]


def qr_code_url(filename: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/{settings.QR_PUBLIC_PATH.strip('/')}/{filename}"


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["registration"])
async def create_registration(
    request: Request,
    payload: RegistrationCreate,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """
    Crear un registro para el usuario autenticado.

    El id del registro se genera aquí (uuid4). buyerId por defecto es el
    usuario del token. Respuestas: 201, 400 (validación, capacidad,
    duplicado, disponibilidad), 500 (error interno de validación o integridad).
    """
    registration_id = uuid.uuid4()
    draft = payload.to_draft(_requester_id(current_user))

    try:
        registration = await service.create_registration(draft, registration_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=serialize_registration(registration), message="Registration created successfully.")


@router.get("")
async def list_registrations(
    event_id: Optional[UUID] = Query(None, alias="eventId"),
    current_user: Dict = Depends(get_current_admin_or_manager),
    service: RegistrationService = Depends(get_registration_service),
    cache: RedisCache = Depends(get_cache),
):
    """Listar registros (opcionalmente de un evento). Cache por evento."""
    cache_key = event_registrations_key(event_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        return envelope(data=cached)

    registrations = await service.list_registrations(event_id)
    data = [serialize_registration(registration) for registration in registrations]
    await cache.set(cache_key, data)
    return envelope(data=data)


@router.get("/users/{user_id}/summary")
async def get_user_ticket_summary(
    user_id: UUID,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
    cache: RedisCache = Depends(get_cache),
):
    """Resumen de tickets y costos de un usuario (el propio usuario o staff)"""
    if not is_staff(current_user) and str(user_id) != str(current_user.get("user_id")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only view your own summary.")

    cache_key = user_summary_key(user_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        return envelope(data=cached)

    summary = await service.user_cost_summary(user_id)
    await cache.set(cache_key, summary)
    return envelope(data=summary)


@router.get("/qrcode/{qr_code:path}")
async def get_registration_by_qr_code(
    qr_code: str,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Validar el contenido de un QR escaneado y retornar su registro"""
    try:
        registration = await service.find_by_qr_code(qr_code)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    if current_user.get("role") != ROLE_SCANNER:
        _ensure_authorized(current_user, related_user_ids(registration))
    return envelope(data=serialize_registration(registration), message="QR code is valid.")


@router.get("/{registration_id}")
async def get_registration(
    registration_id: UUID,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
    cache: RedisCache = Depends(get_cache),
):
    """Obtener un registro con evento, usuario, comprador, venue y entradas"""
    cache_key = registration_key(registration_id)
    cached = await cache.get(cache_key)
    if cached is not None:
        _ensure_authorized(current_user, _cached_user_ids(cached))
        return envelope(data=cached)

    try:
        registration = await service.get_registration(registration_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    _ensure_authorized(current_user, related_user_ids(registration))
    data = serialize_registration(registration)
    await cache.set(cache_key, data)
    return envelope(data=data)


@router.put("/{registration_id}")
async def update_registration(
    registration_id: UUID,
    payload: RegistrationUpdate,
    current_user: Dict = Depends(get_current_admin_or_manager),
    service: RegistrationService = Depends(get_registration_service),
):
    """Actualizar estado de pago, asistencia o fecha de check-in"""
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updatable fields provided.")

    try:
        registration = await service.update_registration(registration_id, **changes)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=serialize_registration(registration), message="Registration updated successfully.")


@router.delete("/{registration_id}")
async def delete_registration(
    registration_id: UUID,
    current_user: Dict = Depends(get_current_admin),
    service: RegistrationService = Depends(get_registration_service),
):
    """Eliminar un registro (solo admin); también elimina su archivo QR"""
    try:
        await service.delete_registration(registration_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    logger.info(f"Registration {registration_id} deleted by {current_user['user_id']}")
    return envelope(message="Registration deleted successfully.")


@router.put("/{registration_id}/cancel")
async def cancel_registration_tickets(
    registration_id: UUID,
    payload: CancelTicketsRequest,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Cancelar asistentes de un registro con pago pendiente"""
    try:
        registration = await service.get_registration(registration_id)
        _ensure_authorized(current_user, [registration.user_id, registration.buyer_id])
        registration = await service.cancel_tickets(registration_id, payload.ids_to_cancel)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=serialize_registration(registration), message="Tickets cancelled successfully.")


@router.put("/{registration_id}/transfer")
async def transfer_registration_ticket(
    registration_id: UUID,
    payload: TransferTicketRequest,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Reasignar la entrada de un asistente boughtFor a otro usuario"""
    try:
        registration = await service.get_registration(registration_id)
        _ensure_authorized(current_user, [registration.user_id, registration.buyer_id])
        registration = await service.transfer_ticket(registration_id, payload.old_user_id, payload.new_user_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=serialize_registration(registration), message="Ticket transferred successfully.")


@router.put("/{registration_id}/add-tickets")
@limiter.limit(RATE_LIMITS["registration"])
async def add_registration_tickets(
    request: Request,
    registration_id: UUID,
    payload: AddTicketsRequest,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """
    Agregar asistentes a un registro con pago pendiente.

    Respuestas: 200, 400 (validación, capacidad, duplicado, tope de
    entradas), 403, 404.
    """
    try:
        registration = await service.get_registration(registration_id)
        _ensure_authorized(current_user, [registration.user_id, registration.buyer_id])
        registration = await service.add_tickets(
            registration_id, payload.bought_for_ids, payload.normalized_ticket_type_ids()
        )
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(data=serialize_registration(registration), message="Tickets added successfully.")


@router.get("/{registration_id}/qrcode")
async def get_registration_qr_code(
    registration_id: UUID,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Nombre y URL pública del QR del registro"""
    try:
        registration = await service.get_registration(registration_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    _ensure_authorized(current_user, related_user_ids(registration))
    if not registration.qr_code:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="QR code has not been generated for this registration.",
        )
    return envelope(data={"qrCode": registration.qr_code, "url": qr_code_url(registration.qr_code)})


@router.post("/{registration_id}/qrcode/regenerate")
@limiter.limit(RATE_LIMITS["qr_regenerate"])
async def regenerate_registration_qr_code(
    request: Request,
    registration_id: UUID,
    current_user: Dict = Depends(get_current_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Eliminar el QR actual y generar uno nuevo (mismo nombre de archivo)"""
    try:
        registration = await service.get_registration(registration_id)
        _ensure_authorized(current_user, related_user_ids(registration))
        registration = await service.regenerate_qr_code(registration_id)
    except RegistrationError as e:
        raise registration_error_to_http(e)

    return envelope(
        data={"qrCode": registration.qr_code, "url": qr_code_url(registration.qr_code)},
        message="QR code regenerated successfully.",
    )
