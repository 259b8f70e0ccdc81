"""Servicio de registros - orquesta validación, reserva de capacidad, escritura y QR"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID
import logging

from shared.cache.cache_keys import registration_invalidation_keys
from services.registrations.errors import (
    DuplicateAttendeeError,
    RegistrationIntegrityError,
    RegistrationInternalError,
    RegistrationNotFoundError,
    RegistrationValidationError,
)
from services.registrations.models.domain import (
    CostResult, RegistrationDraft, ResolvedRegistration, ValidationResult, round_money,
)
from services.registrations.services.qr_code_service import QrCodeService
from services.registrations.services.validation_service import RegistrationValidationService
from services.registrations.stores.interfaces import ReferenceStore, RegistrationStore, append_entries

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


def _raise_if_invalid(result: ValidationResult) -> None:
    if result.valid:
        return
    if result.internal_error:
        raise RegistrationInternalError(result.message)
    raise RegistrationValidationError(result.message, result.errors)


def _as_uuid(value, label: str) -> UUID:
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError:
        raise RegistrationValidationError(f"Invalid {label} '{value}'.")


def related_user_ids(registration) -> List[Any]:
    """Asistente principal, comprador y boughtFor de un registro"""
    return [registration.user_id, registration.buyer_id, *registration.bought_for_ids]


class RegistrationService:

    def __init__(
        self,
        references: ReferenceStore,
        registrations: RegistrationStore,
        qr_codes: QrCodeService,
        cache=None,
    ):
        self.references = references
        self.registrations = registrations
        self.qr_codes = qr_codes
        self.cache = cache
        self.validator = RegistrationValidationService(references, registrations)

    async def create_registration(self, draft: RegistrationDraft, registration_id: UUID):
        """
        Crear un registro.

        Orden: integridad de IDs -> (ámbito de reserva: capacidad, duplicados,
        disponibilidad, costo, escritura) -> QR -> invalidación de cache.
        El primer fallo aborta sin persistir nada. El QR se genera después del
        commit; si falla, el registro queda sin código y se puede regenerar.
        """
        _raise_if_invalid(await self.validator.validate_registration_ids(draft))

        try:
            async with self.registrations.reservation(draft.event_id):
                _raise_if_invalid(await self.validator.validate_event_capacity(
                    draft.event_id, draft.venue_id, draft.no_of_tickets
                ))
                _raise_if_invalid(await self.validator.validate_duplicate_registration(
                    draft.event_id, draft.user_id, draft.bought_for_ids
                ))
                _raise_if_invalid(await self.validator.validate_ticket_type_availability(
                    draft.event_id, draft.ticket_type_ids
                ))
                cost = await self.validator.calculate_ticket_cost(draft.ticket_type_ids)
                if not cost.valid:
                    raise RegistrationValidationError(cost.message, [cost.message])

                resolved = await self._resolve(draft, registration_id, cost)
                registration = await self.registrations.add(resolved)
        except DuplicateAttendeeError as e:
            raise RegistrationValidationError(e.message, [e.message]) from e

        logger.info(
            f"Registration {registration.id} created for event {registration.event_id}: "
            f"{registration.no_of_tickets} tickets, total {cost.display_amount()}"
        )

        try:
            filename = await self.qr_codes.generate_qr_code(
                registration.id, registration.user_id, registration.event_id
            )
        except Exception as e:
            logger.error(f"QR generation failed for registration {registration.id}: {e}", exc_info=True)
        else:
            registration.qr_code = filename
            await self.registrations.save(registration)

        await self.invalidate(registration)
        return registration

    async def _resolve(self, draft: RegistrationDraft, registration_id: UUID, cost: CostResult) -> ResolvedRegistration:
        """Cargar las entidades ya validadas; una referencia ausente aquí es un error interno"""
        event = await self.references.get_event(draft.event_id)
        user = await self.references.get_user(draft.user_id)
        buyer = await self.references.get_user(draft.buyer_id)
        venue = await self.references.get_venue(draft.venue_id)
        users = {u.id: u for u in await self.references.find_users(draft.bought_for_ids)}
        ticket_types = {t.id: t for t in await self.references.find_ticket_types(draft.ticket_type_ids)}

        attendees = [users.get(user_id) for user_id in draft.bought_for_ids]
        entries = [ticket_types.get(ticket_type_id) for ticket_type_id in draft.ticket_type_ids]

        if any(ref is None for ref in (event, user, buyer, venue, *attendees, *entries)):
            logger.error(
                f"Reference vanished between validation and write for registration {registration_id} "
                f"(event={event is not None}, user={user is not None}, buyer={buyer is not None}, "
                f"venue={venue is not None})"
            )
            raise RegistrationIntegrityError(
                "One or more required related entities (Event, User, Buyer, TicketType, Venue) "
                "not found during registration creation."
            )

        return ResolvedRegistration(
            registration_id=registration_id,
            event=event,
            user=user,
            buyer=buyer,
            venue=venue,
            attendees=attendees,
            ticket_types=entries,
            unit_prices=cost.unit_prices,
            total_cost=cost.total_cost,
            no_of_tickets=draft.no_of_tickets,
        )

    async def invalidate(self, registration, extra_user_ids: Iterable[Any] = ()) -> None:
        await self._invalidate(
            registration.id, registration.event_id, [*related_user_ids(registration), *extra_user_ids]
        )

    async def _invalidate(self, registration_id, event_id, user_ids: Iterable[Any]) -> None:
        if self.cache is None:
            return
        await self.cache.delete(registration_invalidation_keys(registration_id, event_id, user_ids))

    async def get_registration(self, registration_id: UUID):
        registration = await self.registrations.get(registration_id)
        if registration is None:
            raise RegistrationNotFoundError(registration_id)
        return registration

    async def list_registrations(self, event_id: Optional[UUID] = None):
        return await self.registrations.list(event_id)

    async def update_registration(
        self,
        registration_id: UUID,
        payment_status: Optional[str] = None,
        attended: Optional[bool] = None,
        check_date: Optional[datetime] = None,
    ):
        """Actualizar solo campos mutables: estado de pago, asistencia y fecha de check-in"""
        registration = await self.get_registration(registration_id)

        if payment_status is not None:
            if payment_status not in PAYMENT_STATUSES:
                raise RegistrationValidationError(f"Invalid payment status '{payment_status}'.")
            registration.payment_status = payment_status
        if attended is not None:
            registration.attended = attended
            if attended and check_date is None and registration.check_date is None:
                check_date = datetime.now(timezone.utc)
        if check_date is not None:
            registration.check_date = check_date

        await self.registrations.save(registration)
        await self.invalidate(registration)
        return registration

    async def mark_attended(self, registration, check_date: Optional[datetime] = None):
        """
        Check-in atómico: solo el primer escaneo marca la asistencia.

        Si otro check-in ganó la carrera, el store no actualiza nada y se
        responde 409.
        """
        check_date = check_date or datetime.now(timezone.utc)
        if not await self.registrations.mark_attended(registration.id, check_date):
            raise RegistrationValidationError("Registration has already been checked in.", status_code=409)

        registration.attended = True
        registration.check_date = check_date
        logger.info(f"Registration {registration.id} checked in for event {registration.event_id}")
        await self.invalidate(registration)
        return registration

    async def transfer_ticket(self, registration_id: UUID, old_user_id: UUID, new_user_id: UUID):
        """Reasignar la entrada de un asistente boughtFor a otro usuario"""
        registration = await self.get_registration(registration_id)

        if old_user_id in (registration.user_id, registration.buyer_id):
            raise RegistrationValidationError("Cannot transfer the primary attendee's or buyer's ticket.")

        current = registration.bought_for_ids
        if old_user_id not in current:
            raise RegistrationValidationError(
                f"User {old_user_id} is not an attendee of this registration."
            )
        if new_user_id in current or new_user_id in (registration.user_id, registration.buyer_id):
            raise RegistrationValidationError("The new user is already assigned a ticket for this registration.")
        if await self.references.get_user(new_user_id) is None:
            raise RegistrationValidationError(f"User with ID '{new_user_id}' does not exist.")

        try:
            async with self.registrations.reservation(registration.event_id):
                _raise_if_invalid(await self.validator.validate_duplicate_registration(
                    registration.event_id, new_user_id, []
                ))
                registration.attendees[current.index(old_user_id)].user_id = new_user_id
                await self.registrations.stage(registration)
        except DuplicateAttendeeError as e:
            raise RegistrationValidationError(e.message, [e.message]) from e

        logger.info(f"Ticket on registration {registration_id} transferred from {old_user_id} to {new_user_id}")
        await self.invalidate(registration, extra_user_ids=[old_user_id])
        return registration

    async def add_tickets(
        self,
        registration_id: UUID,
        bought_for_ids: Iterable[UUID],
        ticket_type_ids: Iterable[UUID],
    ):
        """
        Agregar asistentes a un registro con pago pendiente.

        Capacidad, duplicados, disponibilidad y costo se validan dentro del
        mismo ámbito de reserva que usa la creación.
        """
        registration = await self.get_registration(registration_id)

        if registration.payment_status != "pending":
            raise RegistrationValidationError(
                f"Cannot add tickets: Registration payment status is '{registration.payment_status}', "
                f"not 'pending'."
            )

        new_attendees = list(bought_for_ids)
        entries = list(ticket_type_ids)
        _raise_if_invalid(await self.validator.validate_additional_tickets(registration, new_attendees, entries))

        event_id = registration.event_id
        try:
            async with self.registrations.reservation(event_id):
                _raise_if_invalid(await self.validator.validate_event_capacity(
                    event_id, registration.venue_id, len(new_attendees)
                ))
                _raise_if_invalid(await self.validator.validate_duplicate_registration(
                    event_id, new_attendees[0], new_attendees
                ))
                _raise_if_invalid(await self.validator.validate_ticket_type_availability(event_id, entries))
                cost = await self.validator.calculate_ticket_cost(entries)
                if not cost.valid:
                    raise RegistrationValidationError(cost.message, [cost.message])

                users = {u.id: u for u in await self.references.find_users(new_attendees)}
                ticket_types = {t.id: t for t in await self.references.find_ticket_types(entries)}
                attendees = [users.get(user_id) for user_id in new_attendees]
                types = [ticket_types.get(ticket_type_id) for ticket_type_id in entries]
                if any(ref is None for ref in (*attendees, *types)):
                    raise RegistrationIntegrityError(
                        "One or more required related entities (User, TicketType) not found while adding tickets."
                    )

                append_entries(registration, attendees, types, cost.unit_prices)
                registration.no_of_tickets += len(new_attendees)
                registration.total_cost = Decimal(str(registration.total_cost)) + cost.total_cost
                await self.registrations.stage(registration)
        except DuplicateAttendeeError as e:
            raise RegistrationValidationError(e.message, [e.message]) from e

        logger.info(
            f"Added {len(new_attendees)} ticket(s) to registration {registration_id}, "
            f"amount {cost.display_amount()}"
        )
        await self.invalidate(registration)
        return registration

    async def delete_registration(self, registration_id: UUID) -> None:
        registration = await self.get_registration(registration_id)
        event_id = registration.event_id
        user_ids = related_user_ids(registration)
        self.qr_codes.delete_qr_code(registration.qr_code)
        await self.registrations.delete(registration)
        logger.info(f"Registration {registration_id} deleted")
        await self._invalidate(registration_id, event_id, user_ids)

    async def get_qr_code(self, registration_id: UUID) -> Optional[str]:
        """Nombre del archivo QR del registro (None si nunca se generó)"""
        registration = await self.get_registration(registration_id)
        return registration.qr_code

    async def regenerate_qr_code(self, registration_id: UUID):
        registration = await self.get_registration(registration_id)
        registration.qr_code = await self.qr_codes.regenerate_qr_code(registration)
        await self.registrations.save(registration)
        logger.info(f"QR regenerated for registration {registration_id}")
        await self.invalidate(registration)
        return registration

    async def find_by_qr_code(self, encoded: str):
        """Resolver un QR escaneado a su registro; el payload debe coincidir con el registro"""
        payload = self.qr_codes.validate_qr_code(encoded)
        if payload is None:
            raise RegistrationValidationError("Invalid QR code.")

        registration_id = _as_uuid(payload["registrationId"], "registration ID in QR code")
        registration = await self.get_registration(registration_id)

        if str(registration.user_id) != str(payload["userId"]) or str(registration.event_id) != str(payload["eventId"]):
            raise RegistrationValidationError("QR code does not match the registration.")
        return registration

    async def cancel_tickets(self, registration_id: UUID, ids_to_cancel: Iterable[UUID]):
        """
        Cancelar asistentes de un registro con pago pendiente.

        Cada asistente cancelado libera su fila de asistente y la entrada en
        la misma posición; noOfTickets y totalCost bajan en consecuencia.
        El asistente principal no se puede cancelar.
        """
        registration = await self.get_registration(registration_id)

        if registration.payment_status != "pending":
            raise RegistrationValidationError(
                f"Cannot cancel tickets: Registration payment status is '{registration.payment_status}', "
                f"not 'pending'. For paid registrations, a separate refund process is required."
            )

        to_cancel = list(dict.fromkeys(ids_to_cancel))
        if not to_cancel:
            raise RegistrationValidationError("At least one attendee ID to cancel is required.")
        if registration.user_id in to_cancel:
            raise RegistrationValidationError(
                "The primary attendee cannot be cancelled; delete the registration instead."
            )

        current = registration.bought_for_ids
        unknown = [user_id for user_id in to_cancel if user_id not in current]
        if unknown:
            raise RegistrationValidationError(
                f"User(s) {', '.join(str(u) for u in unknown)} are not attendees of this registration."
            )

        indexes = sorted((current.index(user_id) for user_id in to_cancel), reverse=True)
        refunded = Decimal("0")
        for index in indexes:
            registration.attendees.pop(index)
            ticket = registration.tickets.pop(index)
            refunded += Decimal(str(ticket.unit_price))

        registration.no_of_tickets -= len(indexes)
        registration.total_cost = Decimal(str(registration.total_cost)) - refunded
        # el asistente principal nunca se cancela: siempre queda al menos una entrada
        registration.registration_status = "partially_cancelled"

        await self.registrations.save(registration)
        logger.info(
            f"Cancelled {len(indexes)} ticket(s) on registration {registration_id}, "
            f"refunded amount {round_money(refunded)}"
        )
        await self.invalidate(registration, extra_user_ids=to_cancel)
        return registration

    async def user_cost_summary(self, user_id: UUID) -> Dict[str, Any]:
        """Totales de tickets y costos de los registros en que participa el usuario"""
        registrations = await self.registrations.list_for_user(user_id)

        totals = {"paid": Decimal("0"), "pending": Decimal("0"), "refunded": Decimal("0")}
        total_cost = Decimal("0")
        total_tickets = 0
        for registration in registrations:
            cost = Decimal(str(registration.total_cost))
            total_cost += cost
            total_tickets += registration.no_of_tickets
            if registration.payment_status in totals:
                totals[registration.payment_status] += cost

        return {
            "userId": str(user_id),
            "totalRegistrations": len(registrations),
            "totalTickets": total_tickets,
            "totalCost": float(round_money(total_cost)),
            "totalPaid": float(round_money(totals["paid"])),
            "totalPending": float(round_money(totals["pending"])),
            "totalRefunded": float(round_money(totals["refunded"])),
        }
