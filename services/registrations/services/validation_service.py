"""Validación de registros: integridad referencial, capacidad, duplicados, disponibilidad y costo"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID
import logging

from services.registrations.models.domain import CostResult, RegistrationDraft, ValidationResult
from services.registrations.stores.interfaces import ReferenceStore, RegistrationStore

logger = logging.getLogger(__name__)

INTERNAL_VALIDATION_MESSAGE = "An internal error occurred while validating the registration."

# tope al ampliar un registro existente
MAX_TICKETS_PER_REGISTRATION = 10


def _unique(ids: Iterable) -> List:
    """Deduplicar conservando el orden de aparición"""
    seen = set()
    result = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite devuelve datetimes naive; se interpretan como UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_within_window(ticket_type, now: datetime) -> bool:
    """True si now cae en [available_from, available_until]; extremos nulos abiertos"""
    now = _as_utc(now)
    available_from = _as_utc(ticket_type.available_from)
    available_until = _as_utc(ticket_type.available_until)
    if available_from is not None and now < available_from:
        return False
    if available_until is not None and now > available_until:
        return False
    return True


class RegistrationValidationService:
    """
    Cada validación retorna un ValidationResult/CostResult en vez de lanzar;
    el orquestador decide cómo mapear el resultado a HTTP.
    """

    def __init__(self, references: ReferenceStore, registrations: RegistrationStore):
        self.references = references
        self.registrations = registrations

    async def validate_registration_ids(self, draft: RegistrationDraft) -> ValidationResult:
        """
        Verificar que todas las referencias existan y que las cantidades cuadren.

        Todas las reglas se evalúan siempre; el resultado acumula todos los
        errores encontrados. Un fallo del store se reporta como error interno.
        """
        try:
            errors = await self._collect_id_errors(draft)
        except Exception:
            logger.exception(f"Internal validation error for event {draft.event_id}")
            return ValidationResult(
                valid=False,
                message=INTERNAL_VALIDATION_MESSAGE,
                internal_error=True,
            )

        if errors:
            return ValidationResult.fail(errors)
        return ValidationResult.ok()

    async def _collect_id_errors(self, draft: RegistrationDraft) -> List[str]:
        errors: List[str] = []

        event = None
        if draft.event_id is None:
            errors.append("Event ID is required.")
        else:
            event = await self.references.get_event(draft.event_id)
            if event is None:
                errors.append(f"Event with ID '{draft.event_id}' does not exist.")

        if draft.user_id is None:
            errors.append("User ID (account owner) is required.")
        elif await self.references.get_user(draft.user_id) is None:
            errors.append(f"User (account owner) with ID '{draft.user_id}' does not exist.")

        if draft.buyer_id is None:
            errors.append("Buyer ID is required.")
        elif await self.references.get_user(draft.buyer_id) is None:
            errors.append(f"Buyer with ID '{draft.buyer_id}' does not exist.")

        if draft.venue_id is None:
            errors.append("Venue ID is required.")
        elif await self.references.get_venue(draft.venue_id) is None:
            errors.append(f"Venue with ID '{draft.venue_id}' does not exist.")
        elif event is not None and event.venue_id is not None and event.venue_id != draft.venue_id:
            errors.append(f"Venue with ID '{draft.venue_id}' is not the venue of event '{draft.event_id}'.")

        no_of_tickets = draft.no_of_tickets
        tickets_valid = isinstance(no_of_tickets, int) and not isinstance(no_of_tickets, bool) and no_of_tickets > 0
        if not tickets_valid:
            errors.append("Number of tickets must be a positive integer.")

        bought_for_ids = list(draft.bought_for_ids or [])
        if not bought_for_ids:
            errors.append("'boughtForIds' must contain at least one attendee.")
        else:
            unique_attendees = _unique(bought_for_ids)
            found = {user.id for user in await self.references.find_users(unique_attendees)}
            missing = [attendee for attendee in unique_attendees if attendee not in found]
            if missing:
                errors.append(
                    f"Attendee User(s) with ID(s) '{', '.join(str(m) for m in missing)}' "
                    f"specified in 'boughtForIds' do not exist."
                )
            if len(unique_attendees) != len(bought_for_ids):
                errors.append("'boughtForIds' must not contain the same attendee twice.")

        if tickets_valid and len(bought_for_ids) != no_of_tickets:
            errors.append(
                f"Number of boughtForIds ({len(bought_for_ids)}) must match noOfTickets ({no_of_tickets})."
            )

        if tickets_valid and draft.user_id is not None and draft.user_id not in bought_for_ids:
            errors.append("The account owner (userId) must be included in 'boughtForIds'.")

        ticket_type_ids = list(draft.ticket_type_ids or [])
        if not ticket_type_ids:
            errors.append("At least one Ticket Type ID is required.")
        else:
            unique_types = _unique(ticket_type_ids)
            found = {ticket_type.id for ticket_type in await self.references.find_ticket_types(unique_types)}
            for ticket_type_id in unique_types:
                if ticket_type_id not in found:
                    errors.append(f"Ticket Type with ID '{ticket_type_id}' does not exist.")
            if tickets_valid and len(ticket_type_ids) != no_of_tickets:
                errors.append(
                    f"Number of ticket type entries ({len(ticket_type_ids)}) must match noOfTickets ({no_of_tickets})."
                )

        return errors

    async def validate_additional_tickets(
        self,
        registration,
        bought_for_ids: List[UUID],
        ticket_type_ids: List[UUID],
    ) -> ValidationResult:
        """Reglas de integridad para agregar asistentes a un registro existente"""
        try:
            errors = await self._collect_additional_errors(registration, bought_for_ids, ticket_type_ids)
        except Exception:
            logger.exception(f"Internal validation error adding tickets to registration {registration.id}")
            return ValidationResult(
                valid=False,
                message=INTERNAL_VALIDATION_MESSAGE,
                internal_error=True,
            )

        if errors:
            return ValidationResult.fail(errors)
        return ValidationResult.ok()

    async def _collect_additional_errors(self, registration, bought_for_ids, ticket_type_ids) -> List[str]:
        errors: List[str] = []

        if not bought_for_ids:
            errors.append("'boughtForIds' must contain at least one attendee.")
        else:
            unique_attendees = _unique(bought_for_ids)
            found = {user.id for user in await self.references.find_users(unique_attendees)}
            missing = [attendee for attendee in unique_attendees if attendee not in found]
            if missing:
                errors.append(
                    f"Attendee User(s) with ID(s) '{', '.join(str(m) for m in missing)}' "
                    f"specified in 'boughtForIds' do not exist."
                )
            if len(unique_attendees) != len(bought_for_ids):
                errors.append("'boughtForIds' must not contain the same attendee twice.")
            present = [attendee for attendee in unique_attendees if attendee in registration.bought_for_ids]
            if present:
                errors.append(
                    f"User(s) {', '.join(str(p) for p in present)} already hold a ticket in this registration."
                )

        if not ticket_type_ids:
            errors.append("At least one Ticket Type ID is required.")
        else:
            unique_types = _unique(ticket_type_ids)
            found = {ticket_type.id for ticket_type in await self.references.find_ticket_types(unique_types)}
            for ticket_type_id in unique_types:
                if ticket_type_id not in found:
                    errors.append(f"Ticket Type with ID '{ticket_type_id}' does not exist.")
            if bought_for_ids and len(ticket_type_ids) != len(bought_for_ids):
                errors.append(
                    f"Number of ticket type entries ({len(ticket_type_ids)}) must match "
                    f"the number of new attendees ({len(bought_for_ids)})."
                )

        total = registration.no_of_tickets + len(bought_for_ids)
        if total > MAX_TICKETS_PER_REGISTRATION:
            errors.append(
                f"A registration can hold at most {MAX_TICKETS_PER_REGISTRATION} tickets "
                f"(current {registration.no_of_tickets}, requested {len(bought_for_ids)})."
            )

        return errors

    async def validate_event_capacity(self, event_id: UUID, venue_id: UUID, requested_tickets: int) -> ValidationResult:
        """
        Rechazar si requested_tickets supera capacidad del venue menos lo ya reservado.

        Si el evento tiene venue asignado, manda ese; venue_id solo se usa
        para eventos sin venue.
        """
        event = await self.references.get_event(event_id)
        if event is not None and event.venue_id is not None:
            venue_id = event.venue_id
        venue = await self.references.get_venue(venue_id)
        if venue is None:
            return ValidationResult.fail(
                [f"Venue with ID '{venue_id}' does not exist."],
                message=f"Venue with ID '{venue_id}' does not exist.",
            )

        current = await self.registrations.sum_tickets_for_event(event_id)
        available = venue.capacity - current
        if requested_tickets > available:
            message = f"Not enough capacity. Available: {max(available, 0)}, Requested: {requested_tickets}."
            logger.info(f"Capacity rejected for event {event_id}: {message}")
            return ValidationResult.fail([message], message=message)
        return ValidationResult.ok()

    async def validate_duplicate_registration(
        self,
        event_id: UUID,
        user_id: UUID,
        bought_for_ids: Iterable[UUID],
    ) -> ValidationResult:
        """Rechazar si algún asistente (principal o boughtFor) ya está registrado en el evento"""
        attendees = _unique([user_id, *bought_for_ids])
        already = set(await self.registrations.find_registered_attendees(event_id, attendees))
        if not already:
            return ValidationResult.ok()

        duplicated = [attendee for attendee in attendees if attendee in already]
        message = (
            f"The following user(s) are already registered for event ID '{event_id}': "
            f"{', '.join(str(d) for d in duplicated)}."
        )
        return ValidationResult.fail([message], message=message)

    async def validate_ticket_type_availability(
        self,
        event_id: UUID,
        ticket_type_ids: Iterable[UUID],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Cada tipo pedido debe pertenecer al evento, estar activo y dentro de su ventana"""
        now = now or datetime.now(timezone.utc)
        unique_types = _unique(ticket_type_ids)
        ticket_types: Dict[UUID, object] = {
            ticket_type.id: ticket_type
            for ticket_type in await self.references.find_ticket_types(unique_types)
        }

        errors = []
        for ticket_type_id in unique_types:
            ticket_type = ticket_types.get(ticket_type_id)
            if ticket_type is None:
                errors.append(f"Ticket Type with ID '{ticket_type_id}' does not exist.")
            elif ticket_type.event_id != event_id:
                errors.append(f"Ticket Type with ID '{ticket_type_id}' does not belong to event '{event_id}'.")
            elif not ticket_type.is_active:
                errors.append(f"Ticket Type '{ticket_type.name}' is not active.")
            elif not is_within_window(ticket_type, now):
                errors.append(f"Ticket Type '{ticket_type.name}' is not available for sale at this time.")

        if errors:
            return ValidationResult.fail(errors)
        return ValidationResult.ok()

    async def calculate_ticket_cost(self, ticket_type_ids: Iterable[UUID]) -> CostResult:
        """
        Sumar el precio de cada entrada pedida (las repetidas cuentan una vez por entrada).

        Los precios se buscan en una sola consulta sobre los ids deduplicados.
        """
        entries = list(ticket_type_ids)
        if not entries:
            return CostResult(valid=False, message="At least one Ticket Type ID is required.")

        unique_types = _unique(entries)
        prices = {
            ticket_type.id: Decimal(str(ticket_type.price))
            for ticket_type in await self.references.find_ticket_types(unique_types)
        }
        missing = [ticket_type_id for ticket_type_id in unique_types if ticket_type_id not in prices]
        if missing:
            return CostResult(
                valid=False,
                message=f"Ticket Type(s) with ID(s) '{', '.join(str(m) for m in missing)}' do not exist.",
                missing_ids=missing,
            )

        unit_prices = [prices[ticket_type_id] for ticket_type_id in entries]
        return CostResult(valid=True, total_cost=sum(unit_prices, Decimal("0")), unit_prices=unit_prices)
