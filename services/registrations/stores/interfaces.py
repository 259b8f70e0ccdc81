"""Interfaces de persistencia (patrón repository).

Los servicios dependen solo de estas interfaces; la implementación
SQLAlchemy vive en sqlalchemy_store.py y los tests usan fakes en memoria.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import AsyncContextManager, Iterable, List, Optional
from uuid import UUID

from shared.database.models import (
    Event, Registration, RegistrationAttendee, RegistrationTicket, TicketType, User, Venue,
)
from services.registrations.models.domain import ResolvedRegistration


class ReferenceStore(ABC):
    """Lectura de las entidades referenciadas por un registro"""

    @abstractmethod
    async def get_event(self, event_id: UUID) -> Optional[Event]:
        """Evento no eliminado, o None."""

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[User]:
        """Usuario no eliminado, o None."""

    @abstractmethod
    async def get_venue(self, venue_id: UUID) -> Optional[Venue]:
        """Venue no eliminado, o None."""

    @abstractmethod
    async def find_users(self, user_ids: Iterable[UUID]) -> List[User]:
        """Usuarios existentes entre los ids dados, en una sola consulta."""

    @abstractmethod
    async def find_ticket_types(self, ticket_type_ids: Iterable[UUID]) -> List[TicketType]:
        """Tipos de ticket existentes entre los ids dados, en una sola consulta."""

    @abstractmethod
    async def get_ticket_type(self, ticket_type_id: UUID) -> Optional[TicketType]:
        ...

    @abstractmethod
    async def list_ticket_types(self, event_id: UUID) -> List[TicketType]:
        ...

    @abstractmethod
    async def save_ticket_type(self, ticket_type: TicketType) -> TicketType:
        ...


class RegistrationStore(ABC):
    """Escritura y consultas agregadas sobre registros"""

    @abstractmethod
    def reservation(self, event_id: UUID) -> AsyncContextManager[None]:
        """
        Ámbito atómico por evento.

        Dentro del ámbito las consultas de capacidad y duplicados y la
        escritura se serializan contra otros registros del mismo evento.
        Al salir sin error se confirma; ante cualquier error se descarta todo.
        """

    @abstractmethod
    async def sum_tickets_for_event(self, event_id: UUID) -> int:
        """SUM(no_of_tickets) de los registros del evento; 0 si no hay."""

    @abstractmethod
    async def find_registered_attendees(self, event_id: UUID, user_ids: Iterable[UUID]) -> List[UUID]:
        """Ids entre user_ids que ya figuran como asistentes del evento."""

    @abstractmethod
    async def add(self, resolved: ResolvedRegistration) -> Registration:
        """Persistir un registro nuevo dentro del ámbito de reserva abierto."""

    @abstractmethod
    async def get(self, registration_id: UUID) -> Optional[Registration]:
        ...

    @abstractmethod
    async def list(self, event_id: Optional[UUID] = None) -> List[Registration]:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: UUID) -> List[Registration]:
        """Registros donde el usuario es asistente principal, comprador o boughtFor."""

    @abstractmethod
    async def stage(self, registration: Registration) -> Registration:
        """
        Escribir cambios de un registro existente dentro del ámbito de reserva.

        No confirma: el commit (o el rollback) lo hace reservation().
        """

    @abstractmethod
    async def mark_attended(self, registration_id: UUID, check_date: datetime) -> bool:
        """
        Marcar asistencia solo si aún no estaba marcada, en una sola operación atómica.

        Retorna False si otro check-in ya la marcó (o el registro no existe).
        """

    @abstractmethod
    async def save(self, registration: Registration) -> Registration:
        """Confirmar cambios hechos sobre un registro existente."""

    @abstractmethod
    async def delete(self, registration: Registration) -> None:
        ...


def build_registration(resolved: ResolvedRegistration, now: Optional[datetime] = None) -> Registration:
    """Construir el registro con sus filas de asistentes y entradas, en orden"""
    now = now or datetime.now(timezone.utc)
    registration = Registration(
        id=resolved.registration_id,
        event_id=resolved.event.id,
        user_id=resolved.user.id,
        buyer_id=resolved.buyer.id,
        venue_id=resolved.venue.id,
        no_of_tickets=resolved.no_of_tickets,
        registration_date=now,
        payment_status=resolved.payment_status,
        registration_status="active",
        total_cost=resolved.total_cost,
        attended=False,
        created_at=now,
        updated_at=now,
    )
    registration.event = resolved.event
    registration.user = resolved.user
    registration.buyer = resolved.buyer
    registration.venue = resolved.venue
    registration.attendees = []
    registration.tickets = []
    append_entries(registration, resolved.attendees, resolved.ticket_types, resolved.unit_prices)
    return registration


def append_entries(registration: Registration, attendees, ticket_types, unit_prices) -> None:
    """
    Agregar pares (asistente, entrada) al final del registro.

    La posición continúa desde la última existente; después de una
    cancelación puede haber huecos, pero el orden relativo se conserva.
    """
    start = max((attendee.position for attendee in registration.attendees), default=-1) + 1
    for offset, (attendee, ticket_type, unit_price) in enumerate(zip(attendees, ticket_types, unit_prices)):
        registration.attendees.append(
            RegistrationAttendee(event_id=registration.event_id, user_id=attendee.id, position=start + offset)
        )
        registration.tickets.append(
            RegistrationTicket(
                ticket_type_id=ticket_type.id,
                ticket_type=ticket_type,
                position=start + offset,
                unit_price=unit_price,
            )
        )
