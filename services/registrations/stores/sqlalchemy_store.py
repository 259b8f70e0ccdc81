"""Implementación SQLAlchemy (async) de los stores de registros"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.database.models import (
    Event, Registration, RegistrationAttendee, RegistrationTicket, TicketType, User, Venue,
)
from services.registrations.errors import DuplicateAttendeeError, RegistrationIntegrityError
from services.registrations.models.domain import ResolvedRegistration
from services.registrations.stores.interfaces import ReferenceStore, RegistrationStore, build_registration

logger = logging.getLogger(__name__)

ATTENDEE_UNIQUE_MARKERS = ("uq_registration_attendees_event_user", "registration_attendees.event_id")


def _registration_options():
    return (
        selectinload(Registration.event),
        selectinload(Registration.user),
        selectinload(Registration.buyer),
        selectinload(Registration.venue),
        selectinload(Registration.attendees),
        selectinload(Registration.tickets).selectinload(RegistrationTicket.ticket_type),
    )


class SqlAlchemyReferenceStore(ReferenceStore):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_event(self, event_id: UUID) -> Optional[Event]:
        result = await self.db.execute(
            select(Event).where(Event.id == event_id, Event.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_user(self, user_id: UUID) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_venue(self, venue_id: UUID) -> Optional[Venue]:
        result = await self.db.execute(
            select(Venue).where(Venue.id == venue_id, Venue.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def find_users(self, user_ids: Iterable[UUID]) -> List[User]:
        ids = list(set(user_ids))
        if not ids:
            return []
        result = await self.db.execute(
            select(User).where(User.id.in_(ids), User.deleted_at.is_(None))
        )
        return list(result.scalars().all())

    async def find_ticket_types(self, ticket_type_ids: Iterable[UUID]) -> List[TicketType]:
        ids = list(set(ticket_type_ids))
        if not ids:
            return []
        result = await self.db.execute(
            select(TicketType).where(TicketType.id.in_(ids), TicketType.deleted_at.is_(None))
        )
        return list(result.scalars().all())

    async def get_ticket_type(self, ticket_type_id: UUID) -> Optional[TicketType]:
        result = await self.db.execute(
            select(TicketType).where(TicketType.id == ticket_type_id, TicketType.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def list_ticket_types(self, event_id: UUID) -> List[TicketType]:
        result = await self.db.execute(
            select(TicketType)
            .where(TicketType.event_id == event_id, TicketType.deleted_at.is_(None))
            .order_by(TicketType.price, TicketType.name)
        )
        return list(result.scalars().all())

    async def save_ticket_type(self, ticket_type: TicketType) -> TicketType:
        self.db.add(ticket_type)
        await self.db.commit()
        return ticket_type


class SqlAlchemyRegistrationStore(RegistrationStore):

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def reservation(self, event_id: UUID) -> AsyncIterator[None]:
        try:
            # Lock de fila sobre el evento: otra reserva del mismo evento espera al commit
            await self.db.execute(
                select(Event.id).where(Event.id == event_id).with_for_update()
            )
            yield
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if any(marker in str(e.orig) for marker in ATTENDEE_UNIQUE_MARKERS):
                raise DuplicateAttendeeError(
                    "One or more attendees are already registered for this event."
                ) from e
            logger.error(f"Integrity error writing registration for event {event_id}: {e.orig}")
            raise RegistrationIntegrityError("Registration could not be stored.") from e
        except Exception:
            await self.db.rollback()
            raise

    async def sum_tickets_for_event(self, event_id: UUID) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Registration.no_of_tickets), 0))
            .where(Registration.event_id == event_id)
        )
        return int(result.scalar_one())

    async def find_registered_attendees(self, event_id: UUID, user_ids: Iterable[UUID]) -> List[UUID]:
        ids = list(set(user_ids))
        if not ids:
            return []
        result = await self.db.execute(
            select(RegistrationAttendee.user_id)
            .where(RegistrationAttendee.event_id == event_id, RegistrationAttendee.user_id.in_(ids))
            .distinct()
        )
        return list(result.scalars().all())

    async def add(self, resolved: ResolvedRegistration) -> Registration:
        registration = build_registration(resolved)
        self.db.add(registration)
        await self.db.flush()
        return registration

    async def get(self, registration_id: UUID) -> Optional[Registration]:
        result = await self.db.execute(
            select(Registration)
            .options(*_registration_options())
            .where(Registration.id == registration_id)
        )
        return result.scalar_one_or_none()

    async def list(self, event_id: Optional[UUID] = None) -> List[Registration]:
        query = select(Registration).options(*_registration_options())
        if event_id is not None:
            query = query.where(Registration.event_id == event_id)
        result = await self.db.execute(query.order_by(Registration.registration_date.desc()))
        return list(result.scalars().all())

    async def list_for_user(self, user_id: UUID) -> List[Registration]:
        attendee_of = select(RegistrationAttendee.registration_id).where(RegistrationAttendee.user_id == user_id)
        result = await self.db.execute(
            select(Registration)
            .options(*_registration_options())
            .where(or_(
                Registration.user_id == user_id,
                Registration.buyer_id == user_id,
                Registration.id.in_(attendee_of),
            ))
            .order_by(Registration.registration_date.desc())
        )
        return list(result.scalars().all())

    async def stage(self, registration: Registration) -> Registration:
        # flush dentro de la transacción con lock; el índice único se evalúa aquí
        self.db.add(registration)
        await self.db.flush()
        return registration

    async def mark_attended(self, registration_id: UUID, check_date: datetime) -> bool:
        result = await self.db.execute(
            update(Registration)
            .where(Registration.id == registration_id, Registration.attended.is_(False))
            .values(attended=True, check_date=check_date)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def save(self, registration: Registration) -> Registration:
        self.db.add(registration)
        await self.db.commit()
        return registration

    async def delete(self, registration: Registration) -> None:
        await self.db.delete(registration)
        await self.db.commit()
