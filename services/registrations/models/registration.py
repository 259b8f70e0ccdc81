"""Modelos Pydantic para registros"""
from pydantic import BaseModel, ConfigDict, StrictInt, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional
from datetime import datetime
from uuid import UUID

from services.registrations.models.domain import RegistrationDraft, round_money


class CamelModel(BaseModel):
    """Base con alias camelCase (el cliente envía eventId, noOfTickets, ...)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RegistrationCreate(CamelModel):
    """
    Cuerpo de creación.

    ticketTypeIds es la forma canónica (una entrada por ticket); el campo
    singular ticketTypeId se acepta y se expande a noOfTickets entradas.
    Los campos de referencia son opcionales aquí para que el motor de
    validación reporte todos los faltantes juntos.
    """
    event_id: Optional[UUID] = None
    venue_id: Optional[UUID] = None
    ticket_type_ids: Optional[List[UUID]] = None
    ticket_type_id: Optional[UUID] = None
    no_of_tickets: Optional[StrictInt] = None
    bought_for_ids: List[UUID] = []
    buyer_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_ticket_type_shape(self):
        if self.ticket_type_ids is not None and self.ticket_type_id is not None:
            raise ValueError("Send either 'ticketTypeIds' or 'ticketTypeId', not both.")
        return self

    def normalized_ticket_type_ids(self) -> List[UUID]:
        if self.ticket_type_ids is not None:
            return list(self.ticket_type_ids)
        if self.ticket_type_id is not None:
            count = self.no_of_tickets if isinstance(self.no_of_tickets, int) and self.no_of_tickets > 0 else 1
            return [self.ticket_type_id] * count
        return []

    def to_draft(self, user_id: UUID) -> RegistrationDraft:
        """El asistente principal es el usuario del token; buyerId por defecto también"""
        return RegistrationDraft(
            event_id=self.event_id,
            user_id=user_id,
            buyer_id=self.buyer_id or user_id,
            venue_id=self.venue_id,
            ticket_type_ids=self.normalized_ticket_type_ids(),
            bought_for_ids=list(self.bought_for_ids),
            no_of_tickets=self.no_of_tickets,
        )


class RegistrationUpdate(CamelModel):
    """Solo campos mutables; cualquier otro campo se rechaza"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    payment_status: Optional[Literal["pending", "paid", "failed", "refunded"]] = None
    attended: Optional[bool] = None
    check_date: Optional[datetime] = None


class CancelTicketsRequest(CamelModel):
    ids_to_cancel: List[UUID]


class TransferTicketRequest(CamelModel):
    old_user_id: UUID
    new_user_id: UUID


class AddTicketsRequest(CamelModel):
    """Nuevos asistentes y sus entradas; mismas dos formas de ticket type que la creación"""
    bought_for_ids: List[UUID]
    ticket_type_ids: Optional[List[UUID]] = None
    ticket_type_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_ticket_type_shape(self):
        if self.ticket_type_ids is not None and self.ticket_type_id is not None:
            raise ValueError("Send either 'ticketTypeIds' or 'ticketTypeId', not both.")
        return self

    def normalized_ticket_type_ids(self) -> List[UUID]:
        if self.ticket_type_ids is not None:
            return list(self.ticket_type_ids)
        if self.ticket_type_id is not None:
            return [self.ticket_type_id] * max(len(self.bought_for_ids), 1)
        return []


class CheckInRequest(CamelModel):
    qr_code: str
    event_id: Optional[UUID] = None


class UserSummaryResponse(CamelModel):
    id: UUID
    email: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class EventSummaryResponse(CamelModel):
    id: UUID
    title: str
    status: Optional[str] = None
    starts_at: Optional[datetime] = None


class VenueSummaryResponse(CamelModel):
    id: UUID
    name: str
    location: Optional[str] = None
    capacity: int


class TicketEntryResponse(CamelModel):
    ticket_type_id: UUID
    name: Optional[str] = None
    unit_price: float


class RegistrationResponse(CamelModel):
    id: UUID
    event_id: UUID
    user_id: UUID
    buyer_id: UUID
    venue_id: UUID
    no_of_tickets: int
    bought_for_ids: List[UUID]
    ticket_type_ids: List[UUID]
    tickets: List[TicketEntryResponse] = []
    registration_date: Optional[datetime] = None
    payment_status: str
    registration_status: str
    total_cost: float
    qr_code: Optional[str] = None
    check_date: Optional[datetime] = None
    attended: bool
    event: Optional[EventSummaryResponse] = None
    user: Optional[UserSummaryResponse] = None
    buyer: Optional[UserSummaryResponse] = None
    venue: Optional[VenueSummaryResponse] = None

    @classmethod
    def from_registration(cls, registration) -> "RegistrationResponse":
        return cls(
            id=registration.id,
            event_id=registration.event_id,
            user_id=registration.user_id,
            buyer_id=registration.buyer_id,
            venue_id=registration.venue_id,
            no_of_tickets=registration.no_of_tickets,
            bought_for_ids=registration.bought_for_ids,
            ticket_type_ids=registration.ticket_type_ids,
            tickets=[
                TicketEntryResponse(
                    ticket_type_id=ticket.ticket_type_id,
                    name=ticket.ticket_type.name if ticket.ticket_type is not None else None,
                    unit_price=float(round_money(ticket.unit_price)),
                )
                for ticket in registration.tickets
            ],
            registration_date=registration.registration_date,
            payment_status=registration.payment_status,
            registration_status=registration.registration_status,
            total_cost=float(round_money(registration.total_cost)),
            qr_code=registration.qr_code,
            check_date=registration.check_date,
            attended=registration.attended,
            event=EventSummaryResponse.model_validate(registration.event) if registration.event else None,
            user=UserSummaryResponse.model_validate(registration.user) if registration.user else None,
            buyer=UserSummaryResponse.model_validate(registration.buyer) if registration.buyer else None,
            venue=VenueSummaryResponse.model_validate(registration.venue) if registration.venue else None,
        )


def serialize_registration(registration) -> dict:
    """Registro -> dict JSON camelCase (también es lo que se guarda en cache)"""
    return RegistrationResponse.from_registration(registration).model_dump(by_alias=True, mode="json")
