"""Modelos SQLAlchemy del dominio de registros a eventos"""
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Numeric, Text, Table,
    UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from shared.database.connection import Base


# Un usuario puede pertenecer a varias organizaciones
user_organizations = Table(
    "user_organizations",
    Base.metadata,
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("organization_id", Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
)


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, server_default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    users = relationship("User", secondary=user_organizations, back_populates="organizations")
    events = relationship("Event", back_populates="organization")
    venues = relationship("Venue", back_populates="organization")


class Role(Base):
    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)  # admin, manager, scanner, user

    users = relationship("User", back_populates="role")


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    role_id = Column(Uuid, ForeignKey("roles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # Soft delete

    # Relaciones
    role = relationship("Role", back_populates="users")
    organizations = relationship("Organization", secondary=user_organizations, back_populates="users")


class Venue(Base):
    __tablename__ = "venues"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    location = Column(String, nullable=True)
    capacity = Column(Integer, nullable=False)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", back_populates="venues")
    events = relationship("Event", back_populates="venue")


class Event(Base):
    __tablename__ = "events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, server_default="draft")  # draft, pending, approved, rejected
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True)
    venue_id = Column(Uuid, ForeignKey("venues.id"), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relaciones
    organization = relationship("Organization", back_populates="events")
    venue = relationship("Venue", back_populates="events")
    ticket_types = relationship("TicketType", back_populates="event", cascade="all, delete-orphan")
    registrations = relationship("Registration", back_populates="event")


class TicketType(Base):
    __tablename__ = "ticket_types"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, server_default="true", default=True)
    # Ventana de disponibilidad; un extremo nulo queda abierto
    available_from = Column(DateTime(timezone=True), nullable=True)
    available_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event", back_populates="ticket_types")


class Registration(Base):
    __tablename__ = "registrations"
    # Traer updated_at/registration_date en el mismo flush; con AsyncSession no hay lazy load
    __mapper_args__ = {"eager_defaults": True}

    # El id lo genera el handler HTTP (uuid4), nunca la base de datos
    id = Column(Uuid, primary_key=True)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    buyer_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    venue_id = Column(Uuid, ForeignKey("venues.id"), nullable=False)
    no_of_tickets = Column(Integer, nullable=False)
    registration_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    payment_status = Column(String, nullable=False, server_default="pending")  # pending, paid, failed, refunded
    registration_status = Column(String, nullable=False, server_default="active")  # active, partially_cancelled
    total_cost = Column(Numeric(14, 4), nullable=False)
    qr_code = Column(String, nullable=True)
    check_date = Column(DateTime(timezone=True), nullable=True)
    attended = Column(Boolean, nullable=False, server_default="false", default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="registrations")
    user = relationship("User", foreign_keys=[user_id])
    buyer = relationship("User", foreign_keys=[buyer_id])
    venue = relationship("Venue")
    attendees = relationship(
        "RegistrationAttendee",
        back_populates="registration",
        cascade="all, delete-orphan",
        order_by="RegistrationAttendee.position",
    )
    tickets = relationship(
        "RegistrationTicket",
        back_populates="registration",
        cascade="all, delete-orphan",
        order_by="RegistrationTicket.position",
    )

    @property
    def bought_for_ids(self):
        return [attendee.user_id for attendee in self.attendees]

    @property
    def ticket_type_ids(self):
        return [ticket.ticket_type_id for ticket in self.tickets]


class RegistrationAttendee(Base):
    """Asistente cubierto por un registro (una fila por boughtForId)"""
    __tablename__ = "registration_attendees"
    __table_args__ = (
        # Un usuario no puede asistir dos veces al mismo evento
        UniqueConstraint("event_id", "user_id", name="uq_registration_attendees_event_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_id = Column(Uuid, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Uuid, ForeignKey("events.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    position = Column(Integer, nullable=False)

    registration = relationship("Registration", back_populates="attendees")


class RegistrationTicket(Base):
    """Entrada individual de un registro; la posición i corresponde al asistente i"""
    __tablename__ = "registration_tickets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_id = Column(Uuid, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_type_id = Column(Uuid, ForeignKey("ticket_types.id"), nullable=False)
    position = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)

    registration = relationship("Registration", back_populates="tickets")
    ticket_type = relationship("TicketType")
