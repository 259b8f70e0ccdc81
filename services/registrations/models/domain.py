"""Tipos internos del flujo de registros (independientes de HTTP y de la base de datos)"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional
from uuid import UUID

CENTS = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Redondeo a 2 decimales solo para mostrar; el total se guarda completo"""
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class RegistrationDraft:
    """Solicitud de registro ya normalizada, antes de validar"""
    event_id: Optional[UUID]
    user_id: Optional[UUID]
    buyer_id: Optional[UUID]
    venue_id: Optional[UUID]
    ticket_type_ids: List[UUID] = field(default_factory=list)
    bought_for_ids: List[UUID] = field(default_factory=list)
    no_of_tickets: Any = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    message: Optional[str] = None
    internal_error: bool = False

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, errors: List[str], message: Optional[str] = None) -> "ValidationResult":
        return cls(
            valid=False,
            errors=list(errors),
            message=message or "Validation failed: " + " ".join(errors),
        )


@dataclass
class CostResult:
    valid: bool
    total_cost: Decimal = Decimal("0")
    message: Optional[str] = None
    missing_ids: List[UUID] = field(default_factory=list)
    # Precio unitario por entrada, en el mismo orden que ticket_type_ids
    unit_prices: List[Decimal] = field(default_factory=list)

    def display_amount(self) -> Decimal:
        return round_money(self.total_cost)


@dataclass
class ResolvedRegistration:
    """Todo lo necesario para escribir un registro; cada referencia ya es una entidad"""
    registration_id: UUID
    event: Any
    user: Any
    buyer: Any
    venue: Any
    attendees: List[Any]
    ticket_types: List[Any]
    unit_prices: List[Decimal]
    total_cost: Decimal
    no_of_tickets: int
    payment_status: str = "pending"
