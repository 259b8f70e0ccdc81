"""Modelos Pydantic para tipos de ticket"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from uuid import UUID


class TicketTypeResponse(BaseModel):
    """Modelo de respuesta para tipos de ticket"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    event_id: UUID
    name: str
    price: float
    is_active: bool
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None


class TicketTypeStatusUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_active: bool
