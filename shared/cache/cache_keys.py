"""Construcción centralizada de claves de cache y sus invalidaciones"""
from typing import Iterable, List, Optional


def registration_key(registration_id) -> str:
    return f"registrations:detail:{registration_id}"


def event_registrations_key(event_id: Optional[object] = None) -> str:
    """Listado de registros; sin evento corresponde al listado global"""
    return f"registrations:list:{event_id or 'all'}"


def user_summary_key(user_id) -> str:
    return f"registrations:summary:{user_id}"


def event_ticket_types_key(event_id) -> str:
    return f"ticket_types:event:{event_id}"


def registration_invalidation_keys(
    registration_id,
    event_id,
    user_ids: Iterable[object] = (),
) -> List[str]:
    """
    Claves afectadas por cualquier escritura sobre un registro.

    user_ids debe incluir al asistente principal, al comprador y a todos
    los boughtForIds, porque el resumen de costos de cada uno cambia.
    """
    keys = [
        registration_key(registration_id),
        event_registrations_key(event_id),
        event_registrations_key(),
    ]
    seen = set()
    for user_id in user_ids:
        if user_id is None or str(user_id) in seen:
            continue
        seen.add(str(user_id))
        keys.append(user_summary_key(user_id))
    return keys


def ticket_type_invalidation_keys(event_id) -> List[str]:
    return [event_ticket_types_key(event_id)]
