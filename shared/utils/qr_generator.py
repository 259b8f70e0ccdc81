"""Utilidades para construir, codificar y renderizar el payload QR de un registro"""
import base64
import binascii
import json
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

import qrcode

REQUIRED_FIELDS = ("registrationId", "userId", "eventId")


def build_qr_payload(registration_id, user_id, event_id, now: Optional[datetime] = None) -> Dict[str, str]:
    """
    Payload embebido en el QR.

    uniqueHash es un uuid4 nuevo en cada generación, por lo que regenerar
    produce un código distinto aunque los IDs sean los mismos.
    """
    now = now or datetime.now(timezone.utc)
    return {
        "registrationId": str(registration_id),
        "userId": str(user_id),
        "eventId": str(event_id),
        "timestamp": now.isoformat(),
        "uniqueHash": str(uuid.uuid4()),
    }


def encode_qr_payload(payload: Dict[str, str]) -> str:
    """JSON -> base64 estándar"""
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def _sanitize(encoded: str) -> str:
    # Los lectores pueden insertar saltos de línea o entregar base64 url-safe sin padding
    cleaned = "".join(encoded.split())
    cleaned = cleaned.replace("-", "+").replace("_", "/")
    return cleaned + "=" * (-len(cleaned) % 4)


def decode_qr_payload(encoded) -> Optional[Dict[str, str]]:
    """
    Decodificar un QR escaneado.

    Retorna None ante cualquier entrada malformada (no string, base64 o JSON
    inválidos, o faltan registrationId/userId/eventId). Nunca lanza.
    """
    if not isinstance(encoded, str) or not encoded.strip():
        return None
    try:
        raw = base64.b64decode(_sanitize(encoded), validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        # UnicodeDecodeError y JSONDecodeError son subclases de ValueError
        return None
    if not isinstance(payload, dict):
        return None
    if any(not payload.get(field) for field in REQUIRED_FIELDS):
        return None
    return payload


def render_qr_png(data: str, path: str) -> None:
    """Renderizar data como PNG en path (bloqueante, llamar vía asyncio.to_thread)"""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img.save(path)
