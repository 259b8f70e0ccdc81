"""
Rate limiting usando slowapi.
Con RATE_LIMIT_STORAGE_URI=redis://... los contadores se comparten entre instancias.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse
import hashlib
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """
    Obtener IP real del cliente considerando proxies/load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # La primera IP es la del cliente
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_user_identifier(request: Request) -> str:
    """
    Identificador para rate limiting: IP + hash corto del token si existe.
    """
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:] if auth_header.startswith("Bearer ") else request.cookies.get(settings.AUTH_COOKIE_NAME, "")
    if token:
        token_hash = hashlib.md5(token.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    headers_enabled=False,  # Compatibilidad con endpoints que retornan dicts
    enabled=settings.RATE_LIMIT_ENABLED,
)
logger.info(
    f"Rate limiter inicializado (enabled={settings.RATE_LIMIT_ENABLED}, "
    f"storage={settings.RATE_LIMIT_STORAGE_URI.split('@')[-1]})"
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Handler para rate limit exceeded con el sobre de respuesta estándar.
    """
    logger.warning(
        f"Rate limit exceeded - IP: {get_real_client_ip(request)}, "
        f"Path: {request.url.path}, Limit: {exc.detail}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please wait before trying again.",
            "errors": [str(exc.detail)] if exc.detail else [],
        },
        headers={"Retry-After": "60"},
    )


# ============ RATE LIMITS PRE-DEFINIDOS ============

RATE_LIMITS = {
    # Creación de registros: restrictivo, cada intento toma el lock del evento
    "registration": "10/minute",

    # Check-in con scanners en la puerta
    "check_in": "120/minute",

    # Regeneración de QR: operación manual
    "qr_regenerate": "20/minute",

    "default": "60/minute",
}
