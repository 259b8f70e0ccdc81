"""Sobre estándar de respuesta {success, message, data, errors} y handlers de errores"""
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


def envelope(
    data: Any = None,
    message: Optional[str] = None,
    success: bool = True,
    errors: Optional[List[str]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": success}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    if errors:
        body["errors"] = errors
    return body


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException -> sobre estándar; detail puede ser string o dict con message/errors"""
    if isinstance(exc.detail, dict):
        message = exc.detail.get("message")
        errors = exc.detail.get("errors")
    else:
        message = str(exc.detail)
        errors = None
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(success=False, message=message, errors=errors),
        headers=getattr(exc, "headers", None),
    )


def _format_validation_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid value')}"


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Errores de validación del request -> 400 con la lista de campos inválidos"""
    errors = [_format_validation_error(error) for error in exc.errors()]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(envelope(success=False, message="Validation failed", errors=errors)),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Cualquier excepción no controlada -> 500 genérico, traza completa al log"""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=envelope(success=False, message="Internal server error"),
    )
