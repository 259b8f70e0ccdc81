"""Errores del flujo de registros"""
from typing import List, Optional


class RegistrationError(Exception):
    """Base de los errores de registro; status_code es el HTTP sugerido"""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class RegistrationValidationError(RegistrationError):
    """Falla de validación, capacidad, duplicado o disponibilidad"""

    def __init__(self, message: str, errors: Optional[List[str]] = None, status_code: int = 400):
        super().__init__(message, errors)
        self.status_code = status_code


class RegistrationNotFoundError(RegistrationError):
    status_code = 404

    def __init__(self, registration_id):
        super().__init__(f"Registration with ID '{registration_id}' not found.")
        self.registration_id = registration_id


class RegistrationInternalError(RegistrationError):
    """El store falló durante la validación; no es culpa del cliente"""


class RegistrationIntegrityError(RegistrationError):
    """Una referencia validada no pudo resolverse al momento de escribir"""


class DuplicateAttendeeError(RegistrationError):
    """El índice único (event_id, user_id) rechazó la escritura"""

    status_code = 400


class TicketTypeNotFoundError(RegistrationError):
    status_code = 404

    def __init__(self, ticket_type_id):
        super().__init__(f"Ticket Type with ID '{ticket_type_id}' not found.")
        self.ticket_type_id = ticket_type_id
