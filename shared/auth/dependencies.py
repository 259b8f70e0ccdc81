"""Dependencies de autenticación para FastAPI"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict, Iterable

from app.core.config import settings
from shared.auth.jwt_handler import verify_token


ROLE_ADMIN = 'admin'
ROLE_MANAGER = 'manager'
ROLE_SCANNER = 'scanner'
ROLE_USER = 'user'

# auto_error=False para poder caer a la cookie access_token
security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict:
    '''Obtener usuario actual desde el header Bearer o la cookie access_token'''
    token = _extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Authentication required',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    payload = await verify_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid or expired token',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid token: missing user id',
        )

    return {
        'user_id': str(user_id),
        'email': payload.get('email'),
        'role': payload.get('role', ROLE_USER),
    }


def require_roles(*roles: str):
    '''Crear una dependency que exige uno de los roles indicados'''
    async def _checker(current_user: Dict = Depends(get_current_user)) -> Dict:
        if current_user.get('role') not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Requires one of: {', '.join(roles)}",
            )
        return current_user
    return _checker


get_current_admin = require_roles(ROLE_ADMIN)
get_current_admin_or_manager = require_roles(ROLE_ADMIN, ROLE_MANAGER)
get_current_scanner = require_roles(ROLE_SCANNER, ROLE_MANAGER, ROLE_ADMIN)


def is_staff(current_user: Dict) -> bool:
    return current_user.get('role') in (ROLE_ADMIN, ROLE_MANAGER)


def is_authorized_for_registration(current_user: Dict, user_ids: Iterable[object]) -> bool:
    '''
    Staff puede ver cualquier registro; el resto solo aquellos en los que
    figura como asistente principal, comprador o boughtFor.
    '''
    if is_staff(current_user):
        return True
    requester = str(current_user.get('user_id'))
    return any(str(user_id) == requester for user_id in user_ids if user_id is not None)
