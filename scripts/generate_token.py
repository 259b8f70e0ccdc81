#!/usr/bin/env python3
"""Script para generar tokens JWT de prueba"""
import argparse
from datetime import timedelta

from shared.auth.dependencies import ROLE_ADMIN, ROLE_MANAGER, ROLE_SCANNER, ROLE_USER
from shared.auth.jwt_handler import create_access_token


def generate_token(user_id: str, email: str = None, role: str = ROLE_USER, minutes: int = None) -> str:
    """Generar token JWT firmado con JWT_SECRET_KEY"""
    data = {
        "sub": user_id,
        "email": email or f"{user_id}@example.com",
        "role": role,
    }
    expires = timedelta(minutes=minutes) if minutes else None
    return create_access_token(data, expires_delta=expires)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generar token JWT de prueba")
    parser.add_argument("--user-id", required=True, help="ID (UUID) del usuario")
    parser.add_argument("--email", help="Email del usuario")
    parser.add_argument(
        "--role",
        default=ROLE_USER,
        choices=[ROLE_USER, ROLE_ADMIN, ROLE_MANAGER, ROLE_SCANNER],
        help="Rol del usuario",
    )
    parser.add_argument("--minutes", type=int, help="Minutos de validez (por defecto JWT_ACCESS_TOKEN_EXPIRE_MINUTES)")

    args = parser.parse_args()

    token = generate_token(args.user_id, args.email, args.role, args.minutes)
    print("\nToken generado:")
    print(token)
    print("\nPara usar en curl:")
    print(f'curl -H "Authorization: Bearer {token}" http://localhost:8000/api/v1/registrations/users/{args.user_id}/summary')
    print()
