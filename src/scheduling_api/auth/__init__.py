"""Authentication utilities. Request dependencies live in ``auth.dependencies``."""

from scheduling_api.auth.jwt import (
    JWTTokenHandler,
    TokenPayload,
    create_access_token,
    decode_token,
    get_jwt_handler,
)
from scheduling_api.auth.passwords import hash_password, verify_password

__all__ = [
    # JWT
    "JWTTokenHandler",
    "TokenPayload",
    "create_access_token",
    "decode_token",
    "get_jwt_handler",
    # Passwords
    "hash_password",
    "verify_password",
]
