"""Password hashing."""

import hashlib
import warnings
from typing import Optional

from passlib.context import CryptContext

from scheduling_api.config import get_settings

_pwd_context: Optional[CryptContext] = None


def get_pwd_context() -> CryptContext:
    """Get the bcrypt context, built from settings on first use."""
    global _pwd_context
    if _pwd_context is None:
        # passlib warns while probing the bcrypt package version
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", message=".*bcrypt.*", category=UserWarning)
            _pwd_context = CryptContext(
                schemes=["bcrypt"],
                deprecated="auto",
                bcrypt__rounds=get_settings().security.bcrypt_rounds,
            )
    return _pwd_context


def _prehash(password: str) -> str:
    # bcrypt only reads the first 72 bytes
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """Hash a password with bcrypt (SHA256 pre-hashed)."""
    return get_pwd_context().hash(_prehash(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash produced by :func:`hash_password`."""
    try:
        return get_pwd_context().verify(_prehash(plain_password), hashed_password)
    except ValueError:
        return False
