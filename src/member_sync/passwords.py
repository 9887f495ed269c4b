"""
Default credential for members created by the sync.
"""

import secrets

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def default_password_hash(configured: str | None = None) -> str:
    """
    Hash for the credential given to newly created members.

    Uses the configured default when present. Otherwise a random value is
    generated, so the member has to go through a password reset to log in.
    """
    password = configured or secrets.token_urlsafe(16)
    return hash_password(password)
