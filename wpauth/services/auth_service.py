from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from wpauth.models.user import User
from wpauth.repos.user_repo import UserRepo

# Argon2 hash strings encode parameters + salt, so one hasher serves user
# passwords and OAuth2 client secrets alike.
logger = logging.getLogger(__name__)

_ph = PasswordHasher()


def hash_secret(plain: str) -> str:
    if not plain:
        raise ValueError("secret must be non-empty")
    return _ph.hash(plain)


def verify_secret(plain: str, encoded_hash: str | None) -> bool:
    """Constant-time verification; any malformed input is just a mismatch."""
    if not plain or not encoded_hash:
        return False
    try:
        return _ph.verify(encoded_hash, plain)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


def authenticate_user(repo: UserRepo, login: str, password: str) -> User | None:
    """Resolve *login* (username or email) and check the password."""
    user = repo.get_by_login(login)
    if user is None:
        return None
    if not verify_secret(password, user.password_hash):
        return None

    if _ph.check_needs_rehash(user.password_hash):
        repo.update_password_hash(user.id, _ph.hash(password))
        logger.info("Rehashed password for user=%s", user.id)

    return user
