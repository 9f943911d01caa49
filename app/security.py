"""Password hashing and field validation helpers."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re

logger = logging.getLogger(__name__)

FIELD_CHARSET = r"a-zA-Z0-9!@#$%&*_\-+.,<>;/? "
FIELD_CHARSET_RE = re.compile(rf"[{FIELD_CHARSET}]*")
PASSWORD_HASH_RE = re.compile(r"[a-f0-9]{128}")
# Same allow-list as a SQLite GLOB class; '-' goes last to stay literal.
GLOB_CHARSET = "a-zA-Z0-9!@#$%&*_+.,<>;/? -"

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 20
DESCRIPTION_MIN_LENGTH = 3
DESCRIPTION_MAX_LENGTH = 60
PASSWORD_MAX_LENGTH = 128


def is_valid_field(
    value: object, max_length: int, *, min_length: int = 3
) -> bool:
    """Return ``True`` when ``value`` only uses allowed characters and fits the bounds."""

    if not isinstance(value, str):
        return False
    if not min_length <= len(value) <= max_length:
        return False
    return FIELD_CHARSET_RE.fullmatch(value) is not None


def hash_password(password: str) -> str:
    """Return the hex encoded SHA-512 digest of ``password``."""

    return hashlib.sha512(password.encode("utf-8")).hexdigest()


def is_password_hash(value: object) -> bool:
    return isinstance(value, str) and PASSWORD_HASH_RE.fullmatch(value) is not None


def verify_password(password: str, password_hash: str) -> bool:
    """Check a raw password against a stored digest."""

    if not password_hash:
        return False
    candidate = hash_password(password)
    if not hmac.compare_digest(candidate, password_hash):
        logger.info("The user exists but the password is wrong.")
        return False
    return True
