"""
Password hashing with bcrypt.

Werkzeug hashes (scrypt/pbkdf2) are still accepted on verify so users
imported from the legacy system can log in once and be re-hashed.
"""

import bcrypt
from werkzeug.security import check_password_hash


def hash_password(plain_password: str, rounds: int = 12) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def is_legacy_hash(password_hash: str) -> bool:
    return bool(password_hash) and not password_hash.startswith(("$2b$", "$2a$"))


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against a bcrypt or legacy werkzeug hash."""
    if not password_hash:
        return False

    if not is_legacy_hash(password_hash):
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    return check_password_hash(password_hash, plain_password)
