"""
Crypto utilities — bcrypt password hashing and random codes for
admin secret codes, certificate numbers and verification codes.
"""

import secrets
import string

import bcrypt

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def hash_password(plain_password: str, rounds: int = 12) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def random_code(length: int = 8) -> str:
    """Upper-case alphanumeric token from a CSPRNG."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def random_digits(length: int = 6) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))
