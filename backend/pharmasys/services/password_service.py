# Overview: Password hashing and verification; pure functions, no database work.

"""
Password Hasher

WHY: Stored credentials must resist offline brute force if the users table
leaks. Passwords are run through bcrypt-pbkdf, a deliberately slow key
derivation function, with a per-password random salt.

STORED FORMAT: "<hex derived key>.<hex salt>"

SECURITY NOTES:
- 16-byte salt from the OS CSPRNG (secrets.token_bytes)
- 32-byte derived key, KDF_ROUNDS rounds of bcrypt-pbkdf
- Comparison via hmac.compare_digest (constant time)
- A malformed stored value never raises; it simply fails verification
"""

import hmac
import re
import secrets

import bcrypt

from ..errors import ValidationError


SALT_BYTES = 16
KEY_BYTES = 32
KDF_ROUNDS = 64  # bcrypt warns below 50

MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def _derive(password: str, salt: bytes) -> bytes:
    return bcrypt.kdf(
        password=password.encode('utf-8'),
        salt=salt,
        desired_key_bytes=KEY_BYTES,
        rounds=KDF_ROUNDS,
    )


def hash_password(password: str) -> str:
    """
    Hash a password with a fresh random salt.

    Does not validate strength: callers that accept new passwords
    (registration, password change, CLI user creation) call
    validate_password_strength first.
    """
    salt = secrets.token_bytes(SALT_BYTES)
    key = _derive(password, salt)
    return f"{key.hex()}.{salt.hex()}"


def verify_password(password: str, stored: str | None) -> bool:
    """
    Verify password against a stored "<key>.<salt>" value.

    Returns True if password matches, False otherwise (including when the
    stored value is missing, has no salt, or is not valid hex).
    """
    if not password or not stored:
        return False

    parts = stored.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return False

    try:
        expected = bytes.fromhex(parts[0])
        salt = bytes.fromhex(parts[1])
    except ValueError:
        return False

    candidate = _derive(password, salt)
    return hmac.compare_digest(candidate, expected)
