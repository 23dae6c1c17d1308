"""Password hashing: stored format, verification, malformed input."""

import pytest

from pharmasys.services.password_service import (
    PasswordValidationError,
    hash_password,
    validate_password_strength,
    verify_password,
)


def test_hash_has_key_and_salt_parts():
    stored = hash_password("pw123456")
    key, salt = stored.split(".")
    assert len(bytes.fromhex(key)) == 32
    assert len(bytes.fromhex(salt)) == 16


def test_verify_round_trip():
    stored = hash_password("pw123456")
    assert verify_password("pw123456", stored) is True
    assert verify_password("pw123457", stored) is False


def test_same_password_gets_fresh_salt():
    assert hash_password("pw123456") != hash_password("pw123456")


@pytest.mark.parametrize("stored", [None, "", "nodot", ".abcd", "abcd.", "zz.yy", "a.b.c"])
def test_malformed_stored_value_fails_without_raising(stored):
    assert verify_password("pw123456", stored) is False


def test_empty_password_never_verifies():
    assert verify_password("", hash_password("pw123456")) is False


@pytest.mark.parametrize("password", ["short1", "allletters", "12345678", None])
def test_weak_passwords_rejected(password):
    with pytest.raises(PasswordValidationError):
        validate_password_strength(password)


def test_strength_accepts_letters_and_digits():
    validate_password_strength("pw123456")
