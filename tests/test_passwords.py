"""Unit tests for auth/passwords.py -- bcrypt hashing and its 72-byte input limit."""

import pytest

from auth.passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long, verify_password


def test_round_trip_keeps_whitespace():
    hashed = hash_password("  spaced out  ")
    assert verify_password("  spaced out  ", hashed)
    assert not verify_password("spaced out", hashed)


def test_limit_counts_bytes_not_characters():
    assert not password_too_long("a" * MAX_PASSWORD_BYTES)
    assert password_too_long("a" * (MAX_PASSWORD_BYTES + 1))
    # 72 characters, two bytes each.
    assert password_too_long("é" * MAX_PASSWORD_BYTES)
    assert not password_too_long("é" * (MAX_PASSWORD_BYTES // 2))


def test_hash_rejects_over_long_input():
    with pytest.raises(ValueError, match="72 bytes"):
        hash_password("é" * MAX_PASSWORD_BYTES)


def test_verify_over_long_input_is_a_mismatch():
    hashed = hash_password("short-and-fine")
    assert verify_password("é" * MAX_PASSWORD_BYTES, hashed) is False


def test_corrupt_hash_is_a_mismatch():
    assert verify_password("anything-at-all", "not-a-bcrypt-hash") is False
