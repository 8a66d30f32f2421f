"""Tests for the password hashing helpers."""

from __future__ import annotations

from useradmin.database import hash_password, verify_password


def test_hash_is_not_plaintext_and_verifies() -> None:
    hashed = hash_password("supersecurepassword")

    assert hashed != "supersecurepassword"
    assert hashed.startswith("$2")
    assert verify_password("supersecurepassword", hashed)
    assert not verify_password("incorrect", hashed)


def test_hashes_are_salted() -> None:
    assert hash_password("same-password") != hash_password("same-password")


def test_verify_rejects_malformed_hash() -> None:
    assert not verify_password("anything", "not-a-hash")
