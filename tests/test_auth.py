"""Unit tests for credentials and the role gate."""

from __future__ import annotations

import pytest

from auth import (
    TEMP_PASSWORD_ALPHABET,
    Principal,
    ensure_admin,
    ensure_analyst_or_admin,
    ensure_authenticated,
    generate_temporary_password,
    get_password_hash,
    verify_password,
)
from errors import Forbidden, Unauthorized


def test_temporary_password_shape() -> None:
    """Twelve characters, none of them visually ambiguous."""
    password = generate_temporary_password()

    assert len(password) == 12
    assert set(password) <= set(TEMP_PASSWORD_ALPHABET)
    assert not set("0O1lI") & set(TEMP_PASSWORD_ALPHABET)


def test_password_hash_is_salted_and_verifiable() -> None:
    first = get_password_hash("s3cret-pass")
    second = get_password_hash("s3cret-pass")

    assert first != second
    assert verify_password("s3cret-pass", first)
    assert not verify_password("wrong", first)


def test_unauthenticated_principal_is_rejected() -> None:
    with pytest.raises(Unauthorized):
        ensure_authenticated(None)
    with pytest.raises(Unauthorized):
        ensure_admin(None)


@pytest.mark.parametrize("role", ["analyst", "viewer"])
def test_admin_gate_rejects_other_roles(role: str) -> None:
    with pytest.raises(Forbidden):
        ensure_admin(Principal(id=1, role=role))


def test_analyst_gate() -> None:
    """Admins and analysts pass; viewers are forbidden."""
    assert ensure_analyst_or_admin(Principal(id=1, role="admin")).role == "admin"
    assert ensure_analyst_or_admin(Principal(id=2, role="analyst")).role == "analyst"
    with pytest.raises(Forbidden):
        ensure_analyst_or_admin(Principal(id=3, role="viewer"))
