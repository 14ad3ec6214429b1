"""Bearer authentication, exercised without the HTTP framework."""

from __future__ import annotations

import pytest

from datastore.credential_store import CredentialStore
from errors import AuthError
from services.auth import (
    INVALID_TOKEN_MESSAGE,
    MISSING_HEADER_MESSAGE,
    authenticate,
    extract_bearer_token,
)


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore()


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("BEARER   abc  ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("Bearer ", None),
        ("", None),
        (None, None),
        ("Bearerabc", None),
    ],
)
def test_extract_bearer_token(header, expected) -> None:
    assert extract_bearer_token(header) == expected


def test_valid_token_is_accepted(credentials: CredentialStore) -> None:
    token = credentials.get_or_create_token()

    credential = authenticate(f"Bearer {token}", credentials)

    assert credential.token == token


def test_missing_header_is_rejected(credentials: CredentialStore) -> None:
    credentials.get_or_create_token()

    with pytest.raises(AuthError) as excinfo:
        authenticate(None, credentials)

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == MISSING_HEADER_MESSAGE


def test_wrong_token_is_rejected_without_echoing_it(credentials: CredentialStore) -> None:
    credentials.get_or_create_token()

    with pytest.raises(AuthError) as excinfo:
        authenticate("Bearer not-the-token", credentials)

    assert excinfo.value.message == INVALID_TOKEN_MESSAGE
    assert "not-the-token" not in str(excinfo.value)


def test_any_token_rejected_before_credential_exists(credentials: CredentialStore) -> None:
    with pytest.raises(AuthError):
        authenticate("Bearer something", credentials)
