"""Tests for the session manager."""

import asyncio

import pytest

from rising_stars.domain.errors import (
    AuthError,
    ConflictError,
    NetworkError,
    ValidationError,
)
from rising_stars.domain.models import SignUpForm
from rising_stars.services.sessions import SessionManager
from tests.conftest import PASSWORD, FakeGateway, InMemoryTokenStore


def _form(**overrides: object) -> SignUpForm:
    fields: dict[str, object] = {
        "first_name": "Camila",
        "last_name": "Pérez",
        "email": "camila@example.com",
        "password": PASSWORD,
        "confirm_password": PASSWORD,
        "city": "Cali",
    }
    fields.update(overrides)
    return SignUpForm(**fields)


def test_sign_up_password_mismatch_makes_no_request(
    session_manager: SessionManager, gateway: FakeGateway
) -> None:
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(session_manager.sign_up(_form(confirm_password="different1")))

    assert excinfo.value.field == "confirm_password"
    assert gateway.calls == []


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"first_name": "  "}, "first_name"),
        ({"last_name": ""}, "last_name"),
        ({"email": "not-an-email"}, "email"),
        ({"password": "short", "confirm_password": "short"}, "password"),
    ],
)
def test_sign_up_rejects_invalid_fields_locally(
    session_manager: SessionManager,
    gateway: FakeGateway,
    overrides: dict[str, object],
    field: str,
) -> None:
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(session_manager.sign_up(_form(**overrides)))

    assert excinfo.value.field == field
    assert gateway.calls == []


def test_sign_up_creates_account_and_logs_in(
    session_manager: SessionManager,
    gateway: FakeGateway,
    token_store: InMemoryTokenStore,
) -> None:
    session = asyncio.run(session_manager.sign_up(_form()))

    assert gateway.calls == ["sign_up", "log_in", "get_profile"]
    assert session.email == "camila@example.com"
    assert session.city == "Cali"
    assert session.country == "Colombia"
    assert session_manager.current == session
    assert token_store.token == session.auth_token


def test_sign_up_duplicate_email_is_conflict(session_manager: SessionManager) -> None:
    with pytest.raises(ConflictError):
        asyncio.run(session_manager.sign_up(_form(email="ana@example.com")))

    assert session_manager.current is None


def test_log_in_stores_token_and_profile(
    session_manager: SessionManager, token_store: InMemoryTokenStore
) -> None:
    session = asyncio.run(session_manager.log_in("ana@example.com", PASSWORD))

    assert session.user_id == "u-1"
    assert session.display_name == "Ana Rojas"
    assert session_manager.context.token == "token-ana@example.com"
    assert session_manager.context.identity == "u-1"
    assert token_store.token == "token-ana@example.com"


def test_log_in_with_wrong_password_fails(
    session_manager: SessionManager, token_store: InMemoryTokenStore
) -> None:
    with pytest.raises(AuthError):
        asyncio.run(session_manager.log_in("ana@example.com", "wrong-password"))

    assert session_manager.context.token is None
    assert token_store.token is None


def test_log_in_requires_credentials(
    session_manager: SessionManager, gateway: FakeGateway
) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(session_manager.log_in("", ""))

    assert gateway.calls == []


def test_rejected_token_invalidates_session(
    session_manager: SessionManager,
    gateway: FakeGateway,
    token_store: InMemoryTokenStore,
) -> None:
    asyncio.run(session_manager.log_in("ana@example.com", PASSWORD))
    gateway.tokens.clear()

    with pytest.raises(AuthError):
        asyncio.run(session_manager.get_current_profile())

    assert session_manager.current is None
    assert session_manager.context.token is None
    assert token_store.token is None


def test_get_current_profile_without_token_fails_locally(
    session_manager: SessionManager, gateway: FakeGateway
) -> None:
    with pytest.raises(AuthError):
        asyncio.run(session_manager.get_current_profile())

    assert gateway.calls == []


def test_restore_with_valid_persisted_token(
    session_manager: SessionManager,
    gateway: FakeGateway,
    token_store: InMemoryTokenStore,
) -> None:
    gateway.tokens["persisted"] = "ana@example.com"
    token_store.token = "persisted"

    session = asyncio.run(session_manager.restore())

    assert session is not None
    assert session.auth_token == "persisted"
    assert session_manager.current == session


def test_restore_with_rejected_token_clears_it(
    session_manager: SessionManager, token_store: InMemoryTokenStore
) -> None:
    token_store.token = "expired"

    session = asyncio.run(session_manager.restore())

    assert session is None
    assert token_store.token is None
    assert session_manager.context.token is None


def test_restore_without_token_makes_no_request(
    session_manager: SessionManager, gateway: FakeGateway
) -> None:
    assert asyncio.run(session_manager.restore()) is None
    assert gateway.calls == []


def test_log_out_is_idempotent(
    session_manager: SessionManager, token_store: InMemoryTokenStore
) -> None:
    asyncio.run(session_manager.log_in("ana@example.com", PASSWORD))

    session_manager.log_out()
    session_manager.log_out()

    assert session_manager.current is None
    assert session_manager.context.token is None
    assert token_store.token is None


def test_failed_profile_load_leaves_no_session(
    session_manager: SessionManager,
    gateway: FakeGateway,
    token_store: InMemoryTokenStore,
) -> None:
    gateway.failures["get_profile"] = NetworkError("Backend unavailable")

    with pytest.raises(NetworkError):
        asyncio.run(session_manager.log_in("ana@example.com", PASSWORD))

    assert session_manager.context.token is None
    assert token_store.token is None
    assert asyncio.run(session_manager.restore()) is None


def test_session_end_listeners_run_on_log_out_and_relogin(
    session_manager: SessionManager, gateway: FakeGateway
) -> None:
    ended: list[str] = []
    session_manager.on_session_end.append(lambda: ended.append("end"))
    gateway.add_account(email="bob@example.com", user_id="u-9")

    asyncio.run(session_manager.log_in("ana@example.com", PASSWORD))
    asyncio.run(session_manager.log_in("bob@example.com", PASSWORD))
    session_manager.log_out()

    assert ended == ["end", "end"]
    assert session_manager.current is None
