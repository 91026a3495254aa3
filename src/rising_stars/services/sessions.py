"""Session manager owning the bearer token and the user's profile."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import pydantic

from rising_stars.adapters.gateway_client import Gateway
from rising_stars.domain.errors import (
    AuthError,
    NetworkError,
    RisingStarsError,
    ValidationError,
)
from rising_stars.domain.models import SignUpForm, UserSession
from rising_stars.domain.payloads import LoginPayload, ProfilePayload
from rising_stars.domain.sessions import SessionContext

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Persistence interface for the bearer token."""

    def load(self) -> str | None:
        """Return the persisted token, if present."""

    def save(self, token: str) -> None:
        """Persist the token."""

    def clear(self) -> None:
        """Forget the persisted token."""


@dataclass
class SessionManager:
    """Signs users up and in, and is the only writer of the session context."""

    gateway: Gateway
    context: SessionContext
    token_store: TokenStore
    min_password_length: int = 8
    default_country: str = "Colombia"
    on_session_end: list[Callable[[], None]] = field(default_factory=list)

    @property
    def current(self) -> UserSession | None:
        return self.context.session

    async def sign_up(self, form: SignUpForm) -> UserSession:
        """Create an account, then log in with the new credentials."""
        _validate_sign_up(form, self.min_password_length)
        country = (form.country or "").strip() or self.default_country
        await self.gateway.sign_up(form, country)
        _logger.info("Account created, logging in")
        return await self.log_in(form.email.strip(), form.password)

    async def log_in(self, email: str, password: str) -> UserSession:
        """Authenticate, store the token and load the profile."""
        if not email.strip() or not password:
            raise ValidationError("Email and password are required", field="email")
        payload = await self.gateway.log_in(email.strip(), password)
        try:
            token = LoginPayload.model_validate(payload).access_token
        except pydantic.ValidationError as exc:
            raise NetworkError("Malformed login response") from exc
        if not token:
            raise AuthError("Login response did not include an access token")
        if self.context.token is not None:
            self.log_out()
        self.context.begin(token)
        try:
            session = await self.get_current_profile()
        except RisingStarsError:
            self.context.clear()
            raise
        self.token_store.save(token)
        _logger.info("Logged in user_id=%s", session.user_id)
        return session

    async def get_current_profile(self) -> UserSession:
        """Validate the held token against the backend and refresh the profile."""
        token = self.context.token
        if not token:
            raise AuthError("Not logged in")
        try:
            payload = await self.gateway.get_profile()
        except AuthError:
            self.invalidate()
            raise
        try:
            profile = ProfilePayload.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise NetworkError("Malformed profile response") from exc
        if self.context.token != token:
            raise AuthError("Session changed while loading the profile")
        session = profile.to_session(token)
        self.context.establish(session)
        return session

    async def restore(self) -> UserSession | None:
        """Restore a persisted session at startup, if its token is still valid."""
        token = self.token_store.load()
        if token is None:
            return None
        self.context.begin(token)
        try:
            return await self.get_current_profile()
        except AuthError:
            _logger.info("Persisted token rejected, starting logged out")
            return None
        except NetworkError as exc:
            _logger.warning("Could not validate persisted token: %s", exc.message)
            return None

    def log_out(self) -> None:
        """Clear the token and the in-memory session, then notify listeners."""
        self.context.clear()
        self.token_store.clear()
        for callback in self.on_session_end:
            callback()

    def invalidate(self) -> None:
        """Drop a session whose token the backend rejected."""
        if self.context.token is not None:
            _logger.warning("Session invalidated after credential rejection")
        self.log_out()


def _validate_sign_up(form: SignUpForm, min_password_length: int) -> None:
    """Reject bad sign-up input before any request is made."""
    if not form.first_name.strip():
        raise ValidationError("First name is required", field="first_name")
    if not form.last_name.strip():
        raise ValidationError("Last name is required", field="last_name")
    if not _EMAIL_PATTERN.match(form.email.strip()):
        raise ValidationError("Enter a valid email address", field="email")
    if len(form.password) < min_password_length:
        raise ValidationError(
            f"Password must be at least {min_password_length} characters",
            field="password",
        )
    if form.password != form.confirm_password:
        raise ValidationError("Passwords do not match", field="confirm_password")
