"""Explicitly owned authentication state."""

from dataclasses import dataclass, field

from rising_stars.domain.models import UserSession


@dataclass
class SessionContext:
    """Holds the bearer token and the active session.

    Only the session manager writes to this object. Every other component
    reads ``token`` per request instead of keeping its own copy.
    """

    _token: str | None = field(default=None, repr=False)
    _session: UserSession | None = None

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def session(self) -> UserSession | None:
        return self._session

    @property
    def identity(self) -> str | None:
        """Key used by the vote ledger, or None when anonymous."""
        if self._session is None:
            return None
        return self._session.user_id

    def begin(self, token: str) -> None:
        """Hold a token whose profile has not been confirmed yet."""
        self._token = token
        self._session = None

    def establish(self, session: UserSession) -> None:
        """Activate a confirmed session."""
        self._token = session.auth_token
        self._session = session

    def clear(self) -> None:
        """Drop the token and the session."""
        self._token = None
        self._session = None
