"""HTTP gateway to the competition backend."""

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Protocol

import httpx

from rising_stars.domain.errors import (
    AlreadyVotedError,
    AuthError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RisingStarsError,
    UploadError,
    ValidationError,
)
from rising_stars.domain.models import MediaFile, SignUpForm
from rising_stars.domain.sessions import SessionContext

_UPLOAD_CHUNK_BYTES = 64 * 1024

_logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class Gateway(Protocol):
    """Interface for the backend request/response contract."""

    async def sign_up(self, form: SignUpForm, country: str) -> dict[str, object]:
        """Create an account and return the created profile."""

    async def log_in(self, email: str, password: str) -> dict[str, object]:
        """Exchange credentials for an access token payload."""

    async def get_profile(self) -> dict[str, object]:
        """Return the profile bound to the current token."""

    async def upload_video(
        self, title: str, media: MediaFile, on_progress: ProgressCallback | None = None
    ) -> dict[str, object]:
        """Upload a video and return the acknowledgement."""

    async def list_my_videos(self) -> list[dict[str, object]]:
        """Return the current user's videos."""

    async def get_video(self, video_id: str) -> dict[str, object]:
        """Return one of the current user's videos."""

    async def delete_video(self, video_id: str) -> None:
        """Delete one of the current user's videos."""

    async def list_public_videos(self) -> list[dict[str, object]]:
        """Return videos available for public voting."""

    async def cast_vote(self, video_id: str) -> dict[str, object]:
        """Vote for a video and return the response body."""

    async def top_rankings(
        self, limit: int, city: str | None = None
    ) -> list[dict[str, object]]:
        """Return leaderboard rows."""

    async def health(self) -> dict[str, object]:
        """Return the backend health payload."""


@dataclass
class HttpxGateway(Gateway):
    """Gateway implemented with httpx."""

    base_url: str
    context: SessionContext
    http_client: httpx.AsyncClient
    timeout_seconds: float = 15.0
    upload_timeout_seconds: float = 120.0

    @classmethod
    def create(
        cls,
        base_url: str,
        context: SessionContext,
        timeout_seconds: float = 15.0,
        upload_timeout_seconds: float = 120.0,
    ) -> "HttpxGateway":
        """Create a gateway with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            context=context,
            http_client=httpx.AsyncClient(),
            timeout_seconds=timeout_seconds,
            upload_timeout_seconds=upload_timeout_seconds,
        )

    async def sign_up(self, form: SignUpForm, country: str) -> dict[str, object]:
        """Create an account using the signup endpoint."""
        payload = {
            "first_name": form.first_name,
            "last_name": form.last_name,
            "email": form.email,
            "password1": form.password,
            "password2": form.confirm_password,
            "city": form.city,
            "country": country,
        }
        try:
            response = await self._send(
                "POST", "/api/auth/signup", json=payload, attach_token=False
            )
        except NetworkError as exc:
            if exc.status_code in {400, 422}:
                raise ValidationError(exc.message) from exc
            raise
        return _json_body(response, default={}, context="sign up")

    async def log_in(self, email: str, password: str) -> dict[str, object]:
        """Log in and return the token payload."""
        try:
            response = await self._send(
                "POST",
                "/api/auth/login",
                json={"email": email, "password": password},
                attach_token=False,
            )
        except NetworkError as exc:
            if exc.status_code in {400, 422}:
                raise AuthError(exc.message) from exc
            raise
        return _json_body(response, default={}, context="log in")

    async def get_profile(self) -> dict[str, object]:
        """Fetch the authenticated profile."""
        response = await self._send("GET", "/api/auth/profile")
        return _json_body(response, default={}, context="profile")

    async def upload_video(
        self, title: str, media: MediaFile, on_progress: ProgressCallback | None = None
    ) -> dict[str, object]:
        """Upload a video as multipart form data, reporting transfer progress."""
        built = self.http_client.build_request(
            "POST",
            self._url("/api/videos/upload"),
            data={"title": title},
            files={
                "video": (
                    media.filename,
                    media.content,
                    media.content_type or "application/octet-stream",
                )
            },
        )
        body = built.read()
        headers = {
            "Content-Type": built.headers["Content-Type"],
            "Content-Length": str(len(body)),
        }
        headers.update(self._auth_headers())
        try:
            response = await self.http_client.post(
                self._url("/api/videos/upload"),
                content=_chunks(body, on_progress),
                headers=headers,
                timeout=self.upload_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            _logger.warning("Video upload transport failure: %s", exc)
            raise UploadError(f"Upload failed: {exc}") from exc
        if response.status_code in {401, 403}:
            raise AuthError(_error_message(response))
        if response.is_error:
            raise UploadError(_error_message(response))
        return _json_body(response, default={}, context="upload")

    async def list_my_videos(self) -> list[dict[str, object]]:
        """Fetch the current user's videos."""
        response = await self._send("GET", "/api/videos")
        return _rows(_json_body(response, default=[], context="my videos"), "videos")

    async def get_video(self, video_id: str) -> dict[str, object]:
        """Fetch a single video's detail."""
        response = await self._send("GET", f"/api/videos/{video_id}")
        payload = _json_body(response, default={}, context="video detail")
        if isinstance(payload, dict) and isinstance(payload.get("video"), dict):
            return payload["video"]
        return payload

    async def delete_video(self, video_id: str) -> None:
        """Delete a video."""
        await self._send("DELETE", f"/api/videos/{video_id}")

    async def list_public_videos(self) -> list[dict[str, object]]:
        """Fetch videos open for voting."""
        response = await self._send("GET", "/api/ranking/public")
        payload = _json_body(response, default=[], context="public videos")
        return _rows(payload, "videos")

    async def cast_vote(self, video_id: str) -> dict[str, object]:
        """Register a vote; a 204 response yields an empty payload."""
        try:
            response = await self._send("POST", f"/api/ranking/public/{video_id}/vote")
        except ConflictError as exc:
            raise AlreadyVotedError(video_id) from exc
        return _json_body(response, default={}, context="vote")

    async def top_rankings(
        self, limit: int, city: str | None = None
    ) -> list[dict[str, object]]:
        """Fetch the top rankings, optionally for one city."""
        params: dict[str, object] = {"limit": limit}
        if city:
            params["city"] = city
        response = await self._send("GET", "/api/ranking/top", params=params)
        return _rows(_json_body(response, default=[], context="rankings"), "rankings")

    async def health(self) -> dict[str, object]:
        """Fetch the backend health payload."""
        response = await self._send("GET", "/health", attach_token=False)
        return _json_body(response, default={}, context="health")

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, object] | None = None,
        params: dict[str, object] | None = None,
        attach_token: bool = True,
    ) -> httpx.Response:
        headers = self._auth_headers() if attach_token else {}
        try:
            response = await self.http_client.request(
                method,
                self._url(path),
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            _logger.warning("Gateway %s %s failed: %s", method, path, exc)
            raise NetworkError(f"Request failed: {exc}") from exc
        if response.is_error:
            _logger.warning(
                "Gateway %s %s returned status=%s", method, path, response.status_code
            )
            raise _error_for(response)
        return response

    def _auth_headers(self) -> dict[str, str]:
        token = self.context.token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"


async def _chunks(
    body: bytes, on_progress: ProgressCallback | None
) -> AsyncIterator[bytes]:
    """Yield the request body in chunks, reporting the percentage sent."""
    total = len(body)
    if on_progress is not None:
        on_progress(0)
    for start in range(0, total, _UPLOAD_CHUNK_BYTES):
        chunk = body[start : start + _UPLOAD_CHUNK_BYTES]
        yield chunk
        if on_progress is not None:
            on_progress((start + len(chunk)) * 100 // total)


def _error_message(response: httpx.Response) -> str:
    """Prefer the backend's ``error`` field over a generic message."""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("message")
        if isinstance(message, str) and message:
            return message
    return f"HTTP error! status: {response.status_code}"


def _error_for(response: httpx.Response) -> RisingStarsError:
    message = _error_message(response)
    status_code = response.status_code
    if status_code in {401, 403}:
        return AuthError(message)
    if status_code == 404:
        return NotFoundError(message)
    if status_code == 409:
        return ConflictError(message)
    return NetworkError(message, status_code=status_code)


def _json_body(response: httpx.Response, *, default: object, context: str) -> object:
    if response.status_code == 204 or not response.content:
        return default
    try:
        return response.json()
    except ValueError as exc:
        raise NetworkError(
            f"Malformed {context} response", status_code=response.status_code
        ) from exc


def _rows(payload: object, key: str) -> list[dict[str, object]]:
    """Accept either a bare list or an object wrapping the list under ``key``."""
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]
