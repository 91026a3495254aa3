"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rising_stars.api.models import LoginRequest, SignUpRequest
from rising_stars.app_logging import configure_logging
from rising_stars.config import parse_city_filter
from rising_stars.containers import AppContainer
from rising_stars.domain.errors import ErrorCode, NotFoundError, RisingStarsError
from rising_stars.domain.models import SignUpForm, UserSession
from rising_stars.services.views import Screen, ScreenSnapshot

_ERROR_STATUS = {
    ErrorCode.VALIDATION: 422,
    ErrorCode.AUTH: 401,
    ErrorCode.ALREADY_VOTED: 409,
    ErrorCode.CONFLICT: 409,
    ErrorCode.NOT_VOTABLE: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UPLOAD: 502,
    ErrorCode.NETWORK: 502,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app exposing the orchestration core."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        session = await app.state.container.session_manager.restore()
        if session is not None:
            logger.info("Restored session for user_id=%s", session.user_id)
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(RisingStarsError)
    async def domain_error(request: Request, exc: RisingStarsError) -> JSONResponse:
        return JSONResponse(
            status_code=_ERROR_STATUS.get(exc.code, 500),
            content={"error": exc.message, "code": exc.code.value},
        )

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Report this service and the backend it talks to."""
        state_container: AppContainer = request.app.state.container
        try:
            backend = await state_container.gateway.health()
        except RisingStarsError as exc:
            logger.warning("Backend health check failed: %s", exc.message)
            backend = {"status": "unreachable"}
        return {"status": "ok", "backend": backend}

    @app.get("/session")
    async def current_session(request: Request) -> dict[str, object]:
        """Return the active session, if any."""
        state_container: AppContainer = request.app.state.container
        session = state_container.session_manager.current
        return {
            "authenticated": session is not None,
            "user": _user_view(session) if session else None,
        }

    @app.post("/session/signup")
    async def sign_up(body: SignUpRequest, request: Request) -> dict[str, object]:
        """Create an account and log in."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.session_manager.sign_up(
            SignUpForm(**body.model_dump())
        )
        return {"user": _user_view(session)}

    @app.post("/session/login")
    async def log_in(body: LoginRequest, request: Request) -> dict[str, object]:
        """Log in with email and password."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.session_manager.log_in(
            body.email, body.password
        )
        return {"user": _user_view(session)}

    @app.post("/session/logout")
    async def log_out(request: Request) -> dict[str, str]:
        """Log out; calling it twice is harmless."""
        state_container: AppContainer = request.app.state.container
        state_container.session_manager.log_out()
        return {"status": "ok"}

    @app.get("/screens/{screen}")
    async def screen_data(
        screen: Screen, request: Request, city: str | None = None
    ) -> dict[str, object]:
        """Return the data snapshot for a screen."""
        state_container: AppContainer = request.app.state.container
        snapshot = await state_container.view_loader.activate(
            screen, parse_city_filter(city)
        )
        if snapshot is None:
            return {"status": "stale"}
        return _snapshot_view(snapshot, state_container)

    @app.post("/votes/{video_id}")
    async def vote(video_id: str, request: Request) -> dict[str, object]:
        """Cast a vote for a processed video."""
        state_container: AppContainer = request.app.state.container
        vote_count = await state_container.vote_ledger.cast_vote(video_id)
        state_container.view_loader.invalidate()
        return {"video_id": video_id, "vote_count": vote_count}

    @app.get("/videos/{video_id}/status")
    async def video_status(video_id: str, request: Request) -> dict[str, object]:
        """Return the tracked status and upload progress of a video."""
        state_container: AppContainer = request.app.state.container
        tracker = state_container.video_tracker
        video = tracker.get(video_id)
        if video is None:
            raise NotFoundError("Video is not tracked")
        return {
            "video_id": video_id,
            "status": video.status.value,
            "progress": tracker.progress(video_id),
            "history": [status.value for status in tracker.history(video_id)],
        }

    @app.get("/rankings")
    async def rankings(
        request: Request, limit: int = 10, city: str | None = None
    ) -> dict[str, object]:
        """Return the leaderboard."""
        state_container: AppContainer = request.app.state.container
        entries = await state_container.ranking_aggregator.fetch_top(
            limit, parse_city_filter(city)
        )
        return {"rankings": [asdict(entry) for entry in entries]}

    return app


def _user_view(session: UserSession) -> dict[str, object]:
    view = asdict(session)
    view.pop("auth_token")
    return view


def _snapshot_view(
    snapshot: ScreenSnapshot, container: AppContainer
) -> dict[str, object]:
    identity = container.session_manager.context.identity
    voted = container.vote_ledger.voted_video_ids(identity) if identity else set()
    return {
        "screen": snapshot.screen.value,
        "city": snapshot.city_filter,
        "generation": snapshot.generation,
        "user": _user_view(snapshot.profile) if snapshot.profile else None,
        "public_videos": [
            {**asdict(video), "has_voted": video.video_id in voted}
            for video in snapshot.public_videos
        ],
        "my_videos": [asdict(video) for video in snapshot.my_videos],
        "rankings": [asdict(entry) for entry in snapshot.rankings],
        "errors": {str(slice_): message for slice_, message in snapshot.errors.items()},
        "stats": asdict(snapshot.stats) if snapshot.stats else None,
    }
