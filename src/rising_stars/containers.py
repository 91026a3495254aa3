"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from rising_stars.adapters.gateway_client import Gateway, HttpxGateway
from rising_stars.adapters.pipeline_status import PollingStatusChannel
from rising_stars.adapters.token_store import FileTokenStore
from rising_stars.adapters.vote_store import JsonFileVoteRepository
from rising_stars.config import Settings
from rising_stars.domain.sessions import SessionContext
from rising_stars.services.rankings import RankingAggregator
from rising_stars.services.sessions import SessionManager
from rising_stars.services.videos import VideoLifecycleTracker
from rising_stars.services.views import ViewDataLoader
from rising_stars.services.votes import VoteLedger


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    gateway: Gateway
    session_manager: SessionManager
    video_tracker: VideoLifecycleTracker
    vote_ledger: VoteLedger
    ranking_aggregator: RankingAggregator
    view_loader: ViewDataLoader
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    context = SessionContext()
    gateway = HttpxGateway.create(
        base_url=resolved_settings.api_base_url,
        context=context,
        timeout_seconds=resolved_settings.request_timeout_seconds,
        upload_timeout_seconds=resolved_settings.upload_timeout_seconds,
    )
    session_manager = SessionManager(
        gateway=gateway,
        context=context,
        token_store=FileTokenStore(resolved_settings.token_path),
        min_password_length=resolved_settings.min_password_length,
        default_country=resolved_settings.default_country,
    )
    status_channel = PollingStatusChannel(
        gateway=gateway,
        interval_seconds=resolved_settings.status_poll_interval_seconds,
        timeout_seconds=resolved_settings.status_poll_timeout_seconds,
        on_auth_error=session_manager.invalidate,
    )
    video_tracker = VideoLifecycleTracker(
        gateway=gateway,
        sessions=session_manager,
        channel=status_channel,
        max_title_length=resolved_settings.max_title_length,
        max_upload_bytes=resolved_settings.max_upload_bytes,
    )
    vote_ledger = VoteLedger(
        gateway=gateway,
        sessions=session_manager,
        tracker=video_tracker,
        repository=JsonFileVoteRepository(resolved_settings.votes_path),
    )
    session_manager.on_session_end.append(video_tracker.reset)
    ranking_aggregator = RankingAggregator(gateway=gateway, tracker=video_tracker)
    view_loader = ViewDataLoader(
        sessions=session_manager,
        tracker=video_tracker,
        aggregator=ranking_aggregator,
        rankings_limit=resolved_settings.rankings_limit,
    )

    async def close_resources() -> None:
        await video_tracker.close()
        await gateway.close()

    return AppContainer(
        settings=resolved_settings,
        gateway=gateway,
        session_manager=session_manager,
        video_tracker=video_tracker,
        vote_ledger=vote_ledger,
        ranking_aggregator=ranking_aggregator,
        view_loader=view_loader,
        close_resources=close_resources,
    )
