"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from rising_stars.adapters.gateway_client import Gateway, ProgressCallback
from rising_stars.config import Settings
from rising_stars.containers import AppContainer
from rising_stars.domain.errors import (
    AlreadyVotedError,
    AuthError,
    ConflictError,
    NotFoundError,
    RisingStarsError,
)
from rising_stars.domain.models import MediaFile, SignUpForm, VideoStatus, VoteRecord
from rising_stars.domain.sessions import SessionContext
from rising_stars.services.rankings import RankingAggregator
from rising_stars.services.sessions import SessionManager, TokenStore
from rising_stars.services.videos import (
    PipelineStatusChannel,
    StatusListener,
    VideoLifecycleTracker,
)
from rising_stars.services.views import ViewDataLoader
from rising_stars.services.votes import VoteLedger, VoteRepository

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

PASSWORD = "secret-pass"


@dataclass
class FakeGateway(Gateway):
    """In-memory backend honouring the gateway contract."""

    context: SessionContext
    accounts: dict[str, dict[str, object]] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)
    videos: dict[str, dict[str, object]] = field(default_factory=dict)
    voters: set[tuple[str, str]] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)
    failures: dict[str, RisingStarsError] = field(default_factory=dict)
    upload_progress: list[int] = field(default_factory=lambda: [10, 40, 80, 100])
    vote_delay_seconds: float = 0.0
    vote_response: dict[str, object] | None = None
    vote_failure: RisingStarsError | None = None
    ranking_cities: list[str | None] = field(default_factory=list)
    next_video_id: int = 100

    def add_account(
        self,
        email: str = "ana@example.com",
        first_name: str = "Ana",
        last_name: str = "Rojas",
        city: str = "Medellín",
        user_id: str = "u-1",
    ) -> None:
        self.accounts[email] = {
            "password": PASSWORD,
            "profile": {
                "user_id": user_id,
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "city": city,
                "country": "Colombia",
            },
        }

    def add_video(  # noqa: PLR0913
        self,
        video_id: str,
        status: str = "processed",
        votes: int = 0,
        city: str = "Medellín",
        uploaded_at: datetime = BASE_TIME,
        user_id: str = "u-2",
        first_name: str = "Luis",
        last_name: str = "Díaz",
        title: str | None = None,
    ) -> None:
        self.videos[video_id] = {
            "video_id": video_id,
            "title": title or f"Video {video_id}",
            "status": status,
            "votes": votes,
            "uploaded_at": uploaded_at.isoformat(),
            "user_id": user_id,
            "user_city": city,
            "user_first_name": first_name,
            "user_last_name": last_name,
        }

    async def sign_up(self, form: SignUpForm, country: str) -> dict[str, object]:
        self._enter("sign_up")
        if form.email in self.accounts:
            raise ConflictError()
        self.add_account(
            email=form.email,
            first_name=form.first_name,
            last_name=form.last_name,
            city=form.city,
            user_id=f"u-{len(self.accounts) + 1}",
        )
        self.accounts[form.email]["profile"]["country"] = country
        return dict(self.accounts[form.email]["profile"])

    async def log_in(self, email: str, password: str) -> dict[str, object]:
        self._enter("log_in")
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise AuthError("Invalid credentials")
        token = f"token-{email}"
        self.tokens[token] = email
        return {"access_token": token, "token_type": "Bearer"}

    async def get_profile(self) -> dict[str, object]:
        self._enter("get_profile")
        email = self._require_identity()
        return dict(self.accounts[email]["profile"])

    async def upload_video(
        self, title: str, media: MediaFile, on_progress: ProgressCallback | None = None
    ) -> dict[str, object]:
        self._enter("upload_video")
        email = self._require_identity()
        for percent in self.upload_progress:
            if on_progress is not None:
                on_progress(percent)
        profile = self.accounts[email]["profile"]
        video_id = str(self.next_video_id)
        self.next_video_id += 1
        self.add_video(
            video_id,
            status="uploaded",
            city=profile["city"],
            uploaded_at=datetime.now(tz=UTC),
            user_id=profile["user_id"],
            first_name=profile["first_name"],
            last_name=profile["last_name"],
            title=title,
        )
        return {"video_id": video_id, "status": "uploaded"}

    async def list_my_videos(self) -> list[dict[str, object]]:
        self._enter("list_my_videos")
        email = self._require_identity()
        user_id = self.accounts[email]["profile"]["user_id"]
        return [dict(row) for row in self.videos.values() if row["user_id"] == user_id]

    async def get_video(self, video_id: str) -> dict[str, object]:
        self._enter("get_video")
        self._require_identity()
        if video_id not in self.videos:
            raise NotFoundError("Video not found")
        return dict(self.videos[video_id])

    async def delete_video(self, video_id: str) -> None:
        self._enter("delete_video")
        self._require_identity()
        if self.videos.pop(video_id, None) is None:
            raise NotFoundError("Video not found")

    async def list_public_videos(self) -> list[dict[str, object]]:
        self._enter("list_public_videos")
        return [dict(row) for row in self.videos.values()]

    async def cast_vote(self, video_id: str) -> dict[str, object]:
        self._enter("cast_vote")
        email = self._require_identity()
        if self.vote_delay_seconds:
            await asyncio.sleep(self.vote_delay_seconds)
        if self.vote_failure is not None:
            raise self.vote_failure
        if (email, video_id) in self.voters:
            raise AlreadyVotedError(video_id)
        self.voters.add((email, video_id))
        row = self.videos[video_id]
        row["votes"] = int(row["votes"]) + 1
        if self.vote_response is not None:
            return dict(self.vote_response)
        return {"voteCount": row["votes"]}

    async def top_rankings(
        self, limit: int, city: str | None = None
    ) -> list[dict[str, object]]:
        self._enter("top_rankings")
        self.ranking_cities.append(city)
        rows = [
            {
                "video_id": row["video_id"],
                "username": f"{row['user_first_name']} {row['user_last_name']}",
                "city": row["user_city"],
                "title": row["title"],
                "votes": row["votes"],
            }
            for row in self.videos.values()
            if row["status"] == "processed"
            and (city is None or str(row["user_city"]).lower() == city.lower())
        ]
        rows.sort(key=lambda row: -int(row["votes"]))
        return rows[:limit]

    async def health(self) -> dict[str, object]:
        self._enter("health")
        return {"status": "healthy"}

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _require_identity(self) -> str:
        email = self.tokens.get(self.context.token or "")
        if email is None:
            raise AuthError("User not authenticated")
        return email


@dataclass
class InMemoryTokenStore(TokenStore):
    """Token store keeping the token in memory."""

    token: str | None = None

    def load(self) -> str | None:
        return self.token

    def save(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


@dataclass
class InMemoryVoteRepository(VoteRepository):
    """Vote repository backed by a dict."""

    records: dict[tuple[str, str], VoteRecord] = field(default_factory=dict)

    def contains(self, identity: str, video_id: str) -> bool:
        return (identity, video_id) in self.records

    def add(self, record: VoteRecord) -> bool:
        if record.key in self.records:
            return False
        self.records[record.key] = record
        return True

    def list_for(self, identity: str) -> list[VoteRecord]:
        return [r for r in self.records.values() if r.identity == identity]


@dataclass
class ManualStatusChannel(PipelineStatusChannel):
    """Push-style channel driven by the test."""

    listeners: dict[str, StatusListener] = field(default_factory=dict)
    unwatched: list[str] = field(default_factory=list)
    closed: bool = False

    def watch(self, video_id: str, listener: StatusListener) -> None:
        self.listeners[video_id] = listener

    def unwatch(self, video_id: str) -> None:
        if self.listeners.pop(video_id, None) is not None:
            self.unwatched.append(video_id)

    async def close(self) -> None:
        self.listeners.clear()
        self.closed = True

    def push(self, video_id: str, status: str) -> None:
        listener = self.listeners.get(video_id)
        if listener is not None:
            listener.report_status(video_id, VideoStatus(status))


def video_file(name: str = "clip.mp4", size: int = 200_000) -> MediaFile:
    return MediaFile(filename=name, content=b"v" * size, content_type="video/mp4")


def log_in(manager: SessionManager, email: str = "ana@example.com") -> None:
    asyncio.run(manager.log_in(email, PASSWORD))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(api_base_url="http://backend.test", state_dir=tmp_path / "state")


@pytest.fixture
def context() -> SessionContext:
    return SessionContext()


@pytest.fixture
def gateway(context: SessionContext) -> FakeGateway:
    fake = FakeGateway(context=context)
    fake.add_account()
    return fake


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def session_manager(
    gateway: FakeGateway, context: SessionContext, token_store: InMemoryTokenStore
) -> SessionManager:
    return SessionManager(gateway=gateway, context=context, token_store=token_store)


@pytest.fixture
def channel() -> ManualStatusChannel:
    return ManualStatusChannel()


@pytest.fixture
def tracker(
    gateway: FakeGateway,
    session_manager: SessionManager,
    channel: ManualStatusChannel,
) -> VideoLifecycleTracker:
    tracker = VideoLifecycleTracker(
        gateway=gateway, sessions=session_manager, channel=channel
    )
    session_manager.on_session_end.append(tracker.reset)
    return tracker


@pytest.fixture
def vote_repository() -> InMemoryVoteRepository:
    return InMemoryVoteRepository()


@pytest.fixture
def ledger(
    gateway: FakeGateway,
    session_manager: SessionManager,
    tracker: VideoLifecycleTracker,
    vote_repository: InMemoryVoteRepository,
) -> VoteLedger:
    return VoteLedger(
        gateway=gateway,
        sessions=session_manager,
        tracker=tracker,
        repository=vote_repository,
    )


@pytest.fixture
def aggregator(
    gateway: FakeGateway, tracker: VideoLifecycleTracker
) -> RankingAggregator:
    return RankingAggregator(gateway=gateway, tracker=tracker)


@pytest.fixture
def loader(
    session_manager: SessionManager,
    tracker: VideoLifecycleTracker,
    aggregator: RankingAggregator,
) -> ViewDataLoader:
    return ViewDataLoader(
        sessions=session_manager, tracker=tracker, aggregator=aggregator
    )


@pytest.fixture
def container(  # noqa: PLR0913
    settings: Settings,
    gateway: FakeGateway,
    session_manager: SessionManager,
    tracker: VideoLifecycleTracker,
    ledger: VoteLedger,
    aggregator: RankingAggregator,
    loader: ViewDataLoader,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        gateway=gateway,
        session_manager=session_manager,
        video_tracker=tracker,
        vote_ledger=ledger,
        ranking_aggregator=aggregator,
        view_loader=loader,
        close_resources=close_resources,
    )
