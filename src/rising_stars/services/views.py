"""Screen-level coordinator that refreshes data slices concurrently."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum

from rising_stars.config import parse_city_filter
from rising_stars.domain.errors import RisingStarsError
from rising_stars.domain.models import (
    RankingEntry,
    UserSession,
    VideoStatus,
    VideoSubmission,
)
from rising_stars.services.rankings import RankingAggregator
from rising_stars.services.sessions import SessionManager
from rising_stars.services.videos import VideoLifecycleTracker

_logger = logging.getLogger(__name__)


class Screen(StrEnum):
    """Screens of the presentation layer."""

    LANDING = "landing"
    LOGIN = "login"
    DASHBOARD = "dashboard"
    UPLOAD = "upload"
    VIDEOS = "videos"
    RANKINGS = "rankings"
    PROFILE = "profile"


class Slice(StrEnum):
    """Independently refreshed pieces of screen data."""

    PROFILE = "profile"
    PUBLIC_VIDEOS = "public_videos"
    MY_VIDEOS = "my_videos"
    RANKINGS = "rankings"


_SCREEN_SLICES: dict[Screen, tuple[Slice, ...]] = {
    Screen.LANDING: (),
    Screen.LOGIN: (),
    Screen.UPLOAD: (),
    Screen.DASHBOARD: (
        Slice.PROFILE,
        Slice.PUBLIC_VIDEOS,
        Slice.MY_VIDEOS,
        Slice.RANKINGS,
    ),
    Screen.VIDEOS: (Slice.PUBLIC_VIDEOS,),
    Screen.RANKINGS: (Slice.RANKINGS,),
    Screen.PROFILE: (Slice.PROFILE, Slice.MY_VIDEOS, Slice.RANKINGS),
}

_IDENTITY_SLICES = frozenset({Slice.PROFILE, Slice.MY_VIDEOS})


@dataclass(frozen=True)
class DashboardStats:
    """Per-user numbers shown on the dashboard and profile screens."""

    total_votes: int
    processed_count: int
    pending_count: int
    best_rank: int | None


@dataclass(frozen=True)
class ScreenSnapshot:
    """Consistent view of every slice a screen needs."""

    screen: Screen
    city_filter: str | None
    generation: int
    profile: UserSession | None = None
    public_videos: list[VideoSubmission] = field(default_factory=list)
    my_videos: list[VideoSubmission] = field(default_factory=list)
    rankings: list[RankingEntry] = field(default_factory=list)
    errors: dict[Slice, str] = field(default_factory=dict)
    stats: DashboardStats | None = None


@dataclass
class ViewDataLoader:
    """Refreshes only on screen, filter or identity changes."""

    sessions: SessionManager
    tracker: VideoLifecycleTracker
    aggregator: RankingAggregator
    rankings_limit: int = 50
    _generation: int = field(default=0, init=False)
    _key: tuple[Screen, str | None, str | None] | None = field(
        default=None, init=False
    )
    _snapshot: ScreenSnapshot | None = field(default=None, init=False)

    @property
    def snapshot(self) -> ScreenSnapshot | None:
        return self._snapshot

    @property
    def generation(self) -> int:
        return self._generation

    async def activate(
        self, screen: Screen, city_filter: str | None = None
    ) -> ScreenSnapshot | None:
        """Load the screen's slices; None means a newer activation superseded it."""
        city_filter = parse_city_filter(city_filter)
        key = (screen, city_filter, self.sessions.context.identity)
        if key == self._key and self._snapshot is not None:
            return self._snapshot
        leaving_upload = self._key is not None and self._key[0] == Screen.UPLOAD
        if leaving_upload and screen != Screen.UPLOAD:
            self.tracker.release_watchers()

        self._generation += 1
        generation = self._generation
        self._key = key
        self._snapshot = None

        slices = self._slices_for(screen)
        results = await asyncio.gather(
            *(self._load(slice_, city_filter) for slice_ in slices),
            return_exceptions=True,
        )
        if generation != self._generation:
            _logger.info(
                "Discarding stale %s results (generation %s, current %s)",
                screen,
                generation,
                self._generation,
            )
            return None

        loaded: dict[Slice, object] = {}
        errors: dict[Slice, str] = {}
        for slice_, result in zip(slices, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, RisingStarsError):
                _logger.warning("Slice %s failed: %s", slice_, result)
                errors[slice_] = result.message
            elif isinstance(result, Exception):
                _logger.error("Slice %s failed unexpectedly: %r", slice_, result)
                errors[slice_] = "Something went wrong while loading this section"
            else:
                loaded[slice_] = result

        snapshot = ScreenSnapshot(
            screen=screen,
            city_filter=city_filter,
            generation=generation,
            profile=loaded.get(Slice.PROFILE),
            public_videos=loaded.get(Slice.PUBLIC_VIDEOS, []),
            my_videos=loaded.get(Slice.MY_VIDEOS, []),
            rankings=loaded.get(Slice.RANKINGS, []),
            errors=errors,
        )
        if screen in {Screen.DASHBOARD, Screen.PROFILE}:
            snapshot = _with_stats(snapshot)
        self._snapshot = snapshot
        # slices may have invalidated the session
        self._key = (screen, city_filter, self.sessions.context.identity)
        return snapshot

    def invalidate(self) -> None:
        """Force the next activation to refresh even if nothing changed."""
        self._key = None
        self._snapshot = None

    def _slices_for(self, screen: Screen) -> tuple[Slice, ...]:
        slices = _SCREEN_SLICES[screen]
        if self.sessions.context.token is None:
            return tuple(slice_ for slice_ in slices if slice_ not in _IDENTITY_SLICES)
        return slices

    async def _load(self, slice_: Slice, city_filter: str | None) -> object:
        if slice_ == Slice.PROFILE:
            return await self.sessions.get_current_profile()
        if slice_ == Slice.PUBLIC_VIDEOS:
            return await self.tracker.list_public(city_filter)
        if slice_ == Slice.MY_VIDEOS:
            return await self.tracker.list_mine()
        return await self.aggregator.fetch_top(self.rankings_limit, city_filter)


def _with_stats(snapshot: ScreenSnapshot) -> ScreenSnapshot:
    mine = snapshot.my_videos
    processed = sum(1 for video in mine if video.status == VideoStatus.PROCESSED)
    best_rank = None
    if snapshot.profile is not None:
        name = snapshot.profile.display_name
        positions = [
            entry.position for entry in snapshot.rankings if entry.display_name == name
        ]
        best_rank = min(positions, default=None)
    stats = DashboardStats(
        total_votes=sum(video.vote_count for video in mine),
        processed_count=processed,
        pending_count=len(mine) - processed,
        best_rank=best_rank,
    )
    return replace(snapshot, stats=stats)
