"""Leaderboard views derived from processed submissions."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import pydantic

from rising_stars.adapters.gateway_client import Gateway
from rising_stars.config import parse_city_filter
from rising_stars.domain.models import RankingEntry, VideoStatus, VideoSubmission
from rising_stars.domain.payloads import RankingPayload
from rising_stars.services.videos import VideoLifecycleTracker

MAX_TOP = 50

_logger = logging.getLogger(__name__)


def rank_submissions(
    submissions: Iterable[VideoSubmission], n: int, city_filter: str | None = None
) -> list[RankingEntry]:
    """Rank processed submissions by votes, then upload time, then id.

    ``city_filter`` of None or an all-cities word such as ``"all"`` means every
    city; otherwise the owner's city must match case-insensitively.
    """
    limit = min(n, MAX_TOP)
    if limit <= 0:
        return []
    city = parse_city_filter(city_filter)
    wanted = city.casefold() if city is not None else None
    eligible = [
        video
        for video in submissions
        if video.status == VideoStatus.PROCESSED
        and (wanted is None or video.city.casefold() == wanted)
    ]
    eligible.sort(
        key=lambda video: (-video.vote_count, video.uploaded_at, video.video_id)
    )
    return [
        RankingEntry(
            video_id=video.video_id,
            display_name=video.owner_name,
            city=video.city,
            title=video.title,
            vote_count=video.vote_count,
            position=position,
        )
        for position, video in enumerate(eligible[:limit], start=1)
    ]


@dataclass
class RankingAggregator:
    """Produces ordered leaderboards; results are recomputed, never stored."""

    gateway: Gateway
    tracker: VideoLifecycleTracker

    def top_n(self, n: int, city_filter: str | None = None) -> list[RankingEntry]:
        """Rank the tracked voting pool without any I/O."""
        return rank_submissions(self.tracker.public_snapshot(), n, city_filter)

    async def fetch_top(
        self, n: int, city_filter: str | None = None
    ) -> list[RankingEntry]:
        """Fetch leaderboard rows and rank them with the local ordering rules."""
        limit = min(n, MAX_TOP)
        if limit <= 0:
            return []
        city = parse_city_filter(city_filter)
        rows = await self.gateway.top_rankings(limit, city)
        submissions: list[VideoSubmission] = []
        for row in rows:
            try:
                payload = RankingPayload.model_validate(row)
            except pydantic.ValidationError as exc:
                _logger.warning("Skipping malformed ranking row: %s", exc.error_count())
                continue
            known = self.tracker.get(payload.video_id)
            submissions.append(
                payload.to_submission(known.uploaded_at if known else None)
            )
        return rank_submissions(submissions, limit, city)
