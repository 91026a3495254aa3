"""Vote ledger enforcing one vote per identity per video."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

import pydantic

from rising_stars.adapters.gateway_client import Gateway
from rising_stars.domain.errors import (
    AlreadyVotedError,
    AuthError,
    NetworkError,
    NotVotableError,
    RisingStarsError,
)
from rising_stars.domain.models import VideoStatus, VoteRecord
from rising_stars.domain.payloads import VotePayload
from rising_stars.services.sessions import SessionManager
from rising_stars.services.videos import VideoLifecycleTracker

_logger = logging.getLogger(__name__)


class VoteRepository(Protocol):
    """Durable store of server-confirmed votes."""

    def contains(self, identity: str, video_id: str) -> bool:
        """Return True when a vote is recorded for the key."""

    def add(self, record: VoteRecord) -> bool:
        """Insert the record unless the key exists; return True when inserted."""

    def list_for(self, identity: str) -> list[VoteRecord]:
        """Return the votes recorded for an identity."""


@dataclass
class VoteLedger:
    """Casts votes and keeps cached counts consistent with the backend.

    The voted fact lives in the repository and is never removed. The numeric
    count lives on the tracked video and is overwritten by whatever the
    backend reports last.
    """

    gateway: Gateway
    sessions: SessionManager
    tracker: VideoLifecycleTracker
    repository: VoteRepository
    _locks: dict[tuple[str, str], asyncio.Lock] = field(
        default_factory=dict, init=False, repr=False
    )

    async def cast_vote(self, video_id: str) -> int:
        """Vote for a processed video and return its updated vote count."""
        identity = self.sessions.context.identity
        if identity is None:
            raise AuthError("Log in to vote")
        video = self.tracker.get(video_id)
        if video is None or video.status != VideoStatus.PROCESSED:
            raise NotVotableError(video_id, video.status if video else None)
        if self.repository.contains(identity, video_id):
            raise AlreadyVotedError(video_id)

        lock = self._locks.setdefault((identity, video_id), asyncio.Lock())
        async with lock:
            if self.repository.contains(identity, video_id):
                raise AlreadyVotedError(video_id)
            return await self._submit(identity, video_id)

    def has_voted(self, identity: str, video_id: str) -> bool:
        """Pure local lookup."""
        return self.repository.contains(identity, video_id)

    def voted_video_ids(self, identity: str) -> set[str]:
        return {record.video_id for record in self.repository.list_for(identity)}

    async def _submit(self, identity: str, video_id: str) -> int:
        prior_count = self._cached_count(video_id)
        optimistic = prior_count + 1
        self.tracker.set_vote_count(video_id, optimistic)
        try:
            payload = await self.gateway.cast_vote(video_id)
            confirmed = VotePayload.model_validate(payload).vote_count
        except pydantic.ValidationError:
            confirmed = None
        except RisingStarsError as exc:
            # keep a count written by a refresh while the request was in flight
            if self._cached_count(video_id) == optimistic:
                self.tracker.set_vote_count(video_id, prior_count)
            if isinstance(exc, AlreadyVotedError):
                self._record(identity, video_id)
            elif isinstance(exc, AuthError):
                self.sessions.invalidate()
            elif isinstance(exc, NetworkError):
                _logger.warning(
                    "Vote for video_id=%s failed: %s", video_id, exc.message
                )
            raise

        self._record(identity, video_id)
        if confirmed is not None:
            if confirmed != optimistic:
                _logger.info(
                    "Vote count for video_id=%s reconciled: optimistic=%s confirmed=%s",
                    video_id,
                    optimistic,
                    confirmed,
                )
            self.tracker.set_vote_count(video_id, confirmed)
        return self._cached_count(video_id)

    def _cached_count(self, video_id: str) -> int:
        video = self.tracker.get(video_id)
        return video.vote_count if video else 0

    def _record(self, identity: str, video_id: str) -> None:
        record = VoteRecord(
            identity=identity, video_id=video_id, voted_at=datetime.now(tz=UTC)
        )
        self.repository.add(record)
