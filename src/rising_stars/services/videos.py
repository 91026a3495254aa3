"""Video lifecycle tracking with a forward-only status state machine."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

import pydantic

from rising_stars.adapters.gateway_client import Gateway
from rising_stars.config import parse_city_filter
from rising_stars.domain.errors import (
    AuthError,
    NetworkError,
    UploadError,
    ValidationError,
)
from rising_stars.domain.models import (
    TERMINAL_STATUSES,
    MediaFile,
    VideoStatus,
    VideoSubmission,
)
from rising_stars.domain.payloads import UploadAckPayload, VideoPayload
from rising_stars.services.sessions import SessionManager

_FORWARD = (
    VideoStatus.UPLOADING,
    VideoStatus.UPLOADED,
    VideoStatus.PROCESSING,
    VideoStatus.PROCESSED,
)

_logger = logging.getLogger(__name__)


class StatusListener(Protocol):
    """Receives pipeline updates for tracked videos."""

    def report_progress(self, video_id: str, percent: int) -> None:
        """Report transfer progress in percent."""

    def report_status(self, video_id: str, status: VideoStatus) -> None:
        """Report an observed pipeline status."""


class PipelineStatusChannel(Protocol):
    """Poll- or push-based source of pipeline status updates."""

    def watch(self, video_id: str, listener: StatusListener) -> None:
        """Start delivering updates for a video to the listener."""

    def unwatch(self, video_id: str) -> None:
        """Stop delivering updates for a video."""

    async def close(self) -> None:
        """Stop all watches."""


def transition_path(
    current: VideoStatus, observed: VideoStatus
) -> list[VideoStatus]:
    """Return the statuses to step through to reach ``observed``.

    Duplicate, backward and post-terminal observations yield an empty path.
    Intermediate states are never skipped, and ``error`` is only entered
    from ``uploading`` or ``processing``.
    """
    if current in TERMINAL_STATUSES or observed == current:
        return []
    if observed == VideoStatus.ERROR:
        if current == VideoStatus.UPLOADED:
            return [VideoStatus.PROCESSING, VideoStatus.ERROR]
        return [VideoStatus.ERROR]
    current_index = _FORWARD.index(current)
    observed_index = _FORWARD.index(observed)
    if observed_index <= current_index:
        return []
    return list(_FORWARD[current_index + 1 : observed_index + 1])


@dataclass
class VideoLifecycleTracker(StatusListener):
    """Tracks the user's submissions and the public voting pool."""

    gateway: Gateway
    sessions: SessionManager
    channel: PipelineStatusChannel
    max_title_length: int = 100
    max_upload_bytes: int = 500 * 1024 * 1024
    _mine: dict[str, VideoSubmission] = field(default_factory=dict, init=False)
    _public: dict[str, VideoSubmission] = field(default_factory=dict, init=False)
    _history: dict[str, list[VideoStatus]] = field(default_factory=dict, init=False)
    _progress: dict[str, int] = field(default_factory=dict, init=False)
    _progress_open: set[str] = field(default_factory=set, init=False)

    async def submit(self, title: str, media: MediaFile) -> VideoSubmission:
        """Upload a video and start following it through the pipeline."""
        cleaned_title = title.strip()
        self._validate(cleaned_title, media)
        session = self.sessions.current
        local_id = f"local-{uuid4().hex}"
        self._mine[local_id] = VideoSubmission(
            video_id=local_id,
            owner_id=session.user_id if session else None,
            title=cleaned_title,
            uploaded_at=datetime.now(tz=UTC),
            status=VideoStatus.UPLOADING,
            vote_count=0,
            city=session.city if session else "",
            owner_name=session.display_name if session else "",
        )
        self._history[local_id] = [VideoStatus.UPLOADING]
        self._progress[local_id] = 0
        self._progress_open.add(local_id)
        _logger.info("Uploading video title=%r size=%s", cleaned_title, media.size)

        try:
            payload = await self.gateway.upload_video(
                cleaned_title,
                media,
                on_progress=lambda percent: self.report_progress(local_id, percent),
            )
            ack = UploadAckPayload.model_validate(payload)
        except AuthError:
            self.report_status(local_id, VideoStatus.ERROR)
            self.sessions.invalidate()
            raise
        except (UploadError, NetworkError) as exc:
            self.report_status(local_id, VideoStatus.ERROR)
            raise UploadError(exc.message) from exc
        except pydantic.ValidationError as exc:
            self.report_status(local_id, VideoStatus.ERROR)
            raise UploadError("Upload response did not include a video id") from exc

        if local_id not in self._mine:
            raise AuthError("Session ended before the upload was acknowledged")
        video_id = self._rekey(local_id, ack.video_id)
        self._progress[video_id] = 100
        self._progress_open.discard(video_id)
        self._apply(video_id, VideoStatus.UPLOADED)
        self._apply(video_id, ack.status)
        if self._mine[video_id].status not in TERMINAL_STATUSES:
            self.channel.watch(video_id, self)
        return self._mine[video_id]

    async def list_mine(self) -> list[VideoSubmission]:
        """Return the owner's submissions, most recently uploaded first."""
        try:
            rows = await self.gateway.list_my_videos()
        except AuthError:
            self.sessions.invalidate()
            raise
        session = self.sessions.current
        owner_id = session.user_id if session else None
        seen: set[str] = set()
        for video in _parse_videos(rows):
            if owner_id and video.owner_id and video.owner_id != owner_id:
                continue
            seen.add(video.video_id)
            self._merge_mine(video)
        for video_id, video in list(self._mine.items()):
            if video_id in seen:
                continue
            # unacknowledged uploads stay until the server lists them
            if video_id.startswith("local-") and video.owner_id == owner_id:
                continue
            self._forget(video_id)
        return sorted(self._mine.values(), key=_newest_first)

    async def list_public(
        self, city_filter: str | None = None
    ) -> list[VideoSubmission]:
        """Return processed videos open for voting, optionally for one city."""
        rows = await self.gateway.list_public_videos()
        self._public = {
            video.video_id: video
            for video in _parse_videos(rows)
            if video.status == VideoStatus.PROCESSED
        }
        return _filter_city(self.public_snapshot(), city_filter)

    async def refresh(self, video_id: str) -> VideoSubmission:
        """Re-read one of the owner's videos and apply its observed status."""
        try:
            payload = await self.gateway.get_video(video_id)
        except AuthError:
            self.sessions.invalidate()
            raise
        videos = _parse_videos([payload])
        if not videos:
            raise NetworkError("Malformed video detail response")
        return self._merge_mine(videos[0])

    async def delete(self, video_id: str) -> None:
        """Delete one of the owner's videos and stop tracking it."""
        try:
            await self.gateway.delete_video(video_id)
        except AuthError:
            self.sessions.invalidate()
            raise
        self._forget(video_id)
        self._public.pop(video_id, None)

    def get(self, video_id: str) -> VideoSubmission | None:
        """Return the freshest known copy of a video."""
        return self._public.get(video_id) or self._mine.get(video_id)

    def public_snapshot(self) -> list[VideoSubmission]:
        """Return the cached voting pool, newest first."""
        return sorted(self._public.values(), key=_newest_first)

    def progress(self, video_id: str) -> int | None:
        return self._progress.get(video_id)

    def history(self, video_id: str) -> list[VideoStatus]:
        return list(self._history.get(video_id, []))

    def set_vote_count(self, video_id: str, vote_count: int) -> None:
        """Overwrite the cached vote count; the latest writer wins."""
        count = max(vote_count, 0)
        for videos in (self._public, self._mine):
            video = videos.get(video_id)
            if video is not None:
                videos[video_id] = replace(video, vote_count=count)

    def release_watchers(self) -> None:
        """Stop following every in-flight video."""
        for video_id in list(self._mine):
            self.channel.unwatch(video_id)

    def reset(self) -> None:
        """Forget the previous owner's submissions when the session ends."""
        for video_id in list(self._mine):
            self._forget(video_id)

    async def close(self) -> None:
        await self.channel.close()

    def report_progress(self, video_id: str, percent: int) -> None:
        """Record progress; it never decreases and stops once the transfer ends."""
        if video_id not in self._progress_open:
            return
        clamped = min(max(percent, 0), 100)
        self._progress[video_id] = max(self._progress.get(video_id, 0), clamped)

    def report_status(self, video_id: str, status: VideoStatus) -> None:
        """Apply a status observed from the pipeline."""
        if video_id not in self._mine:
            _logger.warning("Status for untracked video_id=%s ignored", video_id)
            return
        self._apply(video_id, status)

    def _apply(self, video_id: str, observed: VideoStatus) -> VideoSubmission:
        video = self._mine[video_id]
        path = transition_path(video.status, observed)
        if not path:
            if observed != video.status:
                _logger.warning(
                    "Ignoring transition %s -> %s for video_id=%s",
                    video.status,
                    observed,
                    video_id,
                )
            return video
        for status in path:
            self._history.setdefault(video_id, []).append(status)
            _logger.info("Video %s: %s -> %s", video_id, video.status, status)
            video = replace(video, status=status)
        self._mine[video_id] = video
        if video.status in TERMINAL_STATUSES:
            self._progress_open.discard(video_id)
            self.channel.unwatch(video_id)
        return video

    def _merge_mine(self, observed: VideoSubmission) -> VideoSubmission:
        existing = self._mine.get(observed.video_id)
        if existing is None:
            self._mine[observed.video_id] = observed
            self._history[observed.video_id] = [observed.status]
            return observed
        self._mine[observed.video_id] = replace(
            existing,
            vote_count=observed.vote_count,
            title=observed.title or existing.title,
        )
        return self._apply(observed.video_id, observed.status)

    def _forget(self, video_id: str) -> None:
        self.channel.unwatch(video_id)
        self._mine.pop(video_id, None)
        self._history.pop(video_id, None)
        self._progress.pop(video_id, None)
        self._progress_open.discard(video_id)

    def _rekey(self, local_id: str, video_id: str) -> str:
        self._mine[video_id] = replace(self._mine.pop(local_id), video_id=video_id)
        self._history[video_id] = self._history.pop(local_id)
        self._progress[video_id] = self._progress.pop(local_id)
        if local_id in self._progress_open:
            self._progress_open.discard(local_id)
            self._progress_open.add(video_id)
        return video_id

    def _validate(self, title: str, media: MediaFile) -> None:
        if not title:
            raise ValidationError("A title is required", field="title")
        if len(title) > self.max_title_length:
            raise ValidationError(
                f"Title must be at most {self.max_title_length} characters",
                field="title",
            )
        if not media.is_video():
            raise ValidationError("Select a valid video file", field="file")
        if media.size == 0:
            raise ValidationError("The selected file is empty", field="file")
        if media.size > self.max_upload_bytes:
            raise ValidationError("The selected file is too large", field="file")


def _parse_videos(rows: Iterable[dict[str, object]]) -> list[VideoSubmission]:
    videos: list[VideoSubmission] = []
    for row in rows:
        try:
            videos.append(VideoPayload.model_validate(row).to_submission())
        except pydantic.ValidationError as exc:
            _logger.warning("Skipping malformed video row: %s", exc.error_count())
    return videos


def _filter_city(
    videos: list[VideoSubmission], city_filter: str | None
) -> list[VideoSubmission]:
    city = parse_city_filter(city_filter)
    if city is None:
        return videos
    wanted = city.casefold()
    return [video for video in videos if video.city.casefold() == wanted]


def _newest_first(video: VideoSubmission) -> tuple[float, str]:
    return (-video.uploaded_at.timestamp(), video.video_id)
