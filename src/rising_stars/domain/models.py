"""Domain models for the talent competition core."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import PurePath

VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi"})


class VideoStatus(StrEnum):
    """Lifecycle status of a submitted video."""

    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({VideoStatus.PROCESSED, VideoStatus.ERROR})


@dataclass(frozen=True)
class UserSession:
    """Authenticated identity together with its bearer credential."""

    user_id: str
    first_name: str
    last_name: str
    email: str
    city: str
    country: str
    auth_token: str

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class SignUpForm:
    """Profile fields collected by the sign-up screen."""

    first_name: str
    last_name: str
    email: str
    password: str
    confirm_password: str
    city: str
    country: str | None = None


@dataclass(frozen=True)
class MediaFile:
    """A local file selected for upload."""

    filename: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    def is_video(self) -> bool:
        """Return True when the file looks like video media."""
        if self.content_type:
            return self.content_type.lower().startswith("video/")
        return PurePath(self.filename).suffix.lower() in VIDEO_EXTENSIONS


@dataclass(frozen=True)
class VideoSubmission:
    """One user's competition entry."""

    video_id: str
    owner_id: str | None
    title: str
    uploaded_at: datetime
    status: VideoStatus
    vote_count: int
    city: str
    owner_name: str = ""

    def __post_init__(self) -> None:
        if self.vote_count < 0:
            raise ValueError("vote_count must be non-negative")


@dataclass(frozen=True)
class VoteRecord:
    """Fact that an identity voted for a video."""

    identity: str
    video_id: str
    voted_at: datetime

    @property
    def key(self) -> tuple[str, str]:
        return (self.identity, self.video_id)


@dataclass(frozen=True)
class RankingEntry:
    """Read-only leaderboard row."""

    video_id: str
    display_name: str
    city: str
    title: str
    vote_count: int
    position: int
