"""Gateway payload models validated with pydantic."""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
)

from rising_stars.domain.models import UserSession, VideoStatus, VideoSubmission

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


_STATUS_ALIASES = {
    "failed": VideoStatus.ERROR,
    "completed": VideoStatus.PROCESSED,
    "published": VideoStatus.PROCESSED,
}


def _status(value: object) -> object:
    if isinstance(value, str):
        cleaned = value.strip().lower()
        return _STATUS_ALIASES.get(cleaned, cleaned)
    return value


Timestamp = Annotated[datetime | None, AfterValidator(_aware)]
Status = Annotated[VideoStatus, BeforeValidator(_status)]


class LoginPayload(_Payload):
    """Response body of the login call."""

    access_token: str | None = None


class ProfilePayload(_Payload):
    """Authenticated user's profile."""

    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId", "id"))
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    city: str = ""
    country: str = ""

    def to_session(self, auth_token: str) -> UserSession:
        """Bind the profile to the token it was fetched with."""
        return UserSession(
            user_id=self.user_id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            city=self.city,
            country=self.country,
            auth_token=auth_token,
        )


class VideoPayload(_Payload):
    """Video row as returned by the video and public listing endpoints."""

    video_id: str = Field(validation_alias=AliasChoices("video_id", "videoId", "id"))
    title: str = ""
    status: Status = VideoStatus.UPLOADED
    votes: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("votes", "vote_count", "voteCount"),
    )
    uploaded_at: Timestamp = None
    user_id: str | None = None
    user_city: str = Field(
        default="", validation_alias=AliasChoices("user_city", "city")
    )
    user_first_name: str = ""
    user_last_name: str = ""

    def to_submission(self) -> VideoSubmission:
        """Convert to the domain model."""
        owner_name = f"{self.user_first_name} {self.user_last_name}".strip()
        return VideoSubmission(
            video_id=self.video_id,
            owner_id=self.user_id,
            title=self.title,
            uploaded_at=self.uploaded_at or _EPOCH,
            status=self.status,
            vote_count=self.votes,
            city=self.user_city,
            owner_name=owner_name,
        )


class UploadAckPayload(_Payload):
    """Acknowledgement of an accepted upload."""

    video_id: str = Field(validation_alias=AliasChoices("video_id", "videoId", "id"))
    status: Status = VideoStatus.UPLOADED


class VotePayload(_Payload):
    """Vote response; an empty body (204) carries no count."""

    vote_count: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("voteCount", "vote_count", "votes"),
    )


class RankingPayload(_Payload):
    """Row of the top rankings endpoint."""

    video_id: str = Field(validation_alias=AliasChoices("video_id", "videoId", "id"))
    username: str = ""
    city: str = ""
    title: str = ""
    votes: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("votes", "vote_count", "voteCount"),
    )
    uploaded_at: Timestamp = None

    def to_submission(self, uploaded_at: datetime | None = None) -> VideoSubmission:
        """Project the row back onto a processed submission for re-ranking."""
        return VideoSubmission(
            video_id=self.video_id,
            owner_id=None,
            title=self.title,
            uploaded_at=self.uploaded_at or uploaded_at or _EPOCH,
            status=VideoStatus.PROCESSED,
            vote_count=self.votes,
            city=self.city,
            owner_name=self.username,
        )
