"""Error taxonomy for the orchestration core."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Stable error codes surfaced to the presentation layer."""

    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    ALREADY_VOTED = "ALREADY_VOTED"
    NOT_VOTABLE = "NOT_VOTABLE"
    CONFLICT = "CONFLICT"
    UPLOAD = "UPLOAD"
    NETWORK = "NETWORK"
    NOT_FOUND = "NOT_FOUND"


@dataclass(eq=False)
class RisingStarsError(Exception):
    """Base error with a code and a human-readable message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class ValidationError(RisingStarsError):
    """Raised when local input is rejected before any request is made."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(code=ErrorCode.VALIDATION, message=message)
        self.field = field


class AuthError(RisingStarsError):
    """Raised when a credential is missing, expired or rejected."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(code=ErrorCode.AUTH, message=message)


class AlreadyVotedError(RisingStarsError):
    """Raised when an identity has already voted for a video."""

    def __init__(self, video_id: str) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_VOTED,
            message="You already voted for this video",
        )
        self.video_id = video_id


class NotVotableError(RisingStarsError):
    """Raised when the target video is not in the processed state."""

    def __init__(self, video_id: str, status: str | None = None) -> None:
        super().__init__(
            code=ErrorCode.NOT_VOTABLE,
            message="This video is not available for voting",
        )
        self.video_id = video_id
        self.status = status


class ConflictError(RisingStarsError):
    """Raised when the backend rejects a duplicate sign-up."""

    def __init__(
        self, message: str = "An account with this email already exists"
    ) -> None:
        super().__init__(code=ErrorCode.CONFLICT, message=message)


class UploadError(RisingStarsError):
    """Raised when a video submission fails in transport or on the server."""

    def __init__(self, message: str = "Upload failed") -> None:
        super().__init__(code=ErrorCode.UPLOAD, message=message)


class NetworkError(RisingStarsError):
    """Raised for transport failures and unexpected server responses."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(code=ErrorCode.NETWORK, message=message)
        self.status_code = status_code


class NotFoundError(RisingStarsError):
    """Raised when a requested video does not exist."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(code=ErrorCode.NOT_FOUND, message=message)
