"""Data models for the prelaud sync engine."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    """Generate a new globally unique identifier."""
    return str(uuid.uuid4())


class SharePermissions(BaseModel):
    """Capabilities granted to the recipient of a shared album."""

    can_listen: bool = True
    can_download: bool = False
    can_reshare: bool = False
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        """Check whether the share has passed its expiry time."""
        if self.expires_at is None:
            return False
        return utc_now() > ensure_utc(self.expires_at)

    @field_validator("expires_at", mode="after")
    @classmethod
    def validate_expires_at(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Normalize expiry time to UTC."""
        return ensure_utc(v)


class UserProfile(BaseModel):
    """The local user's durable identity record."""

    id: str = Field(default_factory=new_id)
    username: str
    artist_name: str
    bio: Optional[str] = None
    profile_image: Optional[bytes] = Field(default=None, repr=False)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    @property
    def normalized_username(self) -> str:
        """Username as used for case-insensitive uniqueness."""
        return self.username.strip().lower()

    @property
    def modified_at(self) -> datetime:
        """Last modification time, falling back to creation time."""
        return self.updated_at or self.created_at

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Normalize timestamps to UTC."""
        return ensure_utc(v)

    def same_identity_fields(self, other: "UserProfile") -> bool:
        """Compare the fields that are exchanged with the identity service."""
        return (
            self.id == other.id
            and self.normalized_username == other.normalized_username
            and self.artist_name == other.artist_name
            and (self.bio or None) == (other.bio or None)
        )


class Song(BaseModel):
    """A single track within an album."""

    id: str = Field(default_factory=new_id)
    title: str
    artist: str
    duration: float = 0.0  # Duration in seconds
    cover_image: Optional[bytes] = Field(default=None, repr=False)
    audio_file_name: Optional[str] = None
    is_explicit: bool = False
    song_id: Optional[str] = None  # Key for out-of-band audio lookup

    @property
    def duration_formatted(self) -> str:
        """Get formatted duration string (m:ss)."""
        total = int(self.duration)
        return f"{total // 60}:{total % 60:02d}"


class Album(BaseModel):
    """An album as held in memory, including local-only image data."""

    id: str = Field(default_factory=new_id)
    title: str
    artist: str
    release_date: datetime = Field(default_factory=utc_now)
    songs: List[Song] = []
    cover_image: Optional[bytes] = Field(default=None, repr=False)

    # Sharing
    owner_id: Optional[str] = None
    owner_username: Optional[str] = None
    share_id: Optional[str] = None
    shared_at: Optional[datetime] = None
    share_permissions: Optional[SharePermissions] = None

    @property
    def is_shared(self) -> bool:
        """Structural check: the album carries an owner identity."""
        return bool(self.owner_id)

    def is_owned_by_other(self, current_user_id: Optional[str]) -> bool:
        """Viewer-relative check: the album belongs to someone else."""
        if not self.owner_id:
            return False
        return self.owner_id != current_user_id

    @property
    def total_duration(self) -> float:
        """Get total duration of all songs in seconds."""
        return sum(song.duration for song in self.songs)

    @field_validator("release_date", "shared_at", mode="after")
    @classmethod
    def validate_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Normalize dates to UTC."""
        return ensure_utc(v)


class EncodableSong(BaseModel):
    """Wire/storage form of a song; never carries image data."""

    id: str
    title: str
    artist: str
    duration: float = 0.0
    is_explicit: bool = False
    audio_file_name: Optional[str] = None
    song_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class EncodableAlbum(BaseModel):
    """Wire/storage form of an album; a share id is always present."""

    id: str
    title: str
    artist: str
    release_date: datetime
    songs: List[EncodableSong] = []
    share_id: str
    owner_id: Optional[str] = None
    owner_username: Optional[str] = None
    shared_at: Optional[datetime] = None
    share_permissions: Optional[SharePermissions] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("share_id", mode="after")
    @classmethod
    def validate_share_id(cls, v: str) -> str:
        """Reject empty share ids."""
        if not v.strip():
            raise ValueError("share_id must not be empty")
        return v

    @field_validator("release_date", "shared_at", mode="after")
    @classmethod
    def validate_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Normalize dates to UTC."""
        return ensure_utc(v)


class ValidationResult(BaseModel):
    """Outcome of a local field validation step."""

    is_valid: bool
    error_message: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        """Build a passing result."""
        return cls(is_valid=True)

    @classmethod
    def fail(cls, message: str) -> "ValidationResult":
        """Build a failing result with a reason."""
        return cls(is_valid=False, error_message=message)


class UsernameStatus(str, Enum):
    """Possible outcomes of a username availability check."""

    AVAILABLE = "available"
    TAKEN = "taken"
    INVALID = "invalid"
    SERVER_ERROR = "server_error"


class UsernameCheckResult(BaseModel):
    """Result of a username availability check."""

    username: str
    status: UsernameStatus
    error_message: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        """Only an available username counts as valid."""
        return self.status == UsernameStatus.AVAILABLE

    @property
    def is_conflict(self) -> bool:
        """The username is well formed but already in use."""
        return self.status == UsernameStatus.TAKEN

    def as_validation(self) -> ValidationResult:
        """Collapse into the {is_valid, error_message} shape."""
        return ValidationResult(
            is_valid=self.is_valid, error_message=self.error_message
        )


class ProfileStats(BaseModel):
    """Library statistics shown on the profile screen."""

    album_count: int = 0
    song_count: int = 0
    member_since: Optional[datetime] = None
