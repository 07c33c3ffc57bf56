"""SQLAlchemy models backing the local profile and album store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, LargeBinary, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ProfileRecord(Base):
    """The single locally stored user profile."""

    __tablename__ = "profile"

    # Only one row ever exists; the slot is fixed so saves replace it
    slot: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)

    profile_id: Mapped[str] = mapped_column(String(36), nullable=False)
    username: Mapped[str] = mapped_column(String(20), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(50), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    profile_image: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation of profile record."""
        return f"<ProfileRecord(id={self.profile_id}, username='{self.username}')>"


class AlbumRecord(Base):
    """A stored album in its encodable (image-free) JSON form."""

    __tablename__ = "albums"

    album_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    share_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    release_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # EncodableAlbum serialized as JSON
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    # Cover art is kept next to the payload, never inside it
    cover_image: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    saved_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        """String representation of album record."""
        return f"<AlbumRecord(id={self.album_id}, share_id='{self.share_id}')>"
