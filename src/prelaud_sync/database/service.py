"""Local store for the user's profile and album library.

The store is the only owner of persisted profile and album data. Every write is a
single SQLite transaction, so a crash mid-write leaves the previous state intact.
Profile writes and album writes are serialized by separate locks: an album save can
run next to a profile save, but two album saves never interleave.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.exc import DatabaseError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import CorruptLocalStateError
from ..models import EncodableAlbum, UserProfile, ensure_utc, utc_now
from .models import AlbumRecord, Base, ProfileRecord

logger = logging.getLogger(__name__)


class LocalStore:
    """Durable on-device persistence of the profile and album collection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses default ~/.prelaud/library.db
        """
        if db_path is None:
            db_path = Path.home() / ".prelaud" / "library.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._profile_lock = threading.Lock()
        self._albums_lock = threading.Lock()

        self._create_engine()

        try:
            self.init_db()
        except DatabaseError as e:
            # Reads will raise CorruptLocalStateError; clear_all() recovers
            logger.error("Local store at %s is unreadable: %s", self.db_path, e)

    def _create_engine(self) -> None:
        """Create engine and session factory for the database file."""
        db_url = f"sqlite:///{self.db_path}"
        # Store calls run in worker threads via asyncio.to_thread
        self.engine = create_engine(
            db_url, echo=False, connect_args={"check_same_thread": False}
        )
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )
        logger.debug("Local store engine created for: %s", self.db_path)

    def init_db(self) -> None:
        """Create tables that do not exist yet."""
        Base.metadata.create_all(bind=self.engine)
        logger.debug("Local store schema ready at: %s", self.db_path)

    def get_session(self) -> Session:
        """Get a new database session.

        Note:
            Caller is responsible for closing the session
        """
        return self.SessionLocal()

    # =========================================================================
    # Profile
    # =========================================================================

    def load_profile(self) -> Optional[UserProfile]:
        """Load the stored profile.

        Returns:
            The profile, or None if first-run setup never completed

        Raises:
            CorruptLocalStateError: If the store cannot be read
        """
        try:
            with self.get_session() as session:
                record = session.get(ProfileRecord, 1)
                if record is None:
                    logger.debug("No stored profile found")
                    return None

                return UserProfile(
                    id=record.profile_id,
                    username=record.username,
                    artist_name=record.artist_name,
                    bio=record.bio,
                    profile_image=record.profile_image,
                    created_at=ensure_utc(record.created_at),
                    updated_at=ensure_utc(record.updated_at),
                )
        except DatabaseError as e:
            raise CorruptLocalStateError(f"Cannot read stored profile: {e}") from e
        except ValidationError as e:
            raise CorruptLocalStateError(f"Stored profile is invalid: {e}") from e

    def save_profile(self, profile: UserProfile) -> None:
        """Replace the stored profile.

        Args:
            profile: Profile to persist
        """
        with self._profile_lock:
            with self.get_session() as session:
                record = session.get(ProfileRecord, 1)
                if record is None:
                    record = ProfileRecord(slot=1)
                    session.add(record)

                record.profile_id = profile.id
                record.username = profile.username
                record.artist_name = profile.artist_name
                record.bio = profile.bio
                record.profile_image = profile.profile_image
                record.created_at = profile.created_at
                record.updated_at = profile.updated_at
                session.commit()

        logger.info("Saved profile: @%s (%s)", profile.username, profile.id)

    def delete_profile(self) -> None:
        """Remove the stored profile, keeping albums."""
        with self._profile_lock:
            with self.get_session() as session:
                session.execute(delete(ProfileRecord))
                session.commit()
        logger.info("Deleted stored profile")

    # =========================================================================
    # Albums
    # =========================================================================

    def load_albums(self) -> List[EncodableAlbum]:
        """Load all stored albums, newest release first.

        Rows that cannot be parsed are skipped and logged.

        Raises:
            CorruptLocalStateError: If the store cannot be read at all
        """
        try:
            with self.get_session() as session:
                records = session.scalars(
                    select(AlbumRecord).order_by(AlbumRecord.release_date.desc())
                ).all()

                albums: List[EncodableAlbum] = []
                for record in records:
                    album = self._parse_album(record)
                    if album is not None:
                        albums.append(album)

                logger.debug("Loaded %d albums from local store", len(albums))
                return albums
        except DatabaseError as e:
            raise CorruptLocalStateError(f"Cannot read stored albums: {e}") from e

    def get_album(self, album_id: str) -> Optional[EncodableAlbum]:
        """Get a single stored album by id."""
        try:
            with self.get_session() as session:
                record = session.get(AlbumRecord, album_id)
                if record is None:
                    return None
                return self._parse_album(record)
        except DatabaseError as e:
            raise CorruptLocalStateError(f"Cannot read album {album_id}: {e}") from e

    def save_album(
        self, album: EncodableAlbum, cover_image: Optional[bytes] = None
    ) -> None:
        """Insert or replace an album.

        Args:
            album: Album in its encodable form
            cover_image: Cover art to store; None keeps any existing cover
        """
        payload = album.model_dump_json()

        with self._albums_lock:
            with self.get_session() as session:
                record = session.get(AlbumRecord, album.id)
                if record is None:
                    record = AlbumRecord(album_id=album.id)
                    session.add(record)

                record.share_id = album.share_id
                record.owner_id = album.owner_id
                record.release_date = album.release_date
                record.payload = payload
                record.saved_at = utc_now()
                if cover_image is not None:
                    record.cover_image = cover_image
                session.commit()

        logger.info("Saved album: %s (%s)", album.title, album.id)

    def delete_album(self, album_id: str) -> bool:
        """Delete an album and its cover art.

        Returns:
            True if an album was removed
        """
        with self._albums_lock:
            with self.get_session() as session:
                record = session.get(AlbumRecord, album_id)
                if record is None:
                    return False
                session.delete(record)
                session.commit()

        logger.info("Deleted album: %s", album_id)
        return True

    def load_cover_image(self, album_id: str) -> Optional[bytes]:
        """Get the stored cover art for an album."""
        try:
            with self.get_session() as session:
                return session.scalar(
                    select(AlbumRecord.cover_image).where(
                        AlbumRecord.album_id == album_id
                    )
                )
        except DatabaseError as e:
            raise CorruptLocalStateError(f"Cannot read cover for {album_id}: {e}") from e

    def _parse_album(self, record: AlbumRecord) -> Optional[EncodableAlbum]:
        """Parse a stored payload, returning None for unreadable rows."""
        try:
            return EncodableAlbum.model_validate(json.loads(record.payload))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Skipping unreadable album %s: %s", record.album_id, e)
            return None

    # =========================================================================
    # Maintenance
    # =========================================================================

    def clear_all(self) -> None:
        """Remove the profile and every album.

        An unreadable database file is deleted and recreated.
        """
        with self._profile_lock, self._albums_lock:
            try:
                with self.get_session() as session:
                    session.execute(delete(AlbumRecord))
                    session.execute(delete(ProfileRecord))
                    session.commit()
            except DatabaseError as e:
                logger.warning("Local store unreadable (%s), recreating it", e)
                self._recreate()

        logger.info("Local store cleared")

    def _recreate(self) -> None:
        """Throw away the database file and start with an empty schema."""
        self.engine.dispose()
        self.db_path.unlink(missing_ok=True)
        self._create_engine()
        self.init_db()

    def get_statistics(self) -> Dict[str, Any]:
        """Get store statistics.

        Returns:
            Dictionary with statistics
        """
        albums = self.load_albums()
        try:
            with self.get_session() as session:
                cover_size = func.sum(func.length(AlbumRecord.cover_image))
                cover_bytes = session.scalar(select(func.coalesce(cover_size, 0)))
                has_profile = session.get(ProfileRecord, 1) is not None
        except DatabaseError as e:
            raise CorruptLocalStateError(f"Cannot read store statistics: {e}") from e

        return {
            "albums": len(albums),
            "songs": sum(len(album.songs) for album in albums),
            "cover_bytes": int(cover_bytes or 0),
            "has_profile": has_profile,
            "database_path": str(self.db_path),
        }

    def close(self) -> None:
        """Close database connection."""
        if hasattr(self, "engine"):
            self.engine.dispose()
            logger.debug("Local store connection closed")
