"""Identity service client for profile records and username uniqueness."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from ..exceptions import IdentityServiceError, TransientNetworkError, UsernameTakenError
from ..models import EncodableAlbum, UserProfile

logger = logging.getLogger(__name__)


class IdentityServiceClient(ABC):
    """Remote source of truth for profiles and username uniqueness."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the service is reachable and healthy."""

    @abstractmethod
    async def is_username_available(self, candidate: str) -> bool:
        """Check whether no active profile uses this username.

        Raises:
            TransientNetworkError: If the service cannot be reached
        """

    @abstractmethod
    async def fetch_profile(self, profile_id: str) -> Optional[UserProfile]:
        """Fetch a profile by id, or None if the service has no such profile."""

    @abstractmethod
    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        """Create or update a profile record.

        Raises:
            UsernameTakenError: If another profile already holds the username
        """

    @abstractmethod
    async def fetch_albums(self, owner_id: str) -> List[EncodableAlbum]:
        """Fetch the albums the service holds for an owner."""


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as sent by the service."""
    if not value:
        return None
    text = str(value).strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Ignoring unparseable timestamp: %s", value)
        return None


def _quote(value: str) -> str:
    """Quote a value for use inside a filter expression."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class RestIdentityClient(IdentityServiceClient):
    """Identity service client for a PocketBase-style REST API.

    Requests are blocking ``requests`` calls moved to a worker thread, each one
    bounded by the configured timeout.
    """

    HEALTH_PATH = "/api/health"
    USERS_PATH = "/api/collections/users/records"
    ALBUMS_PATH = "/api/collections/albums/records"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Service base URL
            api_key: Optional bearer token
            timeout: Per-request timeout in seconds
            session: Optional preconfigured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Send a request and map transport failures.

        Raises:
            TransientNetworkError: On timeout, connection loss or HTTP 5xx
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, params=params, json=json_body, timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise TransientNetworkError(f"{method} {path} timed out") from e
        except requests.exceptions.RequestException as e:
            raise TransientNetworkError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> %d", method, path, response.status_code)

        if 500 <= response.status_code < 600:
            raise TransientNetworkError(
                f"{method} {path} returned server error {response.status_code}"
            )
        return response

    async def _call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Run a request off the event loop."""
        return await asyncio.to_thread(self._request, method, path, params, json_body)

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise IdentityServiceError(
                "Malformed JSON from identity service", response.status_code
            ) from e

    @staticmethod
    def _items(data: Any) -> List[Dict[str, Any]]:
        """Extract the record list from a list response."""
        if isinstance(data, dict):
            return list(data.get("items") or [])
        if isinstance(data, list):
            return data
        return []

    # =========================================================================
    # Record mapping
    # =========================================================================

    @staticmethod
    def _profile_to_record(profile: UserProfile) -> Dict[str, Any]:
        return {
            "id": profile.id,
            "username": profile.normalized_username,
            "artist_name": profile.artist_name,
            "bio": profile.bio or "",
            "is_active": True,
            "created": profile.created_at.isoformat(),
            "updated": profile.modified_at.isoformat(),
        }

    @staticmethod
    def _profile_from_record(record: Dict[str, Any]) -> UserProfile:
        try:
            data: Dict[str, Any] = {
                "id": record["id"],
                "username": record["username"],
                "artist_name": record.get("artist_name") or record["username"],
                "bio": record.get("bio") or None,
                "updated_at": _parse_timestamp(record.get("updated")),
            }
            created_at = _parse_timestamp(record.get("created"))
            if created_at is not None:
                data["created_at"] = created_at
            return UserProfile(**data)
        except (KeyError, ValidationError) as e:
            raise IdentityServiceError(f"Malformed profile record: {e}") from e

    # =========================================================================
    # Operations
    # =========================================================================

    async def health_check(self) -> bool:
        """Check whether the service is reachable and healthy."""
        try:
            response = await self._call("GET", self.HEALTH_PATH)
        except TransientNetworkError as e:
            logger.warning("Health check failed: %s", e)
            return False

        healthy = response.status_code == 200
        if healthy:
            logger.info("Identity service healthy")
        else:
            logger.warning("Identity service unhealthy (%d)", response.status_code)
        return healthy

    async def is_username_available(self, candidate: str) -> bool:
        """Check whether no active profile uses this username."""
        normalized = candidate.strip().lower()
        params = {
            "filter": f"username={_quote(normalized)} && is_active=true",
            "perPage": 1,
        }
        response = await self._call("GET", self.USERS_PATH, params=params)

        if response.status_code != 200:
            raise IdentityServiceError(
                f"Username check failed for '{normalized}'", response.status_code
            )

        available = not self._items(self._json(response))
        logger.info(
            "Username @%s is %s", normalized, "available" if available else "taken"
        )
        return available

    async def fetch_profile(self, profile_id: str) -> Optional[UserProfile]:
        """Fetch a profile by id, or None if the service has no such profile."""
        response = await self._call("GET", f"{self.USERS_PATH}/{profile_id}")

        if response.status_code == 404:
            logger.info("Profile %s not found on identity service", profile_id)
            return None
        if response.status_code != 200:
            raise IdentityServiceError(
                f"Fetching profile {profile_id} failed", response.status_code
            )
        return self._profile_from_record(self._json(response))

    async def upsert_profile(self, profile: UserProfile) -> UserProfile:
        """Update the profile record, creating it when the service has none."""
        record = self._profile_to_record(profile)

        response = await self._call(
            "PATCH", f"{self.USERS_PATH}/{profile.id}", json_body=record
        )
        if response.status_code == 404:
            logger.info("Creating profile @%s on identity service", profile.username)
            response = await self._call("POST", self.USERS_PATH, json_body=record)

        if response.status_code in (400, 409) and "username" in response.text.lower():
            raise UsernameTakenError(profile.username)
        if response.status_code not in (200, 201):
            raise IdentityServiceError(
                f"Saving profile @{profile.username} failed", response.status_code
            )

        logger.info("Profile @%s saved on identity service", profile.username)
        if not response.content:
            return profile
        return self._profile_from_record(self._json(response))

    async def fetch_albums(self, owner_id: str) -> List[EncodableAlbum]:
        """Fetch the albums the service holds for an owner."""
        params = {"filter": f"owner_id={_quote(owner_id)}", "perPage": 200}
        response = await self._call("GET", self.ALBUMS_PATH, params=params)

        if response.status_code != 200:
            raise IdentityServiceError(
                f"Fetching albums for {owner_id} failed", response.status_code
            )

        albums: List[EncodableAlbum] = []
        for item in self._items(self._json(response)):
            try:
                albums.append(EncodableAlbum.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping malformed remote album: %s", e)
        logger.info("Fetched %d remote albums for %s", len(albums), owner_id)
        return albums

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
        logger.debug("Identity client session closed")
