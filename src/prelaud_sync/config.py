"""Configuration management for the prelaud sync engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from config directory or project root
config_env = Path(__file__).parent.parent.parent / "config" / ".env"
if config_env.exists():
    load_dotenv(config_env)
else:
    # Fallback to project root .env
    load_dotenv()


class Config:
    """Application configuration."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Identity service settings
        self.api_url = os.getenv(
            "PRELAUD_API_URL", "https://prelaud.pockethost.io"
        ).rstrip("/")
        self.api_key = os.getenv("PRELAUD_API_KEY") or None
        self.request_timeout = float(os.getenv("PRELAUD_REQUEST_TIMEOUT", "30"))

        # Profile setup settings
        self.username_debounce_ms = int(
            os.getenv("PRELAUD_USERNAME_DEBOUNCE_MS", "800")
        )

        # Database settings
        default_db_path = str(Path.home() / ".prelaud" / "library.db")
        self.database_path = Path(os.getenv("PRELAUD_DATABASE_PATH", default_db_path))

        self.log_level = os.getenv("PRELAUD_LOG_LEVEL", "INFO").upper()

        # Ensure directories exist
        self._ensure_directories()

    @property
    def username_debounce_seconds(self) -> float:
        """Quiet period before a username check is dispatched."""
        return self.username_debounce_ms / 1000.0

    def _ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """Get application configuration."""
    return Config()
