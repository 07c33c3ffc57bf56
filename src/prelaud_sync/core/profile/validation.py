"""Local validation rules for usernames and artist names."""

import re

from ...models import ValidationResult

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
ARTIST_NAME_MIN_LENGTH = 2
ARTIST_NAME_MAX_LENGTH = 50

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
ARTIST_NAME_PATTERN = re.compile(r"^[\w\s.\-'&]+$")

# Always blocked, whatever the identity service says
RESERVED_USERNAMES = frozenset(
    {
        "admin",
        "root",
        "api",
        "www",
        "mail",
        "ftp",
        "prelaud",
        "support",
        "help",
        "info",
        "contact",
        "about",
        "privacy",
        "terms",
        "legal",
        "music",
        "spotify",
        "apple",
        "amazon",
        "youtube",
        "official",
    }
)


def validate_username(username: str) -> ValidationResult:
    """Check a username against the local rules.

    Usernames are 3-20 characters of letters, digits and underscores and may not
    be one of the reserved names.
    """
    trimmed = username.strip()

    if not trimmed:
        return ValidationResult.fail("Username cannot be empty")
    if len(trimmed) < USERNAME_MIN_LENGTH:
        return ValidationResult.fail(
            f"Username must be at least {USERNAME_MIN_LENGTH} characters"
        )
    if len(trimmed) > USERNAME_MAX_LENGTH:
        return ValidationResult.fail(
            f"Username must be {USERNAME_MAX_LENGTH} characters or less"
        )
    if not USERNAME_PATTERN.match(trimmed):
        return ValidationResult.fail(
            "Username can only contain letters, numbers and underscores"
        )
    if trimmed.lower() in RESERVED_USERNAMES:
        return ValidationResult.fail("This username is reserved")

    return ValidationResult.ok()


def validate_artist_name(artist_name: str) -> ValidationResult:
    """Check an artist name against the local rules."""
    trimmed = artist_name.strip()

    if not trimmed:
        return ValidationResult.fail("Artist name cannot be empty")
    if len(trimmed) < ARTIST_NAME_MIN_LENGTH:
        return ValidationResult.fail(
            f"Artist name must be at least {ARTIST_NAME_MIN_LENGTH} characters"
        )
    if len(trimmed) > ARTIST_NAME_MAX_LENGTH:
        return ValidationResult.fail(
            f"Artist name must be {ARTIST_NAME_MAX_LENGTH} characters or less"
        )
    if not ARTIST_NAME_PATTERN.match(trimmed):
        return ValidationResult.fail("Artist name contains invalid characters")

    return ValidationResult.ok()
