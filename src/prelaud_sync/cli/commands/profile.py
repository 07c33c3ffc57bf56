"""Profile commands: setup, editing and username checks."""

import logging
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from ...core.session import PrelaudSession
from ...exceptions import (
    ConcurrentCreateRejectedError,
    PrelaudError,
    ProfileNotFoundError,
    ProfileValidationError,
    UsernameTakenError,
)
from ...models import ProfileStats, UserProfile, UsernameCheckResult
from ..display import display_profile, display_username_check
from .common import CliContext, load_local_profile, run_with_session

console = Console()
logger = logging.getLogger(__name__)


def _read_image(path: Optional[Path]) -> Optional[bytes]:
    if path is None:
        return None
    return path.read_bytes()


def _report_profile_error(action: str, error: PrelaudError) -> None:
    if isinstance(error, ProfileValidationError):
        console.print(f"[red]✗ Invalid {error.field.replace('_', ' ')}: {error}[/red]")
    elif isinstance(error, UsernameTakenError):
        console.print(f"[red]✗ {error}[/red]")
    elif isinstance(error, (ConcurrentCreateRejectedError, ProfileNotFoundError)):
        console.print(f"[yellow]⚠️  {error}[/yellow]")
    else:
        logger.error("Profile %s failed: %s", action, error)
        console.print(f"[bold red]❌ Profile {action} failed: {error}[/bold red]")


@click.command("check-username")
@click.argument("username")
@click.pass_obj
def check_username_command(ctx_obj: CliContext, username: str) -> None:
    """Check whether USERNAME is valid and available."""

    async def work(session: PrelaudSession) -> UsernameCheckResult:
        await load_local_profile(session)
        return await session.profile_manager.check_username_availability(username)

    result = run_with_session(ctx_obj, work)
    display_username_check(result)


@click.group("profile")
def profile() -> None:
    """Create, edit and show your artist profile."""
    pass


@profile.command("create")
@click.option("--username", "-u", required=True, help="Unique username")
@click.option("--artist-name", "-a", required=True, help="Artist display name")
@click.option("--bio", help="Short biography")
@click.option(
    "--image",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Profile image file",
)
@click.pass_obj
def create_profile(
    ctx_obj: CliContext,
    username: str,
    artist_name: str,
    bio: Optional[str],
    image: Optional[Path],
) -> None:
    """Create your profile (first-run setup)."""

    async def work(session: PrelaudSession) -> UserProfile:
        await load_local_profile(session)
        return await session.orchestrator.complete_setup(
            username, artist_name, bio=bio, profile_image=_read_image(image)
        )

    try:
        created = run_with_session(ctx_obj, work)
    except PrelaudError as e:
        _report_profile_error("creation", e)
        raise click.Abort()

    console.print(f"[bold green]✅ Profile created: @{created.username}[/bold green]")
    display_profile(created)


@profile.command("update")
@click.option("--username", "-u", help="New username")
@click.option("--artist-name", "-a", help="New artist display name")
@click.option("--bio", help="New biography (empty string clears it)")
@click.option(
    "--image",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="New profile image file",
)
@click.pass_obj
def update_profile(
    ctx_obj: CliContext,
    username: Optional[str],
    artist_name: Optional[str],
    bio: Optional[str],
    image: Optional[Path],
) -> None:
    """Update fields of your profile."""

    async def work(session: PrelaudSession) -> UserProfile:
        await load_local_profile(session)
        return await session.profile_manager.update_profile(
            username=username,
            artist_name=artist_name,
            bio=bio,
            profile_image=_read_image(image),
        )

    try:
        updated = run_with_session(ctx_obj, work)
    except PrelaudError as e:
        _report_profile_error("update", e)
        raise click.Abort()

    console.print("[bold green]✅ Profile updated[/bold green]")
    display_profile(updated)


@profile.command("show")
@click.option("--share-text", is_flag=True, help="Print text for sharing your profile")
@click.pass_obj
def show_profile(ctx_obj: CliContext, share_text: bool) -> None:
    """Show your profile."""

    async def work(
        session: PrelaudSession,
    ) -> Tuple[Optional[UserProfile], ProfileStats, str]:
        await load_local_profile(session)
        manager = session.profile_manager
        stats = await manager.get_profile_stats()
        return manager.current_profile, stats, manager.shareable_text()

    current, stats, text = run_with_session(ctx_obj, work)

    if current is None:
        console.print("[yellow]⚠️  No profile set up yet[/yellow]")
        console.print("[dim]Run 'prelaud-sync profile create' first[/dim]")
        return

    display_profile(current, stats)
    if share_text:
        console.print(f"\n{text}")
