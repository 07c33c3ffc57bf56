"""Display formatters and UI helpers for CLI."""

import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from ...core.sync import SyncResult, SyncStage
from ...models import Album, ProfileStats, UserProfile, UsernameCheckResult, UsernameStatus

console = Console()
logger = logging.getLogger(__name__)

STAGE_STYLES = {
    SyncStage.SYNC_COMPLETE: "green",
    SyncStage.NEEDS_SETUP: "yellow",
}


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def display_sync_result(result: SyncResult, message: str = "") -> None:
    """Display the outcome of a startup sync run.

    Args:
        result: Sync result
        message: Final status message from the orchestrator
    """
    style = STAGE_STYLES.get(result.stage, "white")
    console.print(f"\n[bold {style}]{message or result.stage.value}[/bold {style}]\n")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", width=24)
    table.add_column("Value", style="green", justify="right")

    table.add_row("Stage", result.stage.value)
    table.add_row(
        "Connection",
        "online" if result.remote_verified else "[yellow]offline[/yellow]",
    )
    if result.profile is not None:
        table.add_row("Profile", f"@{result.profile.username}")
        table.add_row("Profile Action", result.profile_action.value)
    if result.remote_verified:
        table.add_row("Albums Added", str(result.albums_added))
        table.add_row("Albums Updated", str(result.albums_updated))
    if result.degraded:
        table.add_row("Status", "[yellow]⚠️ Degraded[/yellow]")

    console.print(table)

    if result.errors:
        console.print("\n[bold red]Errors:[/bold red]")
        for error in result.errors:
            console.print(f"  • {error}")

    if result.needs_setup:
        console.print(
            "\n[dim]Run 'prelaud-sync profile create' to set up your profile[/dim]"
        )


def display_profile(profile: UserProfile, stats: Optional[ProfileStats] = None) -> None:
    """Display the user's profile.

    Args:
        profile: Profile to show
        stats: Optional library statistics
    """
    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Username", f"@{profile.username}")
    table.add_row("Artist Name", profile.artist_name)
    table.add_row("Bio", profile.bio or "[dim]-[/dim]")
    table.add_row("Profile ID", profile.id)
    table.add_row("Member Since", profile.created_at.strftime("%Y-%m-%d"))
    if profile.updated_at:
        table.add_row("Last Updated", profile.updated_at.strftime("%Y-%m-%d %H:%M"))
    if stats is not None:
        table.add_row("Albums", str(stats.album_count))
        table.add_row("Songs", str(stats.song_count))

    console.print(table)


def display_username_check(result: UsernameCheckResult) -> None:
    """Display the result of a username availability check."""
    if result.status == UsernameStatus.AVAILABLE:
        console.print(f"[green]✓ @{result.username} is available[/green]")
    elif result.status == UsernameStatus.TAKEN:
        console.print(f"[red]✗ @{result.username} is already taken[/red]")
    elif result.status == UsernameStatus.INVALID:
        console.print(f"[red]✗ {result.error_message}[/red]")
    else:
        console.print(f"[yellow]⚠️  {result.error_message}[/yellow]")


def display_albums(albums: List[Album], current_user_id: Optional[str]) -> None:
    """Display the album list.

    Args:
        albums: Albums to show, already sorted
        current_user_id: Viewer id used to mark albums received from others
    """
    if not albums:
        console.print("[dim]No albums[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Title", style="cyan")
    table.add_column("Artist", style="white")
    table.add_column("Released", style="white")
    table.add_column("Songs", justify="right")
    table.add_column("Share ID", style="dim")
    table.add_column("From", style="yellow")

    for album in albums:
        sender = ""
        if album.is_owned_by_other(current_user_id):
            sender = f"@{album.owner_username}" if album.owner_username else "unknown"
        table.add_row(
            album.title,
            album.artist,
            album.release_date.strftime("%Y-%m-%d"),
            str(len(album.songs)),
            album.share_id or "",
            sender,
        )

    console.print(table)
    console.print(f"\n[dim]{len(albums)} albums[/dim]")


def display_store_status(
    stats: Dict[str, Any], profile: Optional[UserProfile], api_url: str
) -> None:
    """Display local store status.

    Args:
        stats: Store statistics dictionary
        profile: Local profile, if any
        api_url: Identity service URL
    """
    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row(
        "Profile",
        f"@{profile.username}" if profile else "[yellow]not set up[/yellow]",
    )
    table.add_row("Albums", str(stats["albums"]))
    table.add_row("Songs", str(stats["songs"]))
    table.add_row("Cover Art", _format_bytes(stats["cover_bytes"]))
    table.add_row("Database", stats["database_path"])
    table.add_row("Identity Service", api_url)

    console.print(table)
