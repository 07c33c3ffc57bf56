"""Album library commands."""

import logging
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console

from ...core.session import PrelaudSession
from ...exceptions import PrelaudError
from ...models import Album, SharePermissions, utc_now
from ..display import display_albums
from .common import CliContext, load_local_profile, run_with_session

console = Console()
logger = logging.getLogger(__name__)


@click.group("albums")
def albums() -> None:
    """List, share and import albums."""
    pass


@albums.command("list")
@click.option(
    "--shared-with-me", is_flag=True, help="Only albums other users shared with you"
)
@click.pass_obj
def list_albums(ctx_obj: CliContext, shared_with_me: bool) -> None:
    """List albums in the local library, newest first."""

    async def work(session: PrelaudSession) -> Tuple[List[Album], Optional[str]]:
        await load_local_profile(session)
        await session.library.reload()
        items = (
            session.library.shared_with_me()
            if shared_with_me
            else session.library.albums
        )
        return items, session.codec.current_user_id

    try:
        items, current_user_id = run_with_session(ctx_obj, work)
    except PrelaudError as e:
        console.print(f"[bold red]❌ Cannot read albums: {e}[/bold red]")
        raise click.Abort()

    display_albums(items, current_user_id)


@albums.command("share")
@click.argument("album_id")
@click.option("--allow-download", is_flag=True, help="Let the recipient download")
@click.option("--allow-reshare", is_flag=True, help="Let the recipient share again")
@click.option("--expires-days", type=int, help="Expire the share after N days")
@click.pass_obj
def share_album(
    ctx_obj: CliContext,
    album_id: str,
    allow_download: bool,
    allow_reshare: bool,
    expires_days: Optional[int],
) -> None:
    """Share the album with ALBUM_ID and print its share token."""
    permissions = SharePermissions(
        can_download=allow_download,
        can_reshare=allow_reshare,
        expires_at=utc_now() + timedelta(days=expires_days) if expires_days else None,
    )

    async def work(session: PrelaudSession) -> Album:
        await load_local_profile(session)
        await session.library.reload()
        return await session.library.share_album(album_id, permissions)

    try:
        shared = run_with_session(ctx_obj, work)
    except KeyError:
        console.print(f"[red]✗ Album not found: {album_id}[/red]")
        raise click.Abort()
    except PrelaudError as e:
        console.print(f"[bold red]❌ Sharing failed: {e}[/bold red]")
        raise click.Abort()

    console.print(f"[bold green]✅ Shared '{shared.title}'[/bold green]")
    console.print(f"Share ID: {shared.share_id}")


@albums.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def import_album(ctx_obj: CliContext, path: Path) -> None:
    """Import a shared album from its JSON wire form at PATH."""
    payload = path.read_text(encoding="utf-8")

    async def work(session: PrelaudSession) -> Album:
        await load_local_profile(session)
        await session.library.reload()
        album = session.codec.decode(session.codec.from_json(payload))
        return await session.library.add_album(album)

    try:
        imported = run_with_session(ctx_obj, work)
    except PrelaudError as e:
        console.print(f"[bold red]❌ Import failed: {e}[/bold red]")
        raise click.Abort()

    sender = f" from @{imported.owner_username}" if imported.owner_username else ""
    console.print(f"[bold green]✅ Imported '{imported.title}'{sender}[/bold green]")
