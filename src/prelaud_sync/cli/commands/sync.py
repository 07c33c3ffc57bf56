"""Startup sync, reset and status commands."""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console

from ...core.session import PrelaudSession
from ...core.sync import SyncResult
from ...models import UserProfile
from ..display import display_store_status, display_sync_result
from .common import CliContext, load_local_profile, run_with_session

console = Console()
logger = logging.getLogger(__name__)


@click.command("sync")
@click.pass_obj
def sync_command(ctx_obj: CliContext) -> None:
    """Run the startup sync.

    Loads the local profile, verifies it against the identity service and
    merges remote albums into the local library. Works offline with the local
    state when the service cannot be reached.
    """

    async def work(session: PrelaudSession) -> Tuple[SyncResult, str]:
        result = await session.orchestrator.perform_startup_sync()
        return result, session.orchestrator.status_message

    console.print("[bold blue]🔄 Starting sync...[/bold blue]")
    try:
        result, message = run_with_session(ctx_obj, work)
    except Exception as e:
        logger.exception("Sync failed")
        console.print(f"[bold red]❌ Sync failed: {e}[/bold red]")
        raise click.Abort()

    display_sync_result(result, message)


@click.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_obj
def reset_command(ctx_obj: CliContext, yes: bool) -> None:
    """Delete the local profile and albums, then sync from scratch."""
    if not yes:
        click.confirm(
            "This deletes your local profile and all albums. Continue?", abort=True
        )

    async def work(session: PrelaudSession) -> Tuple[SyncResult, str]:
        result = await session.orchestrator.force_complete_reset()
        return result, session.orchestrator.status_message

    console.print("[bold yellow]🧹 Resetting local state...[/bold yellow]")
    try:
        result, message = run_with_session(ctx_obj, work)
    except Exception as e:
        logger.exception("Reset failed")
        console.print(f"[bold red]❌ Reset failed: {e}[/bold red]")
        raise click.Abort()

    display_sync_result(result, message)


@click.command("status")
@click.pass_obj
def status_command(ctx_obj: CliContext) -> None:
    """Show local store status without contacting the identity service."""

    async def work(
        session: PrelaudSession,
    ) -> Tuple[Dict[str, Any], Optional[UserProfile], str]:
        await load_local_profile(session)
        stats = await asyncio.to_thread(session.store.get_statistics)
        return stats, session.profile_manager.current_profile, session.config.api_url

    try:
        stats, profile, api_url = run_with_session(ctx_obj, work)
    except Exception as e:
        logger.exception("Status check failed")
        console.print(f"[bold red]❌ Status check failed: {e}[/bold red]")
        raise click.Abort()

    console.print("\n[bold blue]📊 Local Store Status[/bold blue]\n")
    display_store_status(stats, profile, api_url)
