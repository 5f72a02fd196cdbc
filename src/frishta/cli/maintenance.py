"""Maintenance CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from frishta.config import SecurityConfig, settings
from frishta.database import get_session_context
from frishta.services.otp import OtpManager
from frishta.services.sessions import SessionManager

console = Console()
app = typer.Typer(help="Maintenance and cleanup commands")


@app.command("cleanup")
def cleanup(
    dry_run: bool = typer.Option(True, "--dry-run/--execute", help="Only report, don't delete"),
):
    """Remove expired OTP codes and sessions.

    Expired records are already ignored by verification and authentication;
    this only reclaims space. Runs in dry-run mode unless --execute is given.
    """

    async def _cleanup():
        config = SecurityConfig.from_settings(settings)
        otp = OtpManager(config)
        sessions = SessionManager(config)

        async with get_session_context() as session:
            otp_count = await otp.purge_expired(session, dry_run=dry_run)
            session_count = await sessions.purge_expired(session, dry_run=dry_run)
            if not dry_run:
                await session.commit()

        table = Table(title="Expired Record Cleanup")
        table.add_column("Record", style="cyan")
        table.add_column("Expired" if dry_run else "Deleted", justify="right")
        table.add_row("OTP codes", str(otp_count))
        table.add_row("Sessions", str(session_count))
        console.print(table)

        if dry_run:
            console.print("[dim]Dry run; re-run with --execute to delete[/dim]")

    asyncio.run(_cleanup())
