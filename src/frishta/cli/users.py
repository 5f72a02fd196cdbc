"""User inspection CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import func, select

from frishta.database import get_session_context
from frishta.models import AuthSession, User
from frishta.services.store import normalize_email
from frishta.utils.dates import utcnow

console = Console()
app = typer.Typer(help="User inspection commands")


@app.command("list")
def list_users(
    pending: bool = typer.Option(False, "--pending", help="Only show unverified accounts"),
):
    """List all users."""

    async def _list():
        async with get_session_context() as session:
            stmt = select(User).order_by(User.email)
            if pending:
                stmt = stmt.where(User.is_email_verified == False)  # noqa: E712
            result = await session.execute(stmt)
            users = result.scalars().all()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Role")
            table.add_column("Verified", style="magenta")
            table.add_column("Created", style="dim")

            for user in users:
                verified = "[green]Yes[/green]" if user.is_email_verified else "No"
                created = user.created_at.strftime("%Y-%m-%d") if user.created_at else "-"
                table.add_row(user.id, user.email, user.role, verified, created)

            console.print(table)

    asyncio.run(_list())


@app.command("show")
def show_user(email: str = typer.Argument(..., help="User email")):
    """Show a user's profile and live session count."""

    async def _show():
        async with get_session_context() as session:
            result = await session.execute(select(User).where(User.email == normalize_email(email)))
            user = result.scalar_one_or_none()

            if not user:
                console.print(f"[red]Error:[/red] User {email} not found")
                raise typer.Exit(1)

            sessions = await session.execute(
                select(func.count())
                .select_from(AuthSession)
                .where(AuthSession.user_id == user.id, AuthSession.expires_at > utcnow())
            )

            table = Table(title=user.email, show_header=False)
            table.add_column("Field", style="cyan")
            table.add_column("Value")
            table.add_row("ID", user.id)
            table.add_row("Name", user.full_name)
            table.add_row("Role", user.role)
            table.add_row("Verified", "Yes" if user.is_email_verified else "No")
            table.add_row("Location", f"{user.state}, {user.country}")
            table.add_row("Categories", ", ".join(user.categories))
            table.add_row("Live sessions", str(sessions.scalar_one()))
            console.print(table)

    asyncio.run(_show())
