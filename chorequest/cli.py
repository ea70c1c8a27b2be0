"""
Administrative command line for the ChoreQuest backend.

Usage:
    chorequest init
    chorequest upgrade
    chorequest generate-quests
    chorequest recalculate-levels --dry-run
"""

import asyncio
import sys
from typing import Any, Awaitable, Callable, Dict

import typer
from rich.console import Console
from rich.table import Table

from alembic.config import Config
from alembic import command
from chorequest.auth.tokens import create_access_token
from chorequest.core.database import init_database, close_database, get_async_session, DatabaseManager
from chorequest.core.logging import setup_logging
from chorequest.scheduler.task_scheduler import expire_overdue_quests, generate_recurring_quests
from chorequest.services.character_service import CharacterService

console = Console()
app = typer.Typer(help="ChoreQuest administration commands")


def _run(coro_factory: Callable[[], Awaitable[Any]]) -> Any:
    """Run an async job with the database initialized around it."""
    async def _wrapper():
        setup_logging()
        await init_database()
        try:
            return await coro_factory()
        finally:
            await close_database()

    return asyncio.run(_wrapper())


def _print_errors(result: Dict[str, Any]) -> None:
    for error in result["errors"]:
        console.print(f"[red]•[/red] {error}")


@app.command()
def init():
    """Create all tables directly from the models (development only)."""
    _run(DatabaseManager.create_tables)
    console.print("✅ Database initialized successfully!")


@app.command()
def upgrade(revision: str = "head"):
    """Apply migrations."""
    command.upgrade(Config("alembic.ini"), revision)
    console.print(f"✅ Database upgraded to: {revision}")


@app.command()
def downgrade(revision: str):
    """Downgrade database to specific revision."""
    command.downgrade(Config("alembic.ini"), revision)
    console.print(f"⬇️ Database downgraded to: {revision}")


@app.command()
def health():
    """Check database health."""
    if not _run(DatabaseManager.health_check):
        console.print("❌ Database health check failed!")
        sys.exit(1)
    console.print("✅ Database is healthy!")


@app.command("generate-quests")
def generate_quests():
    """Create this cycle's instances for every active recurring template."""
    result = _run(generate_recurring_quests)
    generated = result["generated"]
    console.print(
        f"Generated {generated['total']} quests "
        f"({generated['individual']} individual, {generated['family']} family)"
    )
    _print_errors(result)
    if not result["success"]:
        sys.exit(1)


@app.command("expire-quests")
def expire_quests():
    """Mark overdue quests MISSED or EXPIRED."""
    result = _run(expire_overdue_quests)
    expired = result["expired"]
    console.print(
        f"Expired {expired['total']} quests "
        f"({expired['individual']} individual, {expired['family']} family), "
        f"{result['streaksBroken']} streaks broken"
    )
    _print_errors(result)
    if not result["success"]:
        sys.exit(1)


@app.command("recalculate-levels")
def recalculate_levels(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report changes without writing them")
):
    """Backfill character levels from total XP."""
    async def _backfill():
        async with get_async_session() as session:
            return await CharacterService(session).backfill_levels(dry_run=dry_run)

    changes = _run(_backfill)
    if not changes:
        console.print("All character levels are up to date")
        return

    table = Table(title="Level backfill (dry run)" if dry_run else "Level backfill")
    table.add_column("Character", style="cyan")
    table.add_column("XP", justify="right")
    table.add_column("Level", style="green")
    for change in changes:
        table.add_row(
            change["name"],
            str(change["xp"]),
            f"{change['previousLevel']} → {change['newLevel']}",
        )
    console.print(table)


@app.command("issue-token")
def issue_token(user_id: str):
    """Print a signed bearer token for a user profile (local testing)."""
    typer.echo(create_access_token(user_id))


if __name__ == "__main__":
    app()
