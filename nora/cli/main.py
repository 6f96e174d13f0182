"""
Typer CLI for the NORA revision engine.

Commands:
    nora db init                                   - Initialize database tables
    nora revision show USER_ID DOCUMENT_ID         - Show the active revision session
    nora revision completions USER_ID DOCUMENT_ID  - Count completed revisions
    nora revision stop USER_ID DOCUMENT_ID         - Cancel a revision session
    nora revision purge-expired                    - Delete expired sessions
    nora version                                   - Show version information

Usage:
    nora --help
    nora revision show 42 7
"""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from nora import __version__
from nora.revision.errors import RevisionError

app = typer.Typer(
    help="NORA revision engine: active-recall sessions over study documents",
    no_args_is_help=True,
)

console = Console()


def _build_service():
    """Create the revision service lazily so --help works without a database."""
    from nora.revision.service import RevisionService

    return RevisionService()


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from sqlalchemy.exc import SQLAlchemyError

    from nora.db.database import init_db

    logger.info("Initializing database tables...")
    try:
        init_db()
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        rprint(f"[red]✗[/red] Database initialization failed: {e}")
        raise typer.Exit(code=1) from e
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# REVISION COMMANDS
# ========================================

revision_app = typer.Typer(help="Inspect and manage revision sessions")
app.add_typer(revision_app, name="revision")


@revision_app.command("show")
def revision_show(
    user_id: int = typer.Argument(..., help="Owner of the session"),
    document_id: int = typer.Argument(..., help="Study document id"),
) -> None:
    """Show the active revision session (expired sessions are cleaned up)."""
    service = _build_service()
    lookup = service.get_active_session(user_id, document_id)

    if lookup.session is None:
        if lookup.expired:
            rprint("[yellow]⚠[/yellow] Session expired after inactivity and was removed")
        else:
            rprint("[dim]No active revision session[/dim]")
        return

    session = lookup.session
    table = Table(title=f"Revision Session (user {user_id}, document {document_id})")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Phase", session.phase.value)
    table.add_row("Iteration", f"{session.current_iteration}/{service.settings.revision_max_iterations}")
    table.add_row("Requirement level", session.requirement_level.value)
    if session.custom_settings:
        thresholds = session.custom_settings.to_thresholds()
        table.add_row(
            "Custom thresholds",
            f"definitions {thresholds.definitions}% / concepts {thresholds.concepts}% / data {thresholds.data}%",
        )
    table.add_row("Phase started", session.phase_started_at.isoformat())
    table.add_row("Study time left", _seconds(session.study_time_remaining))
    table.add_row("Pause time left", _seconds(session.pause_time_remaining))
    table.add_row("Loop time left", _seconds(session.loop_time_remaining))
    table.add_row("Recall", "stored" if session.user_recall else "none")
    table.add_row("Understood", str(len(session.understood_concepts)))
    table.add_row("Missing", str(len(session.missing_concepts)))
    table.add_row(
        "Last activity",
        session.last_activity_at.isoformat() if session.last_activity_at else "-",
    )

    console.print(table)


@revision_app.command("completions")
def revision_completions(
    user_id: int = typer.Argument(..., help="Owner of the document"),
    document_id: int = typer.Argument(..., help="Study document id"),
) -> None:
    """Show how many times the document has been revised to completion."""
    count = _build_service().get_completion_count(user_id, document_id)
    rprint(f"[bold]{count}[/bold] completed revision(s) for document {document_id}")


@revision_app.command("stop")
def revision_stop(
    user_id: int = typer.Argument(..., help="Owner of the session"),
    document_id: int = typer.Argument(..., help="Study document id"),
) -> None:
    """Cancel a revision session without recording a completion."""
    try:
        _build_service().stop_session(user_id, document_id)
    except RevisionError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e
    rprint("[green]✓[/green] Revision session stopped")


@revision_app.command("purge-expired")
def revision_purge_expired() -> None:
    """Delete every session idle for longer than the expiry window."""
    service = _build_service()
    removed = service.purge_expired_sessions()
    rprint(
        f"[green]✓[/green] Removed {removed} expired session(s) "
        f"(idle > {service.settings.revision_expiry_seconds}s)"
    )


def _seconds(value: int | None) -> str:
    if value is None:
        return "-"
    minutes, seconds = divmod(value, 60)
    return f"{minutes}:{seconds:02d}"


# ========================================
# INFO
# ========================================


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint(f"[bold]nora-revision[/bold] v{__version__}")
    rprint("  Active-recall revision sessions")


def configure_logging() -> None:
    """Route loguru output according to settings."""
    settings = get_settings()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format="<level>{message}</level>")
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


def main() -> None:
    """Entry point for the CLI."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
