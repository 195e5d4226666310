"""Typer CLI for iwent."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from . import crud, database
from .archive import run_archive_cycle
from .classifier import classify, sort_by_created_at
from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .inbox import build_feed
from .scheduler import start_scheduler, stop_scheduler
from .seed import seed_fake_data
from .storage import init_db
from .utils import format_time_ago, utcnow

app = typer.Typer(help="iwent command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("init-db")
def init_database() -> None:
    """Create the database tables if they do not exist."""
    try:
        created = init_db()
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to initialize because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise
    if not created:
        typer.echo("Database already up to date.")
        return
    typer.echo("Created tables:")
    for name in created:
        typer.echo(f"- {name}")


@app.command("archive")
def archive() -> None:
    """Run the archive cycle manually."""
    init_db()
    stats = run_archive_cycle()
    typer.echo(f"Archive complete: {stats}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    config = uvicorn.Config(
        "iwent.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting iwent on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=2, help="Number of users to create"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    requests_per_event: int = typer.Option(
        settings.seed_requests_per_event,
        "--requests-per-event",
        min=0,
        help="Join requests and invites to attach to each event",
    ),
    business_percent: int = typer.Option(
        20,
        "--business-percent",
        min=0,
        max=100,
        help="Percentage of users with a business account (0-100)",
    ),
):
    """Populate the database with fake users, friendships and events."""
    stats = seed_fake_data(
        user_count=users,
        event_count=events,
        requests_per_event=requests_per_event,
        business_percentage=business_percent,
    )
    typer.echo(
        f"Seed complete: {stats['users']} users, {stats['friend_requests']} friend requests, "
        f"{stats['events']} events, {stats['event_requests']} event requests, "
        f"{stats['notifications']} notifications created."
    )


def _describe(item) -> str:
    if item.type == "friend":
        return f"friend request {item.id} with {item.user_id} [{item.status}]"
    kind = "invite" if item.is_invite else "join request"
    suffix = " (business notice)" if item.is_business_account and item.status == "accepted" else ""
    return (
        f"{kind} {item.id} for event {item.event_id} with {item.user_id} "
        f"[{item.status}]{suffix}"
    )


@app.command("inbox")
def inbox(
    user_id: str = typer.Argument(..., help="User whose inbox to show"),
    outgoing: bool = typer.Option(False, "--outgoing", help="Show outgoing requests"),
    explain: bool = typer.Option(
        False, "--explain", help="Also list excluded requests and why"
    ),
):
    """Print a user's incoming feed or outgoing requests."""
    init_db()
    now = utcnow()
    with database.get_session() as session:
        if crud.get_user_data(session, user_id) is None:
            typer.secho(f"Unknown user {user_id}", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        snapshot = crud.load_snapshot(session, user_id)
        views = classify(snapshot, user_id, now=now)

        view = views.outgoing if outgoing else views.incoming
        if outgoing:
            for item in sort_by_created_at(view.included):
                typer.echo(f"{format_time_ago(item.created_at, now=now):>8}  {_describe(item)}")
        else:
            for entry in build_feed(snapshot.notifications, view.included, now=now):
                if entry.kind == "notification":
                    marker = " " if entry.notification.is_read else "*"
                    typer.echo(
                        f"{entry.time_ago:>8} {marker}{entry.notification.type} "
                        f"{json.dumps(entry.notification.payload)}"
                    )
                else:
                    typer.echo(f"{entry.time_ago:>8}  {_describe(entry.request)}")

        if not view.included:
            typer.echo("Nothing to show.")
        if explain:
            for exclusion in view.excluded:
                typer.secho(
                    f"excluded {exclusion.kind} request {exclusion.candidate_id}: "
                    f"{exclusion.reason}",
                    fg=typer.colors.YELLOW,
                )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    daily_horizon_days: int | None = typer.Option(
        None, "--daily-horizon-days", min=1, help="Days of daily occurrences to expand"
    ),
    weekly_horizon_weeks: int | None = typer.Option(
        None, "--weekly-horizon-weeks", min=1, help="Weeks of weekly occurrences to expand"
    ),
    monthly_horizon_months: int | None = typer.Option(
        None,
        "--monthly-horizon-months",
        min=1,
        help="Months of monthly occurrences to expand",
    ),
    archive_interval_minutes: int | None = typer.Option(
        None, "--archive-interval-minutes", min=1, help="Minutes between archive runs"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle background scheduler (archive cycle)",
    ),
    business_auto_accept: bool | None = typer.Option(
        None,
        "--business-auto-accept/--no-business-auto-accept",
        help="Accept join requests to business events automatically",
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to iwent.toml (default: ./iwent.toml)"
    ),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=2, help="Default seed-data users"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_requests_per_event: int | None = typer.Option(
        None,
        "--seed-requests-per-event",
        min=0,
        help="Default seed-data requests per event",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "daily_horizon_days": daily_horizon_days,
        "weekly_horizon_weeks": weekly_horizon_weeks,
        "monthly_horizon_months": monthly_horizon_months,
        "archive_interval_minutes": archive_interval_minutes,
        "enable_scheduler": enable_scheduler,
        "business_auto_accept": business_auto_accept,
        "app_host": host,
        "app_port": port,
        "seed_users": seed_users,
        "seed_events": seed_events,
        "seed_requests_per_event": seed_requests_per_event,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
