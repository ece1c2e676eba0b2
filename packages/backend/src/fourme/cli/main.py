"""fourme CLI — run the server, manage the database, and poke the API.

Usage:
    fourme serve                         # Run the API with uvicorn
    fourme migrate                       # Apply database migrations
    fourme seed-demo                     # Create the demo/password account
    fourme login demo                    # Print an access token
    fourme projects                      # List your projects
    fourme boards 3                      # Boards in project 3
    fourme tasks 7                       # Tasks on board 7
    fourme history 42                    # Audit trail of task 42

API commands talk to FOURME_API_URL with the token in FOURME_TOKEN.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from fourme import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8080"


def _api_url() -> str:
    return os.environ.get("FOURME_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the fourme backend."""
    headers = {}
    token = token or os.environ.get("FOURME_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Falls back to a worker thread when a loop is already running
    (e.g. CliRunner invoked from an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _check(r: httpx.Response):
    """Return the JSON body, or print the API's error and exit 1."""
    if r.is_success:
        return r.json()
    try:
        detail = r.json().get("detail", r.text)
    except ValueError:
        detail = r.text
    if not isinstance(detail, str):
        detail = json.dumps(detail)
    click.secho(f"Error {r.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(
            str(row.get(k) if row.get(k) is not None else "-")[:w].ljust(w)
            for _, k, w in columns
        )
        click.echo(line)


def _priority_color(priority: str) -> str:
    return {"high": "red", "medium": "yellow", "low": "green"}.get(priority, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="fourme")
def main():
    """fourme — multi-tenant task boards."""


# ---------------------------------------------------------------------------
# Server and database
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: FOURME_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: FOURME_PORT)")
@click.option("--reload", is_flag=True, help="Restart on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    from fourme.config import settings

    uvicorn.run(
        "fourme.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
@click.option("--database-url", envvar="FOURME_DATABASE_URL", help="Overrides FOURME_DATABASE_URL")
@click.option("--revision", default="head", show_default=True)
def migrate(database_url: Optional[str], revision: str):
    """Apply database migrations."""
    from fourme.db.migrate import upgrade_database

    upgrade_database(database_url, revision)
    click.secho(f"Database migrated to {revision}", fg="green")


@main.command("seed-demo")
@click.option("--database-url", envvar="FOURME_DATABASE_URL", help="Overrides FOURME_DATABASE_URL")
def seed_demo(database_url: Optional[str]):
    """Create the demo account (username demo, password password)."""
    user_id, created = _run(_seed_demo_impl(database_url))
    if created:
        click.secho("Demo user created", fg="green")
    else:
        click.echo("Demo user already exists")
    click.echo("  Username: demo")
    click.echo("  Password: password")
    click.echo(f"  User ID:  {user_id}")


async def _seed_demo_impl(database_url: Optional[str]) -> tuple[int, bool]:
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from fourme.config import settings
    from fourme.db.engine import build_engine
    from fourme.services.user_service import UserService

    engine = build_engine(database_url or settings.database_url)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with factory() as db:
            user, created = await UserService(db).ensure_demo_user()
            return user.id, created
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# API commands
# ---------------------------------------------------------------------------


@main.command()
@click.argument("username")
@click.password_option("--password", "-p", confirmation_prompt=False)
def login(username: str, password: str):
    """Log in and print an access token (export it as FOURME_TOKEN)."""
    _run(_login_impl(username, password))


async def _login_impl(username: str, password: str):
    async with _client() as c:
        r = await c.post("/api/auth/login", json={"username": username, "password": password})
        data = _check(r)
    click.echo(data["token"])


@main.command()
def projects():
    """List your projects."""
    _run(_projects_impl())


async def _projects_impl():
    async with _client() as c:
        rows = _check(await c.get("/api/projects"))

    if not rows:
        click.echo("No projects found.")
        return
    _print_table(rows, [
        ("ID", "id", 6),
        ("Name", "name", 40),
        ("Color", "color", 8),
        ("Description", "description", 40),
    ])


@main.command()
@click.argument("project_id", type=int)
def boards(project_id: int):
    """List the boards of a project."""
    _run(_boards_impl(project_id))


async def _boards_impl(project_id: int):
    async with _client() as c:
        rows = _check(await c.get(f"/api/projects/{project_id}/boards"))

    if not rows:
        click.echo("No boards found.")
        return
    _print_table(rows, [
        ("ID", "id", 6),
        ("Pos", "position", 4),
        ("Name", "name", 40),
    ])


@main.command()
@click.argument("board_id", type=int)
def tasks(board_id: int):
    """List the tasks on a board."""
    _run(_tasks_impl(board_id))


async def _tasks_impl(board_id: int):
    async with _client() as c:
        rows = _check(await c.get(f"/api/boards/{board_id}/tasks"))

    if not rows:
        click.echo("No tasks found.")
        return

    click.secho(f"Tasks ({len(rows)}):", bold=True)
    click.echo()
    for t in rows:
        labels = ", ".join(label["name"] for label in t.get("labels", []))
        click.echo(f"#{t['id']:<5} {t['status']:<12} ", nl=False)
        click.secho(f"{t['priority']:<7}", fg=_priority_color(t["priority"]), nl=False)
        click.echo(f" {t['title'][:60]}" + (f"  [{labels}]" if labels else ""))


@main.command()
@click.argument("task_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def history(task_id: int, as_json: bool):
    """Show the audit trail of a task, most recent first."""
    _run(_history_impl(task_id, as_json))


async def _history_impl(task_id: int, as_json: bool):
    async with _client() as c:
        rows = _check(await c.get(f"/api/tasks/{task_id}/history"))

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    for entry in rows:
        who = (entry.get("user") or {}).get("username", entry["user_id"])
        click.echo(
            f"{entry['created_at']}  {entry['action']:<8} by {who}: "
            f"{json.dumps(entry['changes'], sort_keys=True)}"
        )


if __name__ == "__main__":
    main()
