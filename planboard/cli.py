"""Planboard CLI -- Typer app for serving the API and seeding accounts."""

from __future__ import annotations

import traceback
from typing import Optional

import typer
from rich.console import Console

from planboard import __version__

console = Console(stderr=True)

app = typer.Typer(
    name="planboard",
    help=(
        "Planboard -- projects, tasks and calendars behind a token-authenticated API.\n\n"
        "Configuration is read from PLANBOARD_* environment variables."
    ),
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog=(
        "Quick start:\n"
        "  planboard create-user --name Admin --email admin@example.com --admin --store data.json\n"
        "  PLANBOARD_STORAGE=json PLANBOARD_STORE_PATH=data.json planboard serve\n"
        "  planboard config                      Show effective settings\n\n"
        f"Planboard v{__version__}"
    ),
)


def _version_callback(value: bool) -> None:
    if value:
        from rich.panel import Panel
        c = Console()
        c.print(Panel(f"[bold]Planboard[/bold] v{__version__}", border_style="blue"))
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """Planboard -- project and task planning API."""
    pass


# ── serve ────────────────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option(
        "127.0.0.1", "--host", help="Host to bind to (default: 127.0.0.1)."
    ),
    port: int = typer.Option(
        8080, "--port", "-p", help="Port to listen on."
    ),
    allow_nonlocal: bool = typer.Option(
        False, "--allow-nonlocal",
        help="Allow binding to non-localhost addresses (use with caution).",
    ),
    reload: bool = typer.Option(
        False, "--reload", help="Enable auto-reload for development.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Start the Planboard HTTP API server.

    Binds to 127.0.0.1 by default. Use --allow-nonlocal to override.

    Example:
      planboard serve
      planboard serve --port 9000 --host 0.0.0.0 --allow-nonlocal
    """
    _run_safe(lambda: _serve_impl(host, port, allow_nonlocal, reload), verbose=verbose)


def _serve_impl(host: str, port: int, allow_nonlocal: bool, reload: bool) -> None:
    from planboard.core.api.server import start_server
    from planboard.core.api.settings import load_settings

    settings = load_settings(bind=host, port=port, allow_nonlocal=allow_nonlocal)

    console.print("[bold]Planboard API Server[/bold]")
    console.print(f"  Mode:        {settings.env}")
    console.print(f"  Bind:        {settings.bind}:{settings.port}")
    console.print(f"  Storage:     {settings.storage} {settings.store_path}".rstrip())
    console.print(f"  Write policy:{settings.project_write_policy:>8}")
    console.print()

    start_server(
        host=host, port=port,
        allow_nonlocal=allow_nonlocal,
        reload=reload,
        settings=settings,
    )


# ── config ───────────────────────────────────────────────────────

@app.command()
def config() -> None:
    """Show the effective settings (secrets masked) and whether they are valid."""
    from rich.table import Table

    from planboard.core.api.settings import load_settings

    settings = load_settings()
    table = Table(show_header=False, border_style="blue", title="Planboard settings", title_style="bold")
    table.add_column("Key", style="dim")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, str(value))

    c = Console()
    c.print(table)

    try:
        settings.validate()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    c.print("[green]Configuration OK[/green]")


# ── create-user ──────────────────────────────────────────────────

@app.command(name="create-user")
def create_user(
    name: str = typer.Option(..., "--name", help="Display name."),
    email: str = typer.Option(..., "--email", help="Login email (unique)."),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, confirmation_prompt=True,
        help="Password (prompted when omitted).",
    ),
    username: Optional[str] = typer.Option(None, "--username", help="Optional unique username."),
    admin: bool = typer.Option(False, "--admin", help="Grant the admin role flag."),
    store: str = typer.Option(..., "--store", help="Path to the JSON store file."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Seed a user into a JSON store. The only way to create an admin.

    Example:
      planboard create-user --name "Ada Admin" --email ada@example.com --admin --store data.json
    """
    _run_safe(
        lambda: _create_user_impl(name, email, password, username, admin, store),
        verbose=verbose,
    )


def _create_user_impl(
    name: str, email: str, password: str, username: Optional[str], admin: bool, store: str,
) -> None:
    from planboard.core.api.settings import load_settings
    from planboard.core.schemas import UserCreate
    from planboard.core.security.passwords import hash_password
    from planboard.core.store.repositories import UserRepository
    from planboard.core.store.storage import JsonFileStorage

    settings = load_settings()
    data = UserCreate(name=name, email=email, password=password, username=username)
    users = UserRepository(JsonFileStorage(store))
    user = users.create(
        data,
        password_hash=hash_password(data.password, settings.password_rounds),
        is_admin=admin,
    )

    c = Console()
    role = "admin" if user.is_admin else "user"
    c.print(f"[green]Created {role}[/green] id={user.id} email={user.email} in {store}")


# ── version ──────────────────────────────────────────────────────

@app.command()
def version() -> None:
    """Show Planboard version, Python version, and platform."""
    import platform

    from rich.table import Table

    table = Table(show_header=False, border_style="blue", title="Planboard", title_style="bold")
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", f"{platform.system()} {platform.machine()}")

    c = Console()
    c.print(table)


def _run_safe(fn, verbose: bool = False) -> None:
    """Run a function with clean error handling."""
    try:
        fn()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130)
    except Exception as e:
        console.print(f"\n[red bold]Error:[/red bold] {e}")
        if verbose:
            console.print(traceback.format_exc())
        else:
            console.print("[dim]Run with --verbose for full traceback.[/dim]")
        raise SystemExit(1)
