"""CLI commands for ezenv."""

import asyncio
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ezenv import __logo__, __version__
from ezenv.auth import TokenLifecycleManager, TokenRecord
from ezenv.auth.constants import ENVIRONMENTS
from ezenv.config.schema import Config
from ezenv.errors import (
    AccessDenied,
    ApiError,
    ExpiredGrant,
    EzEnvError,
    NetworkError,
    NotAuthenticated,
)
from ezenv.secrets import SecretsClient
from ezenv.sync import DiffFormat, apply_diff, compare_secrets, format_diff
from ezenv.sync import envfile
from ezenv.vault import CredentialVault

app = typer.Typer(
    name="ezenv",
    help=f"{__logo__} ezenv - environment secrets from your terminal",
    no_args_is_help=True,
)

console = Console()

_LOGIN_HINT = 'Run "ezenv auth login" to authenticate'


@dataclass
class _Context:
    config: Config
    vault: CredentialVault
    manager: TokenLifecycleManager
    secrets: SecretsClient


def _build_context(environment: Optional[str] = None) -> _Context:
    """Wire config, vault, token manager and secrets client together."""
    from ezenv.config.loader import load_config

    config = load_config()
    vault = CredentialVault()
    manager = TokenLifecycleManager(
        vault,
        config.get_api_url(),
        config.get_anon_key(),
        environment=environment or config.active_environment,
    )
    secrets = SecretsClient(manager, config.get_api_url(), config.get_anon_key())
    return _Context(config=config, vault=vault, manager=manager, secrets=secrets)


_open_vaults: list[CredentialVault] = []


def _context(environment: Optional[str] = None) -> _Context:
    """Build the command context; its vault is released when the CLI exits."""
    context = _build_context(environment)
    _open_vaults.append(context.vault)
    return context


def _release_vaults() -> None:
    while _open_vaults:
        _open_vaults.pop().close()


def _validate_environment(env: str) -> str:
    if env not in ENVIRONMENTS:
        console.print(f"[red]Invalid environment: {env}[/red]")
        console.print(f"[dim]Valid environments: {', '.join(ENVIRONMENTS)}[/dim]")
        raise typer.Exit(1)
    return env


def _fail(error: EzEnvError) -> typer.Exit:
    """Print a user-facing message for ``error`` and return the exit to raise."""
    if isinstance(error, ExpiredGrant):
        console.print(f"[red]Error: {error.message}[/red]")
        console.print('[dim]Please run "ezenv auth login" to try again[/dim]')
    elif isinstance(error, AccessDenied):
        console.print("[red]Error: Access was denied[/red]")
        console.print("[dim]Please ensure you have the correct permissions[/dim]")
    elif isinstance(error, NetworkError):
        console.print("[red]Error: Network connection failed[/red]")
        console.print("[dim]Please check your internet connection and try again[/dim]")
    elif isinstance(error, NotAuthenticated) or (isinstance(error, ApiError) and error.status == 401):
        console.print("[red]Authentication required[/red]")
        console.print(f"[cyan]{_LOGIN_HINT}[/cyan]")
    else:
        console.print(f"[red]Error: {error.message}[/red]")
    return typer.Exit(1)


def _warn_if_fallback(vault: CredentialVault) -> None:
    if vault.is_using_fallback():
        console.print("\n[yellow]⚠️  Using temporary memory storage[/yellow]")
        console.print("[yellow]Credentials will be lost when this process exits[/yellow]")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} ezenv v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
):
    """ezenv - environment secrets from your terminal."""
    ctx.call_on_close(_release_vaults)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================================
# Auth Commands
# ============================================================================


auth_app = typer.Typer(help="Manage authentication")
app.add_typer(auth_app, name="auth")


async def _device_login(manager: TokenLifecycleManager, open_browser: bool) -> Optional[TokenRecord]:
    with console.status("Initializing authentication..."):
        session = await manager.begin_device_grant()

    console.print("\n[cyan]🔐 Authentication required[/cyan]")
    console.print(f"\nPlease visit: [blue underline]{session.verification_uri}[/blue underline]")
    console.print(f"And enter code: [bold yellow]{session.user_code}[/bold yellow]")

    if open_browser:
        try:
            manager.open_browser(session.verification_uri_complete)
        except Exception:
            console.print("\n[dim]Couldn't open browser automatically. Please visit the URL above.[/dim]")

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers.
        handler_installed = False

    try:
        with console.status("Waiting for authentication..."):
            return await manager.poll_for_token(session.device_code, cancel_event=cancel)
    except asyncio.CancelledError:
        if not cancel.is_set():
            raise
        return None
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


@auth_app.command("login")
def auth_login(
    env: str = typer.Option("production", "--env", "-e", help="Environment to authenticate with"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Don't automatically open browser"),
    password: bool = typer.Option(False, "--password", help="Sign in with email and password"),
    email: Optional[str] = typer.Option(None, "--email", help="Email for password sign-in"),
):
    """Authenticate with ezenv."""
    _validate_environment(env)
    ctx = _context(env)
    console.print(f"[dim]Authenticating with {env} environment[/dim]")

    try:
        if password:
            user_email = email or typer.prompt("Email")
            secret = typer.prompt("Password", hide_input=True)
            with console.status("Signing in..."):
                record = asyncio.run(ctx.manager.authenticate_with_password(user_email, secret))
        else:
            record = asyncio.run(_device_login(ctx.manager, open_browser=not no_browser))
    except EzEnvError as e:
        console.print("[red]✗ Authentication failed[/red]")
        raise _fail(e)

    if record is None:
        console.print("[yellow]Authentication cancelled[/yellow]")
        raise typer.Exit(0)

    console.print("[green]✓[/green] Authentication successful!")
    console.print(f"[green]✓ Logged in successfully to {env} environment[/green]")
    if record.user_email:
        console.print(f"[dim]Signed in as {record.user_email}[/dim]")
    _warn_if_fallback(ctx.vault)


@auth_app.command("logout")
def auth_logout(
    env: str = typer.Option("production", "--env", "-e", help="Log out from specific environment"),
    all: bool = typer.Option(False, "--all", "-a", help="Log out from all environments"),
):
    """Log out from ezenv."""
    environments = list(ENVIRONMENTS) if all else [_validate_environment(env)]
    ctx = _context(environments[0])

    if all:
        console.print("[cyan]Logging out from all environments...[/cyan]\n")

    logged_out = 0
    try:
        for name in environments:
            ctx.manager.set_environment(name)
            if ctx.manager.logout():
                logged_out += 1
                console.print(f"[green]✓[/green] Logged out from {name}")
            elif all:
                console.print(f"[dim]- {name}: Not logged in[/dim]")
            else:
                console.print(f"[yellow]Not logged in to {name} environment[/yellow]")
    except EzEnvError as e:
        raise _fail(e)

    if all:
        if logged_out:
            console.print(f"\n[green]✓ Successfully logged out from {logged_out} environment(s)[/green]")
        else:
            console.print("\n[yellow]No active sessions found[/yellow]")


async def _refresh_status(manager: TokenLifecycleManager) -> bool:
    return await manager.refresh_token() is not None


@auth_app.command("status")
def auth_status(
    env: str = typer.Option("production", "--env", "-e", help="Check specific environment"),
    all: bool = typer.Option(False, "--all", "-a", help="Show status for all environments"),
):
    """Check authentication status."""
    if all:
        ctx = _context()
        table = Table(title="Authentication Status")
        table.add_column("Environment", style="cyan")
        table.add_column("Status")
        table.add_column("Expires")
        try:
            for name in ENVIRONMENTS:
                ctx.manager.set_environment(name)
                record = ctx.manager.get_stored_token_data()
                if record is None:
                    table.add_row(name, "[dim]✗ Not authenticated[/dim]", "")
                    continue
                state = "[yellow]⚠️  Expired[/yellow]" if ctx.manager.is_token_expired() else "[green]✓ Authenticated[/green]"
                table.add_row(name, state, record.expires_at.astimezone().strftime("%Y-%m-%d %H:%M:%S"))
        except EzEnvError as e:
            raise _fail(e)
        console.print(table)
        _warn_if_fallback(ctx.vault)
        return

    _validate_environment(env)
    ctx = _context(env)
    try:
        record = ctx.manager.get_stored_token_data()
        if record is None:
            console.print(f"[red]✗ Not authenticated in {env} environment[/red]")
            console.print(f"\n[dim]{_LOGIN_HINT}[/dim]")
            return

        if ctx.manager.is_token_expired():
            console.print(f"[yellow]⚠️  Authentication expired in {env} environment[/yellow]")
            if record.refresh_token:
                console.print("[dim]Attempting to refresh token...[/dim]")
                if asyncio.run(_refresh_status(ctx.manager)):
                    console.print("[green]✓ Token refreshed successfully[/green]")
                    return
                console.print("[red]✗ Failed to refresh token[/red]")
            console.print('\n[dim]Run "ezenv auth login" to re-authenticate[/dim]')
            return
    except EzEnvError as e:
        raise _fail(e)

    console.print(f"[green]✓ Authenticated in {env} environment[/green]")
    console.print("\n[dim]Authentication details:[/dim]")
    console.print(f"[dim]  Environment: {record.environment}[/dim]")
    console.print(f"[dim]  Expires at: {record.expires_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}[/dim]")
    if record.user_id:
        console.print(f"[dim]  User ID: {record.user_id}[/dim]")
    if record.user_email:
        console.print(f"[dim]  Email: {record.user_email}[/dim]")
    _warn_if_fallback(ctx.vault)


# ============================================================================
# Diff / Sync Commands
# ============================================================================


def _resolve_target(config: Config, project: Optional[str], environment: Optional[str]) -> tuple[str, str]:
    project_id = project or config.selected_project
    environment_id = environment or config.selected_environment
    if not project_id:
        console.print("[red]No project selected[/red]")
        console.print("[cyan]Pass --project or set selectedProject in .ezenvrc[/cyan]")
        raise typer.Exit(1)
    if not environment_id:
        console.print("[red]No environment selected[/red]")
        console.print("[cyan]Pass --environment or set selectedEnvironment in .ezenvrc[/cyan]")
        raise typer.Exit(1)
    return project_id, environment_id


def _read_local(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    return envfile.read_env_file(path)


@app.command()
def diff(
    format: DiffFormat = typer.Option(DiffFormat.INLINE, "--format", "-f", help="Output format"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
    file: Optional[Path] = typer.Option(None, "--file", help="Local env file (default: .env)"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID"),
    environment: Optional[str] = typer.Option(None, "--environment", help="Environment ID"),
):
    """Show differences between local and remote environment variables."""
    ctx = _context()
    project_id, environment_id = _resolve_target(ctx.config, project, environment)
    path = file or Path(ctx.config.env_file)

    try:
        with console.status(f"Fetching secrets from {environment_id}..."):
            remote = asyncio.run(ctx.secrets.fetch_secrets(project_id, environment_id))
        local = _read_local(path)
    except EzEnvError as e:
        console.print("[red]✗ Failed to compare environments[/red]")
        raise _fail(e)

    result = compare_secrets(local, remote)
    rendered = format_diff(result, format, colorize=not no_color and console.is_terminal)
    if rendered:
        typer.echo(rendered)
    else:
        console.print("[green]✓ No differences found[/green]")

    last_sync = envfile.get_last_sync_time(path)
    if last_sync:
        console.print(f"\n[dim]Last synced: {last_sync}[/dim]")


@app.command()
def sync(
    auto_approve: bool = typer.Option(False, "--auto-approve", help="Skip confirmation prompt"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Skip creating backup file"),
    file: Optional[Path] = typer.Option(None, "--file", help="Local env file (default: .env)"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID"),
    environment: Optional[str] = typer.Option(None, "--environment", help="Environment ID"),
):
    """Sync local environment variables with remote values."""
    ctx = _context()
    project_id, environment_id = _resolve_target(ctx.config, project, environment)
    path = file or Path(ctx.config.env_file)

    try:
        with console.status("Fetching secrets..."):
            remote = asyncio.run(ctx.secrets.fetch_secrets(project_id, environment_id))
        local = _read_local(path)
    except EzEnvError as e:
        console.print("[red]✗ Sync failed[/red]")
        raise _fail(e)

    result = compare_secrets(local, remote)
    if not result.has_changes():
        console.print("[green]✓ Your environment is already up to date[/green]")
        return

    console.print("\n[cyan]Changes to be applied:[/cyan]")
    typer.echo(format_diff(result, DiffFormat.INLINE, colorize=console.is_terminal))
    if result.local_only:
        console.print("\n[yellow]⚠ Local-only variables will be preserved[/yellow]")

    if not auto_approve and not typer.confirm("\nApply these changes?"):
        console.print("[dim]Sync cancelled[/dim]")
        return

    backup = None
    if not no_backup and path.exists():
        backup = envfile.backup_file(path)
        envfile.cleanup_old_backups(path)

    try:
        envfile.write_env_file(path, apply_diff(result, local))
    except EzEnvError as e:
        raise _fail(e)

    console.print("[green]✓ Environment synchronized[/green]")
    if backup:
        console.print(f"[dim]Backup saved to: {backup}[/dim]")


@app.command()
def pull(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path (default: .env)"),
    force: bool = typer.Option(False, "--force", help="Skip overwrite confirmation"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project ID"),
    environment: Optional[str] = typer.Option(None, "--environment", help="Environment ID"),
):
    """Download environment variables for the selected project and environment."""
    ctx = _context()
    project_id, environment_id = _resolve_target(ctx.config, project, environment)
    path = output or Path(ctx.config.env_file)

    console.print("[cyan]Current context:[/cyan]")
    console.print(f"[dim]  Project: {project_id}[/dim]")
    console.print(f"[dim]  Environment: {environment_id}[/dim]\n")

    backup = None
    if path.exists() and not force:
        if not typer.confirm(f"File {path} already exists. Overwrite?", default=False):
            console.print("[yellow]Pull cancelled.[/yellow]")
            return
        backup = envfile.backup_file(path)
        envfile.cleanup_old_backups(path)

    try:
        with console.status("Fetching secrets..."):
            secrets = asyncio.run(ctx.secrets.fetch_secrets(project_id, environment_id))
        envfile.write_env_file(path, secrets)
    except EzEnvError as e:
        console.print("[red]✗ Pull failed[/red]")
        raise _fail(e)

    count = len(secrets)
    console.print(f"[green]✓ Downloaded {count} environment variable{'' if count == 1 else 's'}[/green]")
    console.print(f"[dim]  File: {path}[/dim]")
    if backup:
        console.print(f"[dim]Backup saved to: {backup}[/dim]")


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """Show ezenv status."""
    from ezenv.config.loader import get_config_path

    config_path = get_config_path()
    ctx = _context()
    config = ctx.config

    console.print(f"{__logo__} ezenv Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    service = "hosted" if config.is_using_hosted() else "self-hosted"
    console.print(f"API: {config.get_api_url()} [dim]({service})[/dim]")
    console.print(f"Project: {config.selected_project or '[dim]not set[/dim]'}")
    console.print(f"Environment: {config.selected_environment or '[dim]not set[/dim]'}")

    authenticated = asyncio.run(ctx.manager.is_authenticated())
    env_name = ctx.manager.get_environment()
    auth_state = "[green]✓[/green]" if authenticated else "[red]✗[/red]"
    console.print(f"Auth ({env_name}): {auth_state}")


if __name__ == "__main__":
    app()
