"""graph-keeper CLI - bind accounts and run renewal cycles."""

import asyncio
import logging

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import settings
from .errors import KeeperError
from .messages import describe_bind, describe_error, describe_outcome
from .oauth.client import app_registration_url
from .runtime import KeeperRuntime

app = typer.Typer(
    name="graph-keeper",
    help="Bind Microsoft Graph accounts and keep them active",
    no_args_is_help=True,
)
console = Console()


def get_runtime() -> KeeperRuntime:
    return KeeperRuntime(settings)


def _app_credentials(client_id: str | None, client_secret: str | None) -> tuple[str, str]:
    if client_id and client_secret:
        return client_id, client_secret
    if not client_id and not client_secret and settings.default_app_configured:
        return settings.client_id, settings.client_secret
    console.print(
        "[red]No OAuth application given. Pass both --client-id and --client-secret "
        "or set KEEPER_CLIENT_ID and KEEPER_CLIENT_SECRET.[/red]"
    )
    raise typer.Exit(1)


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("init-db")
def init_db():
    """Create the binding table."""

    async def _init():
        async with get_runtime():
            pass

    asyncio.run(_init())
    console.print("[green]Database ready.[/green]")


@app.command("auth-url")
def auth_url(
    client_id: str = typer.Option(None, "--client-id", help="OAuth application ID"),
):
    """Print the consent URL to open in a browser."""
    client_id = client_id or settings.client_id
    if not client_id:
        console.print("[red]Pass --client-id or set KEEPER_CLIENT_ID.[/red]")
        raise typer.Exit(1)

    async def _url():
        async with get_runtime() as runtime:
            return runtime.exchanger.authorization_url(client_id)

    url = asyncio.run(_url())
    console.print(
        Panel(
            "Open the URL below and consent. Then copy the full redirect URL and run:\n"
            "graph-keeper bind <chat-id> \"<redirect-url> <alias>\"",
            title="Authorize",
        )
    )
    console.print(url, soft_wrap=True)


@app.command("register-url")
def register_url():
    """Print the app-registration quick-start link."""
    console.print(app_registration_url(settings.redirect_uri), soft_wrap=True)


@app.command("bind")
def bind(
    chat_id: int = typer.Argument(..., help="Chat identity that owns the binding"),
    text: str = typer.Argument(..., help="'<redirect-url> <alias>'"),
    client_id: str = typer.Option(None, "--client-id", help="OAuth application ID"),
    client_secret: str = typer.Option(None, "--client-secret", help="OAuth application secret"),
):
    """Bind the account behind a consent redirect URL."""
    client_id, client_secret = _app_credentials(client_id, client_secret)

    async def _bind():
        async with get_runtime() as runtime:
            return await runtime.binding.bind(chat_id, text, client_id, client_secret)

    try:
        result = asyncio.run(_bind())
    except KeeperError as e:
        console.print(f"[red]{describe_error(e)}[/red]")
        if e.details:
            console.print(f"[dim]Details: {escape(str(e.details))}[/dim]")
        raise typer.Exit(1)

    console.print(Panel(describe_bind(result), title=f"Bound '{result.binding.alias}'"))


@app.command("list")
def list_bindings(
    chat_id: int = typer.Option(None, "--chat-id", help="Only this chat's bindings"),
):
    """List stored bindings."""

    async def _list():
        async with get_runtime() as runtime:
            if chat_id is None:
                return await runtime.store.query_all()
            return await runtime.store.query_by_principal(chat_id)

    bindings = asyncio.run(_list())

    table = Table(title=f"Bindings ({len(bindings)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Chat")
    table.add_column("Alias", style="green", no_wrap=True)
    table.add_column("Subject")
    table.add_column("Client ID")
    table.add_column("Last success")

    for b in bindings:
        table.add_row(str(b.id), str(b.chat_id), b.alias, b.subject_id, b.client_id, str(b.last_success_at))

    console.print(table)


@app.command("unbind")
def unbind(
    chat_id: int = typer.Argument(..., help="Chat identity that owns the binding"),
    binding_id: int = typer.Argument(..., help="Binding ID from 'graph-keeper list'"),
):
    """Delete a binding."""

    async def _unbind():
        async with get_runtime() as runtime:
            return await runtime.store.delete(chat_id, binding_id)

    if not asyncio.run(_unbind()):
        console.print(f"[yellow]No binding {binding_id} for chat {chat_id}.[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Binding {binding_id} removed.[/green]")


@app.command("renew")
def renew():
    """Run one renewal cycle over every binding."""

    async def _renew():
        async with get_runtime() as runtime:
            return await runtime.scheduler.run_cycle()

    report = asyncio.run(_renew())

    table = Table(title="Renewal cycle")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Result")

    for outcome in report.outcomes:
        color = "green" if outcome.ok else "red"
        table.add_row(str(outcome.binding_id), f"[{color}]{escape(describe_outcome(outcome))}[/{color}]")

    console.print(table)
    console.print(f"{len(report.succeeded)} ok, {len(report.failed)} failed")


@app.command("worker")
def worker():
    """Run renewal cycles every KEEPER_RENEWAL_INTERVAL_SECONDS until interrupted."""
    if not settings.renewal_worker_enabled:
        console.print("[yellow]Renewal worker is disabled (KEEPER_RENEWAL_WORKER_ENABLED=false).[/yellow]")
        return

    async def _run():
        async with get_runtime() as runtime:
            await runtime.worker().run_forever()

    console.print(f"[dim]Renewing every {settings.renewal_interval_seconds}s. Ctrl+C to stop.[/dim]")
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")


if __name__ == "__main__":
    app()
