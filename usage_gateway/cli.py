"""Usage gateway CLI: Typer app with all subcommands."""

from __future__ import annotations

import asyncio
import json
import traceback
from typing import Any, List, Optional

import httpx
import typer
from rich.console import Console

from usage_gateway import __version__

console = Console(stderr=True)

app = typer.Typer(
    name="usage-gateway",
    help=(
        "Usage gateway: account, keyset and feature-usage lookups over the admin API.\n\n"
        "Exit codes: 0=OK, 1=ERROR."
    ),
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog=(
        "Common commands:\n"
        "  usage-gateway serve --port 5050\n"
        "  usage-gateway functions --keyid 123 --token $TOKEN\n"
        "  usage-gateway events-actions --subscribe-key sub-c-... --token $TOKEN\n"
        "  usage-gateway inspect --email me@example.com\n"
        "  usage-gateway config\n"
    ),
)


def _version_callback(value: bool) -> None:
    if value:
        from rich.panel import Panel
        c = Console()
        c.print(Panel(f"[bold]Usage Gateway[/bold] v{__version__}", border_style="blue"))
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """Usage gateway: admin API aggregation service."""
    pass


def _upstream_transport(ctx: typer.Context) -> Optional[httpx.AsyncBaseTransport]:
    """Transport handed in by an embedding caller as ``obj={"transport": ...}``.

    None means the real network.
    """
    obj = ctx.obj if isinstance(ctx.obj, dict) else {}
    return obj.get("transport")


def _client(
    settings,
    token: Optional[str],
    accountid: Optional[Any] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    from admin_sdk.async_client import AsyncAdminClient

    return AsyncAdminClient(
        base_url=settings.upstream_url,
        token=token,
        delegated_account_id=accountid or None,
        timeout=settings.upstream_timeout,
        transport=transport,
    )


def _emit_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


# ── serve ──────────────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option(
        "127.0.0.1", "--host", help="Host to bind to (default: 127.0.0.1)."
    ),
    port: int = typer.Option(
        5050, "--port", "-p", help="Port to listen on."
    ),
    allow_nonlocal: bool = typer.Option(
        False, "--allow-nonlocal",
        help="Allow binding to non-localhost addresses (use with caution).",
    ),
    reload: bool = typer.Option(
        False, "--reload", help="Enable auto-reload for development.",
    ),
    log_format: Optional[str] = typer.Option(
        None, "--log-format", help="Request log format: text or json.",
    ),
    config: Optional[str] = typer.Option(
        None, "--config", "-c", help="YAML settings file.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Start the HTTP gateway.

    Binds to 127.0.0.1 by default. Use --allow-nonlocal to override.

    Example:
      usage-gateway serve
      usage-gateway serve --port 8080 --log-format json --allow-nonlocal --host 0.0.0.0
    """
    _run_safe(
        lambda: _serve_impl(host, port, allow_nonlocal, reload, log_format, config),
        verbose=verbose,
    )


def _serve_impl(
    host: str, port: int, allow_nonlocal: bool, reload: bool,
    log_format: Optional[str], config: Optional[str],
) -> None:
    from usage_gateway.core.api.server import start_server
    from usage_gateway.core.api.settings import load_settings

    settings = load_settings(
        config,
        bind=host,
        port=port,
        allow_nonlocal=allow_nonlocal or None,
        log_format=log_format,
    )
    console.print(
        f"[bold]Usage gateway[/bold] v{__version__} on http://{host}:{port} "
        f"→ {settings.upstream_url}"
    )
    start_server(
        host=host, port=port, allow_nonlocal=settings.allow_nonlocal,
        reload=reload, settings=settings,
    )


# ── functions ────────────────────────────────────────────────────

@app.command()
def functions(
    ctx: typer.Context,
    keyid: int = typer.Option(..., "--keyid", "-k", help="Keyset id."),
    token: str = typer.Option(
        ..., "--token", "-t", envvar="USAGE_GATEWAY_TOKEN", help="Admin session token.",
    ),
    accountid: Optional[str] = typer.Option(
        None, "--accountid", "-a", help="Act on behalf of this account.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """List function modules running on a keyset.

    Example:
      usage-gateway functions --keyid 123456 --token $TOKEN
    """
    _run_safe(
        lambda: _functions_impl(keyid, token, accountid, json_output, _upstream_transport(ctx)),
        verbose=verbose,
    )


def _functions_impl(
    keyid: int, token: str, accountid: Optional[str], json_output: bool,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    from usage_gateway.core.api.settings import load_settings
    from usage_gateway.core.functions import aggregate_modules

    settings = load_settings()

    async def run():
        async with _client(settings, token, accountid, transport=transport) as client:
            return await aggregate_modules(
                client,
                keyid,
                package_limit=settings.packages_limit,
                deployment_limit=settings.deployments_limit,
            )

    modules = asyncio.run(run())

    if json_output:
        _emit_json({"modules": [m.model_dump() for m in modules]})
        return

    if not modules:
        Console().print(f"[dim]No running function modules on keyset {keyid}.[/dim]")
        return

    from rich.table import Table

    table = Table(title=f"Functions: keyset {keyid}")
    table.add_column("Package")
    table.add_column("Revision")
    table.add_column("Deployment")
    table.add_column("Function")
    table.add_column("Type")
    table.add_column("Running", justify="center")
    for m in modules:
        for f in m.functions or [None]:
            table.add_row(
                m.package_name,
                m.revision_name,
                str(m.deployment_id),
                f.name if f else "-",
                f.type if f else "-",
                ("[green]yes[/green]" if f.enabled else "[red]no[/red]") if f else "-",
            )
    Console().print(table)


# ── events-actions ───────────────────────────────────────────────

@app.command(name="events-actions")
def events_actions(
    ctx: typer.Context,
    subscribe_key: str = typer.Option(..., "--subscribe-key", "-s", help="Subscribe key."),
    token: str = typer.Option(
        ..., "--token", "-t", envvar="USAGE_GATEWAY_TOKEN", help="Admin session token.",
    ),
    accountid: Optional[str] = typer.Option(
        None, "--accountid", "-a", help="Act on behalf of this account.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """List event listeners and their deduplicated actions.

    Example:
      usage-gateway events-actions --subscribe-key sub-c-... --token $TOKEN
    """
    _run_safe(
        lambda: _events_actions_impl(
            subscribe_key, token, accountid, json_output, _upstream_transport(ctx)
        ),
        verbose=verbose,
    )


def _events_actions_impl(
    subscribe_key: str, token: str, accountid: Optional[str], json_output: bool,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    from usage_gateway.core.api.settings import load_settings
    from usage_gateway.core.events_actions import normalize_events_actions

    settings = load_settings()

    async def run():
        async with _client(settings, token, accountid, transport=transport) as client:
            return await normalize_events_actions(
                client, subscribe_key, limit=settings.listeners_limit
            )

    result = asyncio.run(run())

    if json_output:
        _emit_json(result.model_dump())
        return

    from rich.table import Table

    out = Console()
    for title, rows, kind_attr in (
        ("Listeners", result.listeners, "event"),
        ("Actions", result.actions, "type"),
    ):
        table = Table(title=f"{title} ({len(rows)})")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column(kind_attr.capitalize())
        table.add_column("Enabled", justify="center")
        for row in rows:
            kind = getattr(row, kind_attr)
            table.add_row(
                str(row.id), row.name, kind or "-",
                "[green]on[/green]" if row.enabled else "[dim]off[/dim]",
            )
        out.print(table)


# ── inspect ──────────────────────────────────────────────────────

@app.command()
def inspect(
    ctx: typer.Context,
    email: str = typer.Option(..., "--email", "-e", help="Admin login email."),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True,
        envvar="USAGE_GATEWAY_PASSWORD", help="Admin login password.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Log in and print every account, enabled app and keyset with feature counts.

    Example:
      usage-gateway inspect --email me@example.com
    """
    _run_safe(
        lambda: _inspect_impl(email, password, json_output, _upstream_transport(ctx)),
        verbose=verbose,
    )


def _inspect_impl(
    email: str, password: str, json_output: bool,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    from usage_gateway.core.accounts import authenticate
    from usage_gateway.core.api.settings import load_settings
    from usage_gateway.core.inventory import collect_inventory

    settings = load_settings()

    async def run():
        login = await authenticate(
            lambda token: _client(settings, token, transport=transport), email, password
        )
        inventory = await collect_inventory(
            lambda account_id: _client(
                settings, login.session.token, account_id, transport=transport
            ),
            login,
            settings=settings,
        )
        return login, inventory

    login, inventory = asyncio.run(run())

    if json_output:
        _emit_json({
            "user_id": login.session.user_id,
            "accounts": [a.model_dump() for a in inventory],
        })
        return

    from rich.tree import Tree

    root = Tree(f"[bold]{email}[/bold] (user {login.session.user_id})")
    for account in inventory:
        a_node = root.add(f"[bold]{account.label}[/bold] [dim](account {account.id})[/dim]")
        for app_inv in account.apps:
            app_node = a_node.add(f"{app_inv.name} [dim](app {app_inv.id})[/dim]")
            for k in app_inv.keysets:
                app_node.add(
                    f"{k.name} [dim](keyset {k.id})[/dim]  "
                    f"functions: {k.function_modules} modules / {k.running_functions} running  "
                    f"events & actions: {k.listeners} listeners / {k.actions} actions"
                )
    out = Console()
    out.print(root)
    out.print(
        f"\nTotal accounts: {len(inventory)}  "
        f"Total apps: {sum(len(a.apps) for a in inventory)}"
    )


# ── config ───────────────────────────────────────────────────────

@app.command()
def config(
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="YAML settings file.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
) -> None:
    """Show effective gateway settings and validation errors."""
    _run_safe(lambda: _config_impl(config_path, json_output))


def _config_impl(config_path: Optional[str], json_output: bool) -> None:
    from usage_gateway.core.api.settings import load_settings
    from usage_gateway.core.secrets import redact_dict

    settings = load_settings(config_path)
    data = redact_dict(settings.to_dict())
    errors: List[str] = settings.validate()

    if json_output:
        _emit_json({"settings": data, "errors": errors})
    else:
        from rich.table import Table

        table = Table(show_header=False, border_style="blue", title="Effective settings")
        table.add_column("Key", style="dim")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
        Console().print(table)
        for err in errors:
            console.print(f"[red]✗[/red] {err}")

    if errors:
        raise SystemExit(1)


# ── version ──────────────────────────────────────────────────────

@app.command()
def version() -> None:
    """Show gateway version, Python version, and platform."""
    import platform

    from rich.table import Table

    table = Table(show_header=False, border_style="blue", title="Usage Gateway", title_style="bold")
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", f"{platform.system()} {platform.machine()}")
    table.add_row("httpx", httpx.__version__)

    c = Console()
    c.print(table)


def _run_safe(fn, verbose: bool = False) -> None:
    """Run a function with clean error handling."""
    from usage_gateway.core.secrets import redact_text

    try:
        fn()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130)
    except Exception as e:
        console.print(f"\n[red bold]Error:[/red bold] {redact_text(str(e))}")
        if verbose:
            console.print(traceback.format_exc())
        else:
            console.print("[dim]Run with --verbose for full traceback.[/dim]")
        raise SystemExit(1)
