"""
secure-cookie-proxy CLI.

Usage:
    secure-cookie-proxy serve -r /api=https://example.com    Run the proxy
    secure-cookie-proxy info                                 Show configuration
    secure-cookie-proxy cookies show ACCOUNT                 Show stored cookies
    secure-cookie-proxy cookies set ACCOUNT                  Store cookies
    secure-cookie-proxy cookies clear ACCOUNT                Delete stored cookies
"""

import asyncio
import logging
from typing import Optional

import typer

from secure_cookie_proxy import __version__
from secure_cookie_proxy.auth.cookies import decode, strip_cookie_label
from secure_cookie_proxy.auth.prompt import RichSecretPrompt
from secure_cookie_proxy.auth.storage import detect_credential_store
from secure_cookie_proxy.config import DEFAULT_UNAUTHORIZED_STATUS, load_settings
from secure_cookie_proxy.exceptions import CookieProxyError
from secure_cookie_proxy.utils.console import (
    console,
    print_error,
    print_header,
    print_info,
    print_stats_table,
    print_success,
    print_warning,
    setup_logging,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="secure-cookie-proxy",
    help="🍪 Development reverse proxy that carries your auth cookies",
    add_completion=False,
    rich_markup_mode="rich",
)
cookies_app = typer.Typer(help="Manage stored cookies")
app.add_typer(cookies_app, name="cookies")


def parse_route(value: str) -> tuple[str, str]:
    """Parse ``PREFIX=TARGET``; a bare target is mounted at ``/``."""
    prefix, sep, target = value.partition("=")
    if not sep:
        return "/", value
    if not prefix or not target:
        raise typer.BadParameter(f"Expected PREFIX=TARGET, got {value!r}")
    return prefix, target


def mask(value: str) -> str:
    """Hide cookie values, keeping names visible."""
    return "; ".join(f"{name}=***" for name in decode(value))


@app.callback()
def main(
    ctx: typer.Context,
    headless: bool = typer.Option(False, "--headless", "-H", help="Run without fancy output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
):
    """🍪 secure-cookie-proxy - replay auth cookies through a local proxy."""
    setup_logging(verbose, headless)
    ctx.ensure_object(dict)
    ctx.obj["headless"] = headless
    ctx.obj["verbose"] = verbose


@app.command()
def serve(
    route: list[str] = typer.Option([], "--route", "-r", help="PREFIX=TARGET (repeatable)"),
    host: Optional[str] = typer.Option(None, "--host", help="Listen address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Credential account (single route only)"),
    unauthorized_status: list[int] = typer.Option(
        [DEFAULT_UNAUTHORIZED_STATUS], "--unauthorized-status", "-u", help="Status code meaning cookies are invalid"
    ),
    cookie_path: Optional[str] = typer.Option(None, "--cookie-path", help="Path for cookies replayed to the browser"),
    secure: bool = typer.Option(False, "--secure", help="Verify upstream TLS certificates"),
    change_origin: bool = typer.Option(True, "--change-origin/--keep-origin", help="Rewrite Host to the target"),
):
    """🚀 Run the proxy."""
    from secure_cookie_proxy.proxy.server import run_proxy

    settings = load_settings()
    if host:
        settings.host = host
    if port:
        settings.port = port

    targets = dict(settings.routes)
    targets.update(parse_route(r) for r in route)
    if not targets:
        print_error("No routes configured. Use --route PREFIX=TARGET or SECURE_COOKIE_PROXY_ROUTES.")
        raise typer.Exit(1)
    if account and len(targets) > 1:
        print_error("--account can only be used with a single route")
        raise typer.Exit(1)

    routes = {
        prefix: {
            "target": target,
            "keychain_account": account,
            "unauthorized_status_code": unauthorized_status,
            "cookie_path_rewrite": cookie_path,
            "secure": secure,
            "change_origin": change_origin,
        }
        for prefix, target in targets.items()
    }

    print_header("🍪 secure-cookie-proxy", f"Listening on http://{settings.host}:{settings.port}")
    for prefix, target in targets.items():
        print_info(f"{prefix} → {target}")

    try:
        run_proxy(settings, routes)
    except CookieProxyError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        print_warning("\nInterrupted")
        raise typer.Exit(130)


@app.command()
def info():
    """📊 Show storage backend and configuration."""
    settings = load_settings()
    store = detect_credential_store(settings)

    print_header("System Information", f"secure-cookie-proxy {__version__}")
    print_stats_table("Configuration", {
        "Cookie storage": store.describe(),
        "Keychain": "✓ Yes" if store.is_keychain else "✗ No",
        "Listen address": f"{settings.host}:{settings.port}",
        "Request timeout": f"{settings.request_timeout}s",
        "Routes": ", ".join(f"{p} → {t}" for p, t in settings.routes.items()) or "-",
    })


@cookies_app.command("show")
def cookies_show(
    account: str = typer.Argument(..., help="Credential account, usually the target host"),
    reveal: bool = typer.Option(False, "--reveal", help="Show cookie values"),
):
    """Show stored cookies for an account."""
    store = detect_credential_store(load_settings())
    try:
        value = asyncio.run(store.get(account))
    except CookieProxyError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not value:
        print_warning(f"No cookies stored for {account}")
        raise typer.Exit(1)

    console.print(value if reveal else mask(value), markup=False)


@cookies_app.command("set")
def cookies_set(
    account: str = typer.Argument(..., help="Credential account, usually the target host"),
):
    """Paste and store cookies for an account."""
    store = detect_credential_store(load_settings())
    prompt = RichSecretPrompt(console)

    async def _set() -> str:
        answer = strip_cookie_label(await prompt.ask(f"Paste the cookie string for {account}:"))
        if answer:
            decode(answer, strict=True)
            await store.set(account, answer)
        return answer

    try:
        answer = asyncio.run(_set())
    except CookieProxyError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not answer:
        print_warning("No cookies provided.")
        raise typer.Exit(1)
    print_success(f"Cookies for {account} saved to {store.describe()}")


@cookies_app.command("clear")
def cookies_clear(
    account: str = typer.Argument(..., help="Credential account, usually the target host"),
):
    """Delete stored cookies for an account."""
    store = detect_credential_store(load_settings())
    try:
        removed = asyncio.run(store.delete(account))
    except CookieProxyError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if removed:
        print_success(f"Cookies for {account} deleted")
    else:
        print_warning(f"No cookies stored for {account}")


if __name__ == "__main__":
    app()
