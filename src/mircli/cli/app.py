"""Unified CLI entry point for mircli.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml
-> legacy env (MIRCLI_HEADLESS, HTTP_PROXY/PROXY, USER_DATA_DIR, CHROME_PATH)
-> env vars (MIRCLI_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging

import typer

from mircli.cli.fetch_cmd import fetch
from mircli.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("mircli")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "mircli: fetch the fully rendered markup of a page through a stealth-patched Chromium. "
    "Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> "
    "legacy env (MIRCLI_HEADLESS, HTTP_PROXY/PROXY, USER_DATA_DIR, CHROME_PATH) -> "
    "env vars (MIRCLI_* with __) -> CLI flags."
)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("fetch")(fetch)
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"mircli {VERSION}")
        raise typer.Exit()
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
