"""``mircli settings``: print or sanity-check the resolved configuration."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from mircli.settings.config import Settings

settings_app = typer.Typer(help="Inspect and validate mircli configuration.")
console = Console()

_SECTIONS = ("browser", "timing", "stealth", "output")


def _problems(settings: Settings) -> list[str]:
    """Return configuration issues that would make a fetch fail or misbehave."""
    issues: list[str] = []
    browser = settings.browser

    if browser.chrome_path and not os.access(browser.chrome_path, os.X_OK):
        issues.append(f"chrome_path is not an executable file: {browser.chrome_path}")

    profile = Path(browser.user_data_dir)
    anchor = next((p for p in (profile, *profile.parents) if p.exists()), None)
    if anchor is None or not os.access(anchor, os.W_OK):
        issues.append(f"user_data_dir is not writable: {profile}")

    proxy = browser.proxy.strip()
    if proxy and "://" not in proxy:
        issues.append(f"proxy should include a scheme (http://, socks5://): {proxy}")

    timing = settings.timing
    if timing.network_ceiling_ms < timing.network_idle_ms:
        issues.append("timing.network_ceiling_ms is shorter than timing.network_idle_ms")

    if settings.output.stay_open and browser.headless.is_headless:
        issues.append("output.stay_open has no effect while the browser is headless")
    return issues


@settings_app.command("show")
def show_settings(
    section: Optional[str] = typer.Option(None, "--section", "-s", help=f"Only one of: {', '.join(_SECTIONS)}."),
) -> None:
    """Print the resolved settings as JSON."""
    from mircli.settings import get_settings

    data = get_settings().model_dump(mode="json")
    if section is not None:
        if section not in _SECTIONS:
            raise typer.BadParameter(f"unknown section {section!r}", param_hint="--section")
        data = data[section]
    console.print_json(json.dumps(data, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Load settings and report anything that would break a fetch."""
    from pydantic import ValidationError

    from mircli.settings import get_settings

    try:
        settings = get_settings()
    except ValidationError as exc:
        console.print(f"[red]✗[/red] Settings failed to load:\n{exc}")
        raise typer.Exit(code=1)

    table = Table(show_header=False, box=None)
    table.add_row("env", settings.env)
    table.add_row("headless", settings.browser.headless.value)
    table.add_row("profile", settings.browser.user_data_dir)
    table.add_row("proxy", settings.browser.proxy or "-")
    table.add_row("output", settings.output.path)
    console.print(table)

    issues = _problems(settings)
    for issue in issues:
        console.print(f"[yellow]⚠[/yellow] {issue}")
    if issues:
        raise typer.Exit(code=1)
    console.print("[green]✓[/green] Settings are valid.")
