"""CLI command that fetches one URL and saves its rendered markup."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from mircli.settings.config import HeadlessMode, Settings

console = Console()


def _apply_overrides(
    settings: Settings,
    *,
    headless: Optional[HeadlessMode],
    proxy: Optional[str],
    userdata: Optional[Path],
    timeout: Optional[int],
    wait: Optional[int],
    out: Optional[Path],
    stayopen: Optional[bool],
    seed: Optional[int],
) -> Settings:
    """Return a copy of *settings* with CLI flags layered on top."""
    effective = settings.model_copy(deep=True)
    if headless is not None:
        effective.browser.headless = headless
    if proxy is not None:
        effective.browser.proxy = proxy
    if userdata is not None:
        effective.browser.user_data_dir = str(userdata.expanduser())
    if timeout is not None:
        effective.timing.navigation_timeout_ms = timeout
    if wait is not None:
        effective.timing.settle_wait_ms = wait
    if out is not None:
        effective.output.path = str(out)
    if stayopen is not None:
        effective.output.stay_open = stayopen
    if seed is not None:
        effective.stealth.seed = seed
    return effective


def fetch(
    target: Optional[str] = typer.Argument(None, help="Target URL (scheme optional)."),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Target URL; takes precedence over the positional argument."),
    headless: Optional[HeadlessMode] = typer.Option(None, "--headless", case_sensitive=False, help="true | false | new"),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="Proxy server, e.g. http://host:port."),
    userdata: Optional[Path] = typer.Option(None, "--userdata", help="Persistent Chrome profile directory."),
    timeout: Optional[int] = typer.Option(None, "--timeout", min=1, help="Navigation timeout (ms)."),
    wait: Optional[int] = typer.Option(None, "--wait", min=0, help="Extra settle wait (ms) after network idle."),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output HTML file."),
    stayopen: Optional[bool] = typer.Option(None, "--stayopen/--no-stayopen", help="Keep browser open after saving (headful only)."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for viewport / user-agent selection."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Fetch the fully rendered markup of a page and save it.

    An early snapshot is taken right after the document is available, so an
    artifact is saved even if the page or browser goes away before the
    page has settled.
    """
    from mircli.browser.navigation import normalize_url
    from mircli.exceptions import InvalidURLError
    from mircli.models.results import RunStatus
    from mircli.orchestrator import fetch_page
    from mircli.settings import get_settings

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    settings = _apply_overrides(
        get_settings(),
        headless=headless,
        proxy=proxy,
        userdata=userdata,
        timeout=timeout,
        wait=wait,
        out=out,
        stayopen=stayopen,
        seed=seed,
    )

    try:
        normalized = normalize_url(url or target, settings.default_url)
    except InvalidURLError as exc:
        raise typer.BadParameter(str(exc), param_hint="URL") from exc

    console.print(Panel(f"[bold]Fetching:[/bold] {normalized}", title="mircli", border_style="blue"))

    result = fetch_page(normalized, settings=settings, output_path=Path(settings.output.path))

    if result.warnings:
        for warning in result.warnings:
            console.print(f"[yellow]⚠[/yellow] {warning}")

    if result.success:
        marker = "[green]✓[/green]" if result.status is RunStatus.COMPLETE else "[yellow]✓[/yellow]"
        console.print(f"\n{marker} Saved to {result.output_path} ({result.bytes_written} bytes, {result.snapshot_stage} snapshot)")
        if result.challenge and result.challenge.detected:
            console.print(f"  Challenge: {result.challenge.label}")
    else:
        console.print(f"\n[red]✗[/red] Fetch failed: {result.error}")
        raise typer.Exit(code=1)
