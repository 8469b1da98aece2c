#!/usr/bin/env python3
"""Main entry point for the Challenge Inspector tool."""

import asyncio
import functools
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from .core.capture.runner import CaptureRunner
from .core.config import ConfigManager, normalize_url
from .core.models.types import BrowserEngine, FinishPolicy, ScopePolicy
from .core.output.console import ReportRenderer
from .prompts import (
    BROWSER_CHOICES,
    FINISH_CHOICES,
    HEADLESS_CHOICES,
    SCOPE_CHOICES,
    ask_choice,
    ask_url,
    ask_user_agent,
    wait_for_enter,
)
from .utils.exceptions import BrowserLaunchError
from .utils.logging import setup_logging

app = typer.Typer(
    name="chinspect",
    help="Browser-driven inspector for anti-bot challenge flows",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _default_index(choices, current) -> int:
    values = [value for _, value in choices]
    return values.index(current) if current in values else 0


@app.command()
def inspect(
    url: Optional[str] = typer.Argument(
        None, help="Target URL (https:// is assumed when no scheme is given)"
    ),
    browser: Optional[BrowserEngine] = typer.Option(
        None, "--browser", "-b",
        case_sensitive=False,
        help="Browser engine"
    ),
    headless: Optional[bool] = typer.Option(
        None, "--headless/--headed",
        help="Run the browser without a window"
    ),
    user_agent: Optional[str] = typer.Option(
        None, "--user-agent", "-u",
        help="User-Agent override"
    ),
    scope: Optional[ScopePolicy] = typer.Option(
        None, "--scope", "-s",
        case_sensitive=False,
        help="Which non-challenge traffic is listed"
    ),
    finish: Optional[FinishPolicy] = typer.Option(
        None, "--finish", "-f",
        case_sensitive=False,
        help="When the capture ends"
    ),
    payload: Optional[str] = typer.Option(
        None, "--payload",
        help="POST this body to the target with fetch() after navigation (API-test mode)"
    ),
    content_type: Optional[str] = typer.Option(
        None, "--content-type",
        help="Content-Type of the API-test payload"
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file (default: config/inspector.yaml)"
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Root directory for run folders"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Enable verbose logging"
    ),
    no_prompt: bool = typer.Option(
        False, "--no-prompt",
        help="Never ask; use options, config file and defaults"
    ),
) -> None:
    """Load a URL in a real browser and narrate the challenge flow it triggers.

    Document, XHR and Fetch traffic is captured; the HAR and the final cookie
    jar are saved in a dated folder under the output directory.
    """
    normalized_url = None
    if url is not None:
        normalized_url = normalize_url(url)
        if normalized_url is None:
            raise typer.BadParameter(f"Invalid URL: {url!r}", param_hint="URL")

    try:
        config_manager = ConfigManager(config_file)
        config = config_manager.load_config()
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    log_config = config.logging
    setup_logging(
        "DEBUG" if verbose else log_config.level,
        log_file=log_config.file,
        format_type=log_config.format,
        max_size=log_config.max_size,
        backup_count=log_config.backup_count,
    )

    renderer = ReportRenderer(console)
    renderer.render_banner()

    interactive = not no_prompt and sys.stdin.isatty()

    # Target URL
    if normalized_url:
        config.target.url = normalized_url
    elif interactive:
        config.target.url = ask_url(console, config.target.url)
    elif not config.target.url:
        raise typer.BadParameter("A target URL is required with --no-prompt", param_hint="URL")

    # Browser settings
    if browser is not None:
        config.browser.engine = browser
    elif interactive:
        config.browser.engine = ask_choice(
            console, "Choose browser:", BROWSER_CHOICES,
            default=_default_index(BROWSER_CHOICES, config.browser.engine),
        )

    if headless is not None:
        config.browser.headless = headless
    elif interactive:
        config.browser.headless = ask_choice(
            console, "Headless:", HEADLESS_CHOICES,
            default=_default_index(HEADLESS_CHOICES, config.browser.headless),
        )

    if user_agent is not None:
        config.browser.user_agent = user_agent
    elif interactive and not config.browser.user_agent:
        config.browser.user_agent = ask_user_agent(console)

    # Capture policy
    if scope is not None:
        config.target.scope = scope
    elif interactive:
        config.target.scope = ask_choice(
            console, "Scope:", SCOPE_CHOICES,
            default=_default_index(SCOPE_CHOICES, config.target.scope),
        )

    if finish is not None:
        config.capture.finish_mode = finish
    elif interactive:
        config.capture.finish_mode = ask_choice(
            console, "Finish:", FINISH_CHOICES,
            default=_default_index(FINISH_CHOICES, config.capture.finish_mode),
        )

    if payload is not None:
        config.target.payload = payload
    if content_type:
        config.target.content_type = content_type
    if output_dir:
        config.output.directory = str(output_dir)

    manual_signal = None
    if config.capture.finish_mode is FinishPolicy.MANUAL:
        manual_signal = functools.partial(wait_for_enter, console)

    console.print(f"\n🎯 Inspecting: [bold cyan]{config.target.url}[/bold cyan]")

    runner = CaptureRunner(config, manual_signal=manual_signal)
    try:
        result = asyncio.run(runner.run())
    except BrowserLaunchError as e:
        renderer.render_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Capture interrupted by user[/yellow]")
        raise typer.Exit(1)

    console.print()
    renderer.render(result)
    if result.interrupted:
        raise typer.Exit(1)


@app.command()
def config(
    init: bool = typer.Option(
        False, "--init",
        help="Initialize a new configuration file"
    ),
    validate: Optional[Path] = typer.Option(
        None, "--validate",
        help="Validate an existing configuration file"
    ),
) -> None:
    """Manage configuration files."""

    if init:
        config_manager = ConfigManager()
        config_path = config_manager.create_default_config()
        console.print(f"[green]Default configuration created at:[/green] {config_path}")

    elif validate:
        config_manager = ConfigManager(validate)
        if config_manager.validate_config():
            console.print(f"[green]Configuration file is valid:[/green] {validate}")
        else:
            console.print(f"[red]Configuration file has errors:[/red] {validate}")
            raise typer.Exit(1)
    else:
        console.print("[yellow]Use --init to create a new config or --validate to check an existing one[/yellow]")


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"Challenge Inspector v{__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
