"""Interactive numeric prompts for values not given on the command line."""

import asyncio
import sys
import threading
from typing import Optional, Sequence, Tuple, TypeVar

from rich.console import Console
from rich.prompt import IntPrompt, Prompt

from .core.config.settings import normalize_url
from .core.models.types import BrowserEngine, FinishPolicy, ScopePolicy

T = TypeVar("T")

BROWSER_CHOICES: Sequence[Tuple[str, BrowserEngine]] = [
    ("Chromium", BrowserEngine.CHROMIUM),
    ("Firefox", BrowserEngine.FIREFOX),
    ("WebKit", BrowserEngine.WEBKIT),
]

HEADLESS_CHOICES: Sequence[Tuple[str, bool]] = [
    ("No", False),
    ("Yes", True),
]

SCOPE_CHOICES: Sequence[Tuple[str, ScopePolicy]] = [
    ("Same domain only", ScopePolicy.SAME_DOMAIN),
    ("Cross-origin only", ScopePolicy.CROSS_ORIGIN),
    ("Any origin", ScopePolicy.ANY),
]

FINISH_CHOICES: Sequence[Tuple[str, FinishPolicy]] = [
    ("Auto (network idle)", FinishPolicy.AUTO),
    ("Manual (press Enter)", FinishPolicy.MANUAL),
    ("Timeout (max capture time)", FinishPolicy.TIMEOUT),
]


def ask_url(console: Console, initial: Optional[str] = None) -> str:
    """Ask for the target URL until it normalizes to a valid one."""
    candidate = initial
    while True:
        if candidate:
            normalized = normalize_url(candidate)
            if normalized:
                return normalized
            console.print(f"[red]❌ Invalid URL:[/red] {candidate!r}")
        candidate = Prompt.ask("Enter URL", console=console)


def ask_choice(console: Console, title: str, options: Sequence[Tuple[str, T]], default: int = 0) -> T:
    """Show a numbered menu and return the value of the picked entry."""
    console.print(f"\n[bold]{title}[/bold]")
    for index, (label, _) in enumerate(options):
        console.print(f"  {index}) {label}")
    picked = IntPrompt.ask(
        "Select",
        console=console,
        choices=[str(index) for index in range(len(options))],
        default=default,
        show_choices=False,
    )
    return options[picked][1]


def ask_user_agent(console: Console) -> Optional[str]:
    """Return a custom User-Agent, or None for the browser default."""
    custom = ask_choice(console, "User-Agent:", [("(default)", False), ("Custom", True)])
    if not custom:
        return None
    while True:
        value = Prompt.ask("Custom User-Agent", console=console).strip()
        if value:
            return value
        console.print("[yellow]User-Agent cannot be empty[/yellow]")


async def wait_for_enter(console: Optional[Console] = None) -> None:
    """Complete when a line is read from stdin.

    The read happens on a daemon thread so an unanswered prompt never keeps
    the process alive after the capture ends some other way.
    """
    loop = asyncio.get_running_loop()
    pressed = loop.create_future()

    def resolve() -> None:
        if not pressed.done():
            pressed.set_result(True)

    def reader() -> None:
        try:
            sys.stdin.readline()
        except (OSError, ValueError):
            return
        try:
            loop.call_soon_threadsafe(resolve)
        except RuntimeError:
            # Loop already closed
            pass

    threading.Thread(target=reader, name="manual-finish", daemon=True).start()
    (console or Console()).print("[dim]Press Enter to finish the capture…[/dim]")
    await pressed
