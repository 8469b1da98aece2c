"""Rich console presentation of a capture run."""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..analysis.narrative import Narrative, NarrativeStep
from ..config.settings import CaptureConfig
from ..models.types import FinishPolicy, TrafficType
from .artifacts import ArtifactPaths

if TYPE_CHECKING:  # avoid circular import
    from ..capture.runner import CaptureResult
    from ..capture.session import Session

DEFAULT_UA_TEXT = "(browser default)"


def truncate(url: str, limit: int = 100) -> str:
    return url if len(url) <= limit else url[:limit - 1] + "…"


def status_badge(status: Optional[int], block_status: int = 403) -> str:
    """Status with its icon, as rich markup."""
    if status is None:
        return "[dim]⏳ no response[/dim]"
    if status == block_status:
        return f"[bold red]🚫 {status}[/bold red]"
    if 200 <= status < 300:
        return f"[green]✅ {status}[/green]"
    if 300 <= status < 400:
        return f"[cyan]↪ {status}[/cyan]"
    return f"[yellow]ℹ️ {status}[/yellow]"


def describe_finish(policy: FinishPolicy, capture: CaptureConfig) -> str:
    if policy is FinishPolicy.AUTO:
        return f"auto on network idle + {capture.quiet_window:g}s (cap {capture.max_capture_time:g}s)"
    if policy is FinishPolicy.MANUAL:
        return f"manual (Enter), cap {capture.max_capture_time:g}s"
    return f"after {capture.max_capture_time:g}s"


class ReportRenderer:
    """Prints the recap, the session narrative and the saved paths."""

    def __init__(self, console: Optional[Console] = None, url_width: int = 100):
        self.console = console or Console()
        self.url_width = url_width

    def render(self, result: "CaptureResult") -> None:
        self.render_recap(result.session, result.paths, result.finish_description)
        self.render_narrative(result.narrative)
        self.render_saved(result.paths, har_rebuilt=result.har_rebuilt)
        if result.error:
            self.render_error(f"Capture failed: {result.error}")
        if result.interrupted:
            self.console.print("\n[yellow]⚠️  Partial capture: the run ended before its finish condition[/yellow]")
        else:
            self.console.print("\n✅ Done")

    def render_recap(self, session: "Session", paths: ArtifactPaths, finish_description: str) -> None:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()

        user_agent = session.user_agent or DEFAULT_UA_TEXT
        finish = finish_description
        if session.finish_reason:
            finish += f" [dim](ended: {session.finish_reason})[/dim]"

        table.add_row("Timestamp", session.captured_at.astimezone().isoformat(timespec="seconds"))
        table.add_row("URL", escape(session.target_url))
        table.add_row("Browser", session.browser_name or "-")
        table.add_row("Headless", "Yes" if session.headless else "No")
        table.add_row("Request IP", escape(session.remote_address or "(unavailable)"))
        table.add_row("User-Agent", escape(user_agent))
        table.add_row("Session", escape(str(paths.session_dir)))
        table.add_row("HAR", escape(str(paths.har)))
        table.add_row("Cookies", escape(str(paths.cookies)))
        table.add_row("Finish", finish)

        self.console.print(Panel.fit(table, title="🧾 Run Recap", border_style="magenta"))

    def render_narrative(self, narrative: Narrative) -> None:
        self.console.print("\n[bold]📖 Network Requests[/bold]")
        for line in self.narrative_lines(narrative):
            self.console.print(line, highlight=False, soft_wrap=True)

    def narrative_lines(self, narrative: Narrative) -> List[str]:
        """Narrative as a list of rich markup lines."""
        lines: List[str] = []

        if not narrative.has_initial_response:
            lines.append("[yellow]No initial response captured.[/yellow]")

        for index, step in enumerate(narrative.initial_chain):
            prefix = "→ Requested:" if index == 0 else "   ↪ Redirected to:"
            lines.append(
                f"{prefix} {escape(truncate(step.exchange.url, self.url_width))} "
                f"[{status_badge(step.exchange.status, narrative.block_status)}]"
            )
            lines.extend(self._signal_lines(step, narrative.vendor, indent="   "))
            lines.extend(self._inline_lines(step, narrative, indent="   "))

        if not narrative.rows:
            if narrative.is_empty:
                lines.append("[yellow]No in-scope exchanges captured.[/yellow]")
            return lines

        lines.append("")
        lines.append(f"Captured requests ({len(narrative.rows)} of {narrative.total_exchanges}):")
        for step in narrative.rows:
            lines.append(
                f"  {step.number}. {step.category.label} → "
                f"{escape(truncate(step.exchange.url, self.url_width + 40))} "
                f"[{status_badge(step.exchange.status, narrative.block_status)}]"
            )
            lines.extend(self._signal_lines(step, narrative.vendor, indent="     "))
            lines.extend(self._inline_lines(step, narrative, indent="     "))
        return lines

    def _signal_lines(self, step: NarrativeStep, vendor: str, indent: str) -> List[str]:
        lines = []
        exchange = step.exchange
        if exchange.request_body:
            body = exchange.decoded_body(limit=500) or ""
            lines.append(f"{indent}[dim]📤 {escape(exchange.method)} body:[/dim]")
            lines.extend(f"{indent}   [dim]{escape(part)}[/dim]" for part in body.splitlines())
        if exchange.client_id:
            lines.append(f"{indent}🆔 {escape(vendor)} client ID: {escape(exchange.client_id)}")
        if step.cookies:
            cookies = "; ".join(escape(str(cookie)) for cookie in step.cookies)
            lines.append(f"{indent}🍪 {escape(vendor)} Set-Cookie: {cookies}")
        return lines

    def _inline_lines(self, step: NarrativeStep, narrative: Narrative, indent: str) -> List[str]:
        if step.inline is None:
            if step.exchange.status == narrative.block_status and step.exchange.traffic_type is TrafficType.DOCUMENT:
                return [f"{indent}[dim]No challenge step followed the block.[/dim]"]
            return []
        challenge = step.inline
        lines = [
            f"{indent}⚠️  Challenge: {challenge.category.label} → "
            f"{escape(truncate(challenge.exchange.url, self.url_width + 40))} "
            f"[{status_badge(challenge.exchange.status, narrative.block_status)}]"
        ]
        lines.extend(self._signal_lines(challenge, narrative.vendor, indent=indent + "   "))
        return lines

    def render_saved(self, paths: ArtifactPaths, har_rebuilt: bool = False) -> None:
        self.console.print("\n[bold]📦 Saved:[/bold]")
        note = " [dim](rebuilt from capture)[/dim]" if har_rebuilt else ""
        self.console.print(f"  HAR:     [cyan]{escape(str(paths.har))}[/cyan]{note}", highlight=False)
        self.console.print(f"  Cookies: [cyan]{escape(str(paths.cookies))}[/cyan]", highlight=False)

    def render_error(self, message: str) -> None:
        self.console.print(f"[bold red]❌ {escape(message)}[/bold red]")

    def render_banner(self) -> None:
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.console.print(Panel.fit(
            f"[bold magenta]🔎 Challenge Inspector[/bold magenta]\n[dim]{stamp}[/dim]",
            border_style="magenta",
            padding=(1, 2),
        ))
