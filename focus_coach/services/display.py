from datetime import datetime
from typing import Dict, Iterable, Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

from focus_coach.models.focus_state import ClassificationEvent, FocusState, NudgeEvent, NudgeKind, StateTransition
from focus_coach.services.postcheck import PostCheckResult

STATE_STYLES = {
    FocusState.DETECTING: ("🔎", "dim"),
    FocusState.FOCUSED: ("🎯", "bold green"),
    FocusState.SEMI_DISTRACTED: ("⚡", "bold yellow"),
    FocusState.DISTRACTED: ("🔔", "bold red"),
    FocusState.IDLE: ("💤", "blue"),
}

class TerminalDisplay:
    """Renders stabilizer events in the terminal"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    @staticmethod
    def _clock(timestamp: float) -> str:
        return datetime.fromtimestamp(timestamp).strftime('%H:%M:%S')

    def show_banner(self, work_context: str) -> None:
        header = Text()
        header.append("🎯 Focus Coach", style="bold cyan")
        header.append(f"\nWorking on: {work_context}\n", style="dim")
        header.append("Press Ctrl+C to stop", style="dim")
        self.console.print(Panel(header, expand=False))

    def show_transition(self, transition: StateTransition) -> None:
        emoji, style = STATE_STYLES.get(transition.current, ("❓", "white"))
        text = Text()
        text.append(f"{self._clock(transition.timestamp)} ", style="dim")
        text.append(f"{emoji} {transition.current.value}", style=style)
        if transition.reason:
            text.append(f"  {transition.reason}", style="italic dim")
        self.console.print(text)

    def show_classification(self, event: ClassificationEvent) -> None:
        text = Text()
        text.append(f"{self._clock(event.timestamp)} ", style="dim")
        text.append(f"  · {event.label.value}", style="cyan")
        text.append(f" (consensus {event.consensus})", style="dim")
        if event.reason:
            text.append(f": {event.reason}", style="dim")
        self.console.print(text)

    def show_nudge(self, event: NudgeEvent) -> None:
        style = "bold red" if event.kind == NudgeKind.NUDGE else "yellow"
        self.console.print(Panel(Text(event.message, style=style), title=event.kind.value, expand=False))

    def show_check_result(self, message: str, result: PostCheckResult) -> None:
        """Itemized PostCheck outcome"""
        table = Table(title="PostCheck")
        table.add_column("Check", justify="left", style="cyan")
        table.add_column("Result", justify="left")

        table.add_row("Message", message)
        table.add_row("Status", "[green]passed[/green]" if result.passed else "[red]failed[/red]")
        for issue in result.issues:
            table.add_row("Issue", f"[red]{issue}[/red]")
        for advisory in result.advisories:
            table.add_row("Advisory", f"[yellow]{advisory}[/yellow]")
        self.console.print(table)

    def show_config(self, sections: Dict[str, Dict]) -> None:
        for name, values in sections.items():
            table = Table(title=name)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")
            for key, value in values.items():
                table.add_row(key, str(value))
            self.console.print(table)

    def show_summary(self, transitions: Iterable[StateTransition], nudge_count: int) -> None:
        transitions = list(transitions)
        stats = Text()
        stats.append("\n📈 Session Statistics\n", style="bold yellow")
        stats.append(f"State changes: {len(transitions)}\n", style="dim")
        distracted = sum(1 for t in transitions if t.current == FocusState.DISTRACTED)
        stats.append(f"Distractions: {distracted}\n", style="dim")
        stats.append(f"Messages shown: {nudge_count}\n", style="bold green")
        self.console.print(Panel(stats, expand=False))
