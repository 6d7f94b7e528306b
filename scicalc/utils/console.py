"""Rich console output for the terminal REPL and the agents demo.

Terminal lines are coloured by kind; agent replies are printed in the
``AgentName (model):`` style followed by the markdown-rendered content.
"""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from scicalc.schemas.agents import AgentResponse
from scicalc.terminal.session import OutputKind, OutputLine

console = Console()

KIND_STYLES = {
    OutputKind.COMMAND: "bold bright_white",
    OutputKind.RESULT: "green",
    OutputKind.ERROR: "bold red",
    OutputKind.INFO: "cyan",
}

AGENT_COLORS = {
    "kimi": "bright_cyan",
    "gemini": "magenta",
}


def print_lines(lines: Iterable[OutputLine], echo_commands: bool = False) -> None:
    """Print terminal output lines. Command echoes are skipped unless asked for."""
    for line in lines:
        if line.kind is OutputKind.COMMAND and not echo_commands:
            continue
        console.print(Text(line.text, style=KIND_STYLES.get(line.kind, "white")))


def print_header(precision: int, history_limit: int, agents_configured: bool) -> None:
    """Print the startup banner."""
    agents_text = "[green]configured[/green]" if agents_configured else "[yellow]not configured[/yellow]"
    console.print()
    console.print(
        Panel(
            f"[bold]Scientific Programming Console[/bold]\n\n"
            f"  Precision: [cyan]{precision} significant digits[/cyan]\n"
            f"  History: [cyan]{history_limit} commands[/cyan]\n"
            f"  Agents: {agents_text}\n\n"
            f"  [dim]exit / quit to leave, !N recalls the N-th previous command[/dim]",
            border_style="bright_blue",
            padding=(1, 2),
        )
    )
    console.print()


def print_agent_message(agent_key: str, response: AgentResponse, title: str | None = None) -> None:
    """Print one agent reply framed by coloured rules."""
    color = AGENT_COLORS.get(agent_key, "white")

    console.print()
    console.print(Rule(title or "", style=color))
    console.print(Text(f"  {response.agent} ({response.model}):", style=color))
    console.print()
    console.print(Markdown(response.content))
    console.print(
        Text(
            f"  tokens: {response.usage.prompt_tokens} in / "
            f"{response.usage.completion_tokens} out",
            style="dim",
        )
    )
    console.print(Rule(style=color))


def print_error(message: str) -> None:
    console.print(f"[bold red]{message}[/bold red]")
