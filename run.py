"""CLI entry point for the scientific calculator.

Usage:
    python run.py                        # Interactive terminal
    python run.py -e "E = me * c^2"      # Evaluate one line and exit
    python run.py --agents-demo          # Run the OpenRouter agents examples
    python run.py --serve --port 8000    # Start the REST API
"""

from __future__ import annotations

import argparse
import asyncio
import re
import sys

import structlog
import uvicorn

from scicalc.agents.openrouter import AgentInvocationError
from scicalc.config import get_app_settings, get_settings
from scicalc.graphs.orchestration import (
    agent_debate,
    collaborative_task,
    consult_both,
    single_agent,
)
from scicalc.logging_config import setup_logging
from scicalc.terminal.commands import Terminal
from scicalc.terminal.session import OutputKind, TerminalSession
from scicalc.utils.console import (
    console,
    print_agent_message,
    print_error,
    print_header,
    print_lines,
)

logger = structlog.get_logger(__name__)

EXIT_COMMANDS = {"exit", "quit"}
_RECALL_RE = re.compile(r"^!(\d+)$")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scientific Programming Console with physics constants",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-e",
        "--evaluate",
        metavar="EXPR",
        default=None,
        help="Evaluate one line (expression, assignment or command) and exit.",
    )
    mode.add_argument(
        "--agents-demo",
        action="store_true",
        default=False,
        help="Run the Kimi/Gemini examples via OpenRouter (needs OPENROUTER_API_KEY).",
    )
    mode.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Start the REST API with uvicorn.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address for --serve.")
    parser.add_argument("--port", type=int, default=8000, help="Port for --serve.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Show log output in the interactive and one-shot modes.",
    )
    parser.add_argument(
        "--precision",
        type=int,
        default=None,
        help="Significant digits for results (default: [terminal] precision).",
    )
    return parser.parse_args()


def resolve_recall(line: str, session: TerminalSession) -> str | None:
    """Expand ``!N`` to the N-th most recent command (1 = last).

    Returns the line unchanged when it is not a recall, None when N is out
    of range.
    """
    match = _RECALL_RE.match(line.strip())
    if match is None:
        return line
    index = int(match.group(1)) - 1
    if 0 <= index < len(session.history):
        return session.history[index]
    return None


def _build_terminal(precision: int | None) -> Terminal:
    terminal_cfg = get_app_settings().terminal
    return Terminal(
        TerminalSession(
            history_limit=terminal_cfg.history_limit,
            output_limit=terminal_cfg.output_limit,
        ),
        precision=precision if precision is not None else terminal_cfg.precision,
    )


def run_once(expression: str, precision: int | None = None) -> int:
    """Evaluate one line. Returns the process exit code."""
    terminal = _build_terminal(precision)
    result = terminal.execute(expression)
    print_lines(result.lines)
    failed = any(line.kind is OutputKind.ERROR for line in result.lines)
    return 1 if failed else 0


def run_repl(precision: int | None = None) -> None:
    """Interactive read-eval-print loop until exit/quit or EOF."""
    terminal = _build_terminal(precision)
    settings = get_settings()
    print_header(terminal.precision, terminal.session.history_limit, settings.openrouter_configured)
    print_lines(terminal.open())

    while True:
        try:
            raw = console.input("[bold bright_blue]>>> [/bold bright_blue]")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break

        if raw.strip().lower() in EXIT_COMMANDS:
            break

        line = resolve_recall(raw, terminal.session)
        if line is None:
            print_error(f"Error: No history entry {raw.strip()}")
            continue
        if line != raw:
            console.print(f"[dim]{line}[/dim]")

        result = terminal.execute(line)
        if result.cleared:
            console.clear()
        print_lines(result.lines)

    terminal.close()
    logger.info("repl_exit")


async def run_agents_demo() -> int:
    """Single agent, consult both, collaboration and debate, in that order."""
    settings = get_settings()
    if not settings.openrouter_configured:
        print_error("OPENROUTER_API_KEY environment variable is required")
        console.print('Set it with: export OPENROUTER_API_KEY="your-key-here"')
        return 1

    try:
        response = await single_agent(
            "kimi", "Explain the physics behind quantum entanglement in simple terms"
        )
        print_agent_message("kimi", response, title="Example 1: Single Agent Query")

        consult = await consult_both(
            "Solve this calculus problem: Find the area under the curve "
            "y = x² + 3x - 2 from x = 0 to x = 5"
        )
        for key, reply in consult.responses.items():
            print_agent_message(key, reply, title="Example 2: Consulting Both Agents")

        collaboration = await collaborative_task(
            "Calculate the energy required to accelerate a 1000kg spacecraft "
            "from Earth orbit to Mars transfer velocity",
            "Break down the physics problem and identify the required formulas and constants",
            "Perform the mathematical calculations and provide the numerical result with units",
        )
        print_agent_message("kimi", collaboration.analysis, title="Example 3: Analysis")
        print_agent_message("gemini", collaboration.solution, title="Example 3: Solution")

        debate = await agent_debate(
            "Should artificial intelligence development be regulated by governments?"
        )
        print_agent_message("kimi", debate.position, title="Example 4: Position")
        print_agent_message("gemini", debate.counter, title="Example 4: Response")
    except AgentInvocationError as exc:
        print_error(f"Demo failed: {exc}")
        return 1

    console.print("\n[bold green]Demo completed successfully![/bold green]")
    return 0


def serve(host: str, port: int) -> None:
    uvicorn.run("scicalc.api.app:app", host=host, port=port)


def main() -> None:
    args = parse_args()
    settings = get_settings()
    quiet = not (args.serve or args.verbose)
    setup_logging("WARNING" if quiet else settings.log_level, json_output=settings.log_json)

    if args.serve:
        serve(args.host, args.port)
    elif args.agents_demo:
        sys.exit(asyncio.run(run_agents_demo()))
    elif args.evaluate is not None:
        sys.exit(run_once(args.evaluate, args.precision))
    else:
        run_repl(args.precision)


if __name__ == "__main__":
    main()
