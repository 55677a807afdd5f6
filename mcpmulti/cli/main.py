"""
mcp-multi-client CLI - Interactive chat over many MCP servers.

Run `mcp-multi [CONFIG_FILE]` to connect to every server in the config and
start asking questions. Type `quit` to exit.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from mcpmulti import __version__
from mcpmulti.core.session import Session
from mcpmulti.mcp.connection import NoServersConnectedError
from mcpmulti.mcp.registry import ToolCollisionError
from mcpmulti.providers.base import ProviderFactory
from mcpmulti.validation.config import ClientSettings, ConfigError, load_config

console = Console()

DEFAULT_CONFIG_FILE = Path(__file__).resolve().parent.parent.parent / "mcp-servers.json"

EXIT_KEYWORDS = {"quit", "exit"}


def configure_logging(verbose: bool = False) -> None:
    """Route package logs through rich on stderr (WARNING, or INFO when verbose)."""
    package_logger = logging.getLogger("mcpmulti")
    package_logger.setLevel(logging.INFO if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        ))


class MultiClientREPL:
    """
    Interactive session loop.

    Reads one query at a time and fully answers it before reading the next.
    Closing the session is the caller's job.
    """

    def __init__(self, session: Session):
        self.session = session
        self.running = True
        self._ctrlc_count = 0

    def _print_banner(self):
        """Print connected servers and tools."""
        console.print()
        title = Text()
        title.append("MCP Multi-Client Chat", style="bold blue")
        title.append(f"  v{__version__}", style="bold cyan")
        console.print(title)
        console.print(f"[cyan]Connected to servers:[/cyan] {', '.join(self.session.server_names)}")
        tools = self.session.tools
        console.print(
            f"[cyan]Available tools:[/cyan] {', '.join(t.name for t in tools) or 'None'}"
        )
        failures = self.session.connections.failures
        for name, error in failures.items():
            console.print(f"[yellow]Skipped server {name}:[/yellow] [dim]{error}[/dim]")
        console.print("[dim]Type your queries or 'quit' to exit.[/dim]")

    def _print_goodbye(self):
        console.print()
        console.print(Panel(
            "[bold blue]Closing connections...[/bold blue]",
            border_style="blue",
            padding=(0, 2),
        ))

    def _get_input(self) -> str:
        console.print("\n[bold green]Query: [/bold green]", end="")
        return input().strip()

    def _answer(self, query: str):
        with console.status("[bold blue]Thinking...[/bold blue]", spinner="dots"):
            answer = self.session.ask(query)

        console.print()
        console.print("[bold]Model:[/bold]")
        try:
            console.print(Markdown(answer))
        except Exception:
            console.print(answer)

    def run(self):
        """Run the interactive loop until an exit keyword or EOF."""
        self._print_banner()

        while self.running:
            try:
                query = self._get_input()
                self._ctrlc_count = 0

                if query.lower() in EXIT_KEYWORDS:
                    break
                if not query:
                    continue

                self._answer(query)

            except EOFError:
                break
            except KeyboardInterrupt:
                self._ctrlc_count += 1
                if self._ctrlc_count >= 2:
                    break
                console.print("\n[dim]Press Ctrl+C again to exit, or type 'quit'.[/dim]")
                continue

        self._print_goodbye()


def _fail(message: str, hint: Optional[str] = None) -> None:
    console.print(f"[red]Error: {message}[/red]")
    if hint:
        console.print(f"[dim]{hint}[/dim]")
    sys.exit(1)


@click.command()
@click.argument("config_file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--model", "-m", default=None, help="Model to use, e.g. claude-sonnet-4-5 or groq/llama-3.3-70b-versatile")
@click.option("--max-tokens", type=int, default=None, help="Max tokens per model response")
@click.option("--strict-tools", is_flag=True, help="Fail on duplicate tool names instead of overriding")
@click.option("--verbose", is_flag=True, help="Show connection and tool-call logs")
@click.option("--version", "-v", is_flag=True, help="Show version")
def cli(
    config_file: Optional[Path],
    model: Optional[str],
    max_tokens: Optional[int],
    strict_tools: bool,
    verbose: bool,
    version: bool,
) -> None:
    """
    MCP Multi-Client - chat with a model that can use tools from many MCP servers.

    CONFIG_FILE defaults to mcp-servers.json next to the package.

    \b
    Examples:
        mcp-multi                          # Use the default config
        mcp-multi ./my-servers.json        # Use a specific config
        mcp-multi -m gpt-4o servers.json   # Use another model
    """
    if version:
        console.print(f"mcp-multi-client v{__version__}")
        return

    configure_logging(verbose)
    load_dotenv()

    config_path = config_file or DEFAULT_CONFIG_FILE
    if not config_path.exists():
        _fail(
            f"Configuration file not found at \"{config_path}\"",
            "Please provide the path as an argument or place mcp-servers.json next to the package.",
        )

    try:
        console.print(f"[dim]Loading configuration from: {config_path}[/dim]")
        config = load_config(config_path)
        console.print(f"[dim]Loaded configuration for servers: {', '.join(config.server_names)}[/dim]")
        settings = ClientSettings.from_env(model=model, max_tokens=max_tokens, strict_tools=strict_tools)
        provider = ProviderFactory.create(settings.model, settings)
    except ConfigError as e:
        _fail(str(e))

    session = Session(config, provider, settings)
    try:
        try:
            with console.status("[bold blue]Connecting to MCP servers...[/bold blue]", spinner="dots"):
                count = session.start()
        except (NoServersConnectedError, ToolCollisionError) as e:
            _fail(str(e))

        console.print(f"[green]Connected to {count} server(s).[/green]")
        MultiClientREPL(session).run()
    finally:
        session.close()
        console.print("[dim]MCP Multi-Client finished.[/dim]")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
