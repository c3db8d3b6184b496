"""Utility CLI commands - complete, version."""
import typer
from rich.console import Console
from typer.completion import Shells, get_completion_script

from gptpart import __version__

# Module-level console instance (will be set by register function)
console: Console = Console()

PROG_NAME = "gptpart"
COMPLETE_VAR = "_GPTPART_COMPLETE"


def complete(
    shell: Shells = typer.Argument(Shells.fish, case_sensitive=False, help="Shell to generate completions for"),
):
    """Generate shell completions to stdout.

    Examples:
        gptpart complete fish > ~/.config/fish/completions/gptpart.fish
        gptpart complete bash >> ~/.bashrc
    """
    script = get_completion_script(
        prog_name=PROG_NAME, complete_var=COMPLETE_VAR, shell=shell.value
    )
    typer.echo(script)


def version():
    """Show gptpart version."""
    console.print(f"gptpart v{__version__} - GPT partition editor")


def register_utility_commands(app: typer.Typer, shared_console: Console):
    """Register utility commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(complete)
    app.command()(version)
