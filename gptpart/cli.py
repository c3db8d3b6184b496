#!/usr/bin/env python3
"""gptpart CLI - modern GPT partition editor."""
from typing import Optional

import typer
from rich.console import Console
from typer.completion import completion_init
from typer.core import TyperGroup

from gptpart.cli_support import handle_cli_error, resolve_device
from gptpart.cli_table_commands import register_table_commands
from gptpart.cli_utility_commands import register_utility_commands
from gptpart.core.config import get_config
from gptpart.core.errors import GptPartError
from gptpart.core.logger import get_logger, set_verbose, setup_file_logging
from gptpart.discovery.devices import AUTO_DEVICE, DeviceDiscovery

# Root options that consume the following argument
VALUE_OPTIONS = {"-b", "--block", "-d", "--device", "--log-file"}


class InteractiveDeviceGroup(TyperGroup):
    """Reads ``gptpart -i DEVICE`` as ``gptpart -i --device DEVICE``."""

    def parse_args(self, ctx, args):
        if "-i" in args or "--interactive" in args:
            args = list(args)
            for index, arg in enumerate(args):
                if arg.startswith("-") or (index and args[index - 1] in VALUE_OPTIONS):
                    continue
                if arg not in self.commands:
                    args[index:index + 1] = ["--device", arg]
                break
        return super().parse_args(ctx, args)


app = typer.Typer(
    name="gptpart",
    help="""gptpart - modern GPT partition editor

Quick start:
  gptpart create disk.img                 # New, empty GPT (overwrites!)
  gptpart add-partition disk.img --size 10M
  gptpart show disk.img
  gptpart dump disk.img > layout.json     # Back up the layout
  gptpart restore disk.img < layout.json
  gptpart -i                              # Interactive editor
  gptpart -i disk.img                     # Interactive editor on one device
""",
    cls=InteractiveDeviceGroup,
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

# Lets the scripts printed by `gptpart complete` talk to this app
completion_init()

register_table_commands(app, console)
register_utility_commands(app, console)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    block: Optional[int] = typer.Option(
        None, "--block", "-b", min=1,
        help="Logical block size to use. Overrides autodetection from the device.",
    ),
    interactive: bool = typer.Option(
        False, "--interactive", "-i",
        help="Use the interactive editor on DEVICE, given after -i or with --device. "
        "Without one, starts with a disk selection.",
    ),
    device: str = typer.Option(
        AUTO_DEVICE, "--device", "-d", help="Device or image for the interactive editor"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also log to this file"),
):
    """gptpart - modern GPT partition editor."""
    ctx.obj = {'block': block, 'verbose': verbose}
    set_verbose(verbose)

    try:
        log_file = log_file or get_config().log_file
    except GptPartError as e:
        handle_cli_error(e, verbose)
    if log_file:
        setup_file_logging(log_file=log_file, verbose=verbose)

    if ctx.invoked_subcommand:
        return
    if not interactive:
        ctx.fail("Missing command. Pass --interactive for the interactive editor.")

    from gptpart.interactive import run_session, run_session_for_device

    try:
        if device.lower() == AUTO_DEVICE:
            devices = DeviceDiscovery().list_devices()
            if block is not None:
                devices = [d.with_block_size(block) for d in devices]
            run_session(devices, console)
        else:
            run_session_for_device(resolve_device(device, block), console)
    except GptPartError as e:
        handle_cli_error(e, verbose)


if __name__ == "__main__":
    app()
