"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from cli.commands import handle_diff, handle_download, handle_signature, handle_upload
from cli.completer import DeltaDriveCompleter
from cli.constants import (
    HELP_TEXT,
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import CommandRequest, DiffCommand, DownloadCommand, SignatureCommand, UploadCommand
from cli.parser import ParseError, parse_command


class ExitRequested(Exception):
    """Raised by run_line when the user asks to leave the REPL."""
    pass


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    os.system("cls" if sys.platform == "win32" else "clear")


def show_welcome() -> None:
    print(LOGO)
    print(WELCOME_TITLE)
    print(WELCOME_HELP)


def dispatch_command(cmd_obj: CommandRequest) -> str:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, UploadCommand):
        return handle_upload(cmd_obj)
    elif isinstance(cmd_obj, SignatureCommand):
        return handle_signature(cmd_obj)
    elif isinstance(cmd_obj, DiffCommand):
        return handle_diff(cmd_obj)
    elif isinstance(cmd_obj, DownloadCommand):
        return handle_download(cmd_obj)
    else:
        return f"Unknown command type: {type(cmd_obj)}"


def run_line(line: str) -> Optional[str]:
    """
    Execute one line of input.

    Built-ins (help, clear, exit) are handled here; everything else is
    parsed and dispatched.

    Returns:
        Text to print, or None when there is nothing to show

    Raises:
        ExitRequested: On 'exit'
        ParseError: If the command is malformed
    """
    command = line.strip()
    if not command:
        return None
    if command == "exit":
        raise ExitRequested()
    if command == "help":
        return HELP_TEXT
    if command == "clear":
        clear_screen()
        show_welcome()
        return None
    return dispatch_command(parse_command(command))


def repl_loop() -> None:
    """Start interactive REPL with prompt_toolkit."""
    session: PromptSession = PromptSession(
        completer=DeltaDriveCompleter(), history=InMemoryHistory(), style=STYLE
    )

    clear_screen()
    show_welcome()

    while True:
        try:
            output = run_line(session.prompt([("class:prompt", PROMPT_TEXT)]))
            if output:
                print(output)
        except ParseError as e:
            print(f"Error: {e}")
        except KeyboardInterrupt:
            continue
        except (EOFError, ExitRequested):
            print("Goodbye!")
            break
