"""Command parser for CLI input."""

import shlex

from cli.models import (
    CommandRequest,
    DiffCommand,
    DownloadCommand,
    SignatureCommand,
    UploadCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Upload/Signature/Diff/Download)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "upload":
        return _parse_upload(tokens[1:])
    elif command_name == "signature":
        return _parse_signature(tokens[1:])
    elif command_name == "diff":
        return _parse_diff(tokens[1:])
    elif command_name == "download":
        return _parse_download(tokens[1:])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _split_options(args: list[str], allowed: tuple[str, ...]) -> tuple[list[str], dict[str, str]]:
    """Separate '--name value' options from positional arguments."""
    positional = []
    options = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg.startswith("--"):
            if arg not in allowed:
                raise ParseError(f"Unknown option: {arg}")
            if i + 1 >= len(args):
                raise ParseError(f"Option {arg} requires a value")
            options[arg] = args[i + 1]
            i += 2
            continue
        positional.append(arg)
        i += 1
    return positional, options


def _parse_upload(args: list[str]) -> UploadCommand:
    """Parse 'upload <path> [--replace <file_id>] [--folder <folder_id>]' command."""
    positional, options = _split_options(args, ("--replace", "--folder"))
    if len(positional) != 1:
        raise ParseError("upload requires exactly one file path")

    return UploadCommand(
        path=positional[0],
        replace_file_id=options.get("--replace"),
        folder=options.get("--folder"),
    )


def _parse_signature(args: list[str]) -> SignatureCommand:
    """Parse 'signature <path> [--block-size <bytes>]' command."""
    positional, options = _split_options(args, ("--block-size",))
    if len(positional) != 1:
        raise ParseError("signature requires exactly one file path")

    block_size = None
    if "--block-size" in options:
        try:
            block_size = int(options["--block-size"])
        except ValueError:
            raise ParseError("--block-size must be an integer")
        if block_size <= 0:
            raise ParseError("--block-size must be positive")

    return SignatureCommand(path=positional[0], block_size=block_size)


def _parse_diff(args: list[str]) -> DiffCommand:
    """Parse 'diff <path> <file_id>' command."""
    if len(args) != 2:
        raise ParseError("diff requires exactly 2 arguments: <path> <file_id>")

    path, file_id = args
    return DiffCommand(path=path, file_id=file_id)


def _parse_download(args: list[str]) -> DownloadCommand:
    """Parse 'download <file_id> <output_path>' command."""
    if len(args) != 2:
        raise ParseError("download requires exactly 2 arguments: <file_id> <output_path>")

    file_id, output_path = args
    return DownloadCommand(file_id=file_id, output_path=output_path)
