"""Custom completer for the deltadrive CLI with local path autocompletion."""

from pathlib import Path
from typing import Iterable

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMANDS, PATH_COMMANDS


class DeltaDriveCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Local path completion for the first argument of upload/signature/diff
    """

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        text = document.text_before_cursor
        tokens = text.split()

        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_commands(tokens[0] if tokens else "")
            return

        command = tokens[0].lower()
        if command not in PATH_COMMANDS:
            return

        argument_position = len(tokens) - (0 if is_typing_new_token else 1)
        if argument_position != 1:
            return

        current_word = "" if is_typing_new_token else tokens[-1]
        yield from self._complete_paths(current_word)

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))

    def _complete_paths(self, partial: str) -> Iterable[Completion]:
        """Complete files and directories relative to the working directory."""
        if partial.endswith("/"):
            directory, prefix = Path(partial), ""
        else:
            directory, prefix = Path(partial).parent, Path(partial).name

        base = Path.cwd() / directory if not directory.is_absolute() else directory
        if not base.is_dir():
            return

        for item in sorted(base.iterdir()):
            if item.name.startswith(".") and not prefix.startswith("."):
                continue
            if not item.name.startswith(prefix):
                continue
            candidate = str(directory / item.name) if str(directory) != "." else item.name
            if item.is_dir():
                candidate += "/"
            yield Completion(candidate, start_position=-len(partial))
