"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["upload", "signature", "diff", "download", "clear", "exit", "help"]

PATH_COMMANDS = ("upload", "signature", "diff")

STYLE = Style.from_dict(
    {
        "prompt": "#2F9E8F bold",
        "command": "#0088ff bold",
    }
)

TEAL = "\033[38;2;47;158;143m"
GREEN = "\033[32m"
RESET = "\033[0m"

LOGO = f"""{TEAL}
 ____  _____ _   _____  _    ____  ____  _____     _______
|  _ \\| ____| | |_   _|/ \\  |  _ \\|  _ \\|_ _\\ \\   / / ____|
| | | |  _| | |   | | / _ \\ | | | | |_) || | \\ \\ / /|  _|
| |_| | |___| |___| |/ ___ \\| |_| |  _ < | |  \\ V / | |___
|____/|_____|_____|_/_/   \\_\\____/|_| \\_\\___|  \\_/  |_____|
{RESET}"""

WELCOME_TITLE = "deltadrive CLI - chunked uploads with block-level delta sync"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "deltadrive> "

HELP_TEXT = """Available commands:
  upload <path> [--replace <file_id>] [--folder <folder_id>]
                                      Upload a file; only changed blocks are sent against the
                                      --replace file, or else a same-name file in the folder,
                                      when that saves enough bandwidth
  signature <path> [--block-size N]   Show block fingerprints of a local file
  diff <path> <file_id>               Compare a local file with a stored one (nothing is uploaded)
  download <file_id> <output_path>    Download a stored file
  clear                               Clear screen and redisplay welcome message
  help                                Show this help
  exit                                Exit REPL

Examples:
  upload reports/q3.xlsx
  upload reports/q3.xlsx --replace 2f1c9a4e-...
  diff reports/q3.xlsx 2f1c9a4e-...
  signature reports/q3.xlsx --block-size 8192
  download 2f1c9a4e-... q3-copy.xlsx"""
