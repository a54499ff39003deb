"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class UploadCommand:
    """Upload a file, as a delta against `replace_file_id` when given."""

    path: str
    replace_file_id: str | None = None
    folder: str | None = None
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class SignatureCommand:
    """Show the block signature of a local file."""

    path: str
    block_size: int | None = None
    command: Literal["signature"] = "signature"


@dataclass(frozen=True)
class DiffCommand:
    """Compare a local file against a stored file without uploading."""

    path: str
    file_id: str
    command: Literal["diff"] = "diff"


@dataclass(frozen=True)
class DownloadCommand:
    """Download a stored file by id."""

    file_id: str
    output_path: str
    command: Literal["download"] = "download"


CommandRequest = (
    UploadCommand
    | SignatureCommand
    | DiffCommand
    | DownloadCommand
)
