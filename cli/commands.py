"""Command handler functions for CLI operations."""

import asyncio
from pathlib import Path
from typing import Optional

from common.logging_config import get_logger
from common.types import FileSignature, UploadResult
from cli.config import Config
from cli.drive_client import DriveClient
from cli.models import DiffCommand, DownloadCommand, SignatureCommand, UploadCommand
from cli.utils import ProgressPrinter, format_file_size
from sync.delta import compute_delta
from sync.exceptions import SignatureUnavailableError, SyncError
from sync.gate import is_worthwhile
from sync.remote import RemoteStore
from sync.signature import build_signature
from sync.uploader import SmartUploader

logger = get_logger(__name__)

SIGNATURE_PREVIEW_BLOCKS = 20

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get or create the global Config instance.

    Returns:
        Config loaded from ~/.deltadrive/config.json
    """
    global _config
    if _config is None:
        _config = Config(Path.home() / '.deltadrive' / 'config.json')
    return _config


def make_client(config: Config) -> DriveClient:
    return DriveClient(config, api_key=config.get_api_key())


def _resolve_file(path_str: str) -> tuple[Path, str | None]:
    path = Path(path_str).expanduser()
    if not path.exists():
        return path, f"Error: File not found: {path_str}"
    if not path.is_file():
        return path, f"Error: Not a file: {path_str}"
    return path, None


def format_upload_result(name: str, result: UploadResult) -> str:
    stats = result.stats
    lines = [f"Uploaded: {name} (ID: {result.file_id[:8]}..., Mode: {result.mode})"]
    if result.mode == "delta":
        lines.append(
            f"  Reused {stats.reused_blocks}/{stats.total_blocks} blocks, "
            f"sent {format_file_size(stats.delta_size)} of {format_file_size(stats.original_size)} "
            f"({stats.savings_percent:.1f}% saved)"
        )
        if result.base_file_id:
            lines.append(f"  Base version: {result.base_file_id}")
    else:
        lines.append(f"  Sent {format_file_size(stats.original_size)} in {stats.total_blocks} chunk(s)")
        if result.fallback_reason:
            lines.append(f"  Delta skipped: {result.fallback_reason}")
    return '\n'.join(lines)


def format_signature(path: Path, signature: FileSignature) -> str:
    lines = [
        f"Signature of {path.name}: {signature.total_blocks} block(s), "
        f"{format_file_size(signature.total_size)}, block size {signature.block_size}"
    ]
    for fp in signature.signatures[:SIGNATURE_PREVIEW_BLOCKS]:
        lines.append(
            f"  #{fp.index:<6} offset={fp.offset:<10} len={fp.length:<6} "
            f"weak={fp.weak_hash:08x} sha256={fp.strong_hash[:16]}..."
        )
    hidden = signature.total_blocks - SIGNATURE_PREVIEW_BLOCKS
    if hidden > 0:
        lines.append(f"  ... ({hidden} more)")
    return '\n'.join(lines)


async def _run_with_client(config: Config, client: Optional[RemoteStore], action):
    owns_client = client is None
    if owns_client:
        client = make_client(config)
    try:
        return await action(client)
    finally:
        if owns_client:
            await client.close()


def handle_upload(cmd: UploadCommand, config: Optional[Config] = None, client: Optional[RemoteStore] = None) -> str:
    """
    Handle 'upload' command.

    Args:
        cmd: UploadCommand with path and optional replace/folder ids
        config: Optional Config for dependency injection (testing)
        client: Optional RemoteStore for dependency injection (testing)

    Returns:
        Success or error message with upload results
    """
    logger.info(f"Executing upload command: path={cmd.path} replace={cmd.replace_file_id} folder={cmd.folder}")
    config = config or get_config()
    path, error = _resolve_file(cmd.path)
    if error:
        return error

    try:
        options = config.get_sync_options()
    except ValueError as e:
        return f"Error: Invalid configuration: {e}"

    printer = ProgressPrinter(path.name, path.stat().st_size)

    async def action(remote: RemoteStore) -> str:
        uploader = SmartUploader(remote, options)
        try:
            result = await uploader.smart_upload(
                path,
                existing_file_id=cmd.replace_file_id,
                destination_folder=cmd.folder,
                on_progress=printer,
                match_existing=True,
            )
        except SyncError as e:
            printer.finish()
            logger.error(f"Upload of {path} failed: {type(e).__name__}: {e}")
            return f"Upload failed ({type(e).__name__}): {e}"
        printer.finish()
        return format_upload_result(path.name, result)

    return asyncio.run(_run_with_client(config, client, action))


def handle_signature(cmd: SignatureCommand, config: Optional[Config] = None) -> str:
    """
    Handle 'signature' command. Works offline.

    Returns:
        Formatted signature summary or error message
    """
    config = config or get_config()
    path, error = _resolve_file(cmd.path)
    if error:
        return error

    block_size = cmd.block_size or config.get_sync_options().block_size
    try:
        signature = build_signature(path, block_size)
    except SyncError as e:
        return f"Error reading {cmd.path}: {e}"
    return format_signature(path, signature)


def handle_diff(cmd: DiffCommand, config: Optional[Config] = None, client: Optional[RemoteStore] = None) -> str:
    """
    Handle 'diff' command: report what a delta upload would send.

    Returns:
        Formatted delta statistics or error message
    """
    config = config or get_config()
    path, error = _resolve_file(cmd.path)
    if error:
        return error
    threshold = config.get_sync_options().savings_threshold_percent

    async def action(remote: RemoteStore) -> str:
        try:
            remote_signature = await remote.fetch_signature(cmd.file_id)
        except SignatureUnavailableError as e:
            return f"Signature unavailable for {cmd.file_id}: {e}\nA full upload would be used."

        try:
            local_signature = build_signature(path, remote_signature.block_size)
            plan = compute_delta(local_signature, remote_signature, path)
        except SyncError as e:
            return f"Error comparing {cmd.path}: {e}"

        stats = plan.stats
        decision = "delta" if is_worthwhile(plan, threshold) else "full"
        return '\n'.join([
            f"Diff of {path.name} against {cmd.file_id[:8]}...:",
            f"  Blocks: {stats.total_blocks} total, {stats.reused_blocks} reused, {stats.novel_blocks} novel",
            f"  Novel bytes: {format_file_size(stats.delta_size)} of {format_file_size(stats.original_size)}",
            f"  Savings: {stats.savings_percent:.1f}% (threshold {threshold}%)",
            f"  Upload mode: {decision}",
        ])

    return asyncio.run(_run_with_client(config, client, action))


def handle_download(cmd: DownloadCommand, config: Optional[Config] = None, client: Optional[DriveClient] = None) -> str:
    """
    Handle 'download' command.

    Returns:
        Success or error message with download results
    """
    config = config or get_config()
    output = Path(cmd.output_path).expanduser()

    async def action(remote: DriveClient) -> str:
        try:
            content = await remote.download(cmd.file_id)
        except (ConnectionError, LookupError) as e:
            return f"Error: {e}"
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(content)
        except OSError as e:
            return f"Error writing file: {e}"
        return f"Downloaded: {cmd.file_id[:8]}... ({format_file_size(len(content))})\nSaved to: {output.absolute()}"

    return asyncio.run(_run_with_client(config, client, action))
