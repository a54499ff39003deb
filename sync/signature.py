"""Builds the ordered FileSignature of a whole file."""

from common.constants import BLOCK_SIZE_BYTES
from common.logging_config import get_logger
from common.types import FileSignature
from sync.block_hasher import iter_block_fingerprints
from sync.source import ByteSource, open_source, source_name

logger = get_logger(__name__)


def build_signature(source: ByteSource, block_size: int = BLOCK_SIZE_BYTES) -> FileSignature:
    """
    Fingerprint every block of `source`.

    Args:
        source: Path, in-memory bytes, or seekable binary file object
        block_size: Block size in bytes

    Returns:
        FileSignature covering the whole source with no gaps or overlap

    Raises:
        ReadError: If the source cannot be read in full
    """
    with open_source(source) as (stream, total_length):
        fingerprints = tuple(iter_block_fingerprints(stream, total_length, block_size))

    logger.debug(
        f"Built signature for {source_name(source)}: {len(fingerprints)} blocks "
        f"({total_length} bytes, block_size={block_size})"
    )
    return FileSignature(block_size=block_size, signatures=fingerprints)
