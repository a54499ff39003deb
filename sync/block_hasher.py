"""Splits a byte stream into fixed-size blocks and fingerprints each one."""

from typing import BinaryIO, Iterator, List

from common.checksums import compute_strong_hash, compute_weak_hash
from common.constants import BLOCK_SIZE_BYTES
from common.types import Block, BlockFingerprint
from sync.exceptions import ReadError
from sync.source import read_exact


def block_layout(total_length: int, block_size: int = BLOCK_SIZE_BYTES) -> List[Block]:
    """
    Compute the block extents covering `total_length` bytes.

    Every block is exactly `block_size` long except possibly the last,
    which holds `total_length % block_size` bytes (or a full block when
    the length divides evenly). An empty input has no blocks.
    """
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    if total_length < 0:
        raise ValueError(f"total_length must be non-negative, got {total_length}")

    blocks = []
    for index, offset in enumerate(range(0, total_length, block_size)):
        blocks.append(Block(index=index, offset=offset, length=min(block_size, total_length - offset)))
    return blocks


def fingerprint_block(block: Block, data: bytes) -> BlockFingerprint:
    return BlockFingerprint(
        index=block.index,
        offset=block.offset,
        length=block.length,
        weak_hash=compute_weak_hash(data),
        strong_hash=compute_strong_hash(data),
    )


def iter_block_fingerprints(
    stream: BinaryIO,
    total_length: int,
    block_size: int = BLOCK_SIZE_BYTES,
) -> Iterator[BlockFingerprint]:
    """
    Yield one fingerprint per block, in index order.

    Args:
        stream: Seekable binary stream positioned anywhere
        total_length: Number of bytes the stream is expected to hold
        block_size: Block size in bytes (> 0)

    Raises:
        ReadError: If the stream ends before `total_length` bytes were read
    """
    for block in block_layout(total_length, block_size):
        data = read_exact(stream, block.offset, block.length)
        if len(data) != block.length:
            raise ReadError(
                f"Short read for block {block.index}: expected {block.length} bytes, got {len(data)}"
            )
        yield fingerprint_block(block, data)
