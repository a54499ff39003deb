"""Per-call tuning options for the upload engine."""

from dataclasses import dataclass

from common.constants import (
    BLOCK_SIZE_BYTES,
    CHUNK_SIZE_BYTES,
    DEFAULT_SAVINGS_THRESHOLD_PERCENT,
)


@dataclass(frozen=True)
class SyncOptions:
    """
    Options recognised by the uploader.

    block_size only applies when no remote signature dictates one.
    """
    block_size: int = BLOCK_SIZE_BYTES
    chunk_size: int = CHUNK_SIZE_BYTES
    savings_threshold_percent: float = DEFAULT_SAVINGS_THRESHOLD_PERCENT
    upload_concurrency: int = 1

    def __post_init__(self):
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.upload_concurrency < 1:
            raise ValueError(f"upload_concurrency must be at least 1, got {self.upload_concurrency}")
