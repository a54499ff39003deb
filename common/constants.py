"""Project-wide constants (block sizes, thresholds, default ports)."""

BLOCK_SIZE_BYTES: int = 4096  # 4 KiB delta blocks, shared by client and server
CHUNK_SIZE_BYTES: int = 1024 * 1024  # 1 MiB transport chunks for full uploads
DELTA_BATCH_BYTES: int = 4 * 1024 * 1024
DELTA_BATCH_MAX_BLOCKS: int = 1024  # block_<i> parts per request, enforced by the server form parser

DEFAULT_SAVINGS_THRESHOLD_PERCENT: float = 20.0

DEFAULT_SERVER_PORT: int = 8000
DEFAULT_QUOTA_BYTES: int = 5 * 1024 * 1024 * 1024
