"""Configuration settings for the drive server."""

import os

from common.constants import BLOCK_SIZE_BYTES, CHUNK_SIZE_BYTES, DEFAULT_QUOTA_BYTES, DEFAULT_SERVER_PORT


SERVER_HOST = os.environ.get("DELTADRIVE_HOST", "0.0.0.0")

SERVER_PORT = int(os.environ.get("DELTADRIVE_PORT", str(DEFAULT_SERVER_PORT)))

QUOTA_BYTES = int(os.environ.get("DELTADRIVE_QUOTA_BYTES", str(DEFAULT_QUOTA_BYTES)))

# Block size used when computing signatures of stored files.
SIGNATURE_BLOCK_SIZE = int(os.environ.get("DELTADRIVE_BLOCK_SIZE", str(BLOCK_SIZE_BYTES)))

STORAGE_CHUNK_SIZE = CHUNK_SIZE_BYTES
