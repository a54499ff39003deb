"""Weak (Adler-32) and strong (SHA-256) block checksums."""

import hashlib
import zlib


def compute_weak_hash(data: bytes) -> int:
    """
    Compute the additive weak checksum of a block.

    Adler-32: two accumulators mod 65521 combined as (b << 16) | a, so the
    result always fits in 32 bits.

    Args:
        data: Block bytes

    Returns:
        Unsigned 32-bit checksum
    """
    return zlib.adler32(data) & 0xFFFFFFFF


def compute_strong_hash(data: bytes) -> str:
    """
    Compute SHA-256 checksum for given data.
    
    Args:
        data: Bytes to compute checksum for
        
    Returns:
        Hexadecimal string representation of SHA-256 hash
    """
    return hashlib.sha256(data).hexdigest()


def verify_strong_hash(data: bytes, expected: str) -> bool:
    """
    Verify that data matches expected SHA-256 checksum.
    
    Args:
        data: Bytes to verify
        expected: Expected SHA-256 checksum (hex string)
        
    Returns:
        True if checksum matches, False otherwise
    """
    return compute_strong_hash(data) == expected


class IncrementalChecksumCalculator:
    """
    Calculate SHA-256 checksum incrementally for streaming data.
    
    Usage:
        calculator = IncrementalChecksumCalculator()
        calculator.update(chunk1)
        calculator.update(chunk2)
        final_checksum = calculator.finalize()
    """
    
    def __init__(self):
        self._hasher = hashlib.sha256()
        self._size = 0
        self._finalized = False
    
    def update(self, data: bytes) -> None:
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)
        self._size += len(data)

    @property
    def size(self) -> int:
        """Number of bytes fed so far."""
        return self._size
    
    def finalize(self) -> str:
        self._finalized = True
        return self._hasher.hexdigest()
