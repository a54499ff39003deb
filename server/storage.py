"""In-memory state of the drive server: content-addressed chunks, files, sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from common.logging_config import get_logger
from common.protocol import DeltaManifest

logger = get_logger(__name__)


@dataclass
class FileRecord:
    """
    A committed file: ordered chunk hashes plus metadata.
    """
    file_id: str
    name: str
    size: int
    parent_folder: Optional[str]
    chunk_hashes: List[str]
    content_hash: str
    created_at: datetime


@dataclass
class ChunkReceipt:
    """A full-mode chunk acknowledged within a session."""
    chunk_hash: str
    size: int


@dataclass
class SessionRecord:
    """
    Server-side state of an open upload session.
    """
    session_id: str
    filename: str
    total_size: int
    parent_folder: Optional[str]
    created_at: datetime
    chunks: Dict[int, ChunkReceipt] = field(default_factory=dict)
    novel_blocks: Dict[int, bytes] = field(default_factory=dict)
    manifest: Optional[DeltaManifest] = None

    @property
    def is_delta(self) -> bool:
        return self.manifest is not None or bool(self.novel_blocks)


class ChunkStore:
    """
    Content-addressed chunk storage with reference counts.

    Storing content that is already present only bumps its reference count.
    """

    def __init__(self):
        self._chunks: Dict[str, bytes] = {}
        self._refcounts: Dict[str, int] = {}

    def put(self, chunk_hash: str, data: bytes) -> bool:
        """
        Store a chunk under its hash.

        Returns:
            True if the content was new, False if it was deduplicated
        """
        if chunk_hash in self._chunks:
            logger.debug(f"Chunk {chunk_hash[:12]} already stored; deduplicated")
            return False
        self._chunks[chunk_hash] = data
        self._refcounts.setdefault(chunk_hash, 0)
        return True

    def get(self, chunk_hash: str) -> bytes:
        return self._chunks[chunk_hash]

    def contains(self, chunk_hash: str) -> bool:
        return chunk_hash in self._chunks

    def retain(self, chunk_hash: str) -> None:
        self._refcounts[chunk_hash] = self._refcounts.get(chunk_hash, 0) + 1

    def release(self, chunk_hash: str) -> None:
        """Drop one reference; unreferenced content is deleted."""
        remaining = self._refcounts.get(chunk_hash, 0) - 1
        if remaining > 0:
            self._refcounts[chunk_hash] = remaining
            return
        self._refcounts.pop(chunk_hash, None)
        self._chunks.pop(chunk_hash, None)

    def refcount(self, chunk_hash: str) -> int:
        return self._refcounts.get(chunk_hash, 0)

    def __len__(self) -> int:
        return len(self._chunks)


class DriveStore:
    """Aggregate of files, sessions and chunks held by one server process."""

    def __init__(self):
        self.chunks = ChunkStore()
        self.files: Dict[str, FileRecord] = {}
        self.sessions: Dict[str, SessionRecord] = {}

    def used_bytes(self) -> int:
        return sum(record.size for record in self.files.values())

    def read_file(self, record: FileRecord) -> bytes:
        return b''.join(self.chunks.get(h) for h in record.chunk_hashes)


_store: Optional[DriveStore] = None


def get_store() -> DriveStore:
    """
    Get or create the process-wide DriveStore.

    Returns:
        DriveStore instance
    """
    global _store
    if _store is None:
        _store = DriveStore()
    return _store


def reset_store() -> DriveStore:
    """Replace the process-wide store with an empty one."""
    global _store
    _store = DriveStore()
    return _store
