"""Upload session service: chunk intake, delta reconstruction, commit."""

from typing import Dict, List, Optional

from common.checksums import IncrementalChecksumCalculator, compute_strong_hash
from common.logging_config import get_logger
from common.protocol import DeltaManifest, signature_to_dict
from server.config import QUOTA_BYTES, SIGNATURE_BLOCK_SIZE, STORAGE_CHUNK_SIZE
from server.exceptions import (
    ChecksumMismatchError,
    IncompleteUploadError,
    InvalidDeltaError,
    QuotaExceededError,
    SessionNotFoundError,
    SessionStateConflictError,
    StoredFileNotFoundError,
)
from server.storage import ChunkReceipt, DriveStore, FileRecord, SessionRecord, get_store
from server.utils import generate_uuid, utc_now
from sync.delta import apply_delta, split_blocks
from sync.exceptions import DeltaApplyError
from sync.signature import build_signature

logger = get_logger(__name__)


class UploadService:
    def __init__(self, store: Optional[DriveStore] = None, quota_bytes: Optional[int] = None):
        self.store = store if store is not None else get_store()
        self.quota_bytes = quota_bytes if quota_bytes is not None else QUOTA_BYTES

    def get_session(self, session_id: str) -> SessionRecord:
        session = self.store.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Upload session {session_id} not found")
        return session

    def get_file(self, file_id: str) -> FileRecord:
        record = self.store.files.get(file_id)
        if record is None:
            raise StoredFileNotFoundError(f"File {file_id} not found")
        return record

    def find_files(self, name: str, parent_folder: Optional[str] = None) -> List[FileRecord]:
        """Stored files named `name` in `parent_folder`, oldest commit first."""
        return [
            record for record in self.store.files.values()
            if record.name == name and record.parent_folder == parent_folder
        ]

    def open_session(self, filename: str, total_size: int, parent_folder: Optional[str] = None) -> SessionRecord:
        """
        Open an upload session after checking the quota.

        Raises:
            QuotaExceededError: If the declared size does not fit
        """
        used = self.store.used_bytes()
        if used + total_size > self.quota_bytes:
            raise QuotaExceededError(
                f"Uploading {total_size} bytes would exceed quota "
                f"({used}/{self.quota_bytes} bytes used)"
            )

        session = SessionRecord(
            session_id=generate_uuid(),
            filename=filename,
            total_size=total_size,
            parent_folder=parent_folder,
            created_at=utc_now(),
        )
        self.store.sessions[session.session_id] = session
        logger.info(f"Opened session {session.session_id} for {filename!r} ({total_size} bytes)")
        return session

    def store_chunk(self, session_id: str, index: int, chunk_hash: str, data: bytes) -> bool:
        """
        Verify and store one full-mode chunk.

        Re-sending an index replaces the earlier receipt.

        Returns:
            True if the chunk content was deduplicated against stored data

        Raises:
            SessionNotFoundError: Unknown session
            SessionStateConflictError: Session already carries delta data
            ChecksumMismatchError: Data does not hash to chunk_hash
        """
        session = self.get_session(session_id)
        if session.is_delta:
            raise SessionStateConflictError(f"Session {session_id} is a delta upload")

        actual = compute_strong_hash(data)
        if actual != chunk_hash:
            logger.warning(
                f"Chunk #{index} checksum mismatch in session {session_id}: "
                f"expected={chunk_hash[:12]} actual={actual[:12]}"
            )
            raise ChecksumMismatchError(f"Checksum mismatch for chunk #{index}")

        is_new = self.store.chunks.put(actual, data)
        session.chunks[index] = ChunkReceipt(chunk_hash=actual, size=len(data))
        logger.debug(f"Stored chunk #{index} ({len(data)} bytes) in session {session_id}")
        return not is_new

    def store_blocks(self, session_id: str, blocks: Dict[int, bytes]) -> int:
        """Accept a batch of novel blocks keyed by their block index."""
        session = self.get_session(session_id)
        if session.chunks:
            raise SessionStateConflictError(f"Session {session_id} is a full upload")
        if session.manifest is not None:
            raise SessionStateConflictError(f"Session {session_id} already received its delta manifest")
        session.novel_blocks.update(blocks)
        logger.debug(f"Received {len(blocks)} novel blocks in session {session_id}")
        return len(session.novel_blocks)

    def store_manifest(self, session_id: str, manifest: DeltaManifest) -> None:
        session = self.get_session(session_id)
        if session.chunks:
            raise SessionStateConflictError(f"Session {session_id} is a full upload")
        if session.manifest is not None:
            raise SessionStateConflictError(f"Session {session_id} already received its delta manifest")
        if manifest.base_file_id not in self.store.files:
            raise StoredFileNotFoundError(f"Base file {manifest.base_file_id} not found")
        session.manifest = manifest

    def complete_session(self, session_id: str) -> FileRecord:
        """
        Commit the session as a new file.

        Raises:
            IncompleteUploadError: Missing chunks/blocks or size mismatch
            InvalidDeltaError: Delta instructions do not apply to the base
        """
        session = self.get_session(session_id)
        if session.is_delta:
            data = self._reconstruct(session)
        else:
            data = self._assemble(session)

        if len(data) != session.total_size:
            raise IncompleteUploadError(
                f"Upload produced {len(data)} bytes, expected {session.total_size}"
            )

        record = self._commit(session, data)
        del self.store.sessions[session_id]
        logger.info(
            f"Completed session {session_id}: file {record.file_id} "
            f"({record.size} bytes, {'delta' if session.is_delta else 'full'})"
        )
        return record

    def _assemble(self, session: SessionRecord) -> bytes:
        for position in range(len(session.chunks)):
            if position not in session.chunks:
                raise IncompleteUploadError(f"Missing chunk #{position}")
        return b''.join(
            self.store.chunks.get(session.chunks[position].chunk_hash)
            for position in range(len(session.chunks))
        )

    def _reconstruct(self, session: SessionRecord) -> bytes:
        manifest = session.manifest
        if manifest is None:
            raise IncompleteUploadError("Delta manifest was never received")
        for block_index in range(manifest.novel_block_count):
            if block_index not in session.novel_blocks:
                raise IncompleteUploadError(f"Missing novel block #{block_index}")
        if manifest.total_size is not None and manifest.total_size != session.total_size:
            raise InvalidDeltaError(
                f"Manifest declares {manifest.total_size} bytes, session declared {session.total_size}"
            )

        base = self.get_file(manifest.base_file_id)
        base_blocks = split_blocks(self.store.read_file(base), SIGNATURE_BLOCK_SIZE)
        try:
            return apply_delta(manifest.instructions, session.novel_blocks, base_blocks)
        except DeltaApplyError as e:
            raise InvalidDeltaError(str(e)) from e

    def _commit(self, session: SessionRecord, data: bytes) -> FileRecord:
        calculator = IncrementalChecksumCalculator()
        chunk_hashes = []
        for offset in range(0, len(data), STORAGE_CHUNK_SIZE):
            piece = data[offset:offset + STORAGE_CHUNK_SIZE]
            chunk_hash = compute_strong_hash(piece)
            self.store.chunks.put(chunk_hash, piece)
            self.store.chunks.retain(chunk_hash)
            chunk_hashes.append(chunk_hash)
            calculator.update(piece)

        record = FileRecord(
            file_id=generate_uuid(),
            name=session.filename,
            size=calculator.size,
            parent_folder=session.parent_folder,
            chunk_hashes=chunk_hashes,
            content_hash=calculator.finalize(),
            created_at=utc_now(),
        )
        self.store.files[record.file_id] = record
        self._release_session_chunks(session)
        return record

    def _release_session_chunks(self, session: SessionRecord) -> None:
        """Drop session-only chunk content no file or other session still needs."""
        pending = {
            receipt.chunk_hash
            for other in self.store.sessions.values()
            if other.session_id != session.session_id
            for receipt in other.chunks.values()
        }
        for receipt in session.chunks.values():
            chunk_hash = receipt.chunk_hash
            if self.store.chunks.refcount(chunk_hash) == 0 and chunk_hash not in pending:
                self.store.chunks.release(chunk_hash)

    def abort_session(self, session_id: str) -> None:
        session = self.get_session(session_id)
        self._release_session_chunks(session)
        del self.store.sessions[session_id]
        logger.info(f"Aborted session {session_id}")

    def get_signature(self, file_id: str) -> dict:
        """Block signature of a stored file, in wire form."""
        record = self.get_file(file_id)
        signature = build_signature(self.store.read_file(record), SIGNATURE_BLOCK_SIZE)
        return signature_to_dict(signature)

    def read_file(self, file_id: str) -> bytes:
        return self.store.read_file(self.get_file(file_id))

    def iter_file(self, record: FileRecord):
        """Yield a stored file's content chunk by chunk."""
        for chunk_hash in record.chunk_hashes:
            yield self.store.chunks.get(chunk_hash)
