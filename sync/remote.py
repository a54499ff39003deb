"""Interface of the remote storage service consumed by the upload engine."""

from typing import Callable, Optional, Sequence

from common.types import FileSignature, Instruction

AckCallback = Callable[[int], None]


class RemoteStore:
    """
    Opaque storage server holding files, chunks and upload sessions.

    Implementations raise the sync.exceptions error matching each call:
    FileLookupError, SessionOpenError, SignatureUnavailableError,
    TransmissionError, FinalizeError. abort_session is best-effort and
    its failures are only logged by the caller.
    """

    async def open_session(self, filename: str, total_size: int, parent_folder: Optional[str] = None) -> str:
        """Open an upload session and return its id."""
        raise NotImplementedError

    async def fetch_signature(self, file_id: str) -> FileSignature:
        """Return the stored signature of `file_id`."""
        raise NotImplementedError

    async def find_file(self, filename: str, parent_folder: Optional[str] = None) -> Optional[str]:
        """Return the id of the newest stored file named `filename` in `parent_folder`, or None."""
        raise NotImplementedError

    async def transmit_chunk(self, session_id: str, index: int, strong_hash: str, data: bytes) -> None:
        """Send one full-mode transport chunk; returns once acknowledged."""
        raise NotImplementedError

    async def transmit_delta(
        self,
        session_id: str,
        base_file_id: str,
        instructions: Sequence[Instruction],
        novel_blocks: Sequence[bytes],
        total_size: int,
        on_ack: Optional[AckCallback] = None,
    ) -> None:
        """
        Send a delta payload.

        `on_ack` receives the number of novel-block bytes covered by each
        acknowledged transport batch.
        """
        raise NotImplementedError

    async def complete_session(self, session_id: str) -> str:
        """Commit the session and return the resulting file id."""
        raise NotImplementedError

    async def abort_session(self, session_id: str) -> None:
        """Discard an unfinished session and the partial data it holds."""
        raise NotImplementedError

    async def close(self) -> None:
        pass
