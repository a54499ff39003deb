"""Smart upload: delta sync when it pays off, full chunked upload otherwise."""

from typing import Optional, Tuple

from common.logging_config import get_logger
from common.types import DeltaPlan, DeltaStats, UploadResult
from sync.block_hasher import block_layout
from sync.delta import compute_delta
from sync.driver import UploadSessionDriver
from sync.exceptions import (
    FileLookupError,
    SignatureUnavailableError,
    SourceChangedError,
    SyncError,
    TransmissionError,
)
from sync.gate import is_worthwhile
from sync.options import SyncOptions
from sync.remote import RemoteStore
from sync.session import MODE_DELTA, MODE_FULL, ProgressCallback, UploadSession
from sync.signature import build_signature
from sync.source import ByteSource, open_source, source_name

logger = get_logger(__name__)


def full_upload_stats(total_size: int, chunk_size: int) -> DeltaStats:
    """Stats for a full upload: every chunk is sent, nothing is reused."""
    chunks = len(block_layout(total_size, chunk_size))
    return DeltaStats(
        total_blocks=chunks,
        novel_blocks=chunks,
        reused_blocks=0,
        original_size=total_size,
        delta_size=total_size,
    )


class SmartUploader:
    """
    Chooses between delta and full upload for each file.

    A delta is attempted when the caller names the stored version it
    replaces, or asks for a same-name file in the destination folder. A missing signature or a delta below the savings threshold
    falls back to a full upload inside the same session. Every other error
    fails the upload and is raised to the caller.
    """

    def __init__(self, remote: RemoteStore, options: Optional[SyncOptions] = None):
        self.options = options or SyncOptions()
        self.driver = UploadSessionDriver(remote, self.options)
        self.current_session: Optional[UploadSession] = None

    def abandon(self) -> None:
        """Abandon the upload currently in progress, if any."""
        if self.current_session is not None and not self.current_session.is_terminal:
            self.driver.abandon(self.current_session)

    @property
    def remote(self) -> RemoteStore:
        return self.driver.remote

    async def find_existing(self, filename: str, destination_folder: Optional[str] = None) -> Optional[str]:
        """Stored version of `filename` in `destination_folder`, or None when there is none or the lookup fails."""
        try:
            file_id = await self.remote.find_file(filename, destination_folder)
        except FileLookupError as e:
            logger.info(f"Lookup of {filename!r} failed ({e}); uploading as a new file")
            return None
        if file_id:
            logger.info(f"Found stored version {file_id} of {filename!r}; trying delta upload")
        return file_id

    async def _plan_delta(
        self,
        session: UploadSession,
        source: ByteSource,
        existing_file_id: str,
    ) -> Tuple[Optional[DeltaPlan], Optional[str]]:
        """
        Fetch the stored signature and compute a delta against it.

        Returns:
            (plan, None) when the delta should be used, otherwise
            (None, reason for falling back)
        """
        try:
            remote_signature = await self.driver.call_remote(
                session,
                TransmissionError,
                "signature fetch",
                self.remote.fetch_signature(existing_file_id),
                recoverable=(SignatureUnavailableError,),
            )
        except SignatureUnavailableError as e:
            logger.info(f"Signature for {existing_file_id} unavailable ({e}); falling back to full upload")
            return None, "signature unavailable"

        try:
            # The stored signature's block size wins over the configured one.
            local_signature = build_signature(source, remote_signature.block_size)
            if local_signature.total_size != session.total_size:
                raise SourceChangedError(
                    f"Source is {local_signature.total_size} bytes, session declared {session.total_size}"
                )
            plan = compute_delta(local_signature, remote_signature, source)
        except SyncError as e:
            session.fail(e)
            await self.driver.release(session)
            raise

        if not is_worthwhile(plan, self.options.savings_threshold_percent):
            logger.info(
                f"Delta not worthwhile: {plan.stats.savings_percent:.1f}% savings "
                f"< {self.options.savings_threshold_percent}% threshold; falling back to full upload"
            )
            return None, "below savings threshold"

        logger.info(
            f"Delta accepted: {plan.stats.savings_percent:.1f}% savings "
            f">= {self.options.savings_threshold_percent}% threshold"
        )
        return plan, None

    async def smart_upload(
        self,
        source: ByteSource,
        existing_file_id: Optional[str] = None,
        destination_folder: Optional[str] = None,
        filename: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        match_existing: bool = False,
    ) -> UploadResult:
        """
        Upload `source`, reusing blocks of `existing_file_id` when worthwhile.

        Args:
            source: Path, bytes, or seekable binary file object
            existing_file_id: Stored version this upload replaces, if any
            destination_folder: Parent folder for the new file
            filename: Name to store under (defaults to the source's name)
            on_progress: Called with the transmitted fraction in [0, 1]
            match_existing: Without `existing_file_id`, look up a stored file
                with the same name in `destination_folder` and use it as the base

        Returns:
            UploadResult with the new file id and savings stats

        Raises:
            SyncError subclass naming the failure (ReadError, SourceChangedError,
            SessionOpenError, TransmissionError, FinalizeError, UploadCancelledError)
        """
        filename = filename or source_name(source)
        with open_source(source) as (_, total_size):
            pass

        if existing_file_id is None and match_existing:
            existing_file_id = await self.find_existing(filename, destination_folder)

        session = await self.driver.open(filename, total_size, destination_folder)
        self.current_session = session
        if on_progress is not None:
            session.subscribe(on_progress)

        plan, fallback_reason = None, None
        if existing_file_id:
            session.begin_transmitting(MODE_DELTA)
            plan, fallback_reason = await self._plan_delta(session, source, existing_file_id)

        if plan is not None:
            await self.driver.transmit_delta(session, existing_file_id, plan)
            stats = plan.stats
        else:
            await self.driver.transmit_full(session, source)
            stats = full_upload_stats(total_size, self.options.chunk_size)

        mode = MODE_DELTA if plan is not None else MODE_FULL
        file_id = await self.driver.finalize(session)
        logger.info(
            f"Uploaded {filename!r} as {file_id} via {mode} mode "
            f"(savings={stats.savings_percent:.1f}%)"
        )
        return UploadResult(
            file_id=file_id,
            session_id=session.id,
            mode=mode,
            stats=stats,
            fallback_reason=fallback_reason,
            base_file_id=existing_file_id if plan is not None else None,
        )


async def smart_upload(
    remote: RemoteStore,
    source: ByteSource,
    existing_file_id: Optional[str] = None,
    destination_folder: Optional[str] = None,
    options: Optional[SyncOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
    match_existing: bool = False,
) -> UploadResult:
    """Convenience wrapper around SmartUploader.smart_upload."""
    uploader = SmartUploader(remote, options)
    return await uploader.smart_upload(
        source,
        existing_file_id=existing_file_id,
        destination_folder=destination_folder,
        on_progress=on_progress,
        match_existing=match_existing,
    )
