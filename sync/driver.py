"""Drives an UploadSession through its network calls."""

import asyncio
from typing import Optional

from common.checksums import compute_strong_hash
from common.logging_config import get_logger
from common.types import DeltaPlan
from sync.block_hasher import block_layout
from sync.exceptions import (
    FinalizeError,
    SessionOpenError,
    SourceChangedError,
    SyncError,
    TransmissionError,
    UploadCancelledError,
)
from sync.options import SyncOptions
from sync.remote import RemoteStore
from sync.session import MODE_DELTA, MODE_FULL, Init, UploadSession
from sync.source import ByteSource, open_source, read_exact

logger = get_logger(__name__)


class UploadSessionDriver:
    """
    Runs the open / transmit / finalize steps of one upload session.

    Every remote call is a suspension point. A failure at any step moves
    the session to Failed and is re-raised; nothing is retried here.
    """

    def __init__(self, remote: RemoteStore, options: Optional[SyncOptions] = None):
        self.remote = remote
        self.options = options or SyncOptions()
        self._released = set()
        self._background = set()

    async def call_remote(self, session: UploadSession, error_cls, description: str, awaitable, recoverable=()):
        """
        Await one remote call on behalf of `session`.

        Exceptions listed in `recoverable` propagate without touching the
        session. Other SyncErrors fail the session as-is, remaining
        exceptions are wrapped in `error_cls`, and task cancellation fails
        it as UploadCancelledError.
        """
        try:
            return await awaitable
        except recoverable:
            raise
        except asyncio.CancelledError:
            session.fail(UploadCancelledError(f"Cancelled during {description}"))
            await self.release(session)
            raise
        except SyncError as e:
            session.fail(e)
            await self.release(session)
            raise
        except Exception as e:
            error = error_cls(f"{description} failed: {e}")
            session.fail(error)
            await self.release(session)
            raise error from e

    async def open(self, filename: str, total_size: int, parent_folder: Optional[str] = None) -> UploadSession:
        """
        Open a new session on the remote store.

        Raises:
            SessionOpenError: If the remote store refuses (quota, auth, network)
        """
        session = UploadSession(filename, total_size, parent_folder)
        session_id = await self.call_remote(
            session,
            SessionOpenError,
            "open session",
            self.remote.open_session(filename, total_size, parent_folder),
        )
        session.bind(session_id)
        logger.info(f"Opened upload session {session_id} for {filename!r} ({total_size} bytes)")
        return session

    async def _ensure_active(self, session: UploadSession) -> None:
        try:
            session.ensure_active()
        except SyncError:
            await self.release(session)
            raise

    async def _enter_mode(self, session: UploadSession, mode: str) -> None:
        await self._ensure_active(session)
        if isinstance(session.state, Init):
            session.begin_transmitting(mode)
        else:
            session.switch_mode(mode)

    async def transmit_full(self, session: UploadSession, source: ByteSource) -> int:
        """
        Send every transport chunk of `source`, each with its SHA-256.

        Chunks may be in flight concurrently (upload_concurrency), but this
        returns only after all of them were acknowledged. The first failure
        cancels the chunks still pending.

        Returns:
            Number of chunks sent

        Raises:
            TransmissionError: If any chunk is not acknowledged
            SourceChangedError: If the source size differs from the declared size
            ReadError: If the source cannot be read
        """
        await self._enter_mode(session, MODE_FULL)

        try:
            with open_source(source) as (stream, total_length):
                if total_length != session.total_size:
                    raise SourceChangedError(
                        f"Source is {total_length} bytes, session declared {session.total_size}"
                    )
                chunks = block_layout(total_length, self.options.chunk_size)
                if not chunks:
                    session.report_progress(1.0)
                    return 0

                semaphore = asyncio.Semaphore(self.options.upload_concurrency)
                acknowledged = 0

                async def send(chunk):
                    nonlocal acknowledged
                    async with semaphore:
                        session.ensure_active()
                        data = read_exact(stream, chunk.offset, chunk.length)
                        if len(data) != chunk.length:
                            raise SourceChangedError(f"Chunk {chunk.index} shorter than expected")
                        await self.remote.transmit_chunk(session.id, chunk.index, compute_strong_hash(data), data)
                        acknowledged += 1
                        session.log.debug(f"Chunk {chunk.index + 1}/{len(chunks)} acknowledged")
                        session.report_progress(acknowledged / len(chunks))

                tasks = [asyncio.ensure_future(send(chunk)) for chunk in chunks]
                try:
                    await asyncio.gather(*tasks)
                except BaseException:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise
        except asyncio.CancelledError:
            session.fail(UploadCancelledError("Cancelled during chunk transmission"))
            await self.release(session)
            raise
        except SyncError as e:
            session.fail(e)
            await self.release(session)
            raise
        except Exception as e:
            error = TransmissionError(f"Chunk transmission failed: {e}")
            session.fail(error)
            await self.release(session)
            raise error from e

        logger.info(f"Transmitted {len(chunks)} chunks for session {session.id}")
        return len(chunks)

    async def transmit_delta(self, session: UploadSession, base_file_id: str, plan: DeltaPlan) -> None:
        """
        Send a delta plan's instructions and novel blocks as one logical payload.

        Progress advances by the fraction of novel bytes acknowledged.

        Raises:
            TransmissionError: If the payload is not acknowledged
        """
        await self._enter_mode(session, MODE_DELTA)

        total_bytes = plan.stats.delta_size
        acknowledged = 0

        def on_ack(nbytes: int) -> None:
            nonlocal acknowledged
            acknowledged += nbytes
            if total_bytes:
                session.report_progress(acknowledged / total_bytes)

        await self.call_remote(
            session,
            TransmissionError,
            "delta transmission",
            self.remote.transmit_delta(
                session.id,
                base_file_id,
                plan.instructions,
                plan.novel_blocks,
                session.total_size,
                on_ack=on_ack,
            ),
        )
        session.report_progress(1.0)
        logger.info(
            f"Transmitted delta for session {session.id}: "
            f"{len(plan.instructions)} instructions, {len(plan.novel_blocks)} novel blocks"
        )

    async def finalize(self, session: UploadSession) -> str:
        """
        Commit the session. Only valid once every unit has been acknowledged.

        Returns:
            The resulting file id

        Raises:
            FinalizeError: If the remote store rejects the commit
        """
        await self._ensure_active(session)
        session.begin_finalizing()
        file_id = await self.call_remote(
            session,
            FinalizeError,
            "complete session",
            self.remote.complete_session(session.id),
        )
        session.complete(file_id)
        logger.info(f"Session {session.id} complete: file_id={file_id}")
        return file_id

    def _claim_release(self, session: UploadSession) -> bool:
        if session.id is None or session.failure is None or session.id in self._released:
            return False
        self._released.add(session.id)
        return True

    async def _abort_remote(self, session: UploadSession) -> None:
        try:
            await self.remote.abort_session(session.id)
        except Exception as e:
            session.log.warning(f"Could not discard session {session.id} on the remote store: {e}")
            return
        session.log.info(f"Discarded session {session.id} on the remote store")

    async def release(self, session: UploadSession) -> None:
        """
        Ask the remote store to drop a failed session's partial data.

        Best-effort and sent at most once per session; a session without
        an id or that has not failed is left alone.
        """
        if self._claim_release(session):
            await self._abort_remote(session)

    def abandon(self, session: UploadSession) -> None:
        """
        Cancel `session`; Finalizing will never be attempted afterwards.

        When called from inside the event loop the remote session is
        discarded in the background; otherwise the next driver step on the
        session discards it.
        """
        session.abandon()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._claim_release(session):
            task = loop.create_task(self._abort_remote(session))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
