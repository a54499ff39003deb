"""Unit tests for UploadSessionDriver."""

import asyncio

import pytest
from sync.driver import UploadSessionDriver
from sync.exceptions import (
    FinalizeError,
    SessionOpenError,
    SourceChangedError,
    TransmissionError,
    UploadCancelledError,
)
from sync.options import SyncOptions
from sync.session import Complete, Failed, Init, MODE_FULL

from conftest import FakeRemoteStore


def _driver(remote, chunk_size=1024, concurrency=1):
    return UploadSessionDriver(remote, SyncOptions(chunk_size=chunk_size, upload_concurrency=concurrency))


@pytest.mark.asyncio
async def test_open_binds_session_id(fake_remote):
    driver = _driver(fake_remote)

    session = await driver.open('a.bin', 10, 'docs')

    assert session.id == 'session-1'
    assert session.state == Init()
    assert fake_remote.opened == [('session-1', 'a.bin', 10, 'docs')]


@pytest.mark.asyncio
async def test_open_failure_is_raised(fake_remote):
    fake_remote.fail_open = True
    driver = _driver(fake_remote)

    with pytest.raises(SessionOpenError):
        await driver.open('a.bin', 10)


@pytest.mark.asyncio
async def test_full_upload_sends_every_chunk(fake_remote):
    data = bytes(range(256)) * 10
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', len(data))
    progress = []
    session.subscribe(progress.append)

    sent = await driver.transmit_full(session, data)
    file_id = await driver.finalize(session)

    assert sent == 3
    assert [call[1] for call in fake_remote.chunk_calls] == [0, 1, 2]
    assert progress == pytest.approx([1 / 3, 2 / 3, 1.0])
    assert session.state == Complete(file_id=file_id)
    assert fake_remote.files[file_id] == data


@pytest.mark.asyncio
async def test_chunk_failure_fails_session_and_skips_finalize(fake_remote):
    """Chunk 3 of 5 is rejected."""
    data = b'x' * (5 * 1024)
    fake_remote.fail_chunk_index = 2
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', len(data))

    with pytest.raises(TransmissionError):
        await driver.transmit_full(session, data)

    assert isinstance(session.state, Failed)
    assert isinstance(session.failure, TransmissionError)
    assert [call[1] for call in fake_remote.chunk_calls] == [0, 1]
    with pytest.raises(TransmissionError):
        await driver.finalize(session)
    assert fake_remote.complete_calls == []

    fake_remote.fail_chunk_index = None
    retry = await driver.open('a.bin', len(data))
    assert retry.id != session.id
    assert retry.state == Init()
    await driver.transmit_full(retry, data)
    await driver.finalize(retry)
    assert fake_remote.complete_calls == [retry.id]


@pytest.mark.asyncio
async def test_unexpected_chunk_error_is_wrapped(fake_remote):
    class BrokenRemote(FakeRemoteStore):
        async def transmit_chunk(self, session_id, index, strong_hash, data):
            raise RuntimeError('socket closed')

    driver = _driver(BrokenRemote())
    session = await driver.open('a.bin', 10)

    with pytest.raises(TransmissionError, match='socket closed'):
        await driver.transmit_full(session, b'0123456789')
    assert isinstance(session.failure, TransmissionError)


@pytest.mark.asyncio
async def test_declared_size_mismatch(fake_remote):
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', 99)

    with pytest.raises(SourceChangedError):
        await driver.transmit_full(session, b'short')
    assert isinstance(session.failure, SourceChangedError)


@pytest.mark.asyncio
async def test_empty_file_reports_full_progress(fake_remote):
    driver = _driver(fake_remote)
    session = await driver.open('empty.bin', 0)

    sent = await driver.transmit_full(session, b'')
    file_id = await driver.finalize(session)

    assert sent == 0
    assert session.progress == 1.0
    assert fake_remote.files[file_id] == b''


@pytest.mark.asyncio
async def test_finalize_failure_is_terminal(fake_remote):
    fake_remote.fail_complete = True
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', 4)
    await driver.transmit_full(session, b'data')

    with pytest.raises(FinalizeError):
        await driver.finalize(session)
    assert isinstance(session.failure, FinalizeError)


@pytest.mark.asyncio
async def test_concurrent_chunks_all_acknowledged_before_finalize(fake_remote):
    data = bytes(range(256)) * 32
    fake_remote.chunk_delay = 0.01
    driver = _driver(fake_remote, chunk_size=512, concurrency=4)
    session = await driver.open('a.bin', len(data))

    await driver.transmit_full(session, data)
    file_id = await driver.finalize(session)

    assert 1 < fake_remote.max_in_flight <= 4
    assert sorted(call[1] for call in fake_remote.chunk_calls) == list(range(16))
    assert fake_remote.files[file_id] == data


@pytest.mark.asyncio
async def test_cancelled_transmission_fails_session(fake_remote):
    fake_remote.chunk_delay = 0.05
    driver = _driver(fake_remote, chunk_size=256)
    session = await driver.open('a.bin', 4096)

    task = asyncio.ensure_future(driver.transmit_full(session, b'y' * 4096))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert isinstance(session.failure, UploadCancelledError)
    assert fake_remote.complete_calls == []


@pytest.mark.asyncio
async def test_abandon_stops_remaining_chunks(fake_remote):
    data = b'z' * 4096
    driver = _driver(fake_remote, chunk_size=1024)
    session = await driver.open('a.bin', len(data))

    def abandon_after_first(fraction):
        if fraction > 0:
            driver.abandon(session)

    session.subscribe(abandon_after_first)

    with pytest.raises(UploadCancelledError):
        await driver.transmit_full(session, data)
    assert len(fake_remote.chunk_calls) == 1
    assert session.state.state == 'failed'
    with pytest.raises(UploadCancelledError):
        await driver.finalize(session)
    assert fake_remote.complete_calls == []
    await asyncio.sleep(0)
    assert fake_remote.aborted == [session.id]


@pytest.mark.asyncio
async def test_failed_session_is_discarded_once(fake_remote):
    data = b'x' * (5 * 1024)
    fake_remote.fail_chunk_index = 2
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', len(data))

    with pytest.raises(TransmissionError):
        await driver.transmit_full(session, data)
    with pytest.raises(TransmissionError):
        await driver.finalize(session)

    assert fake_remote.aborted == [session.id]
    assert session.id not in fake_remote.sessions


@pytest.mark.asyncio
async def test_finalize_failure_discards_session(fake_remote):
    fake_remote.fail_complete = True
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', 4)
    await driver.transmit_full(session, b'data')

    with pytest.raises(FinalizeError):
        await driver.finalize(session)
    assert fake_remote.aborted == [session.id]


@pytest.mark.asyncio
async def test_successful_session_is_not_discarded(fake_remote):
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', 4)
    await driver.transmit_full(session, b'data')
    await driver.finalize(session)

    assert fake_remote.aborted == []


@pytest.mark.asyncio
async def test_open_failure_has_nothing_to_discard(fake_remote):
    fake_remote.fail_open = True
    driver = _driver(fake_remote)

    with pytest.raises(SessionOpenError):
        await driver.open('a.bin', 10)
    assert fake_remote.aborted == []


@pytest.mark.asyncio
async def test_abandon_discards_remote_session(fake_remote):
    driver = _driver(fake_remote)
    session = await driver.open('a.bin', 4)

    driver.abandon(session)
    await asyncio.sleep(0)

    assert fake_remote.aborted == [session.id]
    with pytest.raises(UploadCancelledError):
        await driver.transmit_full(session, b'data')
    assert fake_remote.aborted == [session.id]


@pytest.mark.asyncio
async def test_discard_failure_keeps_original_error():
    class StickyRemote(FakeRemoteStore):
        async def abort_session(self, session_id):
            raise TransmissionError('server unreachable')

    remote = StickyRemote()
    remote.fail_chunk_index = 0
    driver = _driver(remote)
    session = await driver.open('a.bin', 10)

    with pytest.raises(TransmissionError, match='chunk 0 rejected'):
        await driver.transmit_full(session, b'0123456789')
    assert isinstance(session.failure, TransmissionError)
