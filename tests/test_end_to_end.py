"""End-to-end upload tests: SmartUploader -> DriveClient -> drive server app."""

import random

import httpx
import pytest
from cli.drive_client import DriveClient
from server.main import app
from server.storage import get_store, reset_store
from sync.exceptions import SignatureUnavailableError, TransmissionError
from sync.options import SyncOptions
from sync.session import MODE_DELTA, MODE_FULL
from sync.uploader import SmartUploader

from conftest import make_blocks


@pytest.fixture
def drive_client(temp_config):
    reset_store()
    return DriveClient(temp_config, transport=httpx.ASGITransport(app=app))


class FaultyTransport(httpx.AsyncBaseTransport):
    """Passes requests to the app unless `fault` returns a replacement outcome."""

    def __init__(self, fault):
        self.inner = httpx.ASGITransport(app=app)
        self.fault = fault

    async def handle_async_request(self, request):
        outcome = self.fault(request)
        if outcome is not None:
            return outcome
        return await self.inner.handle_async_request(request)


@pytest.mark.asyncio
async def test_full_then_delta_upload(drive_client, tmp_path):
    path = tmp_path / 'report.bin'
    original = bytes(i % 251 for i in range(10000))
    path.write_bytes(original)
    uploader = SmartUploader(drive_client, SyncOptions(chunk_size=4096))

    first = await uploader.smart_upload(path)

    edited = original[:8192] + b'\x07' * 1808
    path.write_bytes(edited)
    second = await uploader.smart_upload(path, existing_file_id=first.file_id)

    assert first.mode == MODE_FULL
    assert second.mode == MODE_DELTA
    assert second.stats.novel_blocks == 1
    assert second.file_id != first.file_id
    assert await drive_client.download(second.file_id) == edited
    assert await drive_client.download(first.file_id) == original
    await drive_client.close()


@pytest.mark.asyncio
async def test_rewritten_file_falls_back_to_full(drive_client):
    uploader = SmartUploader(drive_client)
    first = await uploader.smart_upload(make_blocks(1, 2, 3), filename='a.bin')

    second = await uploader.smart_upload(make_blocks(4, 5, 6), existing_file_id=first.file_id, filename='a.bin')

    assert second.mode == MODE_FULL
    assert second.fallback_reason == 'below savings threshold'
    assert await drive_client.download(second.file_id) == make_blocks(4, 5, 6)
    await drive_client.close()


@pytest.mark.asyncio
async def test_unknown_base_file_falls_back_to_full(drive_client):
    uploader = SmartUploader(drive_client)

    result = await uploader.smart_upload(b'fresh content', existing_file_id='missing', filename='new.txt')

    assert result.mode == MODE_FULL
    assert result.fallback_reason == 'signature unavailable'
    assert await drive_client.download(result.file_id) == b'fresh content'
    await drive_client.close()


@pytest.mark.asyncio
async def test_delta_batches_many_novel_blocks(drive_client):
    """Novel blocks larger than one batch are sent in several requests."""
    drive_client.delta_batch_bytes = 8192
    base = make_blocks(*range(10))
    uploader = SmartUploader(drive_client)
    first = await uploader.smart_upload(base, filename='big.bin')

    edited = make_blocks(0, 1, 2, 3, 4, 50, 51, 52, 53, 54)
    progress = []
    second = await uploader.smart_upload(
        edited, existing_file_id=first.file_id, filename='big.bin', on_progress=progress.append
    )

    assert second.mode == MODE_DELTA
    assert second.stats.savings_percent == 50.0
    assert progress == sorted(progress)
    assert progress[-1] == 1.0
    assert len(progress) >= 3
    assert await drive_client.download(second.file_id) == edited
    await drive_client.close()


@pytest.mark.asyncio
async def test_signature_missing_raises_from_client(drive_client):
    with pytest.raises(SignatureUnavailableError):
        await drive_client.fetch_signature('missing')
    await drive_client.close()


@pytest.mark.asyncio
async def test_large_delta_with_default_batching(drive_client):
    """Half of an 8 MiB file rewritten: 1024 novel blocks in one default-sized batch."""
    half = 4 * 1024 * 1024
    base = random.Random(0).randbytes(2 * half)
    edited = base[:half] + random.Random(1).randbytes(half)
    uploader = SmartUploader(drive_client)
    first = await uploader.smart_upload(base, filename='big.bin')

    second = await uploader.smart_upload(edited, existing_file_id=first.file_id, filename='big.bin')

    assert second.mode == MODE_DELTA
    assert second.stats.novel_blocks == 1024
    assert second.stats.savings_percent == 50.0
    assert await drive_client.download(second.file_id) == edited
    await drive_client.close()


@pytest.mark.asyncio
async def test_signature_connection_reset_falls_back_to_full(temp_config):
    reset_store()
    temp_config.data['max_retries'] = 0

    def reset_signature(request):
        if request.url.path.endswith('/signature'):
            raise httpx.ReadError('connection reset', request=request)
        return None

    client = DriveClient(temp_config, transport=FaultyTransport(reset_signature))
    uploader = SmartUploader(client)
    first = await uploader.smart_upload(make_blocks(1, 2, 3), filename='a.bin')

    second = await uploader.smart_upload(make_blocks(1, 2, 4), existing_file_id=first.file_id, filename='a.bin')

    assert second.mode == MODE_FULL
    assert second.fallback_reason == 'signature unavailable'
    assert await client.download(second.file_id) == make_blocks(1, 2, 4)
    await client.close()


@pytest.mark.asyncio
async def test_failed_upload_leaves_no_server_session(temp_config):
    store = reset_store()
    chunk_posts = 0

    def reject_second_chunk(request):
        nonlocal chunk_posts
        if request.url.path.endswith('/chunks'):
            chunk_posts += 1
            if chunk_posts == 2:
                return httpx.Response(500, json={'detail': 'disk full', 'code': 'INTERNAL_ERROR'})
        return None

    client = DriveClient(temp_config, transport=FaultyTransport(reject_second_chunk))
    uploader = SmartUploader(client, SyncOptions(chunk_size=4096))

    with pytest.raises(TransmissionError):
        await uploader.smart_upload(make_blocks(1, 2, 3), filename='a.bin')
    await client.close()

    assert chunk_posts == 2
    assert store is get_store()
    assert store.sessions == {}
    assert len(store.chunks) == 0
    assert store.files == {}


@pytest.mark.asyncio
async def test_reupload_by_name_uses_delta(drive_client):
    uploader = SmartUploader(drive_client)
    first = await uploader.smart_upload(
        make_blocks(1, 2, 3, 4), filename='notes.bin', destination_folder='docs', match_existing=True
    )

    second = await uploader.smart_upload(
        make_blocks(1, 2, 3, 5), filename='notes.bin', destination_folder='docs', match_existing=True
    )
    elsewhere = await uploader.smart_upload(make_blocks(1, 2, 3, 5), filename='notes.bin', match_existing=True)

    assert first.mode == MODE_FULL
    assert second.mode == MODE_DELTA
    assert second.base_file_id == first.file_id
    assert elsewhere.mode == MODE_FULL
    assert await drive_client.download(second.file_id) == make_blocks(1, 2, 3, 5)
    await drive_client.close()
