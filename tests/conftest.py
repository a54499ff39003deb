"""Shared pytest fixtures for all tests."""

import asyncio

import pytest
from cli.config import Config
from common.constants import BLOCK_SIZE_BYTES
from sync.delta import apply_delta, split_blocks
from sync.exceptions import (
    FileLookupError,
    FinalizeError,
    SessionOpenError,
    SignatureUnavailableError,
    TransmissionError,
)
from sync.remote import RemoteStore
from sync.signature import build_signature


class FakeRemoteStore(RemoteStore):
    """
    In-memory RemoteStore with failure injection and call recording.

    Stored files are plain bytes keyed by file id.
    """

    def __init__(self, block_size=BLOCK_SIZE_BYTES):
        self.block_size = block_size
        self.files = {}
        self.sessions = {}
        self.opened = []
        self.chunk_calls = []
        self.delta_calls = []
        self.complete_calls = []
        self.signature_calls = []
        self.aborted = []
        self.names = {}
        self.fail_open = False
        self.fail_signature = False
        self.fail_chunk_index = None
        self.fail_complete = False
        self.fail_find = False
        self.chunk_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 0

    def add_file(self, data: bytes, name=None, folder=None) -> str:
        self._next_id += 1
        file_id = f"file-{self._next_id}"
        self.files[file_id] = bytes(data)
        if name is not None:
            self.names[file_id] = (name, folder)
        return file_id

    async def open_session(self, filename, total_size, parent_folder=None):
        if self.fail_open:
            raise SessionOpenError("quota exceeded")
        session_id = f"session-{len(self.opened) + 1}"
        self.opened.append((session_id, filename, total_size, parent_folder))
        self.sessions[session_id] = {
            'chunks': {}, 'delta': None, 'total_size': total_size, 'name': (filename, parent_folder),
        }
        return session_id

    async def fetch_signature(self, file_id):
        self.signature_calls.append(file_id)
        if self.fail_signature or file_id not in self.files:
            raise SignatureUnavailableError(f"no signature for {file_id}")
        return build_signature(self.files[file_id], self.block_size)

    async def find_file(self, filename, parent_folder=None):
        if self.fail_find:
            raise FileLookupError("lookup unavailable")
        matches = [file_id for file_id, key in self.names.items() if key == (filename, parent_folder)]
        return matches[-1] if matches else None

    async def transmit_chunk(self, session_id, index, strong_hash, data):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            if index == self.fail_chunk_index:
                raise TransmissionError(f"chunk {index} rejected")
            self.chunk_calls.append((session_id, index, strong_hash))
            self.sessions[session_id]['chunks'][index] = bytes(data)
        finally:
            self.in_flight -= 1

    async def transmit_delta(self, session_id, base_file_id, instructions, novel_blocks, total_size, on_ack=None):
        self.delta_calls.append((session_id, base_file_id, tuple(instructions), tuple(novel_blocks)))
        self.sessions[session_id]['delta'] = (base_file_id, tuple(instructions), tuple(novel_blocks))
        if on_ack is not None:
            for block in novel_blocks:
                on_ack(len(block))

    async def complete_session(self, session_id):
        self.complete_calls.append(session_id)
        if self.fail_complete:
            raise FinalizeError("missing chunk #0")
        session = self.sessions.pop(session_id)
        if session['delta'] is not None:
            base_file_id, instructions, novel_blocks = session['delta']
            data = apply_delta(
                instructions,
                dict(enumerate(novel_blocks)),
                split_blocks(self.files[base_file_id], self.block_size),
            )
        else:
            chunks = session['chunks']
            data = b''.join(chunks[i] for i in range(len(chunks)))
        assert len(data) == session['total_size']
        name, folder = session['name']
        return self.add_file(data, name, folder)

    async def abort_session(self, session_id):
        self.aborted.append(session_id)
        self.sessions.pop(session_id, None)


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .deltadrive directory
    """
    config_dir = tmp_path / '.deltadrive'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Args:
        temp_config_dir: Temporary config directory fixture

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def fake_remote():
    """In-memory remote store."""
    return FakeRemoteStore()


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a sample file spanning several blocks with a short tail.

    Returns:
        Path to a 10000-byte binary file
    """
    file_path = tmp_path / 'sample.bin'
    file_path.write_bytes(bytes(i % 251 for i in range(10000)))
    return file_path


def make_blocks(*fills, block_size=BLOCK_SIZE_BYTES):
    """Concatenate full blocks, each filled with one repeated byte value."""
    return b''.join(bytes([fill]) * block_size for fill in fills)
