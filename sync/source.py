"""Uniform access to local byte sources (paths, bytes, open binary files)."""

import io
import os
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Tuple, Union

from sync.exceptions import ReadError

ByteSource = Union[str, os.PathLike, bytes, bytearray, memoryview, BinaryIO]


def source_name(source: ByteSource) -> str:
    """Best-effort display name for a source."""
    if isinstance(source, (str, os.PathLike)):
        return Path(source).name
    return getattr(source, 'name', None) or '<bytes>'


@contextmanager
def open_source(source: ByteSource) -> Iterator[Tuple[BinaryIO, int]]:
    """
    Open a byte source for random-access reading.

    Paths are opened (and closed on exit); in-memory buffers are wrapped;
    caller-owned file objects are used as-is and left open.

    Yields:
        Tuple of (seekable binary stream, total length in bytes)

    Raises:
        ReadError: If the source cannot be opened or sized
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        yield io.BytesIO(data), len(data)
        return

    if isinstance(source, (str, os.PathLike)):
        try:
            stream = open(source, 'rb')
        except OSError as e:
            raise ReadError(f"Cannot open {source}: {e}") from e
        try:
            size = os.fstat(stream.fileno()).st_size
            yield stream, size
        finally:
            stream.close()
        return

    try:
        start = source.tell()
        size = source.seek(0, io.SEEK_END) - start
        source.seek(start)
    except (OSError, AttributeError, ValueError) as e:
        raise ReadError(f"Source is not seekable: {e}") from e
    yield _OffsetReader(source, start), size


class _OffsetReader:
    """Presents a caller-owned stream as if it began at `base`."""

    def __init__(self, stream: BinaryIO, base: int):
        self._stream = stream
        self._base = base

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            return self._stream.seek(self._base + offset) - self._base
        return self._stream.seek(offset, whence) - self._base

    def tell(self) -> int:
        return self._stream.tell() - self._base

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)


def read_exact(stream: BinaryIO, offset: int, length: int) -> bytes:
    """
    Read exactly `length` bytes at `offset`.

    Returns fewer bytes only if the source ended early; callers decide
    whether a short read means the file changed.

    Raises:
        ReadError: On any I/O failure
    """
    try:
        stream.seek(offset)
        parts = []
        remaining = length
        while remaining > 0:
            piece = stream.read(remaining)
            if not piece:
                break
            parts.append(piece)
            remaining -= len(piece)
        return b''.join(parts)
    except (OSError, ValueError) as e:
        raise ReadError(f"Read failed at offset {offset}: {e}") from e
