"""Low-level safetensors header reader.

Safetensors format:
- 8 bytes: header size N (little-endian u64)
- N bytes: header JSON (UTF-8)
- Rest: tensor data

The reader never touches tensor data. It works against a byte-range source
so the same code serves an in-memory buffer, a local file or a network
client that fetches ranges on demand.
"""

import logging
import struct
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from safelens.errors import (
    HeaderTooLargeError,
    InvalidFormatError,
    ModelFileNotFoundError,
    NetworkError,
)

logger = logging.getLogger(__name__)

HEADER_SIZE_BYTES = 8

# 100 MiB; bounds memory use on hostile or corrupt files
MAX_HEADER_SIZE = 100 * 1024 * 1024


@dataclass(frozen=True)
class RawHeader:
    """Header bytes decoded to text, before JSON parsing."""

    size: int
    text: str


@runtime_checkable
class ByteRangeSource(Protocol):
    """Anything that can return `length` bytes starting at `offset`."""

    def read_range(self, offset: int, length: int) -> bytes: ...


RangeReader = Callable[[int, int], bytes]
AsyncRangeReader = Callable[[int, int], Awaitable[bytes]]


class BufferRangeSource:
    """Byte-range source over an in-memory buffer."""

    def __init__(self, data: bytes | bytearray | memoryview):
        self._data = memoryview(data)

    @property
    def size(self) -> int:
        return len(self._data)

    def read_range(self, offset: int, length: int) -> bytes:
        return bytes(self._data[offset : offset + length])


class FileRangeSource:
    """Byte-range source reading a local file with seek/read.

    Each call opens the file, so the source holds no handle between reads.
    """

    def __init__(self, filepath: Path | str):
        self.filepath = Path(filepath)
        if not self.filepath.is_file():
            raise ModelFileNotFoundError(
                f"File not found: {self.filepath}", {"path": str(self.filepath)}
            )

    @property
    def size(self) -> int:
        return self.filepath.stat().st_size

    def read_range(self, offset: int, length: int) -> bytes:
        with open(self.filepath, "rb") as f:
            f.seek(offset)
            return f.read(length)


def read_header_size(buffer: bytes | bytearray | memoryview) -> int:
    """Read the header length prefix.

    Args:
        buffer: At least the first 8 bytes of a safetensors file

    Returns:
        Header length N in bytes

    Raises:
        InvalidFormatError: Buffer shorter than 8 bytes
        HeaderTooLargeError: N exceeds MAX_HEADER_SIZE
    """
    if len(buffer) < HEADER_SIZE_BYTES:
        raise InvalidFormatError(
            "Invalid safetensors file: too small",
            {"buffer_size": len(buffer)},
        )

    (size,) = struct.unpack_from("<Q", buffer, 0)

    if size > MAX_HEADER_SIZE:
        raise HeaderTooLargeError(size, MAX_HEADER_SIZE)

    return size


def _decode_text(header_bytes: bytes) -> str:
    try:
        return header_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidFormatError(f"Header is not valid UTF-8: {e}") from e


def decode_header(buffer: bytes | bytearray | memoryview) -> RawHeader:
    """Slice and decode the header text from a fully-buffered file.

    Args:
        buffer: File bytes, at least 8 + N long

    Returns:
        RawHeader with the header size and its UTF-8 text
    """
    size = read_header_size(buffer)
    end = HEADER_SIZE_BYTES + size

    if len(buffer) < end:
        raise InvalidFormatError(
            "Invalid safetensors file: incomplete header",
            {"header_size": size, "buffer_size": len(buffer)},
        )

    text = _decode_text(bytes(buffer[HEADER_SIZE_BYTES:end]))
    logger.debug("Decoded %d byte header from buffer", size)
    return RawHeader(size=size, text=text)


def _as_reader(source: ByteRangeSource | RangeReader) -> RangeReader:
    if isinstance(source, ByteRangeSource):
        return source.read_range
    return source


def _checked_read(data: bytes, expected: int, what: str) -> bytes:
    if len(data) < expected:
        raise InvalidFormatError(
            f"Invalid safetensors file: {what} truncated "
            f"(expected {expected} bytes, got {len(data)})",
            {"expected": expected, "received": len(data)},
        )
    return bytes(data[:expected])


def read_header(source: ByteRangeSource | RangeReader) -> RawHeader:
    """Read the header through two range reads: the prefix, then N bytes.

    Args:
        source: ByteRangeSource or a plain `(offset, length) -> bytes` callable

    Returns:
        RawHeader with the header size and its UTF-8 text

    Raises:
        InvalidFormatError: A read returned fewer bytes than requested
        HeaderTooLargeError: Declared size exceeds MAX_HEADER_SIZE
        NetworkError: The source raised a connection or timeout error
    """
    read = _as_reader(source)

    try:
        prefix = _checked_read(read(0, HEADER_SIZE_BYTES), HEADER_SIZE_BYTES, "length prefix")
        size = read_header_size(prefix)
        body = _checked_read(read(HEADER_SIZE_BYTES, size), size, "header")
    except (ConnectionError, TimeoutError) as e:
        raise NetworkError(f"Failed to read header range: {e}") from e

    logger.debug("Read %d byte header through range source", size)
    return RawHeader(size=size, text=_decode_text(body))


async def aread_header(read: AsyncRangeReader) -> RawHeader:
    """Awaitable variant of read_header for asynchronous range readers.

    Args:
        read: Coroutine function `(offset, length) -> bytes`

    Returns:
        RawHeader with the header size and its UTF-8 text
    """
    try:
        prefix = _checked_read(
            await read(0, HEADER_SIZE_BYTES), HEADER_SIZE_BYTES, "length prefix"
        )
        size = read_header_size(prefix)
        body = _checked_read(await read(HEADER_SIZE_BYTES, size), size, "header")
    except (ConnectionError, TimeoutError) as e:
        raise NetworkError(f"Failed to read header range: {e}") from e

    logger.debug("Read %d byte header through async range source", size)
    return RawHeader(size=size, text=_decode_text(body))
