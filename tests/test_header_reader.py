"""Tests for the low-level header reader."""

import asyncio
import json
import struct

import pytest

from conftest import build_safetensors
from safelens.errors import (
    ErrorKind,
    HeaderTooLargeError,
    InvalidFormatError,
    ModelFileNotFoundError,
    NetworkError,
)
from safelens.formats.header_reader import (
    MAX_HEADER_SIZE,
    BufferRangeSource,
    ByteRangeSource,
    FileRangeSource,
    aread_header,
    decode_header,
    read_header,
    read_header_size,
)


class TestReadHeaderSize:
    """Test the 8-byte length prefix."""

    def test_reads_little_endian_u64(self):
        """Test the prefix is decoded as unsigned little-endian."""
        assert read_header_size(struct.pack("<Q", 1234) + b"{}") == 1234

    def test_uses_all_eight_bytes(self):
        """Test the high 32 bits are not dropped."""
        buffer = bytes([0x10, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])
        assert read_header_size(buffer) == 16

    @pytest.mark.parametrize("length", [0, 1, 7])
    def test_short_buffer_is_invalid_format(self, length):
        """Test buffers shorter than 8 bytes fail with InvalidFormat."""
        with pytest.raises(InvalidFormatError) as exc_info:
            read_header_size(b"\x00" * length)
        assert exc_info.value.kind == ErrorKind.INVALID_FORMAT

    def test_limit_is_inclusive(self):
        """Test a header of exactly 100 MiB is accepted."""
        assert read_header_size(struct.pack("<Q", MAX_HEADER_SIZE)) == MAX_HEADER_SIZE

    @pytest.mark.parametrize("size", [MAX_HEADER_SIZE + 1, 500_000_000, 2**64 - 1])
    def test_oversized_header_rejected(self, size):
        """Test sizes above 100 MiB fail with HeaderTooLarge."""
        with pytest.raises(HeaderTooLargeError) as exc_info:
            read_header_size(struct.pack("<Q", size))
        assert exc_info.value.size == size
        assert exc_info.value.limit == 100 * 1024 * 1024


class TestDecodeHeader:
    """Test slicing and decoding the header from a full buffer."""

    def test_round_trip(self, simple_header, simple_safetensors_bytes):
        """Test the decoded text reproduces the original header."""
        raw = decode_header(simple_safetensors_bytes)

        assert raw.size == len(json.dumps(simple_header).encode("utf-8"))
        assert json.loads(raw.text) == simple_header

    def test_ignores_tensor_data(self, simple_header):
        """Test bytes after the header are not part of the text."""
        raw = decode_header(build_safetensors(simple_header, b"\xff" * 64))
        assert json.loads(raw.text) == simple_header

    def test_incomplete_header(self):
        """Test a prefix promising more bytes than present is rejected."""
        buffer = struct.pack("<Q", 1000) + b"{}"
        with pytest.raises(InvalidFormatError, match="incomplete header"):
            decode_header(buffer)

    def test_oversized_checked_before_length(self):
        """Test the size ceiling fires before any truncation check."""
        with pytest.raises(HeaderTooLargeError):
            decode_header(struct.pack("<Q", 500_000_000) + b"{}")

    def test_invalid_utf8(self):
        """Test undecodable header bytes are rejected."""
        body = b'{"\xff": 1}'
        with pytest.raises(InvalidFormatError, match="UTF-8"):
            decode_header(struct.pack("<Q", len(body)) + body)

    def test_non_ascii_names(self):
        """Test multi-byte UTF-8 names are decoded intact."""
        header = {"gewicht_ü": {"dtype": "U8", "shape": [1], "data_offsets": [0, 1]}}
        raw = decode_header(build_safetensors(header, b"\x00"))
        assert "gewicht_ü" in json.loads(raw.text)


class RecordingSource:
    """Range source that records every read it serves."""

    def __init__(self, data: bytes):
        self.data = data
        self.reads: list[tuple[int, int]] = []

    def read_range(self, offset: int, length: int) -> bytes:
        self.reads.append((offset, length))
        return self.data[offset : offset + length]


class TestReadHeader:
    """Test header reads through a byte-range source."""

    def test_two_reads_without_rereading_prefix(self, simple_safetensors_bytes):
        """Test the reader asks for the prefix, then exactly N bytes."""
        source = RecordingSource(simple_safetensors_bytes)
        raw = read_header(source)

        assert source.reads == [(0, 8), (8, raw.size)]

    def test_never_reads_tensor_data(self, simple_header):
        """Test no read extends past the header."""
        data = build_safetensors(simple_header, b"\x00" * 4096)
        source = RecordingSource(data)
        raw = read_header(source)

        assert all(offset + length <= 8 + raw.size for offset, length in source.reads)

    def test_accepts_plain_callable(self, simple_header, simple_safetensors_bytes):
        """Test a bare (offset, length) callable works as a source."""
        raw = read_header(lambda offset, length: simple_safetensors_bytes[offset : offset + length])
        assert json.loads(raw.text) == simple_header

    def test_buffer_source(self, simple_header, simple_safetensors_bytes):
        """Test the in-memory source satisfies the protocol."""
        source = BufferRangeSource(simple_safetensors_bytes)

        assert isinstance(source, ByteRangeSource)
        assert source.size == len(simple_safetensors_bytes)
        assert json.loads(read_header(source).text) == simple_header

    def test_file_source(self, valid_safetensors_file, simple_header):
        """Test the local file source reads the header."""
        source = FileRangeSource(valid_safetensors_file)

        assert source.size == valid_safetensors_file.stat().st_size
        assert json.loads(read_header(source).text) == simple_header

    def test_file_source_missing_file(self, fixtures_dir):
        """Test a missing path fails with FILE_NOT_FOUND."""
        with pytest.raises(ModelFileNotFoundError) as exc_info:
            FileRangeSource(fixtures_dir / "missing.safetensors")
        assert exc_info.value.kind == ErrorKind.FILE_NOT_FOUND

    def test_short_prefix_read(self):
        """Test a source returning under 8 bytes is InvalidFormat."""
        with pytest.raises(InvalidFormatError, match="length prefix"):
            read_header(BufferRangeSource(b"\x01\x02"))

    def test_truncated_header_read(self):
        """Test a file ending inside the header is InvalidFormat."""
        with pytest.raises(InvalidFormatError, match="header truncated"):
            read_header(BufferRangeSource(struct.pack("<Q", 100) + b"{}"))

    def test_oversized_prefix_stops_before_second_read(self):
        """Test no header bytes are requested for an oversized prefix."""
        source = RecordingSource(struct.pack("<Q", MAX_HEADER_SIZE + 1))
        with pytest.raises(HeaderTooLargeError):
            read_header(source)
        assert source.reads == [(0, 8)]

    def test_connection_error_becomes_network_error(self):
        """Test transport failures surface as NETWORK_ERROR."""

        def failing(offset, length):
            raise ConnectionResetError("peer went away")

        with pytest.raises(NetworkError) as exc_info:
            read_header(failing)
        assert exc_info.value.kind == ErrorKind.NETWORK_ERROR
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)


class TestAsyncReadHeader:
    """Test the awaitable header reader."""

    def test_async_source(self, simple_header, simple_safetensors_bytes):
        """Test an async range reader yields the same header."""
        reads = []

        async def read(offset, length):
            reads.append((offset, length))
            return simple_safetensors_bytes[offset : offset + length]

        raw = asyncio.run(aread_header(read))

        assert json.loads(raw.text) == simple_header
        assert reads == [(0, 8), (8, raw.size)]

    def test_async_timeout(self):
        """Test timeouts surface as NETWORK_ERROR."""

        async def read(offset, length):
            raise TimeoutError("slow")

        with pytest.raises(NetworkError):
            asyncio.run(aread_header(read))
