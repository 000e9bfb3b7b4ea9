"""LZO block codec.

A compressed stream is a run of independently decodable blocks:

    compressed_length:   uint32 (little-endian)
    uncompressed_length: uint32 (little-endian)
    payload:             compressed_length bytes of raw LZO1X data

There is no terminator. An all-zero header is reserved as an end-of-stream
marker; this module never writes one.
"""

import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator

import lzo

from lzo_splitter.config import DEFAULT_BLOCK_SIZE, DEFAULT_LEVEL, MAX_BLOCK_SIZE, MAX_LEVEL, MIN_LEVEL
from lzo_splitter.errors import CodecError, CorruptStreamError

HEADER_FORMAT = "<II"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)


def max_compressed_length(uncompressed_length: int) -> int:
    """Worst-case LZO1X output size for an input of the given length."""
    return uncompressed_length + uncompressed_length // 16 + 64 + 3


def pack_header(compressed_length: int, uncompressed_length: int) -> bytes:
    return struct.pack(HEADER_FORMAT, compressed_length, uncompressed_length)


def unpack_header(header: bytes):
    return struct.unpack(HEADER_FORMAT, header)


def check_header(compressed_length: int, uncompressed_length: int, offset=None, block_index=None) -> None:
    """
    Reject block lengths no writer of this format could have produced.

    An all-zero header passes; callers treat it as the end-of-stream marker.

    :raises CorruptStreamError: On an empty payload with a nonzero uncompressed
        length, an uncompressed length above ``MAX_BLOCK_SIZE``, or a payload
        larger than the LZO bound allows.
    """
    if compressed_length == 0 and uncompressed_length != 0:
        raise CorruptStreamError(
            f"empty payload declares {uncompressed_length} uncompressed bytes",
            offset=offset, block_index=block_index)
    if uncompressed_length > MAX_BLOCK_SIZE:
        raise CorruptStreamError(
            f"uncompressed length {uncompressed_length} exceeds maximum block size {MAX_BLOCK_SIZE}",
            offset=offset, block_index=block_index)
    if compressed_length > max_compressed_length(uncompressed_length):
        raise CorruptStreamError(
            f"compressed length {compressed_length} exceeds LZO bound for {uncompressed_length} bytes",
            offset=offset, block_index=block_index)


@dataclass(frozen=True)
class Block:
    """Position and sizes of one block inside a compressed stream."""
    offset: int
    compressed_length: int
    uncompressed_length: int

    @property
    def end(self) -> int:
        return self.offset + HEADER_SIZE + self.compressed_length


@dataclass(frozen=True)
class CompressedBlock:
    """One compressed chunk, ready to be written after its header."""
    payload: bytes
    uncompressed_length: int

    @property
    def compressed_length(self) -> int:
        return len(self.payload)

    @property
    def size(self) -> int:
        return HEADER_SIZE + len(self.payload)

    def header(self) -> bytes:
        return pack_header(self.compressed_length, self.uncompressed_length)

    def to_bytes(self) -> bytes:
        return self.header() + self.payload


def read_exactly(source: BinaryIO, size: int) -> bytes:
    # Streams from sockets and pipes may return short reads before EOF.
    parts = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def check_end_of_stream(source: BinaryIO, offset=None, block_index=None) -> None:
    """Nothing may follow the end-of-stream marker."""
    if read_exactly(source, 1):
        raise CorruptStreamError("data follows end-of-stream marker", offset=offset, block_index=block_index)


class BlockCodec:
    """Wraps python-lzo to produce and consume the block stream format."""

    def __init__(self, block_size_hint: int = DEFAULT_BLOCK_SIZE, level: int = DEFAULT_LEVEL):
        if not 1 <= block_size_hint <= MAX_BLOCK_SIZE:
            raise ValueError(f"block_size_hint must be between 1 and {MAX_BLOCK_SIZE}, got {block_size_hint}")
        if not MIN_LEVEL <= level <= MAX_LEVEL:
            raise ValueError(f"level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level}")
        self.block_size_hint = block_size_hint
        self.level = level

    def compress_block(self, data: bytes, block_index=None) -> CompressedBlock:
        """
        Compress one chunk of at most ``block_size_hint`` bytes.

        :raises CodecError: When the LZO primitive rejects the input or runs out of memory.
        """
        if len(data) > self.block_size_hint:
            raise ValueError(f"chunk of {len(data)} bytes exceeds block size hint {self.block_size_hint}")
        try:
            payload = lzo.compress(data, self.level, False)
        except (lzo.error, MemoryError) as e:
            raise CodecError(f"LZO compression failed: {e}", block_index=block_index) from e
        return CompressedBlock(payload=payload, uncompressed_length=len(data))

    def compress_stream(self, source: BinaryIO) -> Iterator[CompressedBlock]:
        """
        Lazily compress a readable stream into blocks of ``block_size_hint``
        uncompressed bytes; only the final block may be shorter.
        """
        block_index = 0
        while True:
            chunk = read_exactly(source, self.block_size_hint)
            if not chunk:
                return
            yield self.compress_block(chunk, block_index=block_index)
            block_index += 1

    def compress_bytes(self, data: bytes) -> bytes:
        """Compress an in-memory buffer into a complete block stream."""
        parts = []
        for start in range(0, len(data), self.block_size_hint):
            block = self.compress_block(data[start:start + self.block_size_hint],
                                        block_index=start // self.block_size_hint)
            parts.append(block.to_bytes())
        return b"".join(parts)

    @staticmethod
    def decompress_block(payload: bytes, uncompressed_length: int, block_index=None, offset=None) -> bytes:
        """
        Decompress one block payload.

        :raises CodecError: When the payload is not valid LZO1X data.
        :raises CorruptStreamError: When the output length disagrees with the header.
        """
        if uncompressed_length == 0:
            return b""
        try:
            data = lzo.decompress(payload, False, uncompressed_length)
        except (lzo.error, MemoryError) as e:
            raise CodecError(f"LZO decompression failed: {e}", block_index=block_index, offset=offset) from e
        if len(data) != uncompressed_length:
            raise CorruptStreamError(
                f"block decompressed to {len(data)} bytes, header declares {uncompressed_length}",
                offset=offset, block_index=block_index)
        return data
