"""Build block indexes, either while a stream is written or by re-scanning one."""

import io
import logging
import os
from typing import BinaryIO, Iterator, List, Optional

from lzo_splitter.config import MAX_INDEX_INTERVAL
from lzo_splitter.errors import CorruptStreamError
from lzo_splitter.processing.block_codec import (
    HEADER_SIZE,
    Block,
    check_end_of_stream,
    check_header,
    read_exactly,
    unpack_header,
)
from lzo_splitter.processing.index_format import Index, IndexEntry

logger = logging.getLogger(__name__)

_SKIP_CHUNK = 1024 * 1024


class IndexBuilder:
    """
    Ordered fold over block lengths.

    Each call to ``observe`` must describe the next block in stream order. The
    builder records ``(cursor, uncompressed_so_far)`` for every ``interval``-th
    block and then advances past the block's header and payload.
    """

    def __init__(self, interval: int = 1):
        if not 1 <= interval <= MAX_INDEX_INTERVAL:
            raise ValueError(f"interval must be between 1 and {MAX_INDEX_INTERVAL}, got {interval}")
        self.interval = interval
        self.cursor = 0
        self.uncompressed_cursor = 0
        self.block_count = 0
        self._entries: List[IndexEntry] = []
        self._finished = False

    def observe(self, compressed_length: int, uncompressed_length: int) -> Optional[IndexEntry]:
        """Account for the next block; returns the entry if one was recorded."""
        if self._finished:
            raise RuntimeError("IndexBuilder.observe called after finish()")
        if compressed_length < 0 or uncompressed_length < 0:
            raise ValueError("block lengths must not be negative")
        entry = None
        if self.block_count % self.interval == 0:
            entry = IndexEntry(self.cursor, self.uncompressed_cursor)
            self._entries.append(entry)
        self.cursor += HEADER_SIZE + compressed_length
        self.uncompressed_cursor += uncompressed_length
        self.block_count += 1
        return entry

    def observe_block(self, block) -> Optional[IndexEntry]:
        return self.observe(block.compressed_length, block.uncompressed_length)

    def finish(self) -> Index:
        """Hand the accumulated entries off as an immutable Index."""
        self._finished = True
        return Index(interval=self.interval, entries=tuple(self._entries))


def _stream_size(stream: BinaryIO) -> Optional[int]:
    if not stream.seekable():
        return None
    here = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(here)
    return end


def _skip(stream: BinaryIO, count: int, size: Optional[int]) -> int:
    """Advance ``count`` bytes; returns how many were actually available."""
    if size is not None:
        here = stream.tell()
        available = min(count, size - here)
        stream.seek(here + available)
        return available
    skipped = 0
    while skipped < count:
        chunk = stream.read(min(_SKIP_CHUNK, count - skipped))
        if not chunk:
            break
        skipped += len(chunk)
    return skipped


def iter_block_headers(stream: BinaryIO, start_offset: int = 0) -> Iterator[Block]:
    """
    Walk the block headers of a compressed stream without decompressing.

    ``start_offset`` is the stream position of the first header to read and is
    used for reporting; for seekable streams the walk starts at ``tell()``.

    :raises CorruptStreamError: On a truncated header, a payload that runs past
        the end of the stream, or lengths no LZO encoder could have produced.
    """
    size = _stream_size(stream)
    offset = stream.tell() if size is not None else start_offset
    block_index = 0
    while True:
        header = read_exactly(stream, HEADER_SIZE)
        if not header:
            return
        if len(header) < HEADER_SIZE:
            raise CorruptStreamError(
                f"truncated block header: {len(header)} of {HEADER_SIZE} bytes", offset=offset,
                block_index=block_index)
        compressed_length, uncompressed_length = unpack_header(header)
        check_header(compressed_length, uncompressed_length, offset=offset, block_index=block_index)
        if compressed_length == 0:
            check_end_of_stream(stream, offset, block_index)
            return
        if size is not None and offset + HEADER_SIZE + compressed_length > size:
            raise CorruptStreamError(
                f"block claims {compressed_length} bytes but only {size - offset - HEADER_SIZE} remain",
                offset=offset, block_index=block_index)
        available = _skip(stream, compressed_length, size)
        if available < compressed_length:
            raise CorruptStreamError(
                f"block claims {compressed_length} bytes but only {available} remain",
                offset=offset, block_index=block_index)
        yield Block(offset=offset, compressed_length=compressed_length, uncompressed_length=uncompressed_length)
        offset += HEADER_SIZE + compressed_length
        block_index += 1


def build_index(stream: BinaryIO, interval: int = 1) -> Index:
    """Re-scan an existing compressed stream and build its index."""
    builder = IndexBuilder(interval)
    for block in iter_block_headers(stream):
        builder.observe_block(block)
    index = builder.finish()
    logger.info("Scanned %d blocks (%d compressed bytes), recorded %d index entries",
                builder.block_count, builder.cursor, len(index))
    return index


def build_index_for_file(path, interval: int = 1) -> Index:
    with open(os.fspath(path), "rb") as f:
        return build_index(f, interval)
