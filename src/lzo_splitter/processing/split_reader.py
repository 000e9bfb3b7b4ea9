"""Seek into an indexed LZO block stream and decode from block boundaries."""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Iterator, List, Optional

from lzo_splitter.errors import CorruptStreamError
from lzo_splitter.processing.block_codec import (
    HEADER_SIZE,
    BlockCodec,
    check_end_of_stream,
    check_header,
    read_exactly,
    unpack_header,
)
from lzo_splitter.processing.index_format import Index, IndexEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Split:
    """
    Block-aligned byte range ``[start, end)`` of a compressed file.

    A reader owns every block whose header starts inside the range.
    ``first_block`` is the ordinal of the block at ``start``.
    """
    start: int
    end: int
    uncompressed_start: int
    first_block: int = 0

    @property
    def length(self) -> int:
        return self.end - self.start


def plan_splits(index: Index, compressed_size: int, num_splits: int) -> List[Split]:
    """
    Cut a compressed file into at most ``num_splits`` disjoint ranges that
    start on indexed block boundaries and together cover the whole file.

    Boundaries are chosen at the index entry nearest each ideal cut point, so
    ranges come out roughly equal in compressed bytes. Fewer splits are
    returned when the index has fewer entries than requested.
    """
    if num_splits < 1:
        raise ValueError(f"num_splits must be at least 1, got {num_splits}")
    if len(index) == 0 or compressed_size == 0:
        return []
    last = index[-1]
    if last.compressed_offset >= compressed_size:
        raise ValueError(
            f"index entry at {last.compressed_offset} lies beyond compressed size {compressed_size}")

    # Positions into index.entries.
    boundaries: List[int] = [0]
    for i in range(1, num_splits):
        target = compressed_size * i // num_splits
        candidate = min(range(len(index)), key=lambda n: abs(index[n].compressed_offset - target))
        if index[candidate].compressed_offset > index[boundaries[-1]].compressed_offset:
            boundaries.append(candidate)

    splits = []
    for i, entry_index in enumerate(boundaries):
        entry = index[entry_index]
        end = index[boundaries[i + 1]].compressed_offset if i + 1 < len(boundaries) else compressed_size
        splits.append(Split(start=entry.compressed_offset, end=end, uncompressed_start=entry.uncompressed_offset,
                            first_block=index.block_number(entry_index)))
    return splits


def _decode_blocks(stream: BinaryIO, offset: int, end: Optional[int], first_block: int) -> Iterator[bytes]:
    block_index = first_block
    while end is None or offset < end:
        header = read_exactly(stream, HEADER_SIZE)
        if not header:
            if end is not None:
                raise CorruptStreamError(f"stream ended before split end {end}", offset=offset,
                                         block_index=block_index)
            return
        if len(header) < HEADER_SIZE:
            raise CorruptStreamError(f"truncated block header: {len(header)} of {HEADER_SIZE} bytes",
                                     offset=offset, block_index=block_index)
        compressed_length, uncompressed_length = unpack_header(header)
        check_header(compressed_length, uncompressed_length, offset=offset, block_index=block_index)
        if compressed_length == 0:
            check_end_of_stream(stream, offset, block_index)
            return
        payload = read_exactly(stream, compressed_length)
        if len(payload) < compressed_length:
            raise CorruptStreamError(
                f"block claims {compressed_length} bytes but only {len(payload)} remain",
                offset=offset, block_index=block_index)
        yield BlockCodec.decompress_block(payload, uncompressed_length, block_index=block_index, offset=offset)
        offset += HEADER_SIZE + compressed_length
        block_index += 1


def decompress_stream(stream: BinaryIO) -> Iterator[bytes]:
    """Decode a whole block stream from its current position, one block at a time."""
    return _decode_blocks(stream, 0, None, 0)


def decompress_from(stream: BinaryIO, entry: IndexEntry, first_block: int = 0) -> Iterator[bytes]:
    """Seek to an index entry and decode every block from there to the end."""
    stream.seek(entry.compressed_offset)
    return _decode_blocks(stream, entry.compressed_offset, None, first_block)


def read_split(stream: BinaryIO, split: Split) -> Iterator[bytes]:
    """
    Decode the blocks whose headers start inside ``split``.

    The stream must be seekable. Decoding stops at the first header at or past
    ``split.end``; a block straddling the end belongs to this split.
    """
    logger.debug("Reading split [%d, %d)", split.start, split.end)
    stream.seek(split.start)
    return _decode_blocks(stream, split.start, split.end, split.first_block)


def read_uncompressed_range(stream: BinaryIO, index: Index, start: int, length: int) -> bytes:
    """Random-access read of ``length`` decoded bytes beginning at ``start``."""
    if length <= 0:
        return b""
    entry = index.entry_for(start)
    if entry is None:
        return b""
    position = entry.uncompressed_offset
    parts = []
    first_block = index.block_number(index.entries.index(entry))
    for data in decompress_from(stream, entry, first_block=first_block):
        block_end = position + len(data)
        if block_end > start:
            parts.append(data[max(0, start - position):start + length - position])
        position = block_end
        if position >= start + length:
            break
    return b"".join(parts)
