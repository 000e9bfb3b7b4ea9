"""Binary sidecar index for LZO block streams.

HEADER (18 bytes, little-endian):
    magic:          uint32 = b'LZOI'
    format_version: uint16
    index_interval: uint32   # blocks between recorded entries
    entry_count:    uint64

ENTRIES (entry_count * 16 bytes):
    compressed_offset:   uint64   # byte offset of a block header in the .lzo file
    uncompressed_offset: uint64   # decoded bytes that precede that block

The reader only checks the index against itself. Whether an offset really lands
on a block header is checked by whoever seeks with it.
"""

import bisect
import io
import struct
from dataclasses import dataclass
from typing import BinaryIO, NamedTuple, Optional, Sequence, Tuple

from lzo_splitter.errors import MalformedIndexError

MAGIC = struct.unpack("<I", b"LZOI")[0]
FORMAT_VERSION = 1
HEADER_FORMAT = "<IHIQ"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 18
ENTRY_FORMAT = "<QQ"
ENTRY_SIZE = struct.calcsize(ENTRY_FORMAT)  # 16

_READ_BATCH = 4096


class IndexEntry(NamedTuple):
    compressed_offset: int
    uncompressed_offset: int


@dataclass(frozen=True)
class Index:
    """Immutable, ordered block offsets for one compressed file."""
    interval: int
    entries: Tuple[IndexEntry, ...] = ()

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __getitem__(self, item):
        return self.entries[item]

    def entry_for(self, uncompressed_offset: int) -> Optional[IndexEntry]:
        """Last entry whose uncompressed offset is at or before the given position."""
        if uncompressed_offset < 0:
            raise ValueError("uncompressed_offset must not be negative")
        keys = [e.uncompressed_offset for e in self.entries]
        pos = bisect.bisect_right(keys, uncompressed_offset)
        if pos == 0:
            return None
        return self.entries[pos - 1]

    def block_number(self, entry_index: int) -> int:
        """Ordinal of the block that entry ``entry_index`` points at."""
        return entry_index * self.interval


def validate_entries(entries: Sequence[IndexEntry]) -> None:
    """Raise MalformedIndexError unless both offsets strictly increase."""
    for i in range(1, len(entries)):
        prev, cur = entries[i - 1], entries[i]
        if cur.compressed_offset <= prev.compressed_offset:
            raise MalformedIndexError(
                f"compressed offset {cur.compressed_offset} does not increase past {prev.compressed_offset}",
                entry_index=i)
        if cur.uncompressed_offset <= prev.uncompressed_offset:
            raise MalformedIndexError(
                f"uncompressed offset {cur.uncompressed_offset} does not increase past {prev.uncompressed_offset}",
                entry_index=i)


def write_index(index: Index, sink: BinaryIO) -> int:
    """
    Serialize an index to a writable binary stream.

    :param index: The index to write.
    :param sink: Any object with a ``write(bytes)`` method.
    :return: Number of bytes written.
    """
    sink.write(struct.pack(HEADER_FORMAT, MAGIC, FORMAT_VERSION, index.interval, len(index.entries)))
    for entry in index.entries:
        sink.write(struct.pack(ENTRY_FORMAT, entry.compressed_offset, entry.uncompressed_offset))
    return HEADER_SIZE + ENTRY_SIZE * len(index.entries)


def read_index(source: BinaryIO) -> Index:
    """
    Deserialize and validate an index.

    :raises MalformedIndexError: On a bad magic or version, a zero interval, an
        entry count that disagrees with the payload, or non-increasing offsets.
    """
    header = source.read(HEADER_SIZE)
    if len(header) != HEADER_SIZE:
        raise MalformedIndexError(f"index header truncated: {len(header)} of {HEADER_SIZE} bytes")
    magic, version, interval, count = struct.unpack(HEADER_FORMAT, header)
    if magic != MAGIC:
        raise MalformedIndexError(f"bad index magic 0x{magic:08x}")
    reader = _ENTRY_READERS.get(version)
    if reader is None:
        raise MalformedIndexError(f"unsupported index format version {version}")
    if interval < 1:
        raise MalformedIndexError(f"index interval must be at least 1, got {interval}")
    return reader(source, interval, count)


def _read_v1_entries(source: BinaryIO, interval: int, count: int) -> Index:
    entries = []
    remaining = count
    # Read in bounded batches so a corrupt count cannot force a huge allocation.
    while remaining > 0:
        batch = min(remaining, _READ_BATCH)
        data = source.read(batch * ENTRY_SIZE)
        if len(data) != batch * ENTRY_SIZE:
            got = len(entries) + len(data) // ENTRY_SIZE
            raise MalformedIndexError(f"index declares {count} entries but holds {got}", entry_index=got)
        entries.extend(IndexEntry(*fields) for fields in struct.iter_unpack(ENTRY_FORMAT, data))
        remaining -= batch
    if source.read(1):
        raise MalformedIndexError(f"trailing bytes after {count} declared entries")
    validate_entries(entries)
    return Index(interval=interval, entries=tuple(entries))


_ENTRY_READERS = {
    1: _read_v1_entries,
}


def dumps(index: Index) -> bytes:
    buffer = io.BytesIO()
    write_index(index, buffer)
    return buffer.getvalue()


def loads(data: bytes) -> Index:
    return read_index(io.BytesIO(data))
