"""Error types raised while compressing, indexing and reading LZO block streams.

I/O failures from the stream providers (``OSError``,
``botocore.exceptions.ClientError``) are not wrapped; they reach the caller as
they were raised.
"""

import boto3.exceptions
import botocore.exceptions

# S3 failures that do not subclass OSError.
_S3_ERRORS = (
    botocore.exceptions.BotoCoreError,
    botocore.exceptions.ClientError,
    boto3.exceptions.Boto3Error,
)


class LzoSplitterError(Exception):
    """Base class for every error raised by this package."""

    kind = "error"


class CodecError(LzoSplitterError):
    """The LZO primitive failed to compress or decompress a block."""

    kind = "codec"

    def __init__(self, message, block_index=None, offset=None):
        self.block_index = block_index
        self.offset = offset
        context = []
        if block_index is not None:
            context.append(f"block {block_index}")
        if offset is not None:
            context.append(f"offset {offset}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class CorruptStreamError(LzoSplitterError):
    """A block header is inconsistent with the bytes that follow it."""

    kind = "corrupt_stream"

    def __init__(self, message, offset=None, block_index=None):
        self.offset = offset
        self.block_index = block_index
        context = []
        if block_index is not None:
            context.append(f"block {block_index}")
        if offset is not None:
            context.append(f"offset {offset}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class MalformedIndexError(LzoSplitterError):
    """An index file violates the binary format or is out of order."""

    kind = "malformed_index"

    def __init__(self, message, entry_index=None):
        self.entry_index = entry_index
        if entry_index is not None:
            message = f"{message} (entry {entry_index})"
        super().__init__(message)


class PipelineCancelled(LzoSplitterError):
    """The caller's cancel signal was set while a pass was in flight."""

    kind = "cancelled"


def error_kind(exc: BaseException) -> str:
    """Short name for the error family, used in results and exit codes."""
    if isinstance(exc, LzoSplitterError):
        return exc.kind
    if isinstance(exc, OSError):
        return "io"
    if isinstance(exc, _S3_ERRORS):
        return "io"
    return "unexpected"
