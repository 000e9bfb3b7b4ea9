"""Splittable LZO block streams with a sidecar index, moved between local disk, HDFS and S3."""

from lzo_splitter.config import PipelineConfig
from lzo_splitter.errors import (
    CodecError,
    CorruptStreamError,
    LzoSplitterError,
    MalformedIndexError,
    PipelineCancelled,
)
from lzo_splitter.processing.block_codec import BlockCodec
from lzo_splitter.processing.index_builder import IndexBuilder, build_index
from lzo_splitter.processing.index_format import Index, IndexEntry, read_index, write_index
from lzo_splitter.uploading.transfer import PipelineState, TransferOrchestrator, TransferResult, run_pipeline

__version__ = "0.1.0"

__all__ = [
    "BlockCodec",
    "CodecError",
    "CorruptStreamError",
    "Index",
    "IndexBuilder",
    "IndexEntry",
    "LzoSplitterError",
    "MalformedIndexError",
    "PipelineCancelled",
    "PipelineConfig",
    "PipelineState",
    "TransferOrchestrator",
    "TransferResult",
    "build_index",
    "read_index",
    "run_pipeline",
    "write_index",
]
