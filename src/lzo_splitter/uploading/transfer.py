"""
Drives one compress-and-index pass from a source stream to an artifact pair.

Both artifacts are written under a ``.tmp`` suffix and only renamed into place
once everything succeeded, the index last. A ``<name>.lzo.index`` file
therefore only ever exists next to the complete ``<name>.lzo`` it describes.
"""

import dataclasses
import enum
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from lzo_splitter.config import PipelineConfig
from lzo_splitter.errors import PipelineCancelled, error_kind
from lzo_splitter.processing.block_codec import BlockCodec
from lzo_splitter.processing.index_builder import IndexBuilder
from lzo_splitter.processing.index_format import write_index
from lzo_splitter.uploading.storage import StreamProvider, resolve_provider

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"
_POLL_SECONDS = 0.1

_END = object()
_ABORT = object()


class PipelineState(enum.Enum):
    IDLE = "idle"
    READING_SOURCE = "reading_source"
    COMPRESSING = "compressing"
    WRITING_ARTIFACTS = "writing_artifacts"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ArtifactPair:
    """Locations and sizes of a committed .lzo file and its index."""
    data_uri: str
    index_uri: str
    block_count: int
    entry_count: int
    compressed_size: int
    uncompressed_size: int


@dataclass
class TransferResult:
    state: PipelineState
    artifacts: Optional[ArtifactPair] = None
    error: Optional[BaseException] = None
    failed_in: Optional[PipelineState] = None

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def error_kind(self) -> Optional[str]:
        return error_kind(self.error) if self.error is not None else None


class TransferOrchestrator:
    """
    Runs one pass: source -> BlockCodec -> IndexBuilder -> destination.

    Compressed blocks go through a bounded FIFO queue to a single writer
    thread, so compression of the next block overlaps the write of the
    previous one while bytes still land in block order.

    :param source_provider: Provider that ``config.source_path`` is read from.
    :param destination_provider: Provider the artifact pair is written to.
    :param config: Paths are relative to their providers.
    :param cancel_event: Optional event; setting it aborts the pass.
    """

    def __init__(self, source_provider: StreamProvider, destination_provider: StreamProvider,
                 config: PipelineConfig, cancel_event: Optional[threading.Event] = None):
        self.source_provider = source_provider
        self.destination_provider = destination_provider
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.codec = BlockCodec(config.block_size_hint, config.level)
        self.state = PipelineState.IDLE

    @property
    def data_tmp_path(self) -> str:
        return self.config.data_path + TMP_SUFFIX

    @property
    def index_tmp_path(self) -> str:
        return self.config.index_path + TMP_SUFFIX

    def cancel(self):
        self.cancel_event.set()

    def run(self) -> TransferResult:
        """Execute the pass. Errors are returned in the result, not raised."""
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"orchestrator already ran (state {self.state.value})")
        try:
            artifacts = self._run()
        except Exception as e:
            failed_in = self.state
            self.state = PipelineState.FAILED
            logger.error("Pass for '%s' failed while %s: %s", self.config.source_path,
                         failed_in.value, e)
            self._discard_partials()
            return TransferResult(state=PipelineState.FAILED, error=e, failed_in=failed_in)
        except BaseException:
            self.state = PipelineState.FAILED
            self._discard_partials()
            raise
        return TransferResult(state=PipelineState.DONE, artifacts=artifacts)

    def _transition(self, state: PipelineState):
        logger.debug("%s: %s -> %s", self.config.source_path, self.state.value, state.value)
        self.state = state

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise PipelineCancelled(f"pass for '{self.config.source_path}' was cancelled")

    def _run(self) -> ArtifactPair:
        self._transition(PipelineState.READING_SOURCE)
        builder = IndexBuilder(self.config.index_interval)
        with self.source_provider.open(self.config.source_path) as source:
            self._check_cancelled()
            self._transition(PipelineState.COMPRESSING)
            with self.destination_provider.create(self.data_tmp_path) as sink:
                written = self._pump(source, builder, sink)
        if written != builder.cursor:
            raise RuntimeError(f"writer wrote {written} bytes but the index expects {builder.cursor}")
        index = builder.finish()

        self._transition(PipelineState.WRITING_ARTIFACTS)
        self._check_cancelled()
        with self.destination_provider.create(self.index_tmp_path) as sink:
            write_index(index, sink)
        self._check_cancelled()
        self._commit()

        artifacts = ArtifactPair(
            data_uri=self.destination_provider.uri(self.config.data_path),
            index_uri=self.destination_provider.uri(self.config.index_path),
            block_count=builder.block_count,
            entry_count=len(index),
            compressed_size=builder.cursor,
            uncompressed_size=builder.uncompressed_cursor,
        )
        self._transition(PipelineState.DONE)
        logger.info("Indexed '%s' into %s (%d blocks, %d index entries, %d -> %d bytes)",
                    self.config.source_path, artifacts.data_uri, artifacts.block_count,
                    artifacts.entry_count, artifacts.uncompressed_size, artifacts.compressed_size)
        return artifacts

    def _pump(self, source, builder: IndexBuilder, sink) -> int:
        blocks = queue.Queue(maxsize=self.config.queue_depth)
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="lzo-writer") as pool:
            writer = pool.submit(_drain, blocks, sink)
            try:
                for block in self.codec.compress_stream(source):
                    self._check_cancelled()
                    builder.observe_block(block)
                    self._put(blocks, block, writer)
                self._put(blocks, _END, writer)
            except BaseException:
                _stop_writer(blocks, writer)
                raise
            return writer.result()

    def _put(self, blocks: queue.Queue, item, writer):
        while True:
            if writer.done():
                # Raises the writer's error if it had one.
                writer.result()
                raise RuntimeError("block writer stopped before the stream ended")
            try:
                blocks.put(item, timeout=_POLL_SECONDS)
                return
            except queue.Full:
                self._check_cancelled()

    def _commit(self):
        destination = self.destination_provider
        # Drop any index from an earlier run before the data file changes under it.
        destination.delete(self.config.index_path)
        destination.rename(self.data_tmp_path, self.config.data_path)
        destination.rename(self.index_tmp_path, self.config.index_path)

    def _discard_partials(self):
        for path in (self.index_tmp_path, self.data_tmp_path):
            try:
                self.destination_provider.delete(path)
            except Exception as e:
                logger.warning("Could not delete temporary file '%s': %s", path, e)


def _drain(blocks: queue.Queue, sink) -> int:
    written = 0
    while True:
        block = blocks.get()
        if block is _END or block is _ABORT:
            return written
        sink.write(block.header())
        sink.write(block.payload)
        written += block.size


def _stop_writer(blocks: queue.Queue, writer):
    while not writer.done():
        try:
            blocks.put(_ABORT, timeout=_POLL_SECONDS)
            return
        except queue.Full:
            continue


def run_pipeline(config: PipelineConfig, s3_client=None,
                 cancel_event: Optional[threading.Event] = None) -> TransferResult:
    """
    Resolve the source and destination URIs in ``config`` to providers and run
    one pass between them.
    """
    source_provider, source_path = resolve_provider(config.source_path, s3_client=s3_client)
    destination_provider, destination_path = resolve_provider(config.destination_path, s3_client=s3_client)
    local_config = dataclasses.replace(config, source_path=source_path, destination_path=destination_path)
    return TransferOrchestrator(source_provider, destination_provider, local_config, cancel_event).run()
