import concurrent.futures
import logging
import os
import threading
from typing import Dict, Optional

from lzo_splitter.config import PipelineConfig
from lzo_splitter.uploading.storage import LocalStreamProvider, StreamProvider
from lzo_splitter.uploading.transfer import TransferOrchestrator, TransferResult

logger = logging.getLogger(__name__)

_ARTIFACT_SUFFIXES = (".lzo", ".lzo.index", ".tmp")


def destination_name(relative_path: str, prefix: str = "") -> str:
    """Artifact base name for a source file: its relative path, '/'-separated, under ``prefix``."""
    name = relative_path.replace(os.sep, "/")
    return f"{prefix.rstrip('/')}/{name}" if prefix else name


def compress_and_push_directory(
        source_dir: str,
        destination_provider: StreamProvider,
        destination_prefix: str = "",
        index_interval: int = 1,
        block_size_hint: Optional[int] = None,
        max_workers: int = 4,
        cancel_event: Optional[threading.Event] = None,
) -> Dict[str, TransferResult]:
    """
    Compresses and indexes every file under a directory, one independent pass per file.

    Passes share nothing but the destination provider and the cancel event, so
    they run concurrently. A failed file does not stop the others; each file's
    outcome is returned in the result mapping.

    :param source_dir: The local directory whose files are indexed.
    :param destination_provider: Where each ``<name>.lzo`` / ``<name>.lzo.index`` pair is written.
    :param destination_prefix: Prefix for artifact names, e.g. an S3 key prefix.
    :param index_interval: Blocks between recorded index entries.
    :param block_size_hint: Uncompressed bytes per block; the config default if None.
    :param max_workers: Number of files processed at once.
    :param cancel_event: Optional event shared by all passes.
    :return: Mapping of relative source path to its TransferResult.
    :raises ValueError: If ``source_dir`` is not a directory.
    """
    if not os.path.isdir(source_dir):
        logger.warning("Source directory does not exist or is not a directory: %s", source_dir)
        raise ValueError(f"Source directory does not exist or is not a directory: {source_dir}")

    source_provider = LocalStreamProvider(source_dir)
    # Artifacts from an earlier run in the same directory are not inputs.
    relative_paths = [p for p in source_provider.list("") if not p.endswith(_ARTIFACT_SUFFIXES)]
    logger.info("Found %d files to index under %s", len(relative_paths), source_dir)

    overrides = {"index_interval": index_interval}
    if block_size_hint is not None:
        overrides["block_size_hint"] = block_size_hint

    results = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {}
        for relative_path in relative_paths:
            config = PipelineConfig(
                source_path=relative_path,
                destination_path=destination_name(relative_path, destination_prefix),
                **overrides,
            )
            orchestrator = TransferOrchestrator(source_provider, destination_provider, config, cancel_event)
            futures[executor.submit(orchestrator.run)] = relative_path
        for future in concurrent.futures.as_completed(futures):
            relative_path = futures[future]
            result = future.result()
            results[relative_path] = result
            if result.ok:
                logger.info("Finished %s -> %s", relative_path, result.artifacts.data_uri)
            else:
                logger.error("Indexing %s failed (%s): %s", relative_path, result.error_kind, result.error)
    return results
