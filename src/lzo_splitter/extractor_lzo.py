# extractor_lzo.py
import logging
import os
from typing import Optional, Tuple

from lzo_splitter.processing.index_builder import iter_block_headers
from lzo_splitter.processing.index_format import Index, read_index
from lzo_splitter.processing.split_reader import decompress_stream, plan_splits, read_split
from lzo_splitter.uploading.storage import StreamProvider, resolve_provider

logger = logging.getLogger(__name__)


def artifact_paths(path: str) -> Tuple[str, str]:
    """Data and index paths for an artifact given either its base name or its .lzo path."""
    data_path = path if path.endswith(".lzo") else f"{path}.lzo"
    return data_path, f"{data_path}.index"


def load_index(provider: StreamProvider, data_path: str) -> Index:
    """
    Loads the index that sits next to a .lzo file.

    :raises FileNotFoundError: If there is no index, which means the pair is incomplete.
    """
    _, index_path = artifact_paths(data_path)
    if not provider.exists(index_path):
        raise FileNotFoundError(f"No index at {provider.uri(index_path)}; the artifact pair is incomplete")
    with provider.open(index_path) as f:
        return read_index(f)


def measure_artifact(data_stream) -> Tuple[int, int]:
    """Compressed and uncompressed size of a block stream, from its headers alone."""
    compressed_size = 0
    uncompressed_size = 0
    for block in iter_block_headers(data_stream):
        compressed_size = block.end
        uncompressed_size += block.uncompressed_length
    data_stream.seek(0)
    return compressed_size, uncompressed_size


def download_and_decompress_lzo(source_uri: str, output_path: str, split_number: Optional[int] = None,
                                num_splits: int = 1, s3_client=None) -> str:
    """
    Downloads an indexed LZO artifact from local disk, HDFS or S3 and decompresses
    it, or just one of its splits, into a local file.

    :param source_uri: Base name or .lzo path of the artifact, e.g. "s3://bucket/btc-1mF/trades.csv.lzo".
    :param output_path: Local file the decoded bytes are written to.
    :param split_number: Which split to decode; the whole file when None.
    :param num_splits: How many splits the file is planned into when split_number is given.
    :param s3_client: Optional boto3 S3 client used for s3:// locations.
    :return: output_path
    """
    provider, path = resolve_provider(source_uri, s3_client=s3_client)
    data_path, _ = artifact_paths(path)
    index = load_index(provider, data_path)

    parent_dir = os.path.dirname(output_path)
    if parent_dir:
        os.makedirs(parent_dir, exist_ok=True)

    logger.info("Decompressing %s into %s ...", provider.uri(data_path), output_path)
    with provider.open(data_path) as data:
        if split_number is None:
            chunks = decompress_stream(data)
        else:
            compressed_size = data.seek(0, os.SEEK_END)
            data.seek(0)
            splits = plan_splits(index, compressed_size, num_splits)
            if not 0 <= split_number < len(splits):
                raise ValueError(f"split {split_number} out of range; file has {len(splits)} splits")
            chunks = read_split(data, splits[split_number])
        written = 0
        with open(output_path, "wb") as out:
            for chunk in chunks:
                out.write(chunk)
                written += len(chunk)

    logger.info("LZO decompression completed. %d bytes written to %s", written, output_path)
    return output_path
