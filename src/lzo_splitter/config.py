import logging
import os
from dataclasses import dataclass

DEFAULT_BLOCK_SIZE = 256 * 1024
MAX_BLOCK_SIZE = 64 * 1024 * 1024
DEFAULT_INDEX_INTERVAL = 1
# Stored as a u32 in the index header.
MAX_INDEX_INTERVAL = 0xFFFFFFFF
DEFAULT_LEVEL = 1
MIN_LEVEL = 1
MAX_LEVEL = 9
DEFAULT_QUEUE_DEPTH = 4

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


@dataclass
class PipelineConfig:
    """
    Settings for one compress-and-index pass.

    :param source_path: Path of the raw input, relative to the source provider.
    :param destination_path: Base name of the artifact pair; ``.lzo`` and
        ``.lzo.index`` are appended to it.
    :param index_interval: Blocks between recorded index entries.
    :param block_size_hint: Uncompressed bytes per block.
    :param level: LZO compression level (1 is LZO1X-1, 9 is LZO1X-999).
    :param queue_depth: Compressed blocks allowed in flight to the writer.
    """
    source_path: str
    destination_path: str
    index_interval: int = DEFAULT_INDEX_INTERVAL
    block_size_hint: int = DEFAULT_BLOCK_SIZE
    level: int = DEFAULT_LEVEL
    queue_depth: int = DEFAULT_QUEUE_DEPTH

    def __post_init__(self):
        if not self.source_path:
            raise ValueError("source_path must not be empty")
        if not self.destination_path:
            raise ValueError("destination_path must not be empty")
        if not 1 <= self.index_interval <= MAX_INDEX_INTERVAL:
            raise ValueError(
                f"index_interval must be between 1 and {MAX_INDEX_INTERVAL}, got {self.index_interval}")
        if not 1 <= self.block_size_hint <= MAX_BLOCK_SIZE:
            raise ValueError(
                f"block_size_hint must be between 1 and {MAX_BLOCK_SIZE} bytes, got {self.block_size_hint}")
        if not MIN_LEVEL <= self.level <= MAX_LEVEL:
            raise ValueError(f"level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {self.level}")
        if self.queue_depth < 1:
            raise ValueError(f"queue_depth must be at least 1, got {self.queue_depth}")

    @property
    def data_path(self) -> str:
        return f"{self.destination_path}.lzo"

    @property
    def index_path(self) -> str:
        return f"{self.destination_path}.lzo.index"

    @classmethod
    def from_env(cls, source_path, destination_path, **overrides):
        """
        Build a config from ``LZO_INDEX_INTERVAL``, ``LZO_BLOCK_SIZE`` and
        ``LZO_LEVEL``. Keyword overrides that are not None win over the environment.
        """
        values = {
            "index_interval": int(os.environ.get("LZO_INDEX_INTERVAL", DEFAULT_INDEX_INTERVAL)),
            "block_size_hint": int(os.environ.get("LZO_BLOCK_SIZE", DEFAULT_BLOCK_SIZE)),
            "level": int(os.environ.get("LZO_LEVEL", DEFAULT_LEVEL)),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(source_path=source_path, destination_path=destination_path, **values)


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line use. Library code never calls this."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT, force=True)
    for noisy in ("boto3", "botocore", "s3transfer", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
