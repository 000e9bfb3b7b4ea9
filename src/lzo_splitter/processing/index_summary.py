import logging
import os

import numpy as np
import pandas as pd

from lzo_splitter.processing.index_format import Index

SUMMARY_COLUMNS = [
    'Entry', 'Block', 'CompressedOffset', 'UncompressedOffset',
    'CompressedSpan', 'UncompressedSpan', 'CompressionRatio',
]


def summarize_index(index: Index, compressed_size: int, uncompressed_size: int) -> pd.DataFrame:
    """
    Builds a per-entry report of an index: where each entry points and how many
    bytes lie between it and the next entry (or the end of the file).

    Args:
        index (Index): The loaded index.
        compressed_size (int): Size of the .lzo file in bytes.
        uncompressed_size (int): Decoded size of the .lzo file in bytes.

    Returns:
        pd.DataFrame: One row per entry with the columns in SUMMARY_COLUMNS.
    """
    if len(index) == 0:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    df = pd.DataFrame(list(index.entries), columns=['CompressedOffset', 'UncompressedOffset'])
    df.insert(0, 'Entry', np.arange(len(df), dtype=np.int64))
    df.insert(1, 'Block', df['Entry'] * index.interval)

    next_compressed = df['CompressedOffset'].shift(-1).fillna(compressed_size).astype(np.int64)
    next_uncompressed = df['UncompressedOffset'].shift(-1).fillna(uncompressed_size).astype(np.int64)
    df['CompressedSpan'] = next_compressed - df['CompressedOffset']
    df['UncompressedSpan'] = next_uncompressed - df['UncompressedOffset']
    # Spans with no decoded bytes have no meaningful ratio.
    df['CompressionRatio'] = (df['CompressedSpan'] / df['UncompressedSpan'].replace(0, np.nan)).round(4)
    return df[SUMMARY_COLUMNS]


def save_summary(df: pd.DataFrame, output_file: str) -> None:
    """Writes the summary DataFrame to CSV, creating the parent directory."""
    parent_dir = os.path.dirname(output_file)
    if parent_dir:
        os.makedirs(parent_dir, exist_ok=True)
    df.to_csv(output_file, index=False)
    logging.info(f"Index summary with {len(df)} rows saved to {output_file}")
