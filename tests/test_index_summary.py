"""Tests for the per-entry index report."""

import io

import pandas as pd

from lzo_splitter.processing.block_codec import BlockCodec
from lzo_splitter.processing.index_builder import build_index
from lzo_splitter.processing.index_format import Index, IndexEntry
from lzo_splitter.processing.index_summary import SUMMARY_COLUMNS, save_summary, summarize_index


class TestSummarizeIndex:

    def test_spans_cover_the_file(self, csv_payload):
        data = csv_payload(2000)
        stream = BlockCodec(block_size_hint=8192).compress_bytes(data)
        index = build_index(io.BytesIO(stream), 3)

        df = summarize_index(index, len(stream), len(data))

        assert list(df.columns) == SUMMARY_COLUMNS
        assert len(df) == len(index)
        assert df['CompressedSpan'].sum() == len(stream)
        assert df['UncompressedSpan'].sum() == len(data)
        assert list(df['Block']) == [i * 3 for i in range(len(index))]
        assert (df['CompressionRatio'] < 1).all()

    def test_explicit_values(self):
        index = Index(interval=2, entries=(IndexEntry(0, 0), IndexEntry(600, 1000)))
        df = summarize_index(index, 900, 1500)
        assert list(df['CompressedSpan']) == [600, 300]
        assert list(df['UncompressedSpan']) == [1000, 500]
        assert list(df['CompressionRatio']) == [0.6, 0.6]

    def test_empty_index(self):
        df = summarize_index(Index(interval=1), 0, 0)
        assert df.empty
        assert list(df.columns) == SUMMARY_COLUMNS

    def test_save_summary(self, tmp_path):
        index = Index(interval=1, entries=(IndexEntry(0, 0),))
        output = tmp_path / "reports" / "summary.csv"
        save_summary(summarize_index(index, 100, 400), str(output))
        loaded = pd.read_csv(output)
        assert loaded.loc[0, 'CompressionRatio'] == 0.25
