"""Tests for pipeline configuration and error classification."""

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError, NoCredentialsError

from lzo_splitter.config import DEFAULT_BLOCK_SIZE, PipelineConfig
from lzo_splitter.errors import (
    CodecError,
    CorruptStreamError,
    MalformedIndexError,
    PipelineCancelled,
    error_kind,
)


class TestPipelineConfig:

    def test_artifact_paths(self):
        config = PipelineConfig("in.csv", "out/trades.csv")
        assert config.data_path == "out/trades.csv.lzo"
        assert config.index_path == "out/trades.csv.lzo.index"
        assert config.block_size_hint == DEFAULT_BLOCK_SIZE

    @pytest.mark.parametrize("field, value", [
        ("index_interval", 0),
        ("index_interval", 2**32),
        ("level", 0),
        ("level", 10),
        ("block_size_hint", 0),
        ("block_size_hint", 64 * 1024 * 1024 + 1),
        ("queue_depth", 0),
        ("source_path", ""),
    ])
    def test_rejects_bad_values(self, field, value):
        values = {"source_path": "in", "destination_path": "out", field: value}
        with pytest.raises(ValueError):
            PipelineConfig(**values)

    def test_largest_u32_interval_is_accepted(self):
        assert PipelineConfig("in", "out", index_interval=2**32 - 1).index_interval == 2**32 - 1

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LZO_INDEX_INTERVAL", "8")
        monkeypatch.setenv("LZO_BLOCK_SIZE", "65536")
        config = PipelineConfig.from_env("in", "out", index_interval=None, level=9)
        assert config.index_interval == 8
        assert config.block_size_hint == 65536
        assert config.level == 9

    def test_overrides_win_over_env(self, monkeypatch):
        monkeypatch.setenv("LZO_INDEX_INTERVAL", "8")
        assert PipelineConfig.from_env("in", "out", index_interval=2).index_interval == 2


class TestErrorKind:

    def test_kinds(self):
        assert error_kind(CodecError("x")) == "codec"
        assert error_kind(CorruptStreamError("x")) == "corrupt_stream"
        assert error_kind(MalformedIndexError("x")) == "malformed_index"
        assert error_kind(PipelineCancelled("x")) == "cancelled"
        assert error_kind(FileNotFoundError("x")) == "io"
        assert error_kind(ClientError({'Error': {'Code': '403'}}, 'GetObject')) == "io"
        assert error_kind(NoCredentialsError()) == "io"
        assert error_kind(S3UploadFailedError("upload failed")) == "io"
        assert error_kind(KeyError("x")) == "unexpected"

    def test_context_in_message(self):
        error = CorruptStreamError("bad header", offset=1024, block_index=3)
        assert str(error) == "bad header (block 3, offset 1024)"
        assert MalformedIndexError("not increasing", entry_index=7).entry_index == 7