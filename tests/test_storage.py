"""Tests for the local, S3 and HDFS stream providers."""

import pytest
from botocore.exceptions import ClientError

from lzo_splitter.uploading.storage import (
    HadoopStreamProvider,
    LocalStreamProvider,
    S3StreamProvider,
    resolve_provider,
)


class TestLocalStreamProvider:

    def test_create_open_and_size(self, tmp_path):
        provider = LocalStreamProvider(str(tmp_path))
        with provider.create("nested/dir/file.bin") as sink:
            sink.write(b"hello")
        assert provider.exists("nested/dir/file.bin")
        assert provider.size("nested/dir/file.bin") == 5
        with provider.open("nested/dir/file.bin") as source:
            assert source.read() == b"hello"

    def test_rename_replaces_destination(self, tmp_path):
        provider = LocalStreamProvider(str(tmp_path))
        (tmp_path / "a").write_bytes(b"new")
        (tmp_path / "b").write_bytes(b"old")
        provider.rename("a", "b")
        assert not provider.exists("a")
        assert (tmp_path / "b").read_bytes() == b"new"

    def test_delete_missing_is_not_an_error(self, tmp_path):
        LocalStreamProvider(str(tmp_path)).delete("missing")

    def test_list(self, tmp_path):
        (tmp_path / "x").mkdir()
        (tmp_path / "x" / "one.csv").write_bytes(b"1")
        (tmp_path / "two.csv").write_bytes(b"2")
        assert LocalStreamProvider(str(tmp_path)).list("") == ["two.csv", "x/one.csv"]

    def test_open_missing_raises_os_error(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalStreamProvider(str(tmp_path)).open("missing")


class TestS3StreamProvider:

    def test_upload_on_close(self, s3_client):
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        with provider.create("btc-1mF/trades.csv.lzo") as sink:
            sink.write(b"abc")
            sink.write(b"def")
            assert s3_client.keys("mochi-trades") == []
        assert s3_client.get("mochi-trades", "btc-1mF/trades.csv.lzo") == b"abcdef"

    def test_exception_discards_upload(self, s3_client):
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        with pytest.raises(RuntimeError):
            with provider.create("partial") as sink:
                sink.write(b"abc")
                raise RuntimeError("boom")
        assert not provider.exists("partial")

    def test_open_is_seekable(self, s3_client):
        s3_client.put("mochi-trades", "key", b"0123456789")
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        with provider.open("key") as source:
            source.seek(4)
            assert source.read(3) == b"456"

    def test_open_missing_propagates_client_error(self, s3_client):
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        with pytest.raises(ClientError):
            provider.open("missing")

    def test_exists_size_delete(self, s3_client):
        s3_client.put("mochi-trades", "key", b"12345")
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        assert provider.exists("key")
        assert provider.size("key") == 5
        provider.delete("key")
        assert not provider.exists("key")

    def test_rename(self, s3_client):
        s3_client.put("mochi-trades", "a.tmp", b"data")
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        provider.rename("a.tmp", "a")
        assert s3_client.keys("mochi-trades") == ["a"]

    def test_list_follows_pagination(self, s3_client):
        for name in ["p/1", "p/2", "p/3", "p/4", "q/5"]:
            s3_client.put("mochi-trades", name, b"")
        provider = S3StreamProvider("mochi-trades", s3_client=s3_client)
        assert provider.list("p/") == ["p/1", "p/2", "p/3", "p/4"]
        assert provider.list("none/") == []

    def test_uri(self, s3_client):
        assert S3StreamProvider("b", s3_client=s3_client).uri("k/x.lzo") == "s3://b/k/x.lzo"


class TestHadoopStreamProvider:

    @pytest.fixture
    def provider(self):
        pafs = pytest.importorskip("pyarrow.fs")
        return HadoopStreamProvider(filesystem=pafs.LocalFileSystem())

    def test_create_rename_list(self, provider, tmp_path):
        base = str(tmp_path)
        with provider.create(f"{base}/out/a.tmp") as sink:
            sink.write(b"payload")
        with provider.create(f"{base}/out/a") as sink:
            sink.write(b"stale")
        provider.rename(f"{base}/out/a.tmp", f"{base}/out/a")
        assert provider.list(f"{base}/out") == [f"{base}/out/a"]
        assert provider.size(f"{base}/out/a") == 7
        with provider.open(f"{base}/out/a") as source:
            assert source.read() == b"payload"
        provider.delete(f"{base}/out/a")
        assert not provider.exists(f"{base}/out/a")

    def test_uri_of_relative_path(self):
        provider = HadoopStreamProvider("namenode", 8020, filesystem=object())
        assert provider.uri("trades.csv.lzo") == "hdfs://namenode:8020/trades.csv.lzo"
        assert provider.uri("/data/trades.csv.lzo") == "hdfs://namenode:8020/data/trades.csv.lzo"


class TestResolveProvider:

    def test_s3(self, s3_client):
        provider, path = resolve_provider("s3://mochi-trades/btc-1mF/trades.csv", s3_client=s3_client)
        assert isinstance(provider, S3StreamProvider)
        assert provider.bucket_name == "mochi-trades"
        assert path == "btc-1mF/trades.csv"

    def test_s3_without_bucket(self, s3_client):
        with pytest.raises(ValueError):
            resolve_provider("s3:///key", s3_client=s3_client)

    def test_local(self):
        provider, path = resolve_provider("output/trades.csv")
        assert isinstance(provider, LocalStreamProvider)
        assert path == "output/trades.csv"

    def test_file_uri(self):
        provider, path = resolve_provider("file:///tmp/trades.csv")
        assert isinstance(provider, LocalStreamProvider)
        assert path == "/tmp/trades.csv"
