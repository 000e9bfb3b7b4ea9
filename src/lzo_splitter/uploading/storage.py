"""
Byte-stream providers for local disk, S3 and HDFS.

Every provider exposes the same small surface (``open``, ``create``,
``exists``, ``delete``, ``rename``, ``size``, ``list``) so the pipeline can run
against any of them without knowing which one it has. ``resolve_provider`` is
the only place that looks at a URI scheme.
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import BinaryIO, List, Optional, Tuple
from urllib.parse import urlparse

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


class StreamProvider(ABC):
    """Opens readable and writable binary streams by path."""

    scheme = ""

    @abstractmethod
    def open(self, path: str) -> BinaryIO:
        """Readable, seekable binary stream over an existing object."""

    @abstractmethod
    def create(self, path: str) -> BinaryIO:
        """
        Writable binary stream. Data becomes visible at ``path`` when the
        stream is closed; a stream used as a context manager and left through
        an exception may discard what was written.
        """

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove ``path``; a missing path is not an error."""

    @abstractmethod
    def rename(self, source: str, destination: str) -> None:
        """Move ``source`` to ``destination``, replacing anything already there."""

    @abstractmethod
    def size(self, path: str) -> int:
        pass

    @abstractmethod
    def list(self, prefix: str) -> List[str]:
        """Paths of all objects under ``prefix``, sorted."""

    def uri(self, path: str) -> str:
        return path


class LocalStreamProvider(StreamProvider):
    """Plain files, optionally below a root directory."""

    scheme = "file"

    def __init__(self, root: Optional[str] = None):
        self.root = root

    def _resolve(self, path: str) -> str:
        return os.path.join(self.root, path) if self.root else path

    def open(self, path):
        return open(self._resolve(path), "rb")

    def create(self, path):
        full_path = self._resolve(path)
        parent_dir = os.path.dirname(full_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)
        return open(full_path, "wb")

    def exists(self, path):
        return os.path.exists(self._resolve(path))

    def delete(self, path):
        full_path = self._resolve(path)
        if os.path.exists(full_path):
            os.remove(full_path)

    def rename(self, source, destination):
        os.replace(self._resolve(source), self._resolve(destination))

    def size(self, path):
        return os.path.getsize(self._resolve(path))

    def list(self, prefix):
        base = self._resolve(prefix)
        if os.path.isfile(base):
            return [prefix]
        paths = []
        for root, dirs, files in os.walk(base):
            for file in files:
                relative_path = os.path.relpath(os.path.join(root, file), base)
                paths.append(os.path.join(prefix, relative_path))
        return sorted(paths)

    def uri(self, path):
        return os.path.abspath(self._resolve(path))


class _S3UploadStream:
    """Spools writes to a temporary file and uploads it to S3 on close."""

    def __init__(self, s3_client, bucket_name: str, key: str, spool_dir: Optional[str] = None):
        self._s3_client = s3_client
        self._bucket_name = bucket_name
        self._key = key
        self._spool = tempfile.TemporaryFile(dir=spool_dir)
        self.closed = False

    def writable(self):
        return True

    def write(self, data) -> int:
        return self._spool.write(data)

    def flush(self):
        self._spool.flush()

    def tell(self):
        return self._spool.tell()

    def close(self):
        if self.closed:
            return
        try:
            self._spool.seek(0)
            self._s3_client.upload_fileobj(self._spool, self._bucket_name, self._key)
            logger.info("Uploaded '%s' to bucket '%s'", self._key, self._bucket_name)
        finally:
            self.discard()

    def discard(self):
        """Drop the spooled data without uploading."""
        self._spool.close()
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.discard()


class S3StreamProvider(StreamProvider):
    """
    Objects in one S3 bucket, addressed by key.

    :param bucket_name: The bucket holding the objects.
    :param s3_client: An authenticated boto3 S3 client. If None, a new client is created.
    :param spool_dir: Directory for temporary download/upload files.
    """

    scheme = "s3"

    def __init__(self, bucket_name: str, s3_client=None, spool_dir: Optional[str] = None):
        if s3_client is None:
            s3_client = boto3.client("s3")
        self.bucket_name = bucket_name
        self.s3_client = s3_client
        self.spool_dir = spool_dir

    def open(self, path):
        spool = tempfile.TemporaryFile(dir=self.spool_dir)
        try:
            self.s3_client.download_fileobj(self.bucket_name, path, spool)
        except Exception:
            spool.close()
            raise
        spool.seek(0)
        logger.info("Downloaded s3://%s/%s", self.bucket_name, path)
        return spool

    def create(self, path):
        return _S3UploadStream(self.s3_client, self.bucket_name, path, self.spool_dir)

    def exists(self, path):
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=path)
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in _MISSING_CODES:
                return False
            raise

    def delete(self, path):
        self.s3_client.delete_object(Bucket=self.bucket_name, Key=path)

    def rename(self, source, destination):
        # S3 has no rename; a managed copy handles objects over 5 GB.
        self.s3_client.copy({'Bucket': self.bucket_name, 'Key': source}, self.bucket_name, destination)
        self.s3_client.delete_object(Bucket=self.bucket_name, Key=source)
        logger.info("Moved s3://%s/%s to %s", self.bucket_name, source, destination)

    def size(self, path):
        return self.s3_client.head_object(Bucket=self.bucket_name, Key=path)['ContentLength']

    def list(self, prefix):
        keys = []
        paginator = self.s3_client.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
            for obj in page.get('Contents', []):
                keys.append(obj['Key'])
        return sorted(keys)

    def uri(self, path):
        return f"s3://{self.bucket_name}/{path}"


class HadoopStreamProvider(StreamProvider):
    """HDFS through pyarrow's libhdfs binding. Requires the ``hdfs`` extra."""

    scheme = "hdfs"

    def __init__(self, host: str = "default", port: int = 0, user: Optional[str] = None, filesystem=None):
        if filesystem is None:
            from pyarrow import fs as pafs
            filesystem = pafs.HadoopFileSystem(host, port, user=user)
        self.host = host
        self.port = port
        self.filesystem = filesystem

    def _info(self, path):
        return self.filesystem.get_file_info(path)

    def open(self, path):
        return self.filesystem.open_input_file(path)

    def create(self, path):
        parent_dir = os.path.dirname(path)
        if parent_dir:
            self.filesystem.create_dir(parent_dir, recursive=True)
        return self.filesystem.open_output_stream(path)

    def exists(self, path):
        from pyarrow import fs as pafs
        return self._info(path).type != pafs.FileType.NotFound

    def delete(self, path):
        if self.exists(path):
            self.filesystem.delete_file(path)

    def rename(self, source, destination):
        # HDFS refuses to rename onto an existing file.
        self.delete(destination)
        self.filesystem.move(source, destination)

    def size(self, path):
        return self._info(path).size

    def list(self, prefix):
        from pyarrow import fs as pafs
        selector = pafs.FileSelector(prefix, recursive=True, allow_not_found=True)
        infos = self.filesystem.get_file_info(selector)
        return sorted(info.path for info in infos if info.type == pafs.FileType.File)

    def uri(self, path):
        if not path.startswith("/"):
            path = "/" + path
        return f"hdfs://{self.host}:{self.port}{path}"


def resolve_provider(uri: str, s3_client=None) -> Tuple[StreamProvider, str]:
    """
    Map a location to a provider and the path inside it.

    ``s3://bucket/key`` gives an S3 provider, ``hdfs://host:port/path`` an HDFS
    provider, and anything else (including ``file://``) the local filesystem.
    """
    parsed = urlparse(uri)
    if parsed.scheme == "s3":
        if not parsed.netloc:
            raise ValueError(f"S3 URI has no bucket: {uri}")
        return S3StreamProvider(parsed.netloc, s3_client=s3_client), parsed.path.lstrip("/")
    if parsed.scheme == "hdfs":
        return HadoopStreamProvider(parsed.hostname or "default", parsed.port or 0), parsed.path
    if parsed.scheme == "file":
        return LocalStreamProvider(), parsed.path
    return LocalStreamProvider(), uri
