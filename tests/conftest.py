"""Shared fixtures: deterministic payloads and an in-memory stand-in for a boto3 S3 client."""

import io

import numpy as np
import pytest
from botocore.exceptions import ClientError


def random_bytes(n, seed=42):
    return np.random.RandomState(seed).bytes(n)


def trade_csv_bytes(rows, seed=7):
    """Compressible CSV shaped like the trade extracts."""
    rng = np.random.RandomState(seed)
    lines = ["tradeId,traderId,placedDateTime,limitPrice,stopPrice,state,filledPrice"]
    for i in range(rows):
        lines.append(
            f"{i},{rng.randint(1, 500)},2024-01-{rng.randint(1, 29):02d} {rng.randint(0, 24):02d}:00:00,"
            f"{rng.randint(90000, 110000)},{rng.randint(90000, 110000)},FILLED,{rng.randint(90000, 110000)}")
    return ("\n".join(lines) + "\n").encode()


@pytest.fixture
def payload():
    return random_bytes


@pytest.fixture
def csv_payload():
    return trade_csv_bytes


def _missing(operation):
    return ClientError({'Error': {'Code': '404', 'Message': 'Not Found'}}, operation)


class _Paginator:
    def __init__(self, objects, page_size):
        self._objects = objects
        self._page_size = page_size

    def paginate(self, Bucket, Prefix=""):
        keys = sorted(k for (b, k) in self._objects if b == Bucket and k.startswith(Prefix))
        if not keys:
            yield {'KeyCount': 0}
            return
        for start in range(0, len(keys), self._page_size):
            page = keys[start:start + self._page_size]
            yield {'Contents': [{'Key': k, 'Size': len(self._objects[(Bucket, k)])} for k in page]}


class FakeS3Client:
    """Implements the handful of boto3 S3 calls the providers make."""

    def __init__(self, page_size=2):
        self.objects = {}
        self.page_size = page_size

    def put(self, bucket, key, data):
        self.objects[(bucket, key)] = bytes(data)

    def get(self, bucket, key):
        return self.objects[(bucket, key)]

    def keys(self, bucket):
        return sorted(k for (b, k) in self.objects if b == bucket)

    def upload_fileobj(self, Fileobj, Bucket, Key):
        self.objects[(Bucket, Key)] = Fileobj.read()

    def download_fileobj(self, Bucket, Key, Fileobj):
        if (Bucket, Key) not in self.objects:
            raise _missing('HeadObject')
        Fileobj.write(self.objects[(Bucket, Key)])

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise _missing('HeadObject')
        return {'ContentLength': len(self.objects[(Bucket, Key)])}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)
        return {}

    def copy(self, CopySource, Bucket, Key):
        source = (CopySource['Bucket'], CopySource['Key'])
        if source not in self.objects:
            raise _missing('CopyObject')
        self.objects[(Bucket, Key)] = self.objects[source]

    def get_paginator(self, operation_name):
        assert operation_name == 'list_objects_v2'
        return _Paginator(self.objects, self.page_size)


@pytest.fixture
def s3_client():
    return FakeS3Client()


class NonSeekable(io.RawIOBase):
    """Read-only stream that cannot seek, like an HTTP body or a pipe."""

    def __init__(self, data, max_read=None):
        self._buffer = io.BytesIO(data)
        self._max_read = max_read

    def readable(self):
        return True

    def seekable(self):
        return False

    def read(self, size=-1):
        if self._max_read is not None and (size < 0 or size > self._max_read):
            size = self._max_read
        return self._buffer.read(size)
