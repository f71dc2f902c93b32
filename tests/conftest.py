"""Shared test fixtures for the resource server test suite."""

import io
from typing import Dict, Tuple

import pytest
from botocore.exceptions import ClientError

from core.cache import TTLCache
from services.storage import LocalStorage, S3Storage


# ============================================================================
# Clock and Cache Fixtures
# ============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def content_cache(clock):
    return TTLCache(default_ttl=600, max_entries=100, name="content", clock=clock)


@pytest.fixture
def metadata_cache(clock):
    return TTLCache(default_ttl=1800, max_entries=100, name="metadata", clock=clock)


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture
def local_storage(tmp_path, content_cache, metadata_cache):
    return LocalStorage(
        storage_path=tmp_path / "storage",
        is_file_protocol=False,
        content_cache=content_cache,
        metadata_cache=metadata_cache,
    )


class FakeS3Client:
    """In-memory stand-in for the subset of the boto3 S3 client we call."""

    def __init__(self):
        self.objects: Dict[Tuple[str, str], Dict] = {}
        self.calls = []
        self.fail_with: Exception = None
        self.presign_error: Exception = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def put_object(self, Bucket, Key, Body, ContentType):
        self.calls.append(("put_object", Key))
        self._maybe_fail()
        self.objects[(Bucket, Key)] = {"Body": Body, "ContentType": ContentType}
        return {}

    def get_object(self, Bucket, Key):
        self.calls.append(("get_object", Key))
        self._maybe_fail()
        stored = self.objects.get((Bucket, Key))
        if stored is None:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        return {"Body": io.BytesIO(stored["Body"])}

    def head_bucket(self, Bucket):
        self.calls.append(("head_bucket", Bucket))
        self._maybe_fail()
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        self.calls.append(("generate_presigned_url", Params["Key"]))
        if self.presign_error is not None:
            raise self.presign_error
        return (
            f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}"
            f"?X-Amz-Algorithm=AWS4-HMAC-SHA256&X-Amz-Expires={ExpiresIn}"
        )

    def text(self, bucket: str, key: str) -> str:
        return self.objects[(bucket, key)]["Body"].decode("utf-8")


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def s3_storage(s3_client, content_cache, metadata_cache):
    return S3Storage(
        bucket="test-bucket",
        region="us-east-1",
        prefix="test-prefix",
        content_cache=content_cache,
        metadata_cache=metadata_cache,
        client=s3_client,
    )
