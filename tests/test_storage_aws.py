"""Unit tests for the AWS S3 object store.

All tests use mocked aiobotocore; no real AWS credentials or network access
required. The mock S3 client is injected directly onto store._client to
bypass session creation.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from s3proxy.conditional import ConditionalParams
from s3proxy.errors import StoreError
from s3proxy.storage.aws import AWSObjectStore


def _client_error(code: str, message: str = "error", status: int = 400) -> ClientError:
    """Create a botocore ClientError with the given error code."""
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "TestOperation",
    )


class _FakeBody:
    """Stands in for aiobotocore's StreamingBody."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        return False

    async def read(self, amt: int = -1) -> bytes:
        if amt < 0:
            amt = len(self._data)
        chunk, self._data = self._data[:amt], self._data[amt:]
        return chunk


def _make_store(**kwargs) -> AWSObjectStore:
    """Create an AWSObjectStore with a mock client (skip init)."""
    store = AWSObjectStore(**kwargs)
    store._client = AsyncMock()
    store._client_ctx = AsyncMock()
    return store


class TestKeyMapping:
    """Tests for proxy key <-> S3 key mapping."""

    def test_s3_key_strips_leading_separator(self):
        assert AWSObjectStore._s3_key("/dir/file.txt") == "dir/file.txt"

    def test_s3_key_root(self):
        assert AWSObjectStore._s3_key("/") == ""

    def test_proxy_key(self):
        assert AWSObjectStore._proxy_key("dir/file.txt") == "/dir/file.txt"


class TestInit:
    """Tests for init() and close()."""

    async def test_init_creates_client(self):
        with patch("s3proxy.storage.aws.AioSession") as mock_session_cls:
            mock_client = AsyncMock()
            mock_ctx = AsyncMock()
            mock_ctx.__aenter__ = AsyncMock(return_value=mock_client)
            mock_ctx.__aexit__ = AsyncMock(return_value=False)
            mock_session_cls.return_value.create_client.return_value = mock_ctx

            store = AWSObjectStore(
                region="eu-west-1",
                endpoint_url="http://minio:9000",
                profile="dev",
                access_key_id="AKID",
                secret_access_key="SECRET",
                force_path_style=True,
            )
            await store.init()

            mock_session_cls.assert_called_once_with(profile="dev")
            args, kwargs = mock_session_cls.return_value.create_client.call_args
            assert args == ("s3",)
            assert kwargs["region_name"] == "eu-west-1"
            assert kwargs["endpoint_url"] == "http://minio:9000"
            assert kwargs["aws_access_key_id"] == "AKID"
            assert kwargs["aws_secret_access_key"] == "SECRET"
            assert kwargs["config"].s3 == {"addressing_style": "path"}
            assert kwargs["config"].retries == {"max_attempts": 1}
            assert store._client is mock_client

            await store.close()
            mock_ctx.__aexit__.assert_awaited_once()

    async def test_init_defaults(self):
        with patch("s3proxy.storage.aws.AioSession") as mock_session_cls:
            mock_ctx = AsyncMock()
            mock_ctx.__aenter__ = AsyncMock(return_value=AsyncMock())
            mock_session_cls.return_value.create_client.return_value = mock_ctx

            store = AWSObjectStore(use_accelerate=True)
            await store.init()

            mock_session_cls.assert_called_once_with(profile=None)
            _, kwargs = mock_session_cls.return_value.create_client.call_args
            assert "region_name" not in kwargs
            assert "endpoint_url" not in kwargs
            assert "aws_access_key_id" not in kwargs
            assert kwargs["config"].s3 == {"use_accelerate_endpoint": True}

    async def test_close_noop_when_not_initialized(self):
        """close() is safe to call when not initialized."""
        await AWSObjectStore().close()


class TestGetObject:
    """Tests for get_object()."""

    async def test_get_maps_response(self):
        store = _make_store()
        last_modified = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        body = _FakeBody(b"hello world")
        store._client.get_object.return_value = {
            "Body": body,
            "ContentType": "text/plain",
            "ContentEncoding": "gzip",
            "ContentLanguage": "en",
            "ContentDisposition": "inline",
            "ContentRange": "bytes 0-10/100",
            "CacheControl": "max-age=60",
            "ETag": '"abc"',
            "Expires": datetime(2030, 1, 1, tzinfo=timezone.utc),
            "LastModified": last_modified,
            "ContentLength": 11,
            "Metadata": {"author": "me"},
        }

        obj = await store.get_object("bucket", "/dir/hello.txt")

        store._client.get_object.assert_awaited_once_with(Bucket="bucket", Key="dir/hello.txt")
        assert obj.key == "/dir/hello.txt"
        assert obj.content_type == "text/plain"
        assert obj.content_encoding == "gzip"
        assert obj.content_language == "en"
        assert obj.content_disposition == "inline"
        assert obj.content_range == "bytes 0-10/100"
        assert obj.cache_control == "max-age=60"
        assert obj.etag == '"abc"'
        assert obj.expires == "Tue, 01 Jan 2030 00:00:00 GMT"
        assert obj.last_modified == last_modified
        assert obj.metadata == {"author": "me"}
        assert b"".join([chunk async for chunk in obj.body]) == b"hello world"
        assert body.closed

    async def test_get_prefers_raw_expires_string(self):
        store = _make_store()
        store._client.get_object.return_value = {
            "Body": _FakeBody(b""),
            "ExpiresString": "never",
        }
        obj = await store.get_object("bucket", "/k")
        assert obj.expires == "never"

    async def test_get_passes_conditionals(self):
        store = _make_store()
        store._client.get_object.return_value = {"Body": _FakeBody(b"")}
        since = datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)

        await store.get_object(
            "bucket",
            "/k",
            ConditionalParams(range="bytes=0-4", if_none_match='"x"', if_modified_since=since),
        )

        store._client.get_object.assert_awaited_once_with(
            Bucket="bucket",
            Key="k",
            Range="bytes=0-4",
            IfNoneMatch='"x"',
            IfModifiedSince=since,
        )

    async def test_client_error_becomes_store_error(self):
        store = _make_store()
        store._client.get_object.side_effect = _client_error("NoSuchKey", "missing", 404)
        with pytest.raises(StoreError) as exc_info:
            await store.get_object("bucket", "/k")
        assert exc_info.value.code == "NoSuchKey"
        assert exc_info.value.message == "missing"

    async def test_bodiless_error_uses_status_code(self):
        """A 304 comes back without an error document."""
        store = _make_store()
        store._client.get_object.side_effect = _client_error("", "", 304)
        with pytest.raises(StoreError) as exc_info:
            await store.get_object("bucket", "/k")
        assert exc_info.value.code == "304"

    async def test_transport_error_is_internal(self):
        store = _make_store()
        store._client.get_object.side_effect = EndpointConnectionError(
            endpoint_url="http://s3"
        )
        with pytest.raises(StoreError) as exc_info:
            await store.get_object("bucket", "/k")
        assert exc_info.value.code == "InternalError"


class TestPutObject:
    """Tests for put_object()."""

    async def test_put_forwards_headers_and_metadata(self):
        store = _make_store()
        store._client.put_object.return_value = {"ETag": '"etag"'}

        etag = await store.put_object(
            "bucket",
            "/k.txt",
            b"data",
            headers={"Content-Type": "text/plain", "Cache-Control": "no-cache"},
            metadata={"author": "me"},
        )

        assert etag == '"etag"'
        store._client.put_object.assert_awaited_once_with(
            Bucket="bucket",
            Key="k.txt",
            Body=b"data",
            ContentType="text/plain",
            CacheControl="no-cache",
            Metadata={"author": "me"},
        )

    async def test_put_minimal(self):
        store = _make_store()
        store._client.put_object.return_value = {"ETag": '"e"'}
        await store.put_object("bucket", "/k", b"")
        store._client.put_object.assert_awaited_once_with(Bucket="bucket", Key="k", Body=b"")

    async def test_put_error(self):
        store = _make_store()
        store._client.put_object.side_effect = _client_error("AccessDenied", status=403)
        with pytest.raises(StoreError) as exc_info:
            await store.put_object("bucket", "/k", b"")
        assert exc_info.value.code == "AccessDenied"


class TestDeleteObject:
    """Tests for delete_object()."""

    async def test_delete(self):
        store = _make_store()
        await store.delete_object("bucket", "/dir/k")
        store._client.delete_object.assert_awaited_once_with(Bucket="bucket", Key="dir/k")

    async def test_delete_error(self):
        store = _make_store()
        store._client.delete_object.side_effect = _client_error("AccessDenied", status=403)
        with pytest.raises(StoreError):
            await store.delete_object("bucket", "/k")


class TestListObjects:
    """Tests for list_objects()."""

    async def test_list_maps_keys(self):
        store = _make_store()
        modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
        store._client.list_objects_v2.return_value = {
            "CommonPrefixes": [{"Prefix": "docs/sub/"}],
            "Contents": [
                {"Key": "docs/a.txt", "Size": 10, "LastModified": modified, "ETag": '"1"'}
            ],
            "KeyCount": 2,
            "MaxKeys": 5,
            "NextContinuationToken": "tok",
        }

        result = await store.list_objects(
            "bucket", "/docs/", "/", continuation_token="prev", max_keys=5
        )

        store._client.list_objects_v2.assert_awaited_once_with(
            Bucket="bucket",
            Prefix="docs/",
            Delimiter="/",
            ContinuationToken="prev",
            MaxKeys=5,
        )
        assert result.common_prefixes == ["/docs/sub/"]
        assert result.contents[0].key == "/docs/a.txt"
        assert result.contents[0].size == 10
        assert result.contents[0].last_modified == modified
        assert result.key_count == 2
        assert result.max_keys == 5
        assert result.next_token == "tok"
        assert result.is_truncated

    async def test_list_bucket_root(self):
        store = _make_store()
        store._client.list_objects_v2.return_value = {"KeyCount": 0, "MaxKeys": 1000}

        result = await store.list_objects("bucket", "/", "/")

        store._client.list_objects_v2.assert_awaited_once_with(
            Bucket="bucket", Prefix="", Delimiter="/"
        )
        assert result.contents == []
        assert not result.is_truncated

    async def test_list_error(self):
        store = _make_store()
        store._client.list_objects_v2.side_effect = _client_error("NoSuchBucket", status=404)
        with pytest.raises(StoreError) as exc_info:
            await store.list_objects("bucket", "/", "/")
        assert exc_info.value.code == "NoSuchBucket"
