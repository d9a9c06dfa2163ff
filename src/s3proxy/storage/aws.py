"""AWS S3 object store for s3proxy.

Talks to an S3 (or S3-compatible) bucket via aiobotocore. Proxy keys are
absolute paths ("/dir/file.txt"); S3 keys are not, so the leading separator
is stripped on the way in and added back to listed keys on the way out.

Credentials are resolved via the standard AWS credential chain (env vars,
~/.aws/credentials, IAM role, etc.) unless a profile or explicit keys are
configured.
"""

import logging
from collections.abc import AsyncIterator, Mapping
from datetime import datetime

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from s3proxy.conditional import ConditionalParams, format_http_date
from s3proxy.errors import StoreError
from s3proxy.storage.backend import ListedObject, ListResult, StoredObject

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024

# Request headers forwarded to PutObject, keyed by their boto3 parameter.
_PUT_HEADER_PARAMS = {
    "Cache-Control": "CacheControl",
    "Content-Disposition": "ContentDisposition",
    "Content-Encoding": "ContentEncoding",
    "Content-Language": "ContentLanguage",
    "Content-Type": "ContentType",
}


def _store_error(exc: ClientError) -> StoreError:
    """Convert a botocore ClientError into a StoreError."""
    error = exc.response.get("Error", {})
    code = str(error.get("Code", "")) or str(
        exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", "")
    )
    return StoreError(code, error.get("Message", "") or str(exc))


class AWSObjectStore:
    """Object store backed by an AWS S3 bucket.

    Attributes:
        region: The AWS region, or empty to use the environment.
        endpoint_url: Non-standard S3 endpoint, or empty.
        profile: Named AWS credentials profile, or empty.
        force_path_style: Use path-style bucket addressing.
        use_accelerate: Use the S3 Transfer Acceleration endpoint.
    """

    def __init__(
        self,
        region: str = "",
        endpoint_url: str = "",
        profile: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        force_path_style: bool = False,
        use_accelerate: bool = False,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self.profile = profile
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.force_path_style = force_path_style
        self.use_accelerate = use_accelerate
        self._client = None
        self._client_ctx = None

    @staticmethod
    def _s3_key(key: str) -> str:
        """Map a proxy key to an S3 key."""
        return key.lstrip("/")

    @staticmethod
    def _proxy_key(s3_key: str) -> str:
        """Map an S3 key back to a proxy key."""
        return "/" + s3_key

    def _client_config(self) -> BotoConfig:
        s3_options: dict = {}
        if self.force_path_style:
            s3_options["addressing_style"] = "path"
        if self.use_accelerate:
            s3_options["use_accelerate_endpoint"] = True
        # No automatic retries: a failed call yields exactly one outcome.
        return BotoConfig(s3=s3_options, retries={"max_attempts": 1})

    async def init(self) -> None:
        """Create the aiobotocore S3 client."""
        client_kwargs: dict = {"config": self._client_config()}
        if self.region:
            client_kwargs["region_name"] = self.region
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id and self.secret_access_key:
            client_kwargs["aws_access_key_id"] = self.access_key_id
            client_kwargs["aws_secret_access_key"] = self.secret_access_key

        session = AioSession(profile=self.profile or None)
        self._client_ctx = session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        logger.info(
            "AWS object store initialized: region=%s endpoint=%s path_style=%s accelerate=%s",
            self.region or "<default>",
            self.endpoint_url or "<default>",
            self.force_path_style,
            self.use_accelerate,
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def get_object(
        self, bucket: str, key: str, conditional: ConditionalParams | None = None
    ) -> StoredObject:
        """Fetch an object, passing range and If-* parameters to S3.

        Raises:
            StoreError: With the S3 error code on any failure.
        """
        kwargs: dict = {"Bucket": bucket, "Key": self._s3_key(key)}
        if conditional is not None:
            kwargs.update(conditional.as_request_kwargs())

        logger.debug("get from S3", extra={"bucket": bucket, "key": key})
        try:
            resp = await self._client.get_object(**kwargs)
        except ClientError as e:
            raise _store_error(e) from e
        except BotoCoreError as e:
            raise StoreError("InternalError", str(e)) from e

        expires = resp.get("ExpiresString") or resp.get("Expires")
        if isinstance(expires, datetime):
            expires = format_http_date(expires)

        return StoredObject(
            key=key,
            body=self._iter_body(resp["Body"]),
            content_type=resp.get("ContentType"),
            content_encoding=resp.get("ContentEncoding"),
            content_language=resp.get("ContentLanguage"),
            content_disposition=resp.get("ContentDisposition"),
            content_range=resp.get("ContentRange"),
            cache_control=resp.get("CacheControl"),
            etag=resp.get("ETag"),
            expires=expires,
            last_modified=resp.get("LastModified"),
            content_length=resp.get("ContentLength"),
            metadata=dict(resp.get("Metadata") or {}),
        )

    @staticmethod
    async def _iter_body(body) -> AsyncIterator[bytes]:
        async with body as stream:
            while True:
                chunk = await stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        headers: Mapping[str, str] | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Upload an object. The body must already be fully buffered.

        Returns:
            The quoted ETag reported by S3.
        """
        kwargs: dict = {"Bucket": bucket, "Key": self._s3_key(key), "Body": body}
        for header, param in _PUT_HEADER_PARAMS.items():
            value = (headers or {}).get(header)
            if value:
                kwargs[param] = value
        if metadata:
            kwargs["Metadata"] = dict(metadata)

        try:
            resp = await self._client.put_object(**kwargs)
        except ClientError as e:
            raise _store_error(e) from e
        return resp.get("ETag", "")

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. S3 does not error on missing keys."""
        try:
            await self._client.delete_object(Bucket=bucket, Key=self._s3_key(key))
        except ClientError as e:
            raise _store_error(e) from e

    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        max_keys: int | None = None,
    ) -> ListResult:
        """List one page via ListObjectsV2."""
        kwargs: dict = {
            "Bucket": bucket,
            "Prefix": self._s3_key(prefix),
            "Delimiter": delimiter,
        }
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token
        if max_keys is not None:
            kwargs["MaxKeys"] = max_keys

        try:
            resp = await self._client.list_objects_v2(**kwargs)
        except ClientError as e:
            raise _store_error(e) from e

        return ListResult(
            common_prefixes=[
                self._proxy_key(cp["Prefix"]) for cp in resp.get("CommonPrefixes", [])
            ],
            contents=[
                ListedObject(
                    key=self._proxy_key(obj["Key"]),
                    size=obj.get("Size", 0),
                    last_modified=obj.get("LastModified"),
                    etag=obj.get("ETag", ""),
                )
                for obj in resp.get("Contents", [])
            ],
            key_count=resp.get("KeyCount", 0),
            max_keys=resp.get("MaxKeys"),
            next_token=resp.get("NextContinuationToken"),
        )
