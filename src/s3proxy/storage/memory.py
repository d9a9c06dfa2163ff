"""In-memory object store for s3proxy.

Implements the ObjectStore protocol with a dictionary per bucket and
reproduces the S3 behaviour the proxy depends on: precondition evaluation
(If-Match, If-Unmodified-Since, If-None-Match, If-Modified-Since), single
byte ranges, and delimiter listings with continuation tokens. Errors carry
the same codes S3 returns.

Intended for development and tests; nothing is persisted.
"""

import hashlib
import logging
import re
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from s3proxy.conditional import ConditionalParams
from s3proxy.errors import StoreError
from s3proxy.storage.backend import ListedObject, ListResult, StoredObject

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB (matches the AWS backend)
_CHUNK_SIZE = 64 * 1024

_DEFAULT_MAX_KEYS = 1000

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


@dataclass
class _Entry:
    data: bytes
    etag: str
    last_modified: datetime
    headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)


def parse_range_header(header: str | None, total: int) -> tuple[int, int] | None:
    """Parse an HTTP Range header into (start, end) byte offsets.

    Supports three forms:
        - bytes=start-end  (both specified)
        - bytes=start-     (from start to end of object)
        - bytes=-suffix    (last N bytes)

    Args:
        header: The Range header value, e.g. "bytes=0-4".
        total: The total size of the object in bytes.

    Returns:
        A (start, end) tuple of inclusive byte offsets, or None if the
        header cannot be parsed (S3 then ignores it and returns everything).

    Raises:
        StoreError: ``InvalidRange`` if the parsed range is not satisfiable.
    """
    if not header or not header.startswith("bytes="):
        return None

    # Only a single range is supported
    if "," in header:
        return None

    m = _RANGE_RE.match(header)
    if not m:
        return None

    start_str, end_str = m.group(1), m.group(2)

    if not start_str and not end_str:
        raise StoreError("InvalidRange", "The requested range is not satisfiable")

    if not start_str:
        suffix_length = int(end_str)
        if suffix_length == 0 or total == 0:
            raise StoreError("InvalidRange", "The requested range is not satisfiable")
        start = max(total - suffix_length, 0)
        end = total - 1
    else:
        start = int(start_str)
        end = int(end_str) if end_str else total - 1
        if start >= total or start > end:
            raise StoreError("InvalidRange", "The requested range is not satisfiable")
        end = min(end, total - 1)

    return start, end


def _strip_etag_quotes(etag: str) -> str:
    etag = etag.strip()
    if etag.startswith("W/"):
        etag = etag[2:]
    if etag.startswith('"') and etag.endswith('"'):
        etag = etag[1:-1]
    return etag


def _etag_listed(etag: str, header: str) -> bool:
    if header.strip() == "*":
        return True
    return _strip_etag_quotes(etag) in [_strip_etag_quotes(t) for t in header.split(",")]


def evaluate_conditionals(entry: _Entry, conditional: ConditionalParams) -> None:
    """Evaluate preconditions against an object the way S3 does for GET.

    Evaluation order:
        1. If-Match -> PreconditionFailed on mismatch
        2. If-Unmodified-Since (only without If-Match) -> PreconditionFailed
        3. If-None-Match -> NotModified on match
        4. If-Modified-Since (only without If-None-Match) -> NotModified

    Raises:
        StoreError: ``PreconditionFailed`` or ``NotModified``.
    """
    # HTTP dates have one-second resolution.
    mtime = entry.last_modified.replace(microsecond=0)

    if conditional.if_match is not None:
        if not _etag_listed(entry.etag, conditional.if_match):
            raise StoreError("PreconditionFailed", "At least one of the pre-conditions you specified did not hold")
    elif conditional.if_unmodified_since is not None:
        if mtime > conditional.if_unmodified_since:
            raise StoreError("PreconditionFailed", "At least one of the pre-conditions you specified did not hold")

    if conditional.if_none_match is not None:
        if _etag_listed(entry.etag, conditional.if_none_match):
            raise StoreError("NotModified", "Not Modified")
    elif conditional.if_modified_since is not None:
        if mtime <= conditional.if_modified_since:
            raise StoreError("NotModified", "Not Modified")


class MemoryObjectStore:
    """Object store that holds every object in memory.

    Attributes:
        buckets: Names of the buckets that exist. A bucket is created on
            first ``put_object`` or by ``create_bucket``.
    """

    def __init__(self, buckets: list[str] | None = None) -> None:
        self._objects: dict[str, dict[str, _Entry]] = {b: {} for b in buckets or []}

    @property
    def buckets(self) -> list[str]:
        return sorted(self._objects)

    def create_bucket(self, bucket: str) -> None:
        self._objects.setdefault(bucket, {})

    def _bucket(self, bucket: str) -> dict[str, _Entry]:
        try:
            return self._objects[bucket]
        except KeyError:
            raise StoreError("NoSuchBucket", "The specified bucket does not exist") from None

    async def init(self) -> None:
        logger.info("Memory object store initialized: buckets=%s", self.buckets)

    async def close(self) -> None:
        return None

    async def get_object(
        self, bucket: str, key: str, conditional: ConditionalParams | None = None
    ) -> StoredObject:
        """Return an object, applying preconditions then the byte range.

        Raises:
            StoreError: ``NoSuchBucket``, ``NoSuchKey``, ``PreconditionFailed``,
                ``NotModified`` or ``InvalidRange``.
        """
        entry = self._bucket(bucket).get(key)
        if entry is None:
            raise StoreError("NoSuchKey", "The specified key does not exist.")

        conditional = conditional or ConditionalParams()
        evaluate_conditionals(entry, conditional)

        data = entry.data
        content_range = None
        parsed = parse_range_header(conditional.range, len(entry.data))
        if parsed is not None:
            start, end = parsed
            data = entry.data[start : end + 1]
            content_range = f"bytes {start}-{end}/{len(entry.data)}"

        return StoredObject(
            key=key,
            body=self._iter_body(data),
            content_type=entry.headers.get("Content-Type", "binary/octet-stream"),
            content_encoding=entry.headers.get("Content-Encoding"),
            content_language=entry.headers.get("Content-Language"),
            content_disposition=entry.headers.get("Content-Disposition"),
            cache_control=entry.headers.get("Cache-Control"),
            content_range=content_range,
            etag=entry.etag,
            last_modified=entry.last_modified,
            content_length=len(data),
            metadata=dict(entry.metadata),
        )

    @staticmethod
    async def _iter_body(data: bytes) -> AsyncIterator[bytes]:
        for offset in range(0, len(data), _CHUNK_SIZE):
            yield data[offset : offset + _CHUNK_SIZE]

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        headers: Mapping[str, str] | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Store an object and return its quoted MD5 ETag."""
        self.create_bucket(bucket)
        etag = f'"{hashlib.md5(body).hexdigest()}"'
        self._objects[bucket][key] = _Entry(
            data=bytes(body),
            etag=etag,
            last_modified=datetime.now(timezone.utc),
            headers={k: v for k, v in (headers or {}).items() if v},
            metadata=dict(metadata or {}),
        )
        return etag

    async def delete_object(self, bucket: str, key: str) -> None:
        self._bucket(bucket).pop(key, None)

    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        max_keys: int | None = None,
    ) -> ListResult:
        """List one page of keys, grouping by ``delimiter``.

        The continuation token is the last key or common prefix returned; the
        next page starts strictly after it, skipping everything under a
        returned common prefix.
        """
        objects = self._bucket(bucket)
        limit = _DEFAULT_MAX_KEYS if max_keys is None else max_keys

        keys = sorted(k for k in objects if k.startswith(prefix))
        if continuation_token:
            keys = [k for k in keys if k > continuation_token]
            if delimiter and continuation_token.endswith(delimiter):
                keys = [k for k in keys if not k.startswith(continuation_token)]

        contents: list[ListedObject] = []
        common_prefixes: list[str] = []
        last_returned: str | None = None
        truncated = False

        for key in keys:
            entry_key = key
            is_prefix = False
            if delimiter:
                pos = key.find(delimiter, len(prefix))
                if pos >= 0:
                    entry_key = key[: pos + len(delimiter)]
                    is_prefix = True
            if is_prefix and common_prefixes and common_prefixes[-1] == entry_key:
                continue

            if len(contents) + len(common_prefixes) >= limit:
                truncated = True
                break

            if is_prefix:
                common_prefixes.append(entry_key)
            else:
                entry = objects[key]
                contents.append(
                    ListedObject(
                        key=key,
                        size=len(entry.data),
                        last_modified=entry.last_modified,
                        etag=entry.etag,
                    )
                )
            last_returned = entry_key

        return ListResult(
            common_prefixes=common_prefixes,
            contents=contents,
            key_count=len(contents) + len(common_prefixes),
            max_keys=limit,
            next_token=last_returned if truncated else None,
        )
