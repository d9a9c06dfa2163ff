"""Object store protocol and result types for s3proxy."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from s3proxy.conditional import ConditionalParams


@dataclass
class StoredObject:
    """A retrieved object: the store-reported headers plus a body stream.

    The body is consumed once, by the response writer.

    Attributes:
        key: The proxy key the object was fetched for.
        body: Async iterator of body chunks, or None for an empty body.
        content_type: Content-Type reported by the store.
        content_encoding: Content-Encoding, if any.
        content_language: Content-Language, if any.
        content_disposition: Content-Disposition, if any.
        content_range: Content-Range for ranged reads.
        cache_control: Cache-Control, if any.
        etag: Quoted ETag.
        expires: Expires as an HTTP date string.
        last_modified: Last modification time.
        content_length: Length of this response body, as reported by the store.
        metadata: Custom (user) metadata entries.
    """

    key: str
    body: AsyncIterator[bytes] | None = None
    content_type: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    content_disposition: str | None = None
    content_range: str | None = None
    cache_control: str | None = None
    etag: str | None = None
    expires: str | None = None
    last_modified: datetime | None = None
    content_length: int | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ListedObject:
    """A single entry from the ``Contents`` of a list call."""

    key: str
    size: int = 0
    last_modified: datetime | None = None
    etag: str = ""


@dataclass
class ListResult:
    """One page of a delimiter listing.

    Attributes:
        common_prefixes: Keys of the "directories" one level below the prefix.
        contents: Objects directly below the prefix.
        key_count: Number of prefixes plus objects on this page.
        max_keys: The page size the store applied.
        next_token: Continuation token for the next page, if truncated.
    """

    common_prefixes: list[str] = field(default_factory=list)
    contents: list[ListedObject] = field(default_factory=list)
    key_count: int = 0
    max_keys: int | None = None
    next_token: str | None = None

    @property
    def is_truncated(self) -> bool:
        return self.next_token is not None


class ObjectStore(Protocol):
    """Protocol for the object store collaborator.

    Every failure is raised as ``s3proxy.errors.StoreError`` carrying the
    store-defined error code.
    """

    async def init(self) -> None:
        """Connect to the store."""
        ...

    async def close(self) -> None:
        """Release resources held by the store client."""
        ...

    async def get_object(
        self, bucket: str, key: str, conditional: ConditionalParams | None = None
    ) -> StoredObject:
        """Retrieve an object, honouring range and precondition parameters.

        Args:
            bucket: The bucket name.
            key: The proxy key (absolute, e.g. "/dir/file.txt").
            conditional: Range and If-* parameters, or None.

        Returns:
            The object headers and a body stream.
        """
        ...

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        headers: Mapping[str, str] | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Store an object.

        Args:
            bucket: The bucket name.
            key: The proxy key.
            body: The full object body.
            headers: Content headers to store with the object.
            metadata: User metadata entries.

        Returns:
            The quoted ETag of the stored object.
        """
        ...

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""
        ...

    async def list_objects(
        self,
        bucket: str,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        max_keys: int | None = None,
    ) -> ListResult:
        """List one page of keys under ``prefix`` grouped by ``delimiter``."""
        ...
