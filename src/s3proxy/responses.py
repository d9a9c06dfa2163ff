"""Response construction for fetched objects."""

import logging
from collections.abc import AsyncIterator

from fastapi.responses import StreamingResponse

from s3proxy.conditional import format_http_date
from s3proxy.storage.backend import StoredObject

logger = logging.getLogger(__name__)


async def guarded_body(
    body: AsyncIterator[bytes] | None, bucket: str, key: str
) -> AsyncIterator[bytes]:
    """Yield ``body`` chunks, logging a failure before re-raising it.

    The status line is already on the wire by the time the body streams, so
    a failure here can only abort the connection.
    """
    if body is None:
        return
    try:
        async for chunk in body:
            yield chunk
    except Exception as exc:
        logger.error(
            "failed to stream object body: %s",
            exc,
            extra={"bucket": bucket, "key": key},
        )
        raise


def object_headers(obj: StoredObject) -> dict[str, str]:
    """Build response headers from the headers the store reported.

    Only values the store actually set are emitted. Custom metadata entries
    are copied under their own names.

    Args:
        obj: The fetched object.

    Returns:
        A dict of response headers.
    """
    headers: dict[str, str] = {}

    if obj.cache_control:
        headers["Cache-Control"] = obj.cache_control
    if obj.content_disposition:
        headers["Content-Disposition"] = obj.content_disposition
    if obj.content_encoding:
        headers["Content-Encoding"] = obj.content_encoding
    if obj.content_language:
        headers["Content-Language"] = obj.content_language
    if obj.content_range:
        headers["Content-Range"] = obj.content_range
    if obj.content_type:
        headers["Content-Type"] = obj.content_type
    if obj.etag:
        headers["ETag"] = obj.etag
    if obj.expires:
        headers["Expires"] = obj.expires
    if obj.last_modified is not None:
        headers["Last-Modified"] = format_http_date(obj.last_modified)

    for name, value in obj.metadata.items():
        headers[name] = value

    return headers


def fallback_headers(obj: StoredObject) -> dict[str, str]:
    """Headers sent with an error page: only its content description."""
    headers: dict[str, str] = {}
    if obj.content_type:
        headers["Content-Type"] = obj.content_type
    if obj.content_encoding:
        headers["Content-Encoding"] = obj.content_encoding
    if obj.content_language:
        headers["Content-Language"] = obj.content_language
    return headers


def stream_object(
    obj: StoredObject, bucket: str, status: int, headers: dict[str, str]
) -> StreamingResponse:
    """Stream an object body under ``status`` with ``headers``.

    No Content-Length is set; the body goes out chunked.
    """
    return StreamingResponse(
        content=guarded_body(obj.body, bucket, obj.key),
        status_code=status,
        headers=headers,
    )
