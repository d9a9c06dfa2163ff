"""Conditional and range request parameters for s3proxy.

Translates the incoming ``Range`` and ``If-*`` headers into the parameters of
a store ``GetObject`` call. Nothing here is evaluated locally; the store
decides whether the preconditions hold.
"""

import email.utils
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def parse_http_date(date_str: str | None) -> datetime | None:
    """Parse an HTTP date string into a timezone-aware datetime.

    Args:
        date_str: An HTTP date string (RFC 1123, RFC 850, or asctime).

    Returns:
        A timezone-aware datetime in UTC, or None if parsing fails.
    """
    if not date_str:
        return None
    try:
        dt = email.utils.parsedate_to_datetime(date_str)
    except (ValueError, TypeError, IndexError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_http_date(dt: datetime) -> str:
    """Format a datetime as an RFC 1123 HTTP date in GMT."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return email.utils.format_datetime(dt.astimezone(timezone.utc), usegmt=True)


@dataclass(frozen=True)
class ConditionalParams:
    """Range and precondition parameters for a single fetch.

    Attributes:
        range: Raw ``Range`` header value.
        if_match: Raw ``If-Match`` header value.
        if_none_match: Raw ``If-None-Match`` header value.
        if_modified_since: Parsed ``If-Modified-Since`` date.
        if_unmodified_since: Parsed ``If-Unmodified-Since`` date.
    """

    range: str | None = None
    if_match: str | None = None
    if_none_match: str | None = None
    if_modified_since: datetime | None = None
    if_unmodified_since: datetime | None = None

    def as_request_kwargs(self) -> dict[str, Any]:
        """Render the non-empty fields as S3 ``GetObject`` keyword arguments."""
        kwargs: dict[str, Any] = {}
        if self.range:
            kwargs["Range"] = self.range
        if self.if_match:
            kwargs["IfMatch"] = self.if_match
        if self.if_none_match:
            kwargs["IfNoneMatch"] = self.if_none_match
        if self.if_modified_since is not None:
            kwargs["IfModifiedSince"] = self.if_modified_since
        if self.if_unmodified_since is not None:
            kwargs["IfUnmodifiedSince"] = self.if_unmodified_since
        return kwargs


NO_CONDITIONS = ConditionalParams()


def build_conditional_params(headers: Mapping[str, str]) -> ConditionalParams:
    """Map request headers to ``ConditionalParams``.

    ``Range``, ``If-Match`` and ``If-None-Match`` are passed through verbatim.
    The two date headers are parsed; a date that does not parse is dropped
    rather than rejected.

    Args:
        headers: The request headers (case-insensitive mapping).

    Returns:
        The conditional parameters for the fetch.
    """
    return ConditionalParams(
        range=headers.get("range") or None,
        if_match=headers.get("if-match") or None,
        if_none_match=headers.get("if-none-match") or None,
        if_modified_since=parse_http_date(headers.get("if-modified-since")),
        if_unmodified_since=parse_http_date(headers.get("if-unmodified-since")),
    )
