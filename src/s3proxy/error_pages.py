"""Custom error pages for failed GET requests.

When a GET fails, the configured error pages decide what the client sees:
the response of the next handler in the chain, a stored object served under
the original status, or the bare status with an empty body.
"""

import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Request, Response

from s3proxy import metrics
from s3proxy.config import PASS_THROUGH, ProxyConfig
from s3proxy.fetcher import ObjectFetcher
from s3proxy.paths import SEPARATOR
from s3proxy.responses import fallback_headers, stream_object

logger = logging.getLogger(__name__)

NextHandler = Callable[[Request], Awaitable[Response]]

# Conditional outcomes always go out bare.
_BARE_STATUSES = frozenset({304, 412, 416})


class ErrorAction(enum.Enum):
    PASS_THROUGH = "pass_through"
    SERVE_FALLBACK = "fallback"
    STATUS_ONLY = "status_only"


@dataclass(frozen=True)
class ErrorDecision:
    """What to do with a failed GET.

    Attributes:
        action: The chosen action.
        status: The HTTP status of the failure.
        key: The error page key when ``action`` is SERVE_FALLBACK.
    """

    action: ErrorAction
    status: int
    key: str | None = None


class ErrorPageResolver:
    """Chooses and serves the response for a failed GET.

    Attributes:
        config: The proxy configuration.
        fetcher: Used for the single, unconditional error page fetch.
    """

    def __init__(self, config: ProxyConfig, fetcher: ObjectFetcher) -> None:
        self.config = config
        self.fetcher = fetcher

    def determine_action(self, status: int) -> ErrorDecision:
        """Pick the error-page action for ``status``.

        A page configured for the status wins over the default page. The
        value ``pass_through`` (any case) defers to the next handler. Page keys
        are absolute within the bucket, not relative to the root.
        """
        if status in _BARE_STATUSES:
            return ErrorDecision(ErrorAction.STATUS_ONLY, status)

        if status in self.config.error_pages:
            key = self.config.error_pages[status]
        else:
            key = self.config.default_error_page
        if not key:
            return ErrorDecision(ErrorAction.STATUS_ONLY, status)
        if key.lower() == PASS_THROUGH:
            return ErrorDecision(ErrorAction.PASS_THROUGH, status)
        if not key.startswith(SEPARATOR):
            key = SEPARATOR + key
        return ErrorDecision(ErrorAction.SERVE_FALLBACK, status, key)

    async def respond(
        self, request: Request, status: int, call_next: NextHandler
    ) -> Response:
        """Build the response for a GET that failed with ``status``.

        The error page is fetched at most once; if that fetch fails the bare
        original status is sent.
        """
        decision = self.determine_action(status)
        metrics.observe_error_page(status, decision.action.value)

        if decision.action is ErrorAction.PASS_THROUGH:
            return await call_next(request)

        if decision.action is ErrorAction.SERVE_FALLBACK:
            try:
                page = await self.fetcher.fetch_key(decision.key)
            except Exception as exc:
                logger.error(
                    "error fetching error page %s: %s",
                    decision.key,
                    exc,
                    extra={"bucket": self.config.bucket, "key": decision.key},
                )
            else:
                return stream_object(
                    page, self.config.bucket, status, fallback_headers(page)
                )

        return Response(status_code=status)
