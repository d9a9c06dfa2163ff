"""FastAPI application factory for s3proxy."""

import logging
import secrets
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from s3proxy.config import S3ProxyConfig
from s3proxy.error_pages import NextHandler
from s3proxy.handler import ProxyHandler
from s3proxy.listing import load_template
from s3proxy.storage import ObjectStore, create_object_store
from s3proxy.upstream import UpstreamForwarder, not_found

logger = logging.getLogger(__name__)

SERVER_NAME = "s3proxy"

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus gauge in the global registry.
_instrumentator = None


def _get_instrumentator(metrics_path: str):
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=[metrics_path],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    config: S3ProxyConfig,
    store: ObjectStore | None = None,
    next_handler: NextHandler | None = None,
) -> FastAPI:
    """Create and configure the s3proxy FastAPI application.

    Every path and method goes to a single catch-all route served by
    ``ProxyHandler``. The browse template is compiled here so a broken
    template fails at startup rather than on the first listing.

    Args:
        config: The loaded s3proxy configuration.
        store: An object store to use instead of building one from
            ``config.storage``. The caller owns its lifecycle.
        next_handler: Handler for pass-through error pages. Defaults to a
            forwarder to ``proxy.pass_through_upstream`` when that is set,
            otherwise to an empty 404.

    Returns:
        A configured FastAPI application ready to run.
    """
    template = load_template(config.proxy.browse_template)

    forwarder = None
    if next_handler is None and config.proxy.pass_through_upstream:
        forwarder = UpstreamForwarder(config.proxy.pass_through_upstream)
        next_handler = forwarder

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan hook: connect the object store and upstream client."""
        owned_store = None
        if app.state.store is None:
            owned_store = create_object_store(config.storage, config.proxy.bucket)
            await owned_store.init()
            app.state.store = owned_store
            app.state.handler = ProxyHandler(config.proxy, owned_store, template)
            logger.info("Object store initialized: %s", config.storage.backend)
        if forwarder is not None:
            await forwarder.startup()

        logger.info(
            "Serving bucket %s (root=%r, browse=%s, put=%s, delete=%s)",
            config.proxy.bucket,
            config.proxy.root,
            config.proxy.enable_browse,
            config.proxy.enable_put,
            config.proxy.enable_delete,
        )

        yield

        if forwarder is not None:
            await forwarder.shutdown()
        if owned_store is not None:
            await owned_store.close()
            app.state.store = None
            app.state.handler = None
            logger.info("Object store closed")

    app = FastAPI(
        title="s3proxy",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.store = store
    app.state.handler = (
        ProxyHandler(config.proxy, store, template) if store is not None else None
    )
    app.state.next_handler = next_handler or not_found

    _register_exception_handlers(app)
    _register_middleware(app, config)

    # Metrics first so the endpoint is not shadowed by the catch-all route.
    if config.observability.metrics:
        import s3proxy.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator(config.observability.metrics_path).instrument(
            app, metric_namespace="s3proxy"
        ).expose(app, endpoint=config.observability.metrics_path)

    _setup_routes(app)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return an empty 500."""
        logger.exception(
            "Unhandled exception in request handler",
            extra={"request_id": getattr(request.state, "request_id", "")},
        )
        return Response(status_code=500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI, config: S3ProxyConfig) -> None:
    """Register the request logging middleware."""

    # Paths to suppress from per-request logging
    quiet_paths = {config.observability.metrics_path}

    @app.middleware("http")
    async def common_headers_middleware(request: Request, call_next) -> Response:
        """Tag every response with a request id and the Server header.

        Also writes one structured log line per request.
        """
        request_id = secrets.token_hex(8)
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)

        response.headers["x-request-id"] = request_id
        response.headers["Server"] = SERVER_NAME

        if request.url.path not in quiet_paths:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )

        return response


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI) -> None:
    """Register the catch-all proxy route."""

    @app.api_route("/{path:path}", methods=PROXY_METHODS)
    async def proxy(request: Request, path: str) -> Response:
        """Hand every request to the proxy handler."""
        handler: ProxyHandler | None = app.state.handler
        if handler is None:
            raise RuntimeError("object store not initialized")
        return await handler.handle(request, app.state.next_handler)
