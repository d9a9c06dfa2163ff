"""Request handling for s3proxy: method dispatch and the GET/PUT/DELETE flows."""

import logging

from fastapi import Request, Response
from jinja2 import Template

from s3proxy import metrics
from s3proxy.conditional import build_conditional_params
from s3proxy.config import ProxyConfig
from s3proxy.error_pages import ErrorPageResolver, NextHandler
from s3proxy.errors import HandlerError, StoreError, classify_error
from s3proxy.fetcher import ObjectFetcher
from s3proxy.listing import (
    HTML_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    BufferPool,
    build_list_request,
    load_template,
    make_page,
    render_html,
    render_json,
)
from s3proxy.paths import ResolvedKey, expand_root, is_hidden, resolve_key
from s3proxy.responses import object_headers, stream_object
from s3proxy.storage.backend import ObjectStore

logger = logging.getLogger(__name__)

# Request headers stored with an uploaded object.
_PUT_HEADERS = (
    "Cache-Control",
    "Content-Disposition",
    "Content-Encoding",
    "Content-Language",
    "Content-Type",
)

_META_PREFIX = "x-amz-meta-"


def request_variables(request: Request) -> dict[str, str]:
    """Placeholder values available to the root template."""
    hostport = request.headers.get("host", "")
    return {
        "http.request.host": request.url.hostname or hostport.split(":")[0],
        "http.request.hostport": hostport,
        "http.request.scheme": request.url.scheme,
        "http.request.method": request.method,
    }


def extract_user_metadata(request: Request) -> dict[str, str]:
    """Extract x-amz-meta-* headers, with the prefix stripped."""
    meta: dict[str, str] = {}
    for name, value in request.headers.items():
        lower_name = name.lower()
        if lower_name.startswith(_META_PREFIX):
            meta[lower_name[len(_META_PREFIX):]] = value
    return meta


class ProxyHandler:
    """Serves, stores and deletes bucket objects for incoming requests.

    Attributes:
        config: The proxy configuration.
        store: The object store client shared by all requests.
        template: The compiled browse template.
    """

    def __init__(
        self,
        config: ProxyConfig,
        store: ObjectStore,
        template: Template | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.template = template or load_template(config.browse_template)
        self.fetcher = ObjectFetcher(store, config)
        self.error_pages = ErrorPageResolver(config, self.fetcher)
        self.buffers = BufferPool()

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def resolve(self, request: Request) -> ResolvedKey:
        root = expand_root(self.config.root, request_variables(request))
        # The decoded ASGI path; request.url would cut keys at "?" and "#".
        return resolve_key(root, request.scope["path"])

    async def handle(self, request: Request, call_next: NextHandler) -> Response:
        """Dispatch a request by method.

        ``call_next`` is only awaited when a failed GET is configured to pass
        through.
        """
        resolved = self.resolve(request)

        if request.method == "GET":
            return await self.get(request, resolved, call_next)
        if request.method == "PUT":
            return await self._guard(self.put(request, resolved), "put", resolved)
        if request.method == "DELETE":
            return await self._guard(self.delete(resolved), "delete", resolved)
        return Response(status_code=405)

    async def _guard(self, flow, operation: str, resolved: ResolvedKey) -> Response:
        try:
            return await flow
        except Exception as exc:
            err = classify_error(exc)
            if err.status >= 500:
                logger.error(
                    "%s failed: %s",
                    operation,
                    exc,
                    extra={"bucket": self.bucket, "key": resolved.key},
                )
            return Response(status_code=err.status)

    async def _store_call(self, operation: str, call):
        try:
            result = await call
        except StoreError as exc:
            metrics.observe_store_operation(operation, exc.code)
            raise
        metrics.observe_store_operation(operation, "ok")
        return result

    # -- GET -------------------------------------------------------------------

    async def get(
        self, request: Request, resolved: ResolvedKey, call_next: NextHandler
    ) -> Response:
        """Serve an object, a directory index or a directory listing.

        Every failure is turned into a status and handed to the error page
        resolver, apart from hidden keys which get a bare 404 unless
        ``hide_uses_error_pages`` is set.
        """
        if is_hidden(resolved.key, self.config.hide):
            logger.debug("hidden key requested", extra={"key": resolved.key})
            if self.config.hide_uses_error_pages:
                return await self.error_pages.respond(request, 404, call_next)
            return Response(status_code=404)

        conditional = build_conditional_params(request.headers)
        try:
            obj = await self.fetcher.fetch(resolved, conditional)
            if obj is None:
                if not self.config.enable_browse:
                    raise HandlerError(403)
                return await self.browse(request, resolved)
        except HandlerError as err:
            return await self.error_pages.respond(request, err.status, call_next)

        status = 206 if obj.content_range else 200
        return stream_object(obj, self.bucket, status, object_headers(obj))

    async def browse(self, request: Request, resolved: ResolvedKey) -> Response:
        """Render one page of the directory listing for ``resolved``.

        Raises:
            HandlerError: The classified list failure, or 500 if rendering
                fails.
        """
        query = dict(request.query_params)
        list_request = build_list_request(
            self.bucket, resolved.key, query, self.config.max_page_size
        )
        try:
            result = await self._store_call(
                "list",
                self.store.list_objects(
                    list_request.bucket,
                    list_request.prefix,
                    list_request.delimiter,
                    continuation_token=list_request.continuation_token,
                    max_keys=list_request.max_keys,
                ),
            )
        except Exception as exc:
            logger.debug(
                "error listing objects: %s",
                exc,
                extra={"bucket": self.bucket, "key": resolved.key},
            )
            raise classify_error(exc) from exc

        page = make_page(result, query, prefix=list_request.prefix)

        wants_json = request.headers.get("content-type", "").startswith("application/json")
        try:
            if wants_json:
                body, content_type = render_json(page, self.buffers), JSON_CONTENT_TYPE
            else:
                body = render_html(page, self.template, self.buffers)
                content_type = HTML_CONTENT_TYPE
        except Exception as exc:
            logger.error(
                "failed to render listing: %s",
                exc,
                extra={"bucket": self.bucket, "key": resolved.key},
            )
            raise HandlerError(500, exc) from exc

        metrics.observe_listing_page("json" if wants_json else "html")
        return Response(content=body, status_code=200, headers={"Content-Type": content_type})

    # -- PUT / DELETE ----------------------------------------------------------

    async def put(self, request: Request, resolved: ResolvedKey) -> Response:
        """Store the request body under the resolved key.

        The whole body is read into memory before the upload.
        """
        if resolved.is_directory or not self.config.enable_put:
            raise HandlerError(405)

        data = await request.body()
        headers = {
            name: request.headers[name] for name in _PUT_HEADERS if request.headers.get(name)
        }
        etag = await self._store_call(
            "put",
            self.store.put_object(
                self.bucket,
                resolved.key,
                data,
                headers=headers,
                metadata=extract_user_metadata(request),
            ),
        )
        logger.debug(
            "stored object (%d bytes)",
            len(data),
            extra={"bucket": self.bucket, "key": resolved.key},
        )
        return Response(status_code=200, headers={"ETag": etag})

    async def delete(self, resolved: ResolvedKey) -> Response:
        """Delete the object under the resolved key."""
        if resolved.is_directory or not self.config.enable_delete:
            raise HandlerError(405)

        await self._store_call("delete", self.store.delete_object(self.bucket, resolved.key))
        return Response(status_code=200)
