"""Directory listings for s3proxy.

Builds delimiter list requests from the ``next``/``max`` query parameters,
turns one page of results into a ``ListingPage`` and renders it as JSON or
as HTML through a Jinja2 template.
"""

import contextlib
import io
import json
import logging
import posixpath
import queue
from collections.abc import Iterator, Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlencode

import humanize
from jinja2 import Environment, Template

from s3proxy.config import MAX_PAGE_SIZE_LIMIT
from s3proxy.paths import SEPARATOR
from s3proxy.storage.backend import ListResult

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"

DEFAULT_BROWSE_TEMPLATE = """<!DOCTYPE html>
<html>
        <body>
                <ul>
                {%- for item in items %}
                <li>
                {%- if item.is_dir %}
                <a href="{{ item.url }}">{{ item.name }}</a>
                {%- else %}
                <a href="{{ item.url }}">{{ item.name }}</a> Size: {{ item.size }} Last Modified: {{ item.last_modified }}
                {%- endif %}
                </li>
                {%- endfor %}
                </ul>
                <p>number of items: {{ count }}</p>
                {%- if more %}
                <a href="{{ more }}">more...</a>
                {%- endif %}
        </body>
</html>
"""

_env = Environment(autoescape=True)


@dataclass
class ListRequest:
    """Parameters for one store list call."""

    bucket: str
    prefix: str
    delimiter: str = SEPARATOR
    continuation_token: str | None = None
    max_keys: int | None = None


@dataclass
class Entry:
    """One row of a listing page.

    Attributes:
        name: Last path segment of the key.
        is_dir: True for a common prefix.
        key: The full proxy key (or prefix, for directories).
        url: Link relative to the listed directory.
        size: Human-readable size, files only.
        last_modified: Human-readable age, files only.
    """

    name: str
    is_dir: bool
    key: str
    url: str
    size: str = ""
    last_modified: str = ""


@dataclass
class ListingPage:
    """A rendered-ready page of a directory listing."""

    count: int = 0
    items: list[Entry] = field(default_factory=list)
    next_token: str | None = None
    more: str = ""

    def to_dict(self) -> dict:
        return {
            "next_token": self.next_token or "",
            "count": self.count,
            "items": [asdict(item) for item in self.items],
            "more": self.more,
        }


def _parse_max(value: str | None) -> int | None:
    if not value:
        return None
    try:
        max_keys = int(value)
    except ValueError:
        return None
    if 0 < max_keys <= MAX_PAGE_SIZE_LIMIT:
        return max_keys
    return None


def build_list_request(
    bucket: str,
    key: str,
    query: Mapping[str, str],
    default_max: int | None = None,
) -> ListRequest:
    """Build the list call for a directory key.

    The prefix keeps the directory's trailing separator so that, with the
    separator as delimiter, only direct children come back. ``next`` is the
    continuation token; ``max`` is honoured when it is an integer in
    (0, 1000] and ignored otherwise.

    Args:
        bucket: The bucket to list.
        key: The directory key, ending in a separator.
        query: The request query parameters.
        default_max: Page size used when ``max`` is absent or invalid.

    Returns:
        The list request.
    """
    max_keys = _parse_max(query.get("max"))
    return ListRequest(
        bucket=bucket,
        prefix=key,
        continuation_token=query.get("next") or None,
        max_keys=max_keys if max_keys is not None else default_max,
    )


def _more_link(query: Mapping[str, str], token: str, max_keys: int | None) -> str:
    params = dict(query)
    params["next"] = token
    if max_keys is not None:
        params["max"] = str(max_keys)
    else:
        params.pop("max", None)
    return "?" + urlencode(sorted(params.items()))


def make_page(
    result: ListResult,
    query: Mapping[str, str],
    prefix: str = "",
    now: datetime | None = None,
) -> ListingPage:
    """Convert one page of list results into a ``ListingPage``.

    Directories come first, then files, each in store order. An object whose
    key equals the listed prefix is the directory's own marker; it is neither
    listed nor counted.

    Args:
        result: The store list result.
        query: The request query parameters, reused for the ``more`` link.
        prefix: The listed prefix.
        now: Reference time for the relative ages.

    Returns:
        The listing page.
    """
    now = now or datetime.now(timezone.utc)
    page = ListingPage(count=result.key_count, next_token=result.next_token)

    if result.next_token:
        page.more = _more_link(query, result.next_token, result.max_keys)

    for dir_prefix in result.common_prefixes:
        name = posixpath.basename(dir_prefix.rstrip(SEPARATOR))
        page.items.append(
            Entry(name=name, is_dir=True, key=dir_prefix, url=f"./{name}/")
        )

    for obj in result.contents:
        if prefix and obj.key == prefix:
            page.count = max(page.count - 1, 0)
            continue
        name = posixpath.basename(obj.key)
        age = humanize.naturaltime(now - obj.last_modified) if obj.last_modified else ""
        page.items.append(
            Entry(
                name=name,
                is_dir=False,
                key=obj.key,
                url=f"./{name}",
                size=humanize.naturalsize(obj.size),
                last_modified=age,
            )
        )

    return page


class BufferPool:
    """A bounded pool of reusable byte buffers.

    At most ``size`` idle buffers are kept; extra buffers returned to a full
    pool are dropped.
    """

    def __init__(self, size: int = 16) -> None:
        self._idle: queue.LifoQueue[io.BytesIO] = queue.LifoQueue(maxsize=size)

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    @contextlib.contextmanager
    def acquire(self) -> Iterator[io.BytesIO]:
        """Lend out an empty buffer; it goes back to the pool on exit."""
        try:
            buf = self._idle.get_nowait()
        except queue.Empty:
            buf = io.BytesIO()
        buf.seek(0)
        buf.truncate()
        try:
            yield buf
        finally:
            try:
                self._idle.put_nowait(buf)
            except queue.Full:
                pass


def render_json(page: ListingPage, pool: BufferPool) -> bytes:
    """Render a page as a JSON document."""
    with pool.acquire() as buf:
        buf.write(json.dumps(page.to_dict()).encode())
        buf.write(b"\n")
        return buf.getvalue()


def render_html(page: ListingPage, template: Template, pool: BufferPool) -> bytes:
    """Render a page through ``template``.

    The template sees ``items``, ``count``, ``next_token`` and ``more``.
    """
    with pool.acquire() as buf:
        for chunk in template.generate(
            items=page.items,
            count=page.count,
            next_token=page.next_token or "",
            more=page.more,
        ):
            buf.write(chunk.encode())
        return buf.getvalue()


def load_template(path: str | Path | None = None) -> Template:
    """Compile the browse template at ``path``, or the built-in default.

    Raises:
        OSError: If the template file cannot be read.
        jinja2.TemplateSyntaxError: If the template does not compile.
    """
    if not path:
        return _env.from_string(DEFAULT_BROWSE_TEMPLATE)
    source = Path(path).read_text()
    logger.info("Loaded browse template from %s", path)
    return _env.from_string(source)
