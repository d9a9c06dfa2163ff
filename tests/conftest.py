"""Shared pytest fixtures for s3proxy tests.

Apps are built with an injected in-memory object store, so the lifespan
(which only builds a store when none was given) does not need to run under
ASGITransport. Metrics stay disabled here; test_metrics.py builds its own
app with them on.
"""

from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

from s3proxy.config import ObservabilityConfig, ProxyConfig, S3ProxyConfig
from s3proxy.server import create_app
from s3proxy.storage.memory import MemoryObjectStore

BUCKET = "test-bucket"

TEST_JSON = b'{"foo": "bar"}'


def make_config(**proxy_overrides) -> S3ProxyConfig:
    """Build an app configuration for the test bucket."""
    return S3ProxyConfig(
        proxy=ProxyConfig(bucket=BUCKET, **proxy_overrides),
        observability=ObservabilityConfig(metrics=False),
    )


@pytest.fixture
async def store() -> MemoryObjectStore:
    """A memory store seeded with the objects the handler tests expect."""
    store = MemoryObjectStore(buckets=[BUCKET])
    seed = {
        "/test.json": (TEST_JSON, "application/json"),
        "/to-delete.json": (b"{}", "application/json"),
        "/inner/index.html": (b"my index.html", "text/html"),
        "/_errors/404.html": (b"this is 404", "text/html"),
        "/_errors/default.html": (b"this is a default error page", "text/html"),
    }
    for key, (body, content_type) in seed.items():
        await store.put_object(BUCKET, key, body, headers={"Content-Type": content_type})
    return store


@pytest.fixture
def make_client(store):
    """Factory for clients of an app over the seeded store.

    Usage: ``async with make_client(enable_put=True) as client: ...``
    """

    @asynccontextmanager
    async def _make(next_handler=None, **proxy_overrides):
        app = create_app(make_config(**proxy_overrides), store=store, next_handler=next_handler)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac

    return _make


@pytest.fixture
async def client(make_client):
    """A client for the default configuration."""
    async with make_client() as ac:
        yield ac
