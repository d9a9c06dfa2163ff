"""Object retrieval with index-file probing for s3proxy."""

import logging
import posixpath

from s3proxy import metrics
from s3proxy.conditional import NO_CONDITIONS, ConditionalParams
from s3proxy.config import ProxyConfig
from s3proxy.errors import StoreError, classify_error, is_not_found
from s3proxy.paths import ResolvedKey
from s3proxy.storage.backend import ObjectStore, StoredObject

logger = logging.getLogger(__name__)


def _outcome(exc: BaseException) -> str:
    return exc.code if isinstance(exc, StoreError) else type(exc).__name__


class ObjectFetcher:
    """Fetches objects for GET requests.

    Attributes:
        store: The object store client.
        config: The proxy configuration.
    """

    def __init__(self, store: ObjectStore, config: ProxyConfig) -> None:
        self.store = store
        self.config = config

    @property
    def bucket(self) -> str:
        return self.config.bucket

    async def _get(self, key: str, conditional: ConditionalParams) -> StoredObject:
        try:
            obj = await self.store.get_object(self.bucket, key, conditional)
        except Exception as exc:
            metrics.observe_store_operation("get", _outcome(exc))
            raise
        metrics.observe_store_operation("get", "ok")
        return obj

    async def probe_index(
        self, resolved: ResolvedKey, conditional: ConditionalParams
    ) -> StoredObject | None:
        """Try each configured index name below a directory key, in order.

        Returns:
            The first index object found, or None if none could be fetched.
        """
        for index_name in self.config.index_names:
            index_key = posixpath.join(resolved.key, index_name)
            try:
                return await self._get(index_key, conditional)
            except Exception as exc:
                # A missing index is routine; anything else is worth a look.
                level = logging.DEBUG if is_not_found(exc) else logging.WARNING
                logger.log(
                    level,
                    "error when looking for index: %s",
                    exc,
                    extra={"bucket": self.bucket, "key": index_key},
                )
        return None

    async def fetch(
        self, resolved: ResolvedKey, conditional: ConditionalParams = NO_CONDITIONS
    ) -> StoredObject | None:
        """Fetch the object for a resolved key.

        Directory keys are resolved through the index names first. If no
        index exists the result is None and the caller decides between a
        listing and a 403.

        Raises:
            HandlerError: The classified failure of the object fetch.
        """
        if resolved.is_directory:
            if not self.config.index_names:
                return None
            return await self.probe_index(resolved, conditional)

        return await self.fetch_key(resolved.key, conditional)

    async def fetch_key(
        self, key: str, conditional: ConditionalParams = NO_CONDITIONS
    ) -> StoredObject:
        """Fetch a single key.

        Raises:
            HandlerError: The classified failure.
        """
        try:
            return await self._get(key, conditional)
        except Exception as exc:
            err = classify_error(exc)
            if is_not_found(exc):
                logger.debug(
                    "not found: %s", exc, extra={"bucket": self.bucket, "key": key}
                )
            else:
                logger.error(
                    "failed to get object: %s",
                    exc,
                    extra={"bucket": self.bucket, "key": key},
                )
            raise err from exc
