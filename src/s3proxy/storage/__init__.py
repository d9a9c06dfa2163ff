"""Object store backends for s3proxy."""

from typing import TYPE_CHECKING

from s3proxy.storage.backend import ListedObject, ListResult, ObjectStore, StoredObject

if TYPE_CHECKING:
    from s3proxy.config import StorageConfig

__all__ = [
    "create_object_store",
    "ListedObject",
    "ListResult",
    "ObjectStore",
    "StoredObject",
]


def create_object_store(config: "StorageConfig", bucket: str = "") -> ObjectStore:
    """Create an object store instance based on configuration.

    Args:
        config: The storage configuration.
        bucket: The proxied bucket; the memory backend creates it up front.

    Returns:
        An object store implementing the ObjectStore protocol.

    Raises:
        ValueError: If the backend is unknown.
    """
    backend = config.backend

    if backend == "aws":
        from s3proxy.storage.aws import AWSObjectStore

        return AWSObjectStore(
            region=config.region,
            endpoint_url=config.endpoint,
            profile=config.profile,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            force_path_style=config.force_path_style,
            use_accelerate=config.use_accelerate,
        )

    elif backend == "memory":
        from s3proxy.storage.memory import MemoryObjectStore

        return MemoryObjectStore(buckets=[bucket] if bucket else None)

    else:
        raise ValueError(f"Unknown storage backend: {backend}")
