"""Key-value persistence for session snapshots (ledger, quota, wallet, draft)."""

import json
import logging
from typing import Any, Optional, Protocol

import redis

from src.config import get_settings

logger = logging.getLogger(__name__)


class PersistenceStore(Protocol):
    """Durable key-value store holding JSON-serializable values."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryPersistenceStore:
    """Process-local store used for tests and local development."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        # Serialize on write so callers never share mutable state with the store
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class RedisPersistenceStore:
    """Redis-backed store. Values are stored as JSON strings."""

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "studio",
        ttl_seconds: Optional[int] = None,
    ):
        self._redis_url = redis_url
        self._prefix = key_prefix
        self._ttl = ttl_seconds
        self._client = None

    @property
    def client(self) -> redis.Redis:
        """Lazy initialization of the Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Discarding corrupt snapshot at {self._key(key)}")
            return None

    def set(self, key: str, value: Any) -> None:
        self.client.set(self._key(key), json.dumps(value), ex=self._ttl)

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


def session_key(kind: str, session_id: str) -> str:
    """Key under which a session's snapshot of the given kind lives."""
    return f"{kind}:{session_id}"


def create_persistence_store() -> PersistenceStore:
    """Build the store selected by configuration."""
    settings = get_settings()
    if settings.persistence_backend == "memory":
        return InMemoryPersistenceStore()
    return RedisPersistenceStore(
        settings.redis_url,
        key_prefix=settings.persistence_key_prefix,
        ttl_seconds=settings.persistence_ttl_seconds,
    )
