"""
Redis read-through cache for store data that rarely changes, such as settings.

Redis is optional. When it is disabled or unreachable, reads go straight to
the loader and writes are dropped, so the storefront keeps serving from the
database.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

import redis
from flask import Flask, current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'store_cache'
_DECIMAL_TAG = '$decimal'


def _encode_default(obj: Any) -> Any:
    # Tax rates and prices must come back as exact Decimals
    if isinstance(obj, Decimal):
        return {_DECIMAL_TAG: str(obj)}
    raise TypeError(f"Cannot cache values of type {type(obj).__name__}")


def _decode_hook(obj: dict) -> Any:
    if _DECIMAL_TAG in obj:
        return Decimal(obj[_DECIMAL_TAG])
    return obj


class StoreCache:
    """
    Namespaced JSON values in Redis under `{prefix}:{namespace}:{key}`.

    A cache without a client is a valid, always-missing cache.
    """

    def __init__(self, client: Optional[redis.Redis] = None, prefix: str = 'storefront', default_ttl: int = 60):
        self.client = client
        self.prefix = prefix
        self.default_ttl = default_ttl

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'StoreCache':
        prefix = config.get('CACHE_KEY_PREFIX', 'storefront')
        default_ttl = config.get('CACHE_DEFAULT_TTL', 60)
        if not config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled by configuration")
            return cls(None, prefix, default_ttl)

        url = config.get('REDIS_URL', 'redis://redis:6379/0')
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=3, socket_timeout=3,
                                retry_on_timeout=True, health_check_interval=30)
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {url}: {e}. Serving from the database.")
            return cls(None, prefix, default_ttl)

        logger.info(f"[CACHE] Redis connected: {url}")
        return cls(client, prefix, default_ttl)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def key_for(self, namespace: str, key: str) -> str:
        return f"{self.prefix}:{namespace}:{key}"

    def get(self, namespace: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self.key_for(namespace, key))
            return None if raw is None else json.loads(raw, object_hook=_decode_hook)
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"[CACHE] Read of {namespace}:{key} failed: {e}")
            return None

    def set(self, namespace: str, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if not self.enabled:
            return
        try:
            payload = json.dumps(value, default=_encode_default)
            self.client.setex(self.key_for(namespace, key), ttl or self.default_ttl, payload)
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Write of {namespace}:{key} failed: {e}")

    def delete(self, namespace: str, key: str) -> None:
        if not self.enabled:
            return
        try:
            self.client.delete(self.key_for(namespace, key))
        except redis.RedisError as e:
            logger.warning(f"[CACHE] Invalidation of {namespace}:{key} failed: {e}")

    def memoize(self, namespace: str, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cached value, or the loader's result stored for next time. None is never cached."""
        cached = self.get(namespace, key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(namespace, key, value, ttl)
        return value


def init_cache(app: Flask) -> None:
    app.extensions[EXTENSION_KEY] = StoreCache.from_config(app.config)


def get_cache() -> StoreCache:
    """The current app's cache. Raises RuntimeError before `init_cache`."""
    cache = current_app.extensions.get(EXTENSION_KEY)
    if cache is None:
        raise RuntimeError("Cache not initialized.")
    return cache
