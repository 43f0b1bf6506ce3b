"""
Unit tests for the store cache and the settings read through it.
"""

from decimal import Decimal

import redis

from storefront.services.cache_service import StoreCache, EXTENSION_KEY
from storefront.services.settings_service import get_tax_rate, update_setting


class InMemoryRedis:
    """The subset of the redis client the cache uses."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)


class UnreachableRedis:
    def get(self, key):
        raise redis.ConnectionError('connection refused')

    def setex(self, key, ttl, value):
        raise redis.ConnectionError('connection refused')

    def delete(self, key):
        raise redis.ConnectionError('connection refused')


class TestStoreCache:

    def test_disabled_cache_always_loads(self):
        cache = StoreCache.from_config({'CACHE_ENABLED': False})
        calls = []

        for _ in range(2):
            assert cache.memoize('settings', 'tax_rate', lambda: calls.append(1) or 'x') == 'x'

        assert cache.enabled is False
        assert len(calls) == 2

    def test_memoize_keeps_decimals(self):
        client = InMemoryRedis()
        cache = StoreCache(client, prefix='shop', default_ttl=60)
        calls = []

        def loader():
            calls.append(1)
            return {'value': Decimal('0.0725'), 'type': 'NUMBER'}

        first = cache.memoize('settings', 'tax_rate', loader, ttl=300)
        second = cache.memoize('settings', 'tax_rate', loader, ttl=300)

        assert first == second == {'value': Decimal('0.0725'), 'type': 'NUMBER'}
        assert isinstance(second['value'], Decimal)
        assert len(calls) == 1
        assert client.ttls == {'shop:settings:tax_rate': 300}

    def test_missing_values_are_not_cached(self):
        client = InMemoryRedis()
        cache = StoreCache(client)

        assert cache.memoize('settings', 'absent', lambda: None) is None
        assert client.data == {}

    def test_unreachable_redis_falls_back_to_loader(self):
        cache = StoreCache(UnreachableRedis())

        assert cache.memoize('settings', 'tax_rate', lambda: 'loaded') == 'loaded'
        cache.delete('settings', 'tax_rate')


def test_setting_update_invalidates_cached_value(app, session, monkeypatch):
    monkeypatch.setitem(app.extensions, EXTENSION_KEY, StoreCache(InMemoryRedis()))

    update_setting(session, 'tax_rate', '0.05', 'NUMBER')
    assert get_tax_rate(session) == Decimal('0.05')

    update_setting(session, 'tax_rate', '0.10', 'NUMBER')
    assert get_tax_rate(session) == Decimal('0.10')
