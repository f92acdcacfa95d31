from datetime import datetime

import redis

from core.config import settings


class _FakeRedis:
    """In-process stand-in for the handful of Redis commands the cart store needs."""

    def __init__(self):
        self._store = {}
        self._exp = {}

    def _cleanup(self, key):
        exp = self._exp.get(key)
        if exp is not None and datetime.utcnow().timestamp() > exp:
            self._store.pop(key, None)
            self._exp.pop(key, None)

    def setex(self, key, ttl, value):
        self._store[key] = value
        self._exp[key] = datetime.utcnow().timestamp() + int(ttl)

    def get(self, key):
        self._cleanup(key)
        return self._store.get(key)

    def delete(self, key):
        self._store.pop(key, None)
        self._exp.pop(key, None)


redis_client = _FakeRedis() if settings.TESTING else redis.from_url(settings.REDIS_URL, decode_responses=True)
