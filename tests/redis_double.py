"""In-process replacement for the Redis client used by the test suite.

Implements only the commands the application issues. Expiry is tracked
with wall-clock deadlines so TTL-based behaviour (lockouts, idle
sessions) can be exercised by moving ``now`` forward.
"""

import fnmatch
import time
from typing import Any


class InMemoryRedis:
    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.deadlines: dict[str, float] = {}
        self.offset = 0.0

    def now(self) -> float:
        return time.time() + self.offset

    def advance(self, seconds: float) -> None:
        """Move the clock forward, expiring keys as Redis would."""
        self.offset += seconds

    def _purge(self, key: str) -> None:
        deadline = self.deadlines.get(key)
        if deadline is not None and deadline <= self.now():
            self.values.pop(key, None)
            self.deadlines.pop(key, None)

    def _alive(self, key: str) -> bool:
        self._purge(key)
        return key in self.values

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None

    async def get(self, key: str) -> Any:
        return self.values.get(key) if self._alive(key) else None

    async def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool:
        if nx and self._alive(key):
            return False
        self.values[key] = str(value)
        if ex:
            self.deadlines[key] = self.now() + ex
        else:
            self.deadlines.pop(key, None)
        return True

    async def setex(self, key: str, seconds: int, value: Any) -> bool:
        return await self.set(key, value, ex=seconds)

    async def getdel(self, key: str) -> Any:
        value = await self.get(key)
        await self.delete(key)
        return value

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._alive(key):
                deleted += 1
            self.values.pop(key, None)
            self.deadlines.pop(key, None)
        return deleted

    async def exists(self, key: str) -> int:
        return 1 if self._alive(key) else 0

    async def incr(self, key: str) -> int:
        value = int(await self.get(key) or 0) + 1
        self.values[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        if not self._alive(key):
            return False
        self.deadlines[key] = self.now() + seconds
        return True

    async def ttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        deadline = self.deadlines.get(key)
        if deadline is None:
            return -1
        return max(int(deadline - self.now()), 0)

    async def scan(self, cursor: int = 0, match: str = "*", count: int = 100) -> tuple[int, list]:
        keys = [k for k in list(self.values) if self._alive(k) and fnmatch.fnmatch(k, match)]
        return 0, keys

    async def zremrangebyscore(self, key: str, low: float, high: float) -> int:
        members: dict[str, float] = self.values.get(key) or {}
        stale = [m for m, score in members.items() if low <= score <= high]
        for member in stale:
            del members[member]
        return len(stale)

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        members = self.values.setdefault(key, {})
        members.update(mapping)
        return len(mapping)

    async def zcard(self, key: str) -> int:
        return len(self.values.get(key) or {})

    def pipeline(self, transaction: bool = True) -> "Pipeline":
        return Pipeline(self)


class Pipeline:
    def __init__(self, client: InMemoryRedis) -> None:
        self.client = client
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def __aenter__(self) -> "Pipeline":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    def __getattr__(self, name: str) -> Any:
        def queue(*args: Any) -> None:
            self.calls.append((name, args))

        return queue

    async def execute(self) -> list[Any]:
        results = [await getattr(self.client, name)(*args) for name, args in self.calls]
        self.calls.clear()
        return results
