"""
Redis-based registration of the background tracking task.

The continuous-tracking task is process-wide singleton state: at most one
registration may exist at a time.  A registration is a key set with
SET NX EX; the owner refreshes the TTL on every sampling tick, so a process
that is suspended longer than the TTL silently loses its registration and
must re-register on resume.

Refresh and release are atomic check-and-act Lua scripts so a stale owner
can never extend or delete someone else's registration.
"""

from __future__ import annotations

import uuid
from typing import Optional

import redis.asyncio as aioredis

_RELEASE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_REFRESH = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 60
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE, 1, self.key, self.token)

    async def refresh(self) -> bool:
        """Extend the TTL if we still own the lock. Returns False if it was lost."""
        return bool(await self.redis.eval(_REFRESH, 1, self.key, self.token, self.ttl))

    async def owner(self) -> Optional[str]:
        value = await self.redis.get(self.key)
        if isinstance(value, bytes):
            value = value.decode()
        return value

    async def is_held(self) -> bool:
        """True if the lock exists and belongs to us."""
        return await self.owner() == self.token

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire()
        if not acquired:
            raise RuntimeError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()
