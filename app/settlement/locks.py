"""
Redis locks for settlement work that must not run twice at once.

Row-level races (payment success, payout claim) are settled by conditional
UPDATEs. A lock is only needed where Stripe is called before any local row
can be guarded:

- connected account creation, keyed per merchant
- the stuck-payout sweep, a single global key

Both callers fail fast rather than wait, so acquisition never blocks.

Usage:
    from settlement.locks import DistributedLock

    with DistributedLock(f"connect:create:{merchant.id}", ttl=60):
        ...
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from settlement.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from redis import Redis

# Deletes the key only while it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class DistributedLock:
    """
    Non-blocking Redis lock with an expiry.

    The ttl must outlast the guarded work including Stripe's timeout; a
    crashed worker's lock then expires on its own.

    Raises:
        LockAcquisitionError: from __enter__/acquire when another holder exists
    """

    def __init__(self, key: str, ttl: int = 30) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self._token: str | None = None

    @property
    def redis(self) -> Redis:
        return get_redis_connection("default")

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def acquire(self) -> None:
        token = uuid.uuid4().hex
        if not self.redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held", details={"key": self.key}
            )
        self._token = token

    def release(self) -> bool:
        """Release if still ours. Returns False when the lock had expired or was never taken."""
        if self._token is None:
            return False
        token, self._token = self._token, None
        return bool(self.redis.eval(RELEASE_SCRIPT, 1, self.key, token))

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
