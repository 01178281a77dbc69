"""
Time-bounded memo of fetched permission sets, keyed by role id.
"""
import time
from collections.abc import Awaitable, Callable, MutableMapping
from typing import Optional, Tuple

from app.features.permissions.schemas import PermissionSet
from app.utils import get_logger


log = get_logger(__name__)

Clock = Callable[[], float]
PermissionFetch = Callable[[int], Awaitable[PermissionSet]]


class PermissionCache:
    """
    Maps role_id -> (PermissionSet, fetched_at).

    An entry is reused while now - fetched_at < ttl_seconds. Writes to the
    permission tables do not invalidate entries: a warm entry may serve the
    pre-change value until it expires.

    The clock and the backing mapping are injectable so tests can advance
    time without sleeping. No locking: concurrent misses for the same role
    each fetch and the last one stored wins.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Clock = time.monotonic,
        entries: Optional[MutableMapping[int, Tuple[PermissionSet, float]]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.entries: MutableMapping[int, Tuple[PermissionSet, float]] = {} if entries is None else entries

    def peek(self, role_id: int) -> Optional[PermissionSet]:
        """Return the cached set if present and fresh, without fetching."""
        entry = self.entries.get(role_id)
        if entry is None:
            return None
        permissions, fetched_at = entry
        if self.clock() - fetched_at >= self.ttl_seconds:
            del self.entries[role_id]
            return None
        return permissions

    async def get(self, role_id: int, fetch: PermissionFetch) -> PermissionSet:
        """
        Return the role's permission set, calling fetch on a miss or expiry.

        Errors raised by fetch propagate and nothing is stored.
        """
        cached = self.peek(role_id)
        if cached is not None:
            log.debug(f"Permission cache hit for role {role_id}")
            return cached

        log.debug(f"Permission cache miss for role {role_id}")
        permissions = await fetch(role_id)
        self.entries[role_id] = (permissions, self.clock())
        return permissions

    def invalidate(self, role_id: int) -> None:
        self.entries.pop(role_id, None)

    def clear(self) -> None:
        self.entries.clear()
