"""PolicyCache — reviewer role permissions, loaded lazily and held for a TTL.

The role engine itself is external. The cache is owned by the application
and injected with Depends(), so each test can build a fresh one.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger("verification.auth")

PolicyTable = dict[str, frozenset[str]]

DEFAULT_ROLE_PERMISSIONS: PolicyTable = {
    "admin": frozenset({"cases:read", "cases:approve", "cases:reject", "audit:read"}),
    "reviewer": frozenset({"cases:read", "cases:approve", "cases:reject"}),
    "analyst": frozenset({"cases:read", "audit:read"}),
}


async def load_default_policies() -> PolicyTable:
    return DEFAULT_ROLE_PERMISSIONS


class PolicyCache:
    def __init__(
        self,
        loader: Callable[[], Awaitable[PolicyTable]] = load_default_policies,
        *,
        ttl_seconds: float = 300,
        max_load_attempts: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl_seconds = ttl_seconds
        self.max_load_attempts = max_load_attempts
        self.clock = clock
        self._policies: PolicyTable | None = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        return self._policies is not None and self.clock() - self._loaded_at < self.ttl_seconds

    async def get_policies(self) -> PolicyTable:
        if self._fresh():
            return self._policies
        async with self._lock:
            if self._fresh():
                return self._policies
            attempt = 1
            while True:
                try:
                    self._policies = await self.loader()
                    self._loaded_at = self.clock()
                    return self._policies
                except Exception as e:
                    if attempt >= self.max_load_attempts:
                        raise
                    logger.warning(
                        "Policy load attempt %d/%d failed: %s", attempt, self.max_load_attempts, e
                    )
                    attempt += 1

    async def is_allowed(self, role: str, permission: str) -> bool:
        policies = await self.get_policies()
        return permission in policies.get(role, frozenset())

    def invalidate(self) -> None:
        self._policies = None
