"""
In-process state shared by the watcher loop and the override handler.

Provides:
- TransitionCache: last notified (status, limit_reached, reason) per tenant
- TenantLockRegistry: one lock per tenant for read-modify-write sections

The transition cache is not a performance cache. It is edge-detection
memory: a notification is sent only when an evaluation differs from the
entry recorded here. It is empty after restart, so every tenant fires once
on the first tick.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock, RLock
from typing import Dict, Iterator, List, Optional

from license_engine.licensing.models import EffectiveState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionCacheEntry:
    """Last notified state of one tenant."""
    tenant_id: str
    state: EffectiveState
    updated_at: datetime

    def key(self) -> tuple:
        return self.state.key()


class TransitionCache:
    """
    Thread-safe map of tenant_id -> TransitionCacheEntry.

    Usage:
        cache = TransitionCache()
        if cache.is_edge(tenant_id, state):
            dispatcher.dispatch(...)
            cache.set(tenant_id, state)
    """

    def __init__(self):
        self._entries: Dict[str, TransitionCacheEntry] = {}
        self._lock = Lock()

    def get(self, tenant_id: str) -> Optional[TransitionCacheEntry]:
        with self._lock:
            return self._entries.get(tenant_id)

    def set(self, tenant_id: str, state: EffectiveState) -> TransitionCacheEntry:
        entry = TransitionCacheEntry(
            tenant_id=tenant_id,
            state=state,
            updated_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries[tenant_id] = entry
        return entry

    def is_edge(self, tenant_id: str, state: EffectiveState) -> bool:
        """True when there is no entry or the entry differs from state."""
        entry = self.get(tenant_id)
        return entry is None or entry.key() != state.key()

    def drop(self, tenant_id: str) -> bool:
        """Forget a tenant whose license no longer exists."""
        with self._lock:
            return self._entries.pop(tenant_id, None) is not None

    def prune(self, live_tenant_ids) -> List[str]:
        """Drop every entry whose tenant is not in live_tenant_ids."""
        live = set(live_tenant_ids)
        with self._lock:
            stale = [t for t in self._entries if t not in live]
            for tenant_id in stale:
                del self._entries[tenant_id]
        if stale:
            logger.info("Pruned transition cache entries", extra={"tenants": stale})
        return stale

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class _TenantLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = RLock()
        self.holders = 0


class TenantLockRegistry:
    """
    Hands out one re-entrant lock per tenant.

    Serializes a tenant's watcher reconcile, force_check and overrides while
    letting different tenants proceed independently. An entry lives only
    while some thread holds or waits on it, so the registry stays bounded by
    concurrency rather than by the number of tenant ids ever seen.
    """

    def __init__(self):
        self._locks: Dict[str, _TenantLock] = {}
        self._registry_lock = Lock()

    @contextmanager
    def hold(self, tenant_id: str) -> Iterator[None]:
        with self._registry_lock:
            entry = self._locks.get(tenant_id)
            if entry is None:
                entry = self._locks[tenant_id] = _TenantLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._registry_lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[tenant_id]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
